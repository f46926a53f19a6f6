"""
Local checks on generated GitHub Actions workflows.

Two layers live here:
- ``run_local_checks``: structural checks that seed every validation
  outcome before the conversation service is asked for its review.
- The validation toolset (``VALIDATION_TOOLS``): plain-text tools the
  conversation service may call while it reviews a workflow.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

import yaml

from pipeline_converter.models.dto import ValidationIssue, ValidationSeverity


_USES_RE = re.compile(r"^\s*-?\s*uses:\s*(?P<ref>\S+)", re.MULTILINE)
_UNTRUSTED_EXPRESSION_RE = re.compile(
    r"\$\{\{\s*github\.event\.(?:issue|pull_request|comment|review|head_commit)"
    r"[\w.]*\.(?:title|body|message|name|email|label|ref)\s*\}\}"
)


def _load(text: str) -> tuple[Any, Optional[yaml.YAMLError]]:
    try:
        return yaml.safe_load(text), None
    except yaml.YAMLError as exc:
        return None, exc


def _error_line(exc: yaml.YAMLError) -> Optional[int]:
    mark = getattr(exc, "problem_mark", None) or getattr(exc, "context_mark", None)
    if mark is None:
        return None
    return mark.line + 1


def _triggers(document: dict) -> Any:
    # YAML 1.1 reads a bare `on` key as boolean True
    if "on" in document:
        return document["on"]
    return document.get(True)


def check_yaml_syntax(text: str) -> list[ValidationIssue]:
    _, exc = _load(text)
    if exc is None:
        return []
    problem = getattr(exc, "problem", None) or str(exc).splitlines()[0]
    return [
        ValidationIssue(
            severity=ValidationSeverity.ERROR,
            message=f"Invalid YAML syntax: {problem}",
            line_number=_error_line(exc),
        )
    ]


def _string_structure_checks(text: str) -> list[ValidationIssue]:
    issues = []
    if not re.search(r"^['\"]?on['\"]?\s*:", text, re.MULTILINE):
        issues.append(
            ValidationIssue(
                severity=ValidationSeverity.ERROR,
                message="Missing 'on:' trigger definition",
            )
        )
    if not re.search(r"^jobs\s*:", text, re.MULTILINE):
        issues.append(
            ValidationIssue(
                severity=ValidationSeverity.ERROR,
                message="Missing 'jobs:' section",
            )
        )
    if "runs-on:" not in text:
        issues.append(
            ValidationIssue(
                severity=ValidationSeverity.WARNING,
                message="No 'runs-on:' found - jobs may be missing runner specification",
                suggestion="Add 'runs-on: ubuntu-latest' to each job",
            )
        )
    return issues


def check_workflow_structure(text: str) -> list[ValidationIssue]:
    """
    Required sections are present and some job declares its runner.

    Falls back to line matching when the document does not parse as a mapping.
    """
    document, exc = _load(text)
    if exc is not None or not isinstance(document, dict):
        return _string_structure_checks(text)

    issues = []
    if _triggers(document) is None:
        issues.append(
            ValidationIssue(
                severity=ValidationSeverity.ERROR,
                message="Missing 'on:' trigger definition",
            )
        )
    jobs = document.get("jobs")
    if not isinstance(jobs, dict) or not jobs:
        issues.append(
            ValidationIssue(
                severity=ValidationSeverity.ERROR,
                message="Missing 'jobs:' section",
            )
        )
        return issues

    has_runner = any(
        isinstance(job, dict) and ("runs-on" in job or "uses" in job)
        for job in jobs.values()
    )
    if not has_runner:
        issues.append(
            ValidationIssue(
                severity=ValidationSeverity.WARNING,
                message="No 'runs-on:' found - jobs may be missing runner specification",
                suggestion="Add 'runs-on: ubuntu-latest' to each job",
            )
        )
    return issues


def run_local_checks(text: str) -> list[ValidationIssue]:
    """Syntax issues first, then structural ones."""
    return check_yaml_syntax(text) + check_workflow_structure(text)


# ---------------------------------------------------------------------------
# Validation toolset
# ---------------------------------------------------------------------------


def validate_yaml_syntax(workflow: str) -> str:
    issues = run_local_checks(workflow)
    if not issues:
        return "YAML syntax is valid. Found 'on' trigger and 'jobs' section."
    return "\n".join(
        f"[{issue.severity.name}] {issue.message}"
        + (f" (Line {issue.line_number})" if issue.line_number else "")
        for issue in issues
    )


def check_security(workflow: str) -> str:
    findings = []
    if re.search(r"permissions:\s*write-all", workflow):
        findings.append(
            "WARNING: 'permissions: write-all' grants every scope; "
            "declare only the permissions each job needs"
        )
    if "pull_request_target" in workflow:
        findings.append(
            "WARNING: 'pull_request_target' runs with repository secrets; "
            "never check out untrusted pull request code in it"
        )
    if _UNTRUSTED_EXPRESSION_RE.search(workflow):
        findings.append(
            "ERROR: untrusted event data is interpolated directly into a step; "
            "pass it through an environment variable instead"
        )
    if re.search(r"(password|token|secret|api[_-]?key)\s*:\s*['\"]?[A-Za-z0-9]{8,}",
                 workflow, re.IGNORECASE):
        findings.append("ERROR: possible hard-coded credential; use ${{ secrets.* }}")
    if "permissions:" not in workflow:
        findings.append(
            "INFO: no 'permissions:' block; the default token scope applies"
        )
    return "\n".join(findings) if findings else "No security issues found."


def validate_action_versions(workflow: str) -> str:
    findings = []
    for match in _USES_RE.finditer(workflow):
        ref = match.group("ref").strip("'\"")
        if ref.startswith(("./", "docker://")):
            continue
        if "@" not in ref:
            findings.append(f"WARNING: {ref} has no version pin")
            continue
        action, version = ref.rsplit("@", 1)
        if version in ("main", "master"):
            findings.append(
                f"WARNING: {action}@{version} tracks a branch; pin a release tag or commit SHA"
            )
    return "\n".join(findings) if findings else "All action references are pinned."


@dataclass(frozen=True)
class ValidationTool:
    """A tool the conversation service may call during validation."""

    name: str
    description: str
    handler: Callable[[str], str]

    def schema(self) -> dict[str, Any]:
        """OpenAI-style function definition."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        "workflow": {
                            "type": "string",
                            "description": "The GitHub Actions workflow YAML",
                        }
                    },
                    "required": ["workflow"],
                },
            },
        }

    def invoke(self, arguments: dict[str, Any]) -> str:
        workflow = arguments.get("workflow")
        if not isinstance(workflow, str):
            return "Error: missing 'workflow' argument"
        return self.handler(workflow)


VALIDATION_TOOLS: dict[str, ValidationTool] = {
    tool.name: tool
    for tool in (
        ValidationTool(
            "validate_yaml_syntax",
            "Check that a workflow parses as YAML and has 'on' and 'jobs'.",
            validate_yaml_syntax,
        ),
        ValidationTool(
            "check_security",
            "Look for common security problems in a GitHub Actions workflow.",
            check_security,
        ),
        ValidationTool(
            "validate_action_versions",
            "Report action references that are unpinned or track a branch.",
            validate_action_versions,
        ),
    )
}


def select_tools(check_security_enabled: bool = True,
                 check_versions_enabled: bool = True) -> tuple[str, ...]:
    """Names of the toolset entries enabled by configuration."""
    names = ["validate_yaml_syntax"]
    if check_security_enabled:
        names.append("check_security")
    if check_versions_enabled:
        names.append("validate_action_versions")
    return tuple(names)
