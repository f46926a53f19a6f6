"""
Pull structured pieces out of free-form conversation replies.

Replies are markdown written by a language model, so every function here is
lenient: malformed input yields ``None`` (or an empty list), never an
exception.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from pipeline_converter.models.dto import ValidationIssue, ValidationSeverity

FENCE = "```"

_FENCE_OPEN_RE = re.compile(r"```[ \t]*(?:yaml|yml)[ \t]*\r?\n", re.IGNORECASE)
_TOP_LEVEL_KEYS = ("name:", "on:")

_KEY_VALUE_RE = re.compile(r"^[\"']?[A-Za-z0-9_.\-]+[\"']?:(\s|$)")
_LIST_ITEM_RE = re.compile(r"^\s*-(\s|$)")
_COMMENT_RE = re.compile(r"^\s*#")
_INDENTED_RE = re.compile(r"^\s+\S")

_ISSUE_RE = re.compile(
    r"^[-*]\s*\[(?P<severity>error|warning|warn|info)\](?P<rest>.*)$",
    re.IGNORECASE,
)
_LINE_REF_RE = re.compile(r"\bline\s+(?P<line>\d+)\b", re.IGNORECASE)
_TRAILING_LINE_REF_RE = re.compile(r"\s*\(\s*line\s+\d+\s*\)\s*$", re.IGNORECASE)
_HEADING_RE = re.compile(r"^#{1,6}\s")
_SUGGESTIONS_HEADING_RE = re.compile(r"^#{1,6}\s*suggestions\b", re.IGNORECASE)
_IMPROVED_HEADING_RE = re.compile(
    r"^#{1,6}\s*improved\s+(?:workflow|version)\b", re.IGNORECASE
)

_SEVERITIES = {
    "error": ValidationSeverity.ERROR,
    "warning": ValidationSeverity.WARNING,
    "warn": ValidationSeverity.WARNING,
    "info": ValidationSeverity.INFO,
}


def _find_fenced_block(text: str, require_close: bool = False) -> Optional[str]:
    match = _FENCE_OPEN_RE.search(text)
    if not match:
        return None
    body_start = match.end()
    body_end = text.find(FENCE, body_start)
    if body_end == -1:
        if require_close:
            return None
        body_end = len(text)
    body = text[body_start:body_end]
    return body.strip() or None


def _is_structured(line: str) -> bool:
    return bool(
        _KEY_VALUE_RE.match(line)
        or _LIST_ITEM_RE.match(line)
        or _COMMENT_RE.match(line)
        or _INDENTED_RE.match(line)
    )


def _scan_unfenced(text: str) -> Optional[str]:
    collected: list[str] = []
    started = False
    for line in text.splitlines():
        if not started:
            if line.lstrip().startswith(_TOP_LEVEL_KEYS):
                started = True
                collected.append(line)
            continue
        if not line.strip() or _is_structured(line):
            collected.append(line)
            continue
        break
    result = "\n".join(collected).strip()
    return result or None


def extract_artifact(text: str) -> Optional[str]:
    """
    Return the workflow document contained in a conversion reply.

    The first ```yaml / ```yml fenced block wins (tags are case-insensitive,
    an unterminated block runs to the end of the text). Without a fence, a
    heuristic scan starts at the first line beginning with ``name:`` or
    ``on:`` and stops at the first prose line after it. Blank lines inside
    the block are kept; trailing ones are dropped.
    """
    if not text:
        return None
    fenced = _find_fenced_block(text)
    if fenced is not None:
        return fenced
    if _FENCE_OPEN_RE.search(text):
        # an empty fenced block is an explicit answer; do not guess around it
        return None
    return _scan_unfenced(text)


def extract_notes(text: str) -> Optional[list[str]]:
    """
    Non-empty, stripped lines following the last closed fenced block.

    An odd number of fences means the last block was never closed, so there
    is nothing after it.
    """
    if not text:
        return None
    if text.count(FENCE) % 2:
        return None
    last_fence = text.rfind(FENCE)
    if last_fence == -1:
        return None
    tail = text[last_fence + len(FENCE):]
    notes = [line.strip() for line in tail.splitlines() if line.strip()]
    return notes or None


def _issue_message(line: str, rest: str) -> str:
    message = rest.strip().lstrip(":").strip()
    if not message:
        message = line.lstrip("-* ").strip()
    return message


def parse_validation_issues(text: str) -> list[ValidationIssue]:
    """
    Issues marked ``- [ERROR]``, ``- [WARNING]`` or ``- [INFO]`` in a reply.

    Markers are case-insensitive and the space after the bullet is optional.
    A ``Line N`` reference in the message becomes the issue's line number.
    """
    issues: list[ValidationIssue] = []
    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        match = _ISSUE_RE.match(line)
        if not match:
            continue
        message = _issue_message(line, match.group("rest"))
        line_number = None
        line_ref = _LINE_REF_RE.search(message)
        if line_ref:
            line_number = int(line_ref.group("line")) or None
            stripped = _TRAILING_LINE_REF_RE.sub("", message)
            message = stripped or message
        issues.append(
            ValidationIssue(
                severity=_SEVERITIES[match.group("severity").lower()],
                message=message,
                line_number=line_number,
            )
        )
    return issues


def _section_lines(text: str, heading_re: re.Pattern) -> Optional[list[str]]:
    lines = (text or "").splitlines()
    for index, line in enumerate(lines):
        if heading_re.match(line.strip()):
            section: list[str] = []
            for following in lines[index + 1:]:
                if _HEADING_RE.match(following.strip()):
                    break
                section.append(following)
            return section
    return None


def extract_suggestions(text: str) -> Optional[list[str]]:
    """List items of the ``Suggestions`` section, up to the next heading."""
    section = _section_lines(text, _SUGGESTIONS_HEADING_RE)
    if not section:
        return None
    suggestions = []
    for line in section:
        stripped = line.strip()
        if stripped.startswith(("-", "*")):
            item = stripped[1:].strip()
            if item:
                suggestions.append(item)
    return suggestions or None


def extract_improved_artifact(text: str) -> Optional[str]:
    """
    Fenced workflow following an ``Improved Workflow`` heading.

    A body of one or two lines that starts with a comment is the
    "no changes needed" placeholder and counts as absent. So is a block
    without its closing fence, which means the reply was cut short.
    """
    lines = (text or "").splitlines(keepends=True)
    for index, line in enumerate(lines):
        if _IMPROVED_HEADING_RE.match(line.strip()):
            remainder = "".join(lines[index + 1:])
            body = _find_fenced_block(remainder, require_close=True)
            if body is None:
                return None
            body_lines = body.splitlines()
            if body.startswith("#") and len(body_lines) < 3:
                return None
            return body
    return None


@dataclass(frozen=True)
class ValidationReply:
    """Everything parsed from one validation reply."""

    issues: list[ValidationIssue]
    suggestions: Optional[list[str]]
    improved_artifact: Optional[str]


def parse_validation_response(text: str) -> ValidationReply:
    return ValidationReply(
        issues=parse_validation_issues(text),
        suggestions=extract_suggestions(text),
        improved_artifact=extract_improved_artifact(text),
    )
