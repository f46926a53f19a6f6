"""Unit tests for local workflow checks and the validation toolset."""

from pipeline_converter.models.dto import ValidationSeverity
from pipeline_converter.processors.workflow_checks import (
    VALIDATION_TOOLS,
    check_security,
    check_workflow_structure,
    run_local_checks,
    select_tools,
    validate_action_versions,
    validate_yaml_syntax,
)
from tests.fakes import WORKFLOW


class TestLocalChecks:
    """Tests for run_local_checks."""

    def test_valid_workflow_has_no_issues(self):
        """Test a complete workflow passes every local check."""
        assert run_local_checks(WORKFLOW) == []

    def test_quoted_on_key_is_accepted(self):
        """Test a quoted 'on' key counts as the trigger section."""
        text = '"on": push\njobs:\n  a:\n    runs-on: ubuntu-latest\n'
        assert run_local_checks(text) == []

    def test_syntax_error_reports_line_and_falls_back(self):
        """Test broken YAML yields a syntax error plus line-based checks."""
        text = "name: x\njobs:\n  build: [unclosed\n"
        issues = run_local_checks(text)
        assert issues[0].severity == ValidationSeverity.ERROR
        assert issues[0].message.startswith("Invalid YAML syntax")
        assert issues[0].line_number is not None
        messages = [i.message for i in issues[1:]]
        assert "Missing 'on:' trigger definition" in messages
        assert "Missing 'jobs:' section" not in messages
        assert issues[-1].severity == ValidationSeverity.WARNING

    def test_missing_jobs(self):
        """Test a workflow without jobs is an error."""
        issues = check_workflow_structure("name: x\non: push\n")
        assert [(i.severity, i.message) for i in issues] == [
            (ValidationSeverity.ERROR, "Missing 'jobs:' section")
        ]

    def test_missing_runner_is_warning(self):
        """Test jobs without runs-on produce a warning with a suggestion."""
        text = "on: push\njobs:\n  build:\n    steps:\n      - run: echo hi\n"
        issues = check_workflow_structure(text)
        assert len(issues) == 1
        assert issues[0].severity == ValidationSeverity.WARNING
        assert issues[0].suggestion

    def test_reusable_workflow_job_counts_as_runner(self):
        """Test a job calling a reusable workflow needs no runs-on."""
        text = "on: push\njobs:\n  call:\n    uses: org/repo/.github/workflows/ci.yml@v1\n"
        assert check_workflow_structure(text) == []


class TestValidationTools:
    """Tests for the toolset offered to the conversation service."""

    def test_yaml_tool_reports_success(self):
        """Test the syntax tool confirms a valid workflow."""
        assert validate_yaml_syntax(WORKFLOW).startswith("YAML syntax is valid")

    def test_yaml_tool_reports_issues(self):
        """Test the syntax tool lists issues with severities."""
        assert "[ERROR] Missing 'jobs:' section" in validate_yaml_syntax("on: push\n")

    def test_action_versions(self):
        """Test branch refs and missing pins are reported."""
        text = (
            "steps:\n"
            "  - uses: actions/checkout@main\n"
            "  - uses: some/action\n"
            "  - uses: actions/setup-node@v4\n"
            "  - uses: ./local-action\n"
        )
        report = validate_action_versions(text)
        assert "actions/checkout@main tracks a branch" in report
        assert "some/action has no version pin" in report
        assert "setup-node" not in report
        assert "local-action" not in report
        assert validate_action_versions(WORKFLOW) == "All action references are pinned."

    def test_security(self):
        """Test risky settings are reported."""
        text = "on: pull_request_target\npermissions: write-all\njobs: {}\n"
        report = check_security(text)
        assert "write-all" in report
        assert "pull_request_target" in report
        assert "INFO" not in report

    def test_untrusted_expression(self):
        """Test event data interpolated into a step is an error."""
        text = "permissions: {}\nsteps:\n  - run: echo ${{ github.event.issue.title }}\n"
        assert "ERROR: untrusted event data" in check_security(text)

    def test_tool_registry(self):
        """Test every tool exposes a function schema and validates arguments."""
        for name, tool in VALIDATION_TOOLS.items():
            schema = tool.schema()
            assert schema["function"]["name"] == name
            assert schema["function"]["parameters"]["required"] == ["workflow"]
            assert tool.invoke({}) == "Error: missing 'workflow' argument"
        assert VALIDATION_TOOLS["validate_yaml_syntax"].invoke({"workflow": WORKFLOW}).startswith(
            "YAML syntax is valid"
        )

    def test_select_tools(self):
        """Test configuration toggles narrow the toolset."""
        assert select_tools() == ("validate_yaml_syntax", "check_security", "validate_action_versions")
        assert select_tools(False, False) == ("validate_yaml_syntax",)
