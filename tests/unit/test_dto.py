"""Unit tests for domain models."""

import pytest
from pydantic import TypeAdapter, ValidationError

from pipeline_converter.models.dto import (
    ConversionFailed,
    ConversionOutcome,
    ConversionSucceeded,
    ProcessingPhase,
    SourceKind,
    ValidationIssue,
    ValidationOutcome,
    ValidationSeverity,
)


class TestConversionOutcome:
    """Tests for the success/failure union."""

    def test_discriminated_by_kind(self):
        """Test payloads decode into the matching variant."""
        adapter = TypeAdapter(ConversionOutcome)
        ok = adapter.validate_python(
            {"kind": "succeeded", "artifact_text": "name: x", "suggested_name": "x.yml"}
        )
        failed = adapter.validate_python({"kind": "failed", "reason": "Processing cancelled"})
        assert isinstance(ok, ConversionSucceeded) and ok.is_success
        assert isinstance(failed, ConversionFailed) and not failed.is_success
        assert failed.error_code == "UNKNOWN_ERROR"


class TestValidationOutcome:
    """Tests for ValidationOutcome."""

    def test_validity_follows_errors(self):
        """Test only error-severity issues make an outcome invalid."""
        warning = ValidationIssue(severity=ValidationSeverity.WARNING, message="w")
        error = ValidationIssue(severity=ValidationSeverity.ERROR, message="e")
        assert ValidationOutcome(issues=(warning,)).is_valid
        outcome = ValidationOutcome(issues=(warning, error))
        assert not outcome.is_valid
        assert outcome.count(ValidationSeverity.ERROR) == 1
        assert outcome.issues_by_severity() == [error, warning]

    def test_line_numbers_start_at_one(self):
        """Test a zero line number is rejected."""
        with pytest.raises(ValidationError):
            ValidationIssue(severity=ValidationSeverity.INFO, message="m", line_number=0)


class TestEnums:
    """Tests for phase ordering and display names."""

    def test_phase_order(self):
        """Test phases are ordered as an item moves through them."""
        assert ProcessingPhase.STARTING.order < ProcessingPhase.VALIDATING.order < ProcessingPhase.COMPLETE.order
        assert {p for p in ProcessingPhase if p.is_terminal} == {ProcessingPhase.COMPLETE, ProcessingPhase.FAILED}

    def test_source_display_names(self):
        """Test every source kind has a display name."""
        assert SourceKind.AZURE_DEVOPS.display_name.startswith("Azure DevOps")
        assert all(kind.display_name for kind in SourceKind)
