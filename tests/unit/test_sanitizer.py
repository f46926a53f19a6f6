"""Unit tests for session id sanitizing and workflow file naming."""

import re

import pytest

from pipeline_converter.models.dto import SourceKind
from pipeline_converter.processors.sanitizer import (
    build_session_id,
    sanitize_session_id,
    workflow_file_name,
)
from tests.fakes import make_item

SESSION_ID_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")


class TestSanitizeSessionId:
    """Tests for sanitize_session_id."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("My_Pipeline.v2", "my-pipeline-v2"),
            ("  Build & Deploy  ", "build-deploy"),
            ("--release--", "release"),
            ("a...b___c   d", "a-b-c-d"),
            ("Déploiement prod", "dploiement-prod"),
            (".gitlab-ci", "gitlab-ci"),
        ],
    )
    def test_known_names(self, name, expected):
        """Test separators become hyphens and other characters are dropped."""
        assert sanitize_session_id(name) == expected

    @pytest.mark.parametrize("name", ["", "   ", "___", "!!!", "€€"])
    def test_empty_result_becomes_unnamed(self, name):
        """Test names with nothing usable map to 'unnamed'."""
        assert sanitize_session_id(name) == "unnamed"

    @pytest.mark.parametrize(
        "name",
        ["Jenkinsfile", "azure-pipelines (copy).yml", "-x-", "A--B", "tab\there", "日本 CI 42"],
    )
    def test_output_pattern_and_idempotence(self, name):
        """Test every output matches the id pattern and is a fixed point."""
        once = sanitize_session_id(name)
        assert SESSION_ID_PATTERN.match(once)
        assert sanitize_session_id(once) == once


class TestBuildSessionId:
    """Tests for build_session_id."""

    def test_prefix_and_uniqueness(self):
        """Test ids carry the sanitized name and differ per call."""
        first = build_session_id("Web App")
        second = build_session_id("Web App")
        assert first.startswith("pipeline-web-app-")
        assert first != second
        assert SESSION_ID_PATTERN.match(first)


class TestWorkflowFileName:
    """Tests for workflow_file_name."""

    def test_uses_source_file_stem(self):
        """Test the locator stem is normalized into a .yml name."""
        item = make_item(locator="/repo/My_Service.Build.yml")
        assert workflow_file_name(item) == "my-service-build.yml"

    def test_gitlab_dotfile(self):
        """Test the leading dot of .gitlab-ci.yml is dropped."""
        item = make_item(locator="/repo/.gitlab-ci.yml")
        assert workflow_file_name(item) == "gitlab-ci.yml"

    def test_bare_jenkinsfile_falls_back_to_source_kind(self):
        """Test a plain Jenkinsfile gets a source-based name."""
        item = make_item(kind=SourceKind.JENKINS, locator="/repo/api/Jenkinsfile")
        assert workflow_file_name(item) == "jenkins-pipeline.yml"
