"""
Identifier helpers: session ids and workflow file names derived from
pipeline names.
"""

from __future__ import annotations

import re
import uuid
from pathlib import PurePath

from pipeline_converter.core.config import (
    SESSION_ID_PREFIX,
    UNNAMED_IDENTIFIER,
    WORKFLOW_EXTENSION,
)
from pipeline_converter.models.dto import WorkItem

_SEPARATORS_RE = re.compile(r"[._ ]")
_DISALLOWED_RE = re.compile(r"[^a-zA-Z0-9-]")
_HYPHEN_RUN_RE = re.compile(r"-+")


def sanitize_session_id(name: str) -> str:
    """
    Reduce an arbitrary name to lowercase ASCII letters, digits and single hyphens.

    Dots, underscores and spaces become hyphens, any other disallowed
    character is dropped, hyphen runs collapse and edge hyphens are trimmed.
    The function is idempotent; an empty result becomes "unnamed".

    Example:
        >>> sanitize_session_id("My_Pipeline.v2 (prod)")
        'my-pipeline-v2-prod'
    """
    text = _SEPARATORS_RE.sub("-", name or "")
    text = _DISALLOWED_RE.sub("", text)
    text = _HYPHEN_RUN_RE.sub("-", text).strip("-").lower()
    return text or UNNAMED_IDENTIFIER


def build_session_id(name: str) -> str:
    """Unique session id of the form ``pipeline-<sanitized>-<hex>``."""
    return f"{SESSION_ID_PREFIX}-{sanitize_session_id(name)}-{uuid.uuid4().hex}"


def workflow_file_name(item: WorkItem) -> str:
    """
    Suggested workflow file name for an item, based on its source file.

    A bare Jenkinsfile (or a locator without a usable stem) falls back to
    ``<source>-pipeline.yml``.
    """
    stem = PurePath(item.locator).stem.lower() if item.locator else ""
    stem = _HYPHEN_RUN_RE.sub("-", _SEPARATORS_RE.sub("-", stem)).strip("-")
    if not stem or stem == "jenkinsfile":
        stem = f"{item.source_kind.value}-pipeline"
    return f"{stem}{WORKFLOW_EXTENSION}"
