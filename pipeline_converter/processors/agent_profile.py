"""
Custom agent profiles loaded from markdown files.

A profile file has optional YAML front matter between ``---`` lines and a
markdown body. The body becomes the session's system prompt:

    ---
    name: gitlab-migrator
    displayName: GitLab migrator
    description: Converts GitLab CI with our runner conventions
    tools: [validate_yaml_syntax]
    ---
    You convert pipelines for the platform team. Always use self-hosted runners.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from pipeline_converter.core.exceptions import ConfigurationError

FRONT_MATTER_DELIMITER = "---"


class AgentProfile(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    description: Optional[str] = None
    tools: Optional[tuple[str, ...]] = None
    prompt: str
    infer: Optional[bool] = None


def _split_front_matter(content: str) -> tuple[str, str]:
    front: list[str] = []
    body: list[str] = []
    state = "start"
    for raw in content.splitlines():
        line = raw.rstrip("\r")
        if state == "start":
            if line.strip() == FRONT_MATTER_DELIMITER:
                state = "front"
            elif line.strip():
                state = "body"
                body.append(line)
        elif state == "front":
            if line.strip() == FRONT_MATTER_DELIMITER:
                state = "body"
            else:
                front.append(line)
        else:
            body.append(line)
    return "\n".join(front), "\n".join(body)


def parse_agent_markdown(content: str, source: Optional[str] = None) -> AgentProfile:
    """
    Parse an agent profile from markdown text.

    Raises:
        ConfigurationError: Empty content, invalid front matter, or a missing
            name or prompt body.
    """
    if not content or not content.strip():
        raise ConfigurationError("Agent markdown content cannot be empty", source)

    front_text, body = _split_front_matter(content)
    try:
        front = yaml.safe_load(front_text) if front_text.strip() else {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid agent front matter: {exc}", source) from exc
    if not isinstance(front, dict):
        raise ConfigurationError("Agent front matter must be a mapping", source)

    prompt = body.strip() or str(front.get("prompt") or "").strip()
    name = str(front.get("name") or "").strip()
    if not name:
        raise ConfigurationError(
            "Agent configuration must have a 'name' field in front matter", source
        )
    if not prompt:
        raise ConfigurationError(
            "Agent configuration must have prompt content in the markdown body", source
        )

    tools = front.get("tools")
    if isinstance(tools, str):
        tools = [t.strip() for t in tools.split(",") if t.strip()]

    return AgentProfile(
        name=name,
        display_name=front.get("displayName"),
        description=front.get("description"),
        tools=tuple(tools) if tools else None,
        prompt=prompt,
        infer=front.get("infer"),
    )


def load_agent_profile(path: str | Path) -> AgentProfile:
    """Read and parse an agent profile file."""
    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigurationError(f"Agent markdown file not found: {file_path}", str(file_path))
    return parse_agent_markdown(file_path.read_text(encoding="utf-8"), str(file_path))
