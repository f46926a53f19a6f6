"""ConversationClient / ConversationSession protocols.

A session is a stateful conversation with the external AI service: every
exchange sees the turns before it, so validation can refer back to the
conversion. Sessions are independent of each other.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class SessionConfig:
    """Per-session settings.

    ``system_prompt`` and ``tools`` are the optional strategy hooks: a custom
    agent prompt and the names of validation tools the service may call.
    """

    session_id: str
    model: str
    system_prompt: Optional[str] = None
    tools: tuple[str, ...] = ()
    agent_name: Optional[str] = None


class ConversationSession(Protocol):  # pragma: no cover - contract
    """One conversational context."""

    session_id: str

    async def exchange(self, prompt: str, timeout: float) -> str:
        """Send ``prompt`` and return the reply text.

        Raises ExternalServiceError with error_type "timeout" when no reply
        arrives within ``timeout`` seconds.
        """
        ...

    async def close(self) -> None: ...


class ConversationClient(Protocol):  # pragma: no cover - contract
    """Opens sessions; safe for concurrent use."""

    async def open_session(self, config: SessionConfig) -> ConversationSession: ...
