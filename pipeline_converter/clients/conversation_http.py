"""
Conversation sessions over an OpenAI-compatible chat-completions endpoint.

The endpoint itself is stateless; each ``ChatSession`` keeps its own message
history so later turns (validation) see earlier ones (conversion). All
sessions of one client share a single ``httpx.AsyncClient`` and circuit
breaker.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from http import HTTPStatus
from typing import Any, Mapping, Optional

import httpx

from pipeline_converter.core.config import (
    BACKOFF_MULTIPLIER,
    CIRCUIT_FAILURE_THRESHOLD,
    CIRCUIT_RESET_TIMEOUT_SECONDS,
    CONVERSATION_SERVICE_NAME,
    DEFAULT_TEMPERATURE,
    ERROR_BODY_MAX_CHARS,
    INITIAL_BACKOFF,
    MAX_RETRIES,
    MAX_TOOL_ROUNDS,
)
from pipeline_converter.core.exceptions import ExternalServiceError
from pipeline_converter.ports.conversation_port import SessionConfig
from pipeline_converter.processors.workflow_checks import (
    VALIDATION_TOOLS,
    ValidationTool,
)
from pipeline_converter.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    RetryConfig,
    retry_with_backoff,
)

logger = logging.getLogger(__name__)

_TRANSIENT_ERROR_TYPES = frozenset({"timeout", "unavailable", "rate_limit"})


def _raise_service_error(
    error_type: str,
    details: dict[str, Any],
    exc: Optional[Exception] = None,
) -> None:
    raise ExternalServiceError(
        service_name=CONVERSATION_SERVICE_NAME,
        error_type=error_type,
        details=details,
    ) from exc


def _decode_body(response: httpx.Response) -> dict[str, Any]:
    """JSON object body, or the last JSON object line of a JSONL body."""
    try:
        data = response.json()
        if isinstance(data, dict):
            return data
    except ValueError:
        pass
    for line in reversed((response.text or "").splitlines()):
        stripped = line.strip()
        if not stripped:
            continue
        try:
            obj = json.loads(stripped)
        except ValueError:
            continue
        if isinstance(obj, dict):
            return obj
    _raise_service_error(
        "protocol",
        {"reason": "response is not a JSON object", "body": response.text[:ERROR_BODY_MAX_CHARS]},
    )
    return {}  # for type checkers only


def _first_message(data: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict):
            return message
    return None


def extract_reply_text(data: Mapping[str, Any]) -> str:
    """
    Reply text from a completion payload.

    Tries ``choices[0].message.content`` first, then a top-level
    ``content`` / ``Content`` string. Anything else is an empty reply.
    """
    message = _first_message(data)
    if message is not None:
        content = message.get("content")
        if isinstance(content, str):
            return content
    for key in ("content", "Content"):
        content = data.get(key)
        if isinstance(content, str):
            return content
    return ""


class ChatCompletionsClient:
    """Opens ``ChatSession`` objects against one chat-completions endpoint.

    Use as an async context manager, or call ``aclose()`` when done.
    """

    def __init__(
        self,
        endpoint_url: str,
        *,
        api_key: Optional[str] = None,
        timeout_seconds: float = 120.0,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
        tools: Optional[Mapping[str, ValidationTool]] = None,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        if not endpoint_url:
            raise ValueError("endpoint_url is required")
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._endpoint_url = endpoint_url
        self._temperature = temperature
        self._http = httpx.AsyncClient(
            timeout=timeout_seconds,
            verify=verify_ssl,
            transport=transport,
            headers=headers,
        )
        self._retry_config = retry_config or RetryConfig(
            max_attempts=MAX_RETRIES,
            initial_delay_seconds=INITIAL_BACKOFF,
            exponential_base=BACKOFF_MULTIPLIER,
        )
        self._breaker = breaker or CircuitBreaker(
            CONVERSATION_SERVICE_NAME,
            CircuitBreakerConfig(
                failure_threshold=CIRCUIT_FAILURE_THRESHOLD,
                timeout_seconds=CIRCUIT_RESET_TIMEOUT_SECONDS,
            ),
            counts_as_failure=lambda exc: isinstance(exc, ExternalServiceError)
            and exc.error_type in _TRANSIENT_ERROR_TYPES,
        )
        self._tools = dict(tools) if tools is not None else dict(VALIDATION_TOOLS)
        self._closed = False

    async def __aenter__(self) -> "ChatCompletionsClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._closed = True
        await self._http.aclose()

    async def open_session(self, config: SessionConfig) -> "ChatSession":
        if self._closed:
            raise RuntimeError("ChatCompletionsClient is closed")
        self._breaker.check()
        unknown = [name for name in config.tools if name not in self._tools]
        if unknown:
            raise ValueError(f"Unknown validation tools: {', '.join(unknown)}")
        tools = {name: self._tools[name] for name in config.tools}
        logger.debug(
            "Conversation session opened",
            extra={"session_id": config.session_id, "service": CONVERSATION_SERVICE_NAME},
        )
        return ChatSession(self, config, tools)

    def build_payload(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: Mapping[str, ValidationTool],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": self._temperature,
        }
        if tools:
            payload["tools"] = [tool.schema() for tool in tools.values()]
        return payload

    async def _post(self, payload: dict[str, Any], session_id: str) -> dict[str, Any]:
        try:
            response = await self._http.post(
                self._endpoint_url,
                json=payload,
                headers={"X-Session-Id": session_id},
            )
        except httpx.TimeoutException as e:
            _raise_service_error("timeout", {"reason": str(e) or "request timed out"}, e)
        except httpx.TransportError as e:
            _raise_service_error("unavailable", {"reason": str(e) or type(e).__name__}, e)

        if response.status_code >= 400:
            if response.status_code == HTTPStatus.TOO_MANY_REQUESTS:
                error_type = "rate_limit"
            elif response.status_code >= 500:
                error_type = "unavailable"
            else:
                error_type = "error"
            _raise_service_error(
                error_type,
                {
                    "http_code": response.status_code,
                    "reason": response.reason_phrase,
                    "body": response.text[:ERROR_BODY_MAX_CHARS],
                },
            )
        return _decode_body(response)

    async def complete(self, payload: dict[str, Any], session_id: str) -> dict[str, Any]:
        """One completion round trip with retry and circuit breaker."""
        return await retry_with_backoff(
            self._breaker.call,
            self._retry_config,
            (ExternalServiceError,),
            self._post,
            payload,
            session_id,
            should_retry=lambda exc: exc.retryable,
        )


class ChatSession:
    """Conversation context bound to one ``ChatCompletionsClient``."""

    def __init__(
        self,
        client: ChatCompletionsClient,
        config: SessionConfig,
        tools: Mapping[str, ValidationTool],
    ) -> None:
        self.session_id = config.session_id
        self._client = client
        self._config = config
        self._tools = dict(tools)
        self._messages: list[dict[str, Any]] = []
        if config.system_prompt:
            self._messages.append({"role": "system", "content": config.system_prompt})
        self._closed = False

    @property
    def history(self) -> list[dict[str, Any]]:
        return list(self._messages)

    async def exchange(self, prompt: str, timeout: float) -> str:
        if self._closed:
            raise RuntimeError(f"Session {self.session_id} is closed")
        started = time.perf_counter()
        try:
            async with asyncio.timeout(timeout):
                reply = await self._run_turn(prompt)
        except TimeoutError as e:
            _raise_service_error(
                "timeout",
                {"reason": f"no reply within {timeout:.1f}s", "session_id": self.session_id},
                e,
            )
        logger.info(
            "Exchange completed",
            extra={
                "session_id": self.session_id,
                "service": CONVERSATION_SERVICE_NAME,
                "duration_ms": round((time.perf_counter() - started) * 1000),
            },
        )
        return reply

    async def _run_turn(self, prompt: str) -> str:
        # the turn joins the history only once it completes
        turn: list[dict[str, Any]] = [{"role": "user", "content": prompt}]
        for _ in range(MAX_TOOL_ROUNDS + 1):
            payload = self._client.build_payload(
                self._config.model, self._messages + turn, self._tools
            )
            data = await self._client.complete(payload, self.session_id)
            message = _first_message(data) or {}
            tool_calls = message.get("tool_calls")
            if tool_calls and self._tools:
                turn.append(
                    {
                        "role": "assistant",
                        "content": message.get("content"),
                        "tool_calls": tool_calls,
                    }
                )
                turn.extend(self._answer_tool_call(call) for call in tool_calls)
                continue
            reply = extract_reply_text(data)
            turn.append({"role": "assistant", "content": reply})
            self._messages.extend(turn)
            return reply

        _raise_service_error(
            "protocol",
            {"reason": f"more than {MAX_TOOL_ROUNDS} tool-call rounds", "session_id": self.session_id},
        )
        return ""  # for type checkers only

    def _answer_tool_call(self, call: Mapping[str, Any]) -> dict[str, Any]:
        function = call.get("function") or {}
        name = function.get("name")
        tool = self._tools.get(name)
        if tool is None:
            content = f"Error: unknown tool '{name}'"
        else:
            try:
                arguments = json.loads(function.get("arguments") or "{}")
            except ValueError:
                arguments = None
            if isinstance(arguments, dict):
                content = tool.invoke(arguments)
            else:
                content = "Error: tool arguments must be a JSON object"
        logger.debug(
            f"Tool call answered: {name}",
            extra={"session_id": self.session_id},
        )
        return {"role": "tool", "tool_call_id": call.get("id"), "content": content}

    async def close(self) -> None:
        self._closed = True
        self._messages.clear()
        logger.debug("Conversation session closed", extra={"session_id": self.session_id})
