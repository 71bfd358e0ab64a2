# client.py
# HTTP transport for the agent API.
#
# Opens the SSE chat stream and fetches persisted history. The caller's
# Identity is passed into every call; nothing here holds an ambient user.
# No retries or backoff.

import logging
from collections.abc import AsyncIterator

import httpx
from pydantic import BaseModel, ValidationError

from agent_transcript.decoder import ErrorCallback, adecode_stream
from agent_transcript.models import (
    ChatRequest,
    Identity,
    PersistedExchange,
    SessionInfo,
    StreamEvent,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ApiError(Exception):
    """Raised when the agent API answers with a non-success status or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _auth_headers(identity: Identity) -> dict[str, str]:
    return {"Authorization": f"Bearer {identity.user_id}"}


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Prefer the server's {"message": ...} body, else the fallback."""
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return fallback


def _raise_for_status(response: httpx.Response, fallback: str) -> None:
    if response.is_success:
        return
    message = _error_message(response, fallback)
    logger.warning(
        "Agent API %s %s -> %s: %s",
        response.request.method,
        response.request.url,
        response.status_code,
        message,
    )
    raise ApiError(message, response.status_code)


def _parse(response: httpx.Response, model: type[BaseModel], message: str, *, many: bool = False):
    """Validate a success body; a body of the wrong shape becomes ApiError."""
    try:
        body = response.json()
        if many:
            if not isinstance(body, list):
                raise ValueError(f"expected a JSON list, got {type(body).__name__}")
            return [model.model_validate(item) for item in body]
        return model.model_validate(body)
    except (ValidationError, ValueError) as exc:
        logger.warning(
            "Agent API %s %s returned an unusable body: %s",
            response.request.method,
            response.request.url,
            exc,
        )
        raise ApiError(message, response.status_code) from exc


# ---------------------------------------------------------------------------
# AgentClient
# ---------------------------------------------------------------------------


class AgentClient:
    """
    Async client for the agent API.

    Example:
        async with AgentClient("http://localhost:8000") as client:
            async for event in client.stream_chat(ChatRequest(query="hi"), identity):
                reducer.apply(event)
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "AgentClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Streaming chat
    # ------------------------------------------------------------------

    async def stream_chat(
        self,
        request: ChatRequest,
        identity: Identity,
        on_error: ErrorCallback | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        POST the query and yield events as frames arrive.

        Raises ApiError before the first event on a non-success status.
        Malformed frames go to `on_error` and the stream carries on.
        Reads never time out; the agent may pause for as long as it thinks.
        """
        async with self._http.stream(
            "POST",
            "/api/chat/stream",
            json=request.model_dump(exclude_none=True),
            headers=_auth_headers(identity),
            timeout=httpx.Timeout(self._timeout, read=None),
        ) as response:
            if not response.is_success:
                await response.aread()
                _raise_for_status(response, "Stream request failed")

            async for event in adecode_stream(response.aiter_bytes(), on_error):
                yield event

    # ------------------------------------------------------------------
    # History and sessions
    # ------------------------------------------------------------------

    async def get_conversations(self, session_id: str, identity: Identity) -> list[PersistedExchange]:
        response = await self._http.get(
            "/api/conversations/",
            params={"session_id": session_id},
            headers=_auth_headers(identity),
        )
        _raise_for_status(response, "Failed to get conversations")
        return _parse(response, PersistedExchange, "Invalid history payload", many=True)

    async def list_sessions(self, identity: Identity) -> list[SessionInfo]:
        response = await self._http.get("/api/sessions/", headers=_auth_headers(identity))
        _raise_for_status(response, "Failed to get sessions")
        return _parse(response, SessionInfo, "Invalid sessions payload", many=True)

    async def create_session(self, title: str, identity: Identity) -> SessionInfo:
        response = await self._http.post(
            "/api/sessions",
            json={"title": title},
            headers=_auth_headers(identity),
        )
        _raise_for_status(response, "Failed to create session")
        return _parse(response, SessionInfo, "Invalid session payload")

    async def delete_session(self, session_id: str, identity: Identity) -> None:
        response = await self._http.delete(f"/api/sessions/{session_id}", headers=_auth_headers(identity))
        _raise_for_status(response, "Failed to delete session")
