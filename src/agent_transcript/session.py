# session.py
# Chat session controller.
#
# Serialises the two things that write a transcript: a live chat stream and a
# history load for a (new) session. Switching sessions cancels the stream
# first and swaps in a fresh reducer, so late events from the abandoned
# stream can only land on the discarded one.
#
# Transport failures are turned into a synthetic error event. Callers get a
# snapshot back, never an exception, for anything the agent or network does.

import asyncio
import logging
from collections.abc import Callable

import httpx

from agent_transcript.client import AgentClient, ApiError
from agent_transcript.history import reconcile
from agent_transcript.models import ChatRequest, ErrorEvent, Identity, TranscriptSnapshot
from agent_transcript.reducer import DEFAULT_ERROR_MESSAGE, TranscriptReducer

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[TranscriptSnapshot], None]


class ChatSession:
    """
    One visible conversation bound to an explicit caller identity.

    Example:
        session = ChatSession(client, Identity(user_id="alice"))
        await session.open_session("abc123")
        snapshot = await session.send("What changed in Python 3.13?")
    """

    def __init__(
        self,
        client: AgentClient,
        identity: Identity,
        *,
        max_iterations: int = 10,
        on_update: UpdateCallback | None = None,
    ) -> None:
        self._client = client
        self._identity = identity
        self._max_iterations = max_iterations
        self._on_update = on_update
        self._reducer = TranscriptReducer()
        self._session_id: str | None = None
        self._stream_task: asyncio.Task | None = None
        self._switching = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def reducer(self) -> TranscriptReducer:
        return self._reducer

    @property
    def is_streaming(self) -> bool:
        return self._stream_task is not None and not self._stream_task.done()

    def snapshot(self) -> TranscriptSnapshot:
        return self._reducer.snapshot()

    # ------------------------------------------------------------------
    # Live stream
    # ------------------------------------------------------------------

    async def send(self, query: str) -> TranscriptSnapshot:
        """Stream one query to completion (or cancellation) and return the result."""
        # A history load in progress finishes first, so the query lands
        # after the loaded transcript instead of being wiped by it.
        async with self._switching:
            if self.is_streaming:
                logger.warning("Ignoring query while a stream is still open: %r", query)
                return self.snapshot()

            reducer = self._reducer
            reducer.add_user_message(query)
            self._notify(reducer)

            request = ChatRequest(
                query=query,
                max_iterations=self._max_iterations,
                session_id=self._session_id,
            )
            task = asyncio.create_task(self._consume(reducer, request))
            self._stream_task = task

        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not task.cancelled() and task.exception() is not None:
            exc = task.exception()
            logger.error("Chat stream crashed", exc_info=exc)
            self._fail(reducer, exc)
        return reducer.snapshot()

    async def _consume(self, reducer: TranscriptReducer, request: ChatRequest) -> None:
        try:
            async for event in self._client.stream_chat(request, self._identity):
                reducer.apply(event)
                session_id = getattr(event, "session_id", None)
                if session_id and reducer is self._reducer:
                    self._session_id = session_id
                self._notify(reducer)
        except (ApiError, httpx.HTTPError, httpx.StreamError) as exc:
            logger.warning("Chat stream failed: %s", exc)
            self._fail(reducer, exc)

    def _fail(self, reducer: TranscriptReducer, exc: BaseException) -> None:
        reducer.apply(ErrorEvent(message=str(exc) or DEFAULT_ERROR_MESSAGE))
        self._notify(reducer)

    # ------------------------------------------------------------------
    # Session switching
    # ------------------------------------------------------------------

    async def open_session(self, session_id: str) -> TranscriptSnapshot:
        """
        Abandon any live stream, then replace the transcript with history.

        A send issued while the history is in flight waits for it.
        """
        async with self._switching:
            await self._abandon_stream()
            reducer = TranscriptReducer()
            self._reducer = reducer
            self._session_id = session_id

            try:
                exchanges = await self._client.get_conversations(session_id, self._identity)
            except (ApiError, httpx.HTTPError) as exc:
                logger.warning("Failed to load history for session %s: %s", session_id, exc)
                reducer.apply(ErrorEvent(message=str(exc) or DEFAULT_ERROR_MESSAGE))
            else:
                reducer.load_history(reconcile(exchanges))

            self._notify(reducer)
            return reducer.snapshot()

    async def new_session(self) -> TranscriptSnapshot:
        """Abandon any live stream and start an empty, unsaved conversation."""
        async with self._switching:
            await self._abandon_stream()
            self._reducer = TranscriptReducer()
            self._session_id = None
            self._notify(self._reducer)
            return self._reducer.snapshot()

    async def _abandon_stream(self) -> None:
        task, self._stream_task = self._stream_task, None
        if task is None or task.done():
            return
        logger.debug("Cancelling in-flight stream")
        task.cancel()
        await asyncio.wait({task})

    def _notify(self, reducer: TranscriptReducer) -> None:
        if self._on_update is not None and reducer is self._reducer:
            self._on_update(reducer.snapshot())
