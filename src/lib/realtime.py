"""
Real-time call notifications over Server-Sent Events.

Server side: call_update_stream() turns a user's event-bus queue into an SSE
body - a "connected" handshake first, then events, with heartbeats while idle.

Client side: CallUpdatesClient keeps one stream open for a user and
reconnects with exponential backoff when it drops.
"""

import asyncio
import inspect
import json
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, Optional

import httpx

from ..config import API_URL, SSE_HEARTBEAT_SECONDS, USER_AGENT
from .events import CALL_UPDATED, NEW_CALL, CallEventBus
from .logger import mask_user_id

logger = logging.getLogger(__name__)

CONNECTED = "connected"
HEARTBEAT = "heartbeat"

STREAM_PATH = "/realtime/call-updates"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def parse_sse_line(line: str) -> Optional[dict]:
    """Decode one `data:` line; anything else (comments, blanks) gives None."""
    if not line.startswith("data:"):
        return None
    try:
        payload = json.loads(line[len("data:"):].strip())
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed SSE payload")
        return None
    return payload if isinstance(payload, dict) else None


async def call_update_stream(
    user_id: str,
    bus: CallEventBus,
    is_disconnected: Callable[[], Awaitable[bool]],
    heartbeat_seconds: float = SSE_HEARTBEAT_SECONDS,
) -> AsyncIterator[str]:
    """SSE body for one user. Always unsubscribes, however the stream ends."""
    queue = bus.subscribe(user_id)
    logger.info(f"SSE connected: {mask_user_id(user_id)} ({bus.listener_count()} active)")

    try:
        yield format_sse({"type": CONNECTED, "timestamp": _now()})

        while not await is_disconnected():
            try:
                message = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield format_sse({"type": HEARTBEAT, "timestamp": _now()})
                continue

            yield format_sse({
                "type": message["type"],
                "data": message.get("data") or {},
                "timestamp": _now(),
            })
    finally:
        bus.unsubscribe(user_id, queue)
        logger.info(f"SSE disconnected: {mask_user_id(user_id)} ({bus.listener_count()} active)")


class CallUpdatesClient:
    """
    Reconnecting consumer of the call-updates stream.

    - is_connected turns true on the "connected" handshake
    - new-call / call-updated events go to the matching callback
    - after a failure or drop it waits min(base_delay * 2**attempt, max_delay)
      and tries again; a successful handshake resets attempt to 0
    - close() stops the loop for good

    stream_factory and sleep can be swapped out, e.g. in tests.
    """

    def __init__(
        self,
        user_id: str,
        access_token: Optional[str] = None,
        on_new_call: Optional[Callable[[dict], object]] = None,
        on_call_updated: Optional[Callable[[dict], object]] = None,
        base_url: str = API_URL,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        stream_factory: Optional[Callable[[], AsyncIterator[dict]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_id = user_id
        self.access_token = access_token
        self.on_new_call = on_new_call
        self.on_call_updated = on_call_updated
        self.base_url = base_url
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.attempt = 0
        self.is_connected = False
        self._closed = False
        self._stream_factory = stream_factory or self._http_stream
        self._sleep = sleep
        self._transport = transport
        self._task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def next_delay(self) -> float:
        return min(self.base_delay * 2 ** self.attempt, self.max_delay)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self.run())
        return self._task

    def close(self) -> None:
        self._closed = True
        self.is_connected = False
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def run(self) -> None:
        while not self._closed:
            try:
                async for event in self._stream_factory():
                    await self._handle(event)
                    if self._closed:
                        break
                if not self._closed:
                    logger.info(f"Call updates stream ended for {mask_user_id(self.user_id)}")
            except asyncio.CancelledError:
                self.is_connected = False
                raise
            except Exception as e:
                logger.warning(f"Call updates stream failed for {mask_user_id(self.user_id)}: {e!r}")

            self.is_connected = False
            if self._closed:
                break

            delay = self.next_delay()
            self.attempt += 1
            logger.info(f"Reconnecting call updates in {delay:.1f}s (attempt {self.attempt})")
            await self._sleep(delay)

    async def _handle(self, event: dict) -> None:
        event_type = event.get("type")

        if event_type == CONNECTED:
            self.is_connected = True
            self.attempt = 0
            return

        if event_type == NEW_CALL:
            callback = self.on_new_call
        elif event_type == CALL_UPDATED:
            callback = self.on_call_updated
        else:
            return

        if callback is None:
            return

        try:
            result = callback(event.get("data") or {})
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"{event_type} callback failed")

    async def _http_stream(self) -> AsyncIterator[dict]:
        headers = {"Accept": "text/event-stream", "User-Agent": USER_AGENT}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        # No read timeout: heartbeats keep the connection alive
        timeout = httpx.Timeout(10.0, read=None)
        async with httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=self._transport) as client:
            async with client.stream("GET", STREAM_PATH, headers=headers) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    event = parse_sse_line(line)
                    if event is not None:
                        yield event
