"""Push feed over the Supabase realtime websocket.

The realtime service speaks the Phoenix channel protocol: every frame is a
JSON object with ``topic``, ``event``, ``payload`` and ``ref``. One channel
is joined per table and row changes arrive as ``postgres_changes`` frames.
All channels share a single connection, kept alive by a heartbeat on the
``phoenix`` topic.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlencode, urlparse

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from ..errors import RemoteError
from .events import ChangeEvent, ChangeFeed, Subscription


PROTOCOL_VERSION = "1.0.0"
SCHEMA = "public"
JOIN_TIMEOUT = 10.0


def realtime_url(project_url: str, anon_key: str) -> str:
    """Websocket endpoint for a project URL such as ``https://abc.supabase.co``."""
    parsed = urlparse(project_url.rstrip("/"))
    scheme = "ws" if parsed.scheme == "http" else "wss"
    query = urlencode({"apikey": anon_key, "vsn": PROTOCOL_VERSION})
    return f"{scheme}://{parsed.netloc}{parsed.path}/realtime/v1/websocket?{query}"


class SupabaseRealtimeFeed(ChangeFeed):
    """ChangeFeed backed by one realtime websocket connection."""

    def __init__(self, url: str, anon_key: str,
                 token_provider: Optional[Callable[[], Optional[str]]] = None,
                 heartbeat_interval: float = 30.0,
                 join_timeout: float = JOIN_TIMEOUT,
                 connect: Optional[Callable[[str], Awaitable[Any]]] = None):
        """Initialize the feed.

        Args:
            url: Project URL
            anon_key: Public anon key of the project
            token_provider: Returns the signed-in user's access token, sent on
                every channel join so row-level security applies
            heartbeat_interval: Seconds between heartbeats
            join_timeout: Seconds to wait for the server to accept a channel join
            connect: Coroutine function opening the websocket; defaults to
                ``websockets.connect``
        """
        self.endpoint = realtime_url(url, anon_key)
        self.anon_key = anon_key
        self.token_provider = token_provider
        self.heartbeat_interval = heartbeat_interval
        self.join_timeout = join_timeout
        self._connect = connect or websockets.connect
        self._socket = None
        self._reader: Optional[asyncio.Task] = None
        self._heartbeat: Optional[asyncio.Task] = None
        self._channels: Dict[str, asyncio.Queue] = {}
        self._replies: Dict[str, asyncio.Future] = {}
        self._ref = 0
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(__name__)

    @property
    def connected(self) -> bool:
        return self._socket is not None

    async def subscribe(self, table: str, queue: asyncio.Queue) -> Subscription:
        """Join the channel for ``table`` and route its changes into ``queue``.

        Raises:
            RemoteError: If the connection fails or the server rejects the join
        """
        await self._ensure_connected()
        topic = f"realtime:{SCHEMA}:{table}"
        self._channels[topic] = queue
        try:
            reply = await self._request(topic, "phx_join", {
                "config": {
                    "broadcast": {"self": False},
                    "presence": {"key": ""},
                    "postgres_changes": [{"event": "*", "schema": SCHEMA, "table": table}],
                },
                "access_token": self._token(),
            })
            if reply.get("status") != "ok":
                raise RemoteError(f"Realtime join of {topic} rejected: {reply.get('response')}")
        except RemoteError:
            self._channels.pop(topic, None)
            raise
        self.logger.debug(f"Joined {topic}")
        return _ChannelSubscription(self, topic)

    async def leave(self, topic: str):
        if self._channels.pop(topic, None) is None:
            return
        if self._socket is not None:
            await self._send(topic, "phx_leave", {})
        self.logger.debug(f"Left {topic}")

    async def close(self) -> None:
        self._channels.clear()
        await self._stop_tasks()
        if self._socket is not None:
            socket, self._socket = self._socket, None
            await socket.close()
            self.logger.info("Realtime connection closed")

    async def _ensure_connected(self):
        async with self._lock:
            if self._socket is not None:
                return
            await self._stop_tasks()
            try:
                self._socket = await self._connect(self.endpoint)
            except (OSError, InvalidHandshake) as e:
                raise RemoteError(f"Could not open realtime connection: {e}")
            self._reader = asyncio.create_task(self._read_loop(self._socket))
            self._heartbeat = asyncio.create_task(self._heartbeat_loop())
            self.logger.info("Realtime connection opened")

    async def _stop_tasks(self):
        tasks = [task for task in (self._heartbeat, self._reader) if task is not None]
        self._heartbeat = None
        self._reader = None
        for task in tasks:
            if not task.done():
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                self.logger.warning(f"Realtime task ended with an error: {e!r}")

    def _token(self) -> str:
        token = self.token_provider() if self.token_provider else None
        return token or self.anon_key

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    async def _send(self, topic: str, event: str, payload: Dict[str, Any],
                    ref: Optional[str] = None) -> str:
        if self._socket is None:
            raise RemoteError("Realtime connection is not open")
        ref = ref or self._next_ref()
        frame = {"topic": topic, "event": event, "payload": payload, "ref": ref}
        try:
            await self._socket.send(json.dumps(frame))
        except ConnectionClosed as e:
            raise RemoteError(f"Realtime connection lost: {e}")
        return ref

    async def _request(self, topic: str, event: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send a frame and wait for the ``phx_reply`` carrying its ref."""
        ref = self._next_ref()
        reply = asyncio.get_running_loop().create_future()
        self._replies[ref] = reply
        try:
            await self._send(topic, event, payload, ref=ref)
            return await asyncio.wait_for(reply, self.join_timeout)
        except asyncio.TimeoutError:
            raise RemoteError(f"No reply to {event} on {topic}")
        finally:
            self._replies.pop(ref, None)

    async def _heartbeat_loop(self):
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self._send("phoenix", "heartbeat", {})
            except RemoteError as e:
                self.logger.warning(f"Heartbeat failed: {e}")
                return

    async def _read_loop(self, socket):
        try:
            async for message in socket:
                self.handle_frame(message)
        except ConnectionClosed as e:
            self.logger.warning(f"Realtime connection closed by server: {e}")
        # Pushed changes are lost until the next subscribe; a range load resyncs.
        self._connection_lost(socket)

    def _connection_lost(self, socket):
        if self._socket is not socket:
            return
        self._socket = None
        if self._heartbeat is not None:
            self._heartbeat.cancel()
        for reply in self._replies.values():
            if not reply.done():
                reply.set_exception(RemoteError("Realtime connection lost"))
        self.logger.info("Realtime connection lost")

    def handle_frame(self, message: Any):
        """Route one incoming frame to the queue of its channel."""
        try:
            frame = json.loads(message)
        except (TypeError, ValueError):
            self.logger.debug(f"Ignoring non-JSON frame: {message!r}")
            return
        if not isinstance(frame, dict):
            self.logger.debug(f"Ignoring frame that is not an object: {message!r}")
            return

        event = frame.get("event")
        topic = frame.get("topic") or ""
        payload = frame.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if event == "phx_reply":
            reply = self._replies.get(str(frame.get("ref")))
            if reply is not None and not reply.done():
                reply.set_result(payload)
            elif payload.get("status") != "ok":
                self.logger.warning(f"Realtime request on {topic} failed: {payload.get('response')}")
            return
        if event == "phx_error":
            self.logger.error(f"Realtime channel {topic} errored")
            return
        if event != "postgres_changes":
            return

        queue = self._channels.get(topic)
        data = payload.get("data")
        if queue is None or not isinstance(data, dict) or not data:
            return
        table = data.get("table") or topic.rsplit(":", 1)[-1]
        try:
            queue.put_nowait(ChangeEvent.from_payload(table, data))
        except ValueError:
            self.logger.warning(f"Ignoring change with unknown type {data.get('type')!r}")


class _ChannelSubscription(Subscription):

    def __init__(self, feed: SupabaseRealtimeFeed, topic: str):
        self.feed = feed
        self.topic = topic

    async def unsubscribe(self) -> None:
        await self.feed.leave(self.topic)
