"""
Insider Room Sync - Message Channel Transport

The pub/sub substrate under the room client. ``Transport`` is the small
surface the client depends on; ``SupabaseTransport`` implements it over
Supabase Realtime broadcast channels. It runs an asyncio event loop in a
daemon thread because the sync Realtime client in supabase 2.x is not
implemented.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future
from functools import lru_cache
from typing import Any, Callable, Protocol

from supabase import Client, create_client

from src.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], None]
StatusCallback = Callable[[bool], None]

# Every destination maps to one broadcast channel carrying this event
BROADCAST_EVENT = "message"

_CONNECTED_STATES = {"SUBSCRIBED"}
_DISCONNECTED_STATES = {"CLOSED", "CHANNEL_ERROR", "TIMED_OUT"}


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class Transport(Protocol):
    """Connect/subscribe/publish/disconnect primitives used by the client."""

    def connect(self, on_status: StatusCallback) -> None: ...

    def subscribe(self, topic: str, handler: MessageHandler) -> Subscription: ...

    def publish(self, destination: str, body: str) -> None: ...

    def disconnect(self) -> None: ...


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """Create and cache a Supabase client instance."""
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_anon_key)


def create_transport(
    player_uuid: str, settings: Settings | None = None
) -> SupabaseTransport:
    """Build the default transport for one player from settings."""
    settings = settings or get_settings()
    return SupabaseTransport(
        get_supabase_client(),
        user=player_uuid,
        timeout=settings.subscribe_timeout,
    )


def _state_name(state: Any) -> str:
    return str(getattr(state, "value", state)).upper()


def _extract_body(message: Any) -> Any:
    """Pull the published body out of a broadcast message."""
    if not isinstance(message, dict):
        return message
    payload = message.get("payload", message)
    if isinstance(payload, dict) and "body" in payload:
        return payload["body"]
    return payload


class _ChannelSubscription:
    """Handle returned by ``SupabaseTransport.subscribe``."""

    def __init__(self, transport: SupabaseTransport, channel_name: str) -> None:
        self._transport = transport
        self.channel_name = channel_name
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._transport._remove_inbound(self.channel_name)


class SupabaseTransport:
    """Room message channel over Supabase Realtime broadcast.

    Each topic or destination path becomes its own channel. Paths under
    ``/user/`` are per-player queues and are namespaced with ``user`` so
    only the owning client receives them. Callbacks are invoked from the
    background loop thread.
    """

    def __init__(
        self,
        client: Client,
        *,
        user: str,
        timeout: float = 10.0,
        prefix: str = "insider",
    ) -> None:
        self._client = client
        self._user = user
        self._timeout = timeout
        self._prefix = prefix
        self._inbound: dict[str, Any] = {}
        self._outbound: dict[str, Any] = {}
        self._on_status: StatusCallback | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._publish_lock: asyncio.Lock | None = None

    def channel_name(self, path: str) -> str:
        """Realtime channel name for a topic or destination path."""
        if path.startswith("/user/"):
            return f"{self._prefix}:user:{self._user}:{path}"
        return f"{self._prefix}:{path}"

    # -- Event loop ------------------------------------------------------

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        """Start the background event loop if not running."""
        with self._lock:
            if self._loop is None or not self._loop.is_running():
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._run_loop, daemon=True, name="room-transport"
                )
                self._thread.start()
            return self._loop

    def _run_loop(self) -> None:
        """Run the asyncio event loop in the background thread."""
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _run(self, coro) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self._ensure_loop())
        return future.result(timeout=self._timeout)

    def _report(self, connected: bool) -> None:
        if self._on_status is not None:
            self._on_status(connected)

    # -- Transport -------------------------------------------------------

    def connect(self, on_status: StatusCallback) -> None:
        """Open the realtime socket and report it through ``on_status``."""
        self._on_status = on_status
        self._run(self._client.realtime.connect())
        logger.info("Realtime socket connected")
        self._report(True)

    def subscribe(self, topic: str, handler: MessageHandler) -> Subscription:
        """Join the channel for ``topic`` and forward its bodies to ``handler``."""
        name = self.channel_name(topic)
        if name in self._inbound:
            logger.warning("Already subscribed to %s", name)
            return _ChannelSubscription(self, name)

        self._run(self._subscribe_async(name, handler))
        return _ChannelSubscription(self, name)

    async def _subscribe_async(self, name: str, handler: MessageHandler) -> None:
        channel = self._client.realtime.channel(name)
        channel.on_broadcast(
            BROADCAST_EVENT,
            lambda message: self._dispatch(name, message, handler),
        )
        await channel.subscribe(
            lambda state, err: self._on_subscribe_state(name, state, err)
        )
        self._inbound[name] = channel
        logger.info("Subscribed to %s", name)

    def _dispatch(self, name: str, message: Any, handler: MessageHandler) -> None:
        try:
            handler(_extract_body(message))
        except Exception:
            logger.exception("Error handling message on %s", name)

    def _on_subscribe_state(
        self, name: str, state: Any, error: Exception | None
    ) -> None:
        """Translate channel state changes into connection status."""
        state_name = _state_name(state)
        if error:
            logger.error("Subscription error for %s: %s", name, error)
        else:
            logger.debug("Channel %s state: %s", name, state_name)

        if name not in self._inbound and state_name != "SUBSCRIBED":
            return
        if state_name in _CONNECTED_STATES:
            self._report(True)
        elif state_name in _DISCONNECTED_STATES:
            self._report(False)

    def publish(self, destination: str, body: str) -> None:
        """Schedule a broadcast on ``destination`` without waiting for it."""
        future = asyncio.run_coroutine_threadsafe(
            self._publish_async(self.channel_name(destination), body),
            self._ensure_loop(),
        )
        future.add_done_callback(
            lambda f, d=destination: self._on_published(f, d)
        )

    async def _publish_async(self, name: str, body: str) -> None:
        if self._publish_lock is None:
            self._publish_lock = asyncio.Lock()
        async with self._publish_lock:
            channel = self._outbound.get(name)
            if channel is None:
                channel = self._client.realtime.channel(name)
                await channel.subscribe()
                self._outbound[name] = channel
        await channel.send_broadcast(BROADCAST_EVENT, {"body": body})

    def _on_published(self, future: Future, destination: str) -> None:
        if future.cancelled():
            logger.debug("Publish to %s abandoned", destination)
            return
        error = future.exception()
        if error is not None:
            logger.error("Publish to %s failed: %s", destination, error)

    def _remove_inbound(self, name: str) -> None:
        channel = self._inbound.pop(name, None)
        if channel is None:
            return
        try:
            self._run(self._remove_channels([channel]))
        except Exception:
            logger.exception("Error unsubscribing from %s", name)
        logger.info("Unsubscribed from %s", name)

    async def _remove_channels(self, channels: list[Any]) -> None:
        """Unsubscribe and remove channels."""
        for channel in channels:
            try:
                await channel.unsubscribe()
                await self._client.realtime.remove_channel(channel)
            except Exception:
                logger.exception("Error removing channel")

    @property
    def active_subscriptions(self) -> list[str]:
        """Names of channels currently delivering inbound messages."""
        return list(self._inbound.keys())

    def disconnect(self) -> None:
        """Drop every channel, close the socket and stop the loop."""
        channels = list(self._inbound.values()) + list(self._outbound.values())
        self._inbound.clear()
        self._outbound.clear()
        self._on_status = None

        if self._loop and self._loop.is_running():
            try:
                self._run(self._close_async(channels))
            except Exception:
                logger.exception("Error closing realtime socket")
            self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._loop = None
        self._thread = None

    async def _close_async(self, channels: list[Any]) -> None:
        await self._remove_channels(channels)
        await self._client.realtime.close()
