"""
Insider Room Sync - Room Sync Client

Bridges one room's message channel to local state. Server-pushed events
are folded into a ``RoomState`` snapshot, one field per event type, and
user actions are published back to the room only while the connection
is live.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterator

from src.config.settings import Settings, get_settings
from src.realtime.events import (
    DECODERS,
    Action,
    MalformedPayload,
    NoChange,
    RoomEvent,
    StateChange,
    destination,
    inbound_topics,
)
from src.realtime.transport import Subscription, Transport, create_transport
from src.room.models import (
    ActiveGame,
    ActiveGameRequest,
    CardOpenCommand,
    Command,
    GamePrivateInfo,
    JoinCommand,
    LeaveCommand,
    MasterEndCommand,
    PlayerView,
    PresenceCommand,
    ReadyCommand,
    StartCommand,
    StatusCommand,
)

logger = logging.getLogger(__name__)

Listener = Callable[[StateChange], None]

# The single state field each inbound event replaces
_EVENT_FIELDS: dict[RoomEvent, str] = {
    RoomEvent.PLAYERS_UPDATED: "players",
    RoomEvent.ACTIVE_GAME: "active_game",
    RoomEvent.PRIVATE_INFO: "private_info",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RoomState:
    """Immutable snapshot of everything the client knows about its room.

    Attributes:
        players: Roster from the latest room broadcast, in server order.
        active_game: This player's view of the running game, if any.
        private_info: Role and secret word dealt to this player, if any.
        is_connected: Whether the message channel is currently live.
        last_update: When an inbound event last replaced a field.
        revision: Count of inbound events applied so far.
    """

    players: tuple[PlayerView, ...] = ()
    active_game: ActiveGame | None = None
    private_info: GamePrivateInfo | None = None
    is_connected: bool = False
    last_update: datetime | None = None
    revision: int = 0


class RoomSyncClient:
    """Local mirror of one room plus guarded publishers for player actions.

    One instance serves exactly one room membership. Opening connects and
    subscribes through the transport; closing unsubscribes and releases it.
    A closed client cannot be reopened, a new room needs a new client.

    Actions return True when they published and False when skipped
    because there was no live connection. Skipping is not an error.
    """

    def __init__(
        self,
        room_code: str,
        player_uuid: str,
        transport: Transport,
        *,
        player_name: str | None = None,
        refresh_on_card_open: bool = True,
        announce_on_connect: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not room_code or not room_code.strip():
            raise ValueError("room_code must not be empty")
        if not player_uuid or not player_uuid.strip():
            raise ValueError("player_uuid must not be empty")

        self._room_code = room_code
        self._player_uuid = player_uuid
        self._transport = transport
        self.player_name = player_name
        self.refresh_on_card_open = refresh_on_card_open
        self.announce_on_connect = announce_on_connect
        self._clock = clock or _utcnow

        self._state = RoomState()
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []
        self._subscriptions: list[Subscription] = []
        self._generation = 0
        self._opened = False
        self._closed = False

    # -- Identity & state ------------------------------------------------

    @property
    def room_code(self) -> str:
        return self._room_code

    @property
    def player_uuid(self) -> str:
        return self._player_uuid

    @property
    def state(self) -> RoomState:
        return self._state

    @property
    def players(self) -> tuple[PlayerView, ...]:
        return self._state.players

    @property
    def active_game(self) -> ActiveGame | None:
        return self._state.active_game

    @property
    def private_info(self) -> GamePrivateInfo | None:
        return self._state.private_info

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    @property
    def last_update(self) -> datetime | None:
        return self._state.last_update

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    def me(self) -> PlayerView | None:
        """This player's roster entry, if the server has listed it yet."""
        return next(
            (p for p in self._state.players if p.uuid == self._player_uuid), None
        )

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a callback for state changes. Returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # -- Lifecycle -------------------------------------------------------

    def open(self) -> RoomSyncClient:
        """Connect and subscribe to the room's inbound topics.

        Transport errors are logged, everything acquired so far is
        released and the client is left closed and disconnected.
        """
        if self._closed:
            raise RuntimeError(
                f"Room client for {self._room_code} is closed; create a new one"
            )
        if self._opened:
            logger.warning("Room client for %s already open", self._room_code)
            return self

        generation = self._generation
        try:
            self._transport.connect(
                lambda connected: self._on_status(generation, connected)
            )
            for event, topic in inbound_topics(self._room_code).items():
                handler = self._make_handler(generation, event)
                self._subscriptions.append(self._transport.subscribe(topic, handler))
        except Exception:
            logger.exception("Failed to open room %s", self._room_code)
            self._closed = True
            self._release()
            return self

        self._opened = True
        logger.info(
            "Room client open for %s as %s (%d subscriptions)",
            self._room_code,
            self._player_uuid,
            len(self._subscriptions),
        )
        if self._state.is_connected:
            self._announce()
        return self

    def close(self) -> None:
        """Unsubscribe from all topics and release the connection."""
        if self._closed:
            return
        self._closed = True
        self._release()
        logger.info("Room client closed for %s", self._room_code)

    def _release(self) -> None:
        # Bumping the generation turns every outstanding handler stale
        self._generation += 1
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                subscription.unsubscribe()
            except Exception:
                logger.exception("Error unsubscribing in room %s", self._room_code)
        try:
            self._transport.disconnect()
        except Exception:
            logger.exception("Error disconnecting from room %s", self._room_code)
        with self._lock:
            self._state = replace(self._state, is_connected=False)

    def __enter__(self) -> RoomSyncClient:
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- Inbound ---------------------------------------------------------

    def _on_status(self, generation: int, connected: bool) -> None:
        if generation != self._generation:
            return
        with self._lock:
            if self._state.is_connected == connected:
                return
            self._state = replace(self._state, is_connected=connected)
            state = self._state

        logger.info(
            "Room %s %s", self._room_code, "connected" if connected else "disconnected"
        )
        self._notify(RoomEvent.CONNECTION_CHANGED, state)
        if connected and self._opened:
            self._announce()

    def _make_handler(self, generation: int, event: RoomEvent) -> Callable[[Any], None]:
        decode = DECODERS[event]

        def handle(body: Any) -> None:
            if generation != self._generation:
                logger.debug(
                    "Dropping stale %s for room %s", event.name, self._room_code
                )
                return
            try:
                value = decode(body)
            except NoChange as exc:
                logger.debug(
                    "Keeping %s for room %s: %s", event.name, self._room_code, exc
                )
                return
            except MalformedPayload as exc:
                logger.warning(
                    "Dropping malformed %s payload for room %s: %s",
                    event.name,
                    self._room_code,
                    exc,
                )
                return
            self._apply(generation, event, value)

        return handle

    def _apply(self, generation: int, event: RoomEvent, value: Any) -> None:
        """Replace the one field owned by ``event`` and notify listeners."""
        if event is RoomEvent.PRIVATE_INFO and value.player_uuid != self._player_uuid:
            logger.warning(
                "Ignoring private info for %s in room %s",
                value.player_uuid,
                self._room_code,
            )
            return

        with self._lock:
            if generation != self._generation:
                return
            self._state = replace(
                self._state,
                **{_EVENT_FIELDS[event]: value},
                last_update=self._clock(),
                revision=self._state.revision + 1,
            )
            state = self._state

        logger.debug("Room %s applied %s (rev %d)", self._room_code, event.name, state.revision)
        self._notify(event, state)

    def _notify(self, event: RoomEvent, state: RoomState) -> None:
        change = StateChange(event=event, room_code=self._room_code, state=state)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Listener failed for %s", event.name)

    # -- Outbound --------------------------------------------------------

    def _live_connection(self) -> Transport | None:
        """The transport, only while open and connected."""
        if self._opened and not self._closed and self._state.is_connected:
            return self._transport
        return None

    def _publish(self, connection: Transport, action: Action, command: Command) -> None:
        target = destination(self._room_code, action)
        try:
            connection.publish(target, command.to_body())
        except Exception:
            logger.exception("Publish to %s failed", target)

    def _send(self, action: Action, command: Command) -> bool:
        connection = self._live_connection()
        if connection is None:
            logger.debug(
                "Skipping %s for room %s: not connected", action.value, self._room_code
            )
            return False
        self._publish(connection, action, command)
        return True

    def _announce(self) -> None:
        """Introduce this player and pull a fresh game snapshot."""
        if not self.announce_on_connect:
            return
        self.join()
        self.request_active_game()

    def toggle_ready(self) -> bool:
        """Ask the server to flip this player's ready flag."""
        return self._send(Action.READY, ReadyCommand(player_uuid=self._player_uuid))

    def start_game(self) -> bool:
        """Request a game start. The server decides whether this player may."""
        return self._send(
            Action.START, StartCommand(trigger_by_uuid=self._player_uuid)
        )

    def handle_card_opened(self) -> bool:
        """Report that this player opened their role card.

        When ``refresh_on_card_open`` is set, an active_game request follows
        on the same connection so a lost CARD_OPENED broadcast still ends in
        a fresh snapshot. The two publishes are independent.
        """
        connection = self._live_connection()
        if connection is None:
            logger.debug("Skipping open_card for room %s: not connected", self._room_code)
            return False

        self._publish(
            connection, Action.OPEN_CARD, CardOpenCommand(player_uuid=self._player_uuid)
        )
        if self.refresh_on_card_open:
            self._publish(
                connection,
                Action.ACTIVE_GAME,
                ActiveGameRequest(player_uuid=self._player_uuid),
            )
        return True

    def request_active_game(self) -> bool:
        """Ask for this player's active game snapshot."""
        return self._send(
            Action.ACTIVE_GAME, ActiveGameRequest(player_uuid=self._player_uuid)
        )

    def join(self) -> bool:
        return self._send(
            Action.JOIN,
            JoinCommand(player_uuid=self._player_uuid, player_name=self.player_name),
        )

    def leave(self) -> bool:
        return self._send(Action.LEAVE, LeaveCommand(player_uuid=self._player_uuid))

    def send_presence(self) -> bool:
        return self._send(
            Action.PRESENCE, PresenceCommand(player_uuid=self._player_uuid)
        )

    def set_active(self, active: bool) -> bool:
        """Report page visibility so other players see who is around."""
        return self._send(
            Action.STATUS, StatusCommand(player_uuid=self._player_uuid, active=active)
        )

    def end_play(self) -> bool:
        """MASTER ends the question round early and opens voting."""
        return self._send(
            Action.MASTER_END, MasterEndCommand(player_uuid=self._player_uuid)
        )


@contextmanager
def room_sync(
    room_code: str,
    player_uuid: str,
    transport: Transport,
    **options: Any,
) -> Iterator[RoomSyncClient]:
    """Open a room client for the duration of a ``with`` block."""
    client = RoomSyncClient(room_code, player_uuid, transport, **options)
    try:
        client.open()
        yield client
    finally:
        client.close()


def connect_room(
    room_code: str,
    player_uuid: str,
    *,
    player_name: str | None = None,
    settings: Settings | None = None,
) -> RoomSyncClient:
    """Open a room client on the default Supabase transport.

    Convenience for the UI layer. The caller owns the returned client
    and must ``close()`` it when leaving the room.
    """
    settings = settings or get_settings()
    client = RoomSyncClient(
        room_code,
        player_uuid,
        create_transport(player_uuid, settings),
        player_name=player_name,
        refresh_on_card_open=settings.refresh_on_card_open,
        announce_on_connect=settings.announce_on_connect,
    )
    return client.open()
