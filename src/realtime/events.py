"""
Insider Room Sync - Realtime Event Definitions

Inbound event types, channel destinations, and payload decoding for the
room message channel.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from src.room.models import (
    ActiveGame,
    ActiveGameEnvelope,
    GamePrivateInfo,
    PlayerView,
    RoomUpdate,
)

if TYPE_CHECKING:
    from src.realtime.sync_client import RoomState


class RoomEvent(Enum):
    """Server-pushed events the client folds into its state."""

    PLAYERS_UPDATED = auto()
    ACTIVE_GAME = auto()
    PRIVATE_INFO = auto()
    CONNECTION_CHANGED = auto()


class Action(Enum):
    """Outbound command destinations under ``/app/room/{roomCode}/``."""

    READY = "ready"
    START = "start"
    OPEN_CARD = "open_card"
    ACTIVE_GAME = "active_game"
    JOIN = "join"
    LEAVE = "leave"
    PRESENCE = "presence"
    STATUS = "status"
    MASTER_END = "master_end"


@dataclass(frozen=True)
class StateChange:
    """Notification handed to listeners after the state was replaced."""

    event: RoomEvent
    room_code: str
    state: RoomState


class MalformedPayload(ValueError):
    """Inbound body that cannot be decoded into its model."""


class NoChange(Exception):
    """Valid inbound body that carries nothing for its state field."""


# Per-user queues are delivered to the owning session only
ACTIVE_GAME_QUEUE = "/user/queue/active_game"
PRIVATE_INFO_QUEUE = "/user/queue/game_private"


def room_topic(room_code: str) -> str:
    """Broadcast topic carrying roster updates for a room."""
    return f"/topic/room/{room_code}"


def destination(room_code: str, action: Action) -> str:
    """Destination a command for ``action`` is published to."""
    return f"/app/room/{room_code}/{action.value}"


def inbound_topics(room_code: str) -> dict[RoomEvent, str]:
    """Topics a room client subscribes to, keyed by the event they carry."""
    return {
        RoomEvent.PLAYERS_UPDATED: room_topic(room_code),
        RoomEvent.ACTIVE_GAME: ACTIVE_GAME_QUEUE,
        RoomEvent.PRIVATE_INFO: PRIVATE_INFO_QUEUE,
    }


def _load(body: Any) -> Any:
    """Turn a raw frame body (text, bytes or decoded JSON) into Python data."""
    if not isinstance(body, (str, bytes, bytearray)):
        return body
    try:
        return json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedPayload(f"invalid JSON body: {exc}") from exc


def _validate(model, body: Any):
    data = _load(body)
    try:
        return model.model_validate(data)
    except ValueError as exc:
        # pydantic.ValidationError subclasses ValueError
        raise MalformedPayload(str(exc)) from exc


def decode_players(body: Any) -> tuple[PlayerView, ...]:
    """Decode a room broadcast into the roster it carries.

    ``hostUuid``, when present, decides which entry is the host.
    """
    update: RoomUpdate = _validate(RoomUpdate, body)
    if update.players is None:
        raise NoChange("room broadcast without a roster")
    if update.host_uuid is None:
        return tuple(update.players)
    return tuple(
        p.model_copy(update={"is_host": p.uuid == update.host_uuid})
        for p in update.players
    )


def decode_active_game(body: Any) -> ActiveGame | None:
    """Decode an active_game reply. None means no game for this player."""
    envelope: ActiveGameEnvelope = _validate(ActiveGameEnvelope, body)
    return envelope.game


def decode_private_info(body: Any) -> GamePrivateInfo:
    """Decode a private role/word message."""
    return _validate(GamePrivateInfo, body)


DECODERS = {
    RoomEvent.PLAYERS_UPDATED: decode_players,
    RoomEvent.ACTIVE_GAME: decode_active_game,
    RoomEvent.PRIVATE_INFO: decode_private_info,
}
