"""
Insider Room Sync - Room Models

Pydantic models for the JSON payloads exchanged on the room's message
channel. Inbound models mirror what the room server broadcasts; outbound
commands serialise to the compact camelCase bodies it expects.
"""

from enum import Enum

from pydantic import AliasChoices, BaseModel, Field
from pydantic.alias_generators import to_camel

_INBOUND_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "extra": "ignore",
}

_COMMAND_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "frozen": True,
}


class RoomUpdateType(Enum):
    """Reasons the server gives for a room broadcast."""

    PLAYER_JOINED = "PLAYER_JOINED"
    PLAYER_LEFT = "PLAYER_LEFT"
    PLAYER_READY = "PLAYER_READY"
    ROOM_UPDATE = "ROOM_UPDATE"
    ROOM_PLAYING = "ROOM_PLAYING"
    GAME_STARTED = "GAME_STARTED"
    CARD_OPENED = "CARD_OPENED"
    GAME_FINISHED = "GAME_FINISHED"
    VOTE_STARTED = "VOTE_STARTED"
    ROOM_RESET_AFTER_GAME = "ROOM_RESET_AFTER_GAME"


class Role(Enum):
    """Secret role dealt to each participant of a game."""

    MASTER = "MASTER"
    INSIDER = "INSIDER"
    CITIZEN = "CITIZEN"


# -- Inbound ---------------------------------------------------------------


class PlayerView(BaseModel):
    """One roster entry as broadcast by the server.

    Boolean flags arrive either as ``isHost`` or as ``host`` depending on
    how the server serialises them, so both spellings are accepted.
    """

    uuid: str
    player_name: str | None = None
    is_host: bool = Field(
        default=False, validation_alias=AliasChoices("isHost", "host", "is_host")
    )
    is_ready: bool = Field(
        default=False, validation_alias=AliasChoices("isReady", "ready", "is_ready")
    )
    is_playing: bool = Field(
        default=False,
        validation_alias=AliasChoices("isPlaying", "playing", "is_playing"),
    )
    is_active: bool = Field(
        default=False,
        validation_alias=AliasChoices("isActive", "active", "is_active"),
    )
    joined_at: str | None = None
    last_active_at: str | None = None

    model_config = _INBOUND_CONFIG

    @property
    def display_name(self) -> str:
        return self.player_name or self.uuid


class RoomUpdate(BaseModel):
    """Broadcast on the room topic whenever the roster or status changes.

    Some broadcasts leave the per-player host flag unset and name the host
    only through ``host_uuid``. ``players`` is None when the server sent no
    roster at all.
    """

    type: str | None = None
    room_code: str | None = None
    room_name: str | None = None
    max_players: int | None = None
    current_players: int | None = None
    status: str | None = None
    host_uuid: str | None = None
    players: list[PlayerView] | None = None
    message: str | None = None

    model_config = _INBOUND_CONFIG

    @property
    def update_type(self) -> RoomUpdateType | None:
        """The broadcast reason, or None if the server sent an unknown one."""
        try:
            return RoomUpdateType(self.type)
        except ValueError:
            return None


class GamePrivateInfo(BaseModel):
    """Role and (for MASTER / INSIDER) the secret word, sent to one player only."""

    player_uuid: str
    role: Role = Role.CITIZEN
    word: str = ""

    model_config = _INBOUND_CONFIG

    @property
    def knows_word(self) -> bool:
        return self.role in (Role.MASTER, Role.INSIDER)


class ActiveGame(BaseModel):
    """Per-player view of the game in progress."""

    id: str | None = None
    room_code: str | None = None
    word: str = ""
    roles: dict[str, Role] = Field(default_factory=dict)
    started_at: str | None = None
    ends_at: str | None = None
    duration_seconds: int = 0
    finished: bool = False
    card_opened: dict[str, bool] = Field(default_factory=dict)
    private_message: GamePrivateInfo | None = None

    model_config = _INBOUND_CONFIG

    def has_opened(self, player_uuid: str) -> bool:
        """Whether the given player has opened their role card."""
        return self.card_opened.get(player_uuid, False)

    @property
    def all_cards_opened(self) -> bool:
        return bool(self.card_opened) and all(self.card_opened.values())


class ActiveGameEnvelope(BaseModel):
    """Reply to an active_game request; ``game`` is None outside a game."""

    game: ActiveGame | None = None

    model_config = _INBOUND_CONFIG


# -- Outbound --------------------------------------------------------------


class Command(BaseModel):
    """Base for outbound command bodies."""

    model_config = _COMMAND_CONFIG

    def to_body(self) -> str:
        """Serialise to the compact JSON text published on the channel."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


class ReadyCommand(Command):
    player_uuid: str


class StartCommand(Command):
    trigger_by_uuid: str


class CardOpenCommand(Command):
    player_uuid: str


class ActiveGameRequest(Command):
    player_uuid: str


class JoinCommand(Command):
    player_uuid: str
    player_name: str | None = None


class LeaveCommand(Command):
    player_uuid: str


class PresenceCommand(Command):
    player_uuid: str


class StatusCommand(Command):
    player_uuid: str
    active: bool


class MasterEndCommand(Command):
    player_uuid: str
