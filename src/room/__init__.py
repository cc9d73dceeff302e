"""
Insider Room Models.

Payloads pushed by the room server and commands sent back to it.
"""

from src.room.models import (
    ActiveGame,
    ActiveGameEnvelope,
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
    Role,
    RoomUpdate,
    RoomUpdateType,
    StartCommand,
    StatusCommand,
)

__all__ = [
    "ActiveGame",
    "ActiveGameEnvelope",
    "ActiveGameRequest",
    "CardOpenCommand",
    "Command",
    "GamePrivateInfo",
    "JoinCommand",
    "LeaveCommand",
    "MasterEndCommand",
    "PlayerView",
    "PresenceCommand",
    "ReadyCommand",
    "Role",
    "RoomUpdate",
    "RoomUpdateType",
    "StartCommand",
    "StatusCommand",
]
