"""
Insider Room Sync Realtime.

Message channel transport, inbound event decoding, and the room sync client.
"""

from src.realtime.events import Action, RoomEvent, StateChange
from src.realtime.sync_client import (
    RoomState,
    RoomSyncClient,
    connect_room,
    room_sync,
)
from src.realtime.transport import SupabaseTransport, Transport, create_transport

__all__ = [
    "Action",
    "RoomEvent",
    "RoomState",
    "RoomSyncClient",
    "StateChange",
    "SupabaseTransport",
    "Transport",
    "connect_room",
    "create_transport",
    "room_sync",
]
