"""
Insider Room Sync - Test Configuration and Fixtures

Recording transport double and room client fixtures shared by all tests.
"""

import json
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any, Callable

import pytest

from src.realtime.sync_client import RoomSyncClient


# =============================================================================
# TRANSPORT TEST DOUBLE
# =============================================================================

class FakeSubscription:
    def __init__(self, transport: "FakeTransport", topic: str) -> None:
        self.transport = transport
        self.topic = topic
        self.active = True

    def unsubscribe(self) -> None:
        self.active = False
        self.transport.unsubscribed.append(self.topic)


class FakeTransport:
    """Records every call so tests can assert on publishes and teardown.

    Handlers stay reachable after unsubscribe so tests can simulate a
    late message arriving on a stale subscription.
    """

    def __init__(
        self,
        *,
        connect_on_open: bool = False,
        fail_connect: bool = False,
        fail_subscribe_on: str | None = None,
        fail_publish_to: str | None = None,
    ) -> None:
        self.connect_on_open = connect_on_open
        self.fail_connect = fail_connect
        self.fail_subscribe_on = fail_subscribe_on
        self.fail_publish_to = fail_publish_to

        self.on_status: Callable[[bool], None] | None = None
        self.handlers: dict[str, Callable[[Any], None]] = {}
        self.subscriptions: list[FakeSubscription] = []
        self.unsubscribed: list[str] = []
        self.raw_published: list[tuple[str, str]] = []
        self.connect_calls = 0
        self.disconnect_calls = 0

    # -- Transport protocol ------------------------------------------------

    def connect(self, on_status: Callable[[bool], None]) -> None:
        self.connect_calls += 1
        if self.fail_connect:
            raise ConnectionError("broker unreachable")
        self.on_status = on_status
        if self.connect_on_open:
            on_status(True)

    def subscribe(self, topic: str, handler: Callable[[Any], None]) -> FakeSubscription:
        if topic == self.fail_subscribe_on:
            raise ConnectionError(f"cannot subscribe to {topic}")
        self.handlers[topic] = handler
        subscription = FakeSubscription(self, topic)
        self.subscriptions.append(subscription)
        return subscription

    def publish(self, destination: str, body: str) -> None:
        if destination == self.fail_publish_to:
            raise ConnectionError(f"publish to {destination} failed")
        self.raw_published.append((destination, body))

    def disconnect(self) -> None:
        self.disconnect_calls += 1

    # -- Test helpers ------------------------------------------------------

    @property
    def published(self) -> list[tuple[str, dict]]:
        return [(dest, json.loads(body)) for dest, body in self.raw_published]

    @property
    def destinations(self) -> list[str]:
        return [dest for dest, _ in self.raw_published]

    def set_connected(self, connected: bool) -> None:
        assert self.on_status is not None, "connect() was never called"
        self.on_status(connected)

    def deliver(self, topic: str, body: Any) -> None:
        self.handlers[topic](body)


# =============================================================================
# CLIENT FIXTURES
# =============================================================================

@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Deterministic clock advancing one second per call."""
    start = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
    ticks = count()
    return lambda: start + timedelta(seconds=next(ticks))


@pytest.fixture
def client(transport, clock) -> RoomSyncClient:
    """Opened but not yet connected client for room ABCD as player p1."""
    c = RoomSyncClient(
        "ABCD", "p1", transport, announce_on_connect=False, clock=clock
    )
    c.open()
    yield c
    c.close()


@pytest.fixture
def connected_client(client, transport) -> RoomSyncClient:
    transport.set_connected(True)
    return client


# =============================================================================
# PAYLOAD FIXTURES
# =============================================================================

@pytest.fixture
def room_update_body() -> dict[str, Any]:
    """Room broadcast as serialised by the server."""
    return {
        "type": "PLAYER_READY",
        "roomCode": "ABCD",
        "roomName": "Friday night",
        "maxPlayers": 8,
        "currentPlayers": 2,
        "status": "WAITING",
        "players": [
            {
                "uuid": "p1",
                "playerName": "Alice",
                "host": True,
                "ready": True,
                "playing": False,
                "active": True,
                "joinedAt": "2025-01-01T12:00:00",
                "lastActiveAt": "2025-01-01T12:01:00",
            },
            {
                "uuid": "p2",
                "playerName": "Bob",
                "host": False,
                "ready": False,
                "playing": False,
                "active": True,
                "joinedAt": "2025-01-01T12:00:30",
            },
        ],
        "message": "A player updated ready status",
    }


@pytest.fixture
def active_game_body() -> dict[str, Any]:
    """active_game reply for p1 while cards are being opened."""
    return {
        "game": {
            "id": "6f1c0d1e-0000-4000-8000-000000000001",
            "roomCode": "ABCD",
            "word": "lighthouse",
            "roles": {"p1": "MASTER", "p2": "CITIZEN"},
            "startedAt": None,
            "endsAt": None,
            "durationSeconds": 300,
            "finished": False,
            "cardOpened": {"p1": True, "p2": False},
            "privateMessage": {
                "playerUuid": "p1",
                "role": "MASTER",
                "word": "lighthouse",
            },
        }
    }


@pytest.fixture
def private_info_body() -> dict[str, Any]:
    return {"playerUuid": "p1", "role": "INSIDER", "word": "lighthouse"}
