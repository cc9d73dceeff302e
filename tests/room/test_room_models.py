"""Tests for src/room/models.py — payload models and command bodies."""

import pytest

from src.room.models import (
    ActiveGame,
    ActiveGameRequest,
    CardOpenCommand,
    GamePrivateInfo,
    JoinCommand,
    PlayerView,
    ReadyCommand,
    Role,
    RoomUpdate,
    RoomUpdateType,
    StartCommand,
    StatusCommand,
)


# ── PlayerView ─────────────────────────────────────────────────────────

class TestPlayerView:
    def test_short_flag_names(self):
        p = PlayerView.model_validate(
            {"uuid": "p1", "host": True, "ready": True, "playing": True, "active": True}
        )
        assert (p.is_host, p.is_ready, p.is_playing, p.is_active) == (True, True, True, True)

    def test_prefixed_flag_names(self):
        p = PlayerView.model_validate({"uuid": "p1", "isHost": True, "isReady": True})
        assert p.is_host and p.is_ready

    def test_defaults(self):
        p = PlayerView.model_validate({"uuid": "p1"})
        assert p.is_host is False
        assert p.player_name is None
        assert p.display_name == "p1"

    def test_unknown_fields_ignored(self):
        p = PlayerView.model_validate({"uuid": "p1", "sessionId": "s-1"})
        assert p.uuid == "p1"


# ── RoomUpdate ─────────────────────────────────────────────────────────

class TestRoomUpdate:
    def test_full_broadcast(self, room_update_body):
        update = RoomUpdate.model_validate(room_update_body)
        assert update.update_type is RoomUpdateType.PLAYER_READY
        assert update.max_players == 8
        assert update.status == "WAITING"
        assert len(update.players) == 2

    def test_unknown_type_kept_raw(self):
        update = RoomUpdate.model_validate({"type": "SOMETHING_NEW"})
        assert update.type == "SOMETHING_NEW"
        assert update.update_type is None

    def test_missing_type(self):
        assert RoomUpdate().update_type is None

    def test_reset_broadcast_names_host(self):
        update = RoomUpdate.model_validate({
            "type": "ROOM_RESET_AFTER_GAME",
            "hostUuid": "p1",
            "players": [],
        })
        assert update.update_type is RoomUpdateType.ROOM_RESET_AFTER_GAME
        assert update.host_uuid == "p1"
        assert update.players == []

    def test_missing_players_is_none(self):
        assert RoomUpdate.model_validate({"type": "ROOM_UPDATE"}).players is None


# ── ActiveGame ─────────────────────────────────────────────────────────

class TestActiveGame:
    def test_card_helpers(self):
        game = ActiveGame.model_validate({"cardOpened": {"p1": True, "p2": False}})
        assert game.has_opened("p1")
        assert not game.has_opened("p2")
        assert not game.has_opened("p3")
        assert not game.all_cards_opened

    def test_all_opened(self):
        game = ActiveGame.model_validate({"cardOpened": {"p1": True, "p2": True}})
        assert game.all_cards_opened

    def test_no_cards_is_not_all_opened(self):
        assert not ActiveGame().all_cards_opened


class TestGamePrivateInfo:
    @pytest.mark.parametrize("role, knows", [
        ("MASTER", True),
        ("INSIDER", True),
        ("CITIZEN", False),
    ])
    def test_knows_word(self, role, knows):
        info = GamePrivateInfo.model_validate({"playerUuid": "p1", "role": role})
        assert info.knows_word is knows

    def test_default_role(self):
        assert GamePrivateInfo(player_uuid="p1").role is Role.CITIZEN


# ── Commands ───────────────────────────────────────────────────────────

class TestCommands:
    def test_ready_body(self):
        assert ReadyCommand(player_uuid="p1").to_body() == '{"playerUuid":"p1"}'

    def test_start_body(self):
        assert StartCommand(trigger_by_uuid="p1").to_body() == '{"triggerByUuid":"p1"}'

    def test_card_open_and_refresh_bodies_match(self):
        assert (
            CardOpenCommand(player_uuid="p1").to_body()
            == ActiveGameRequest(player_uuid="p1").to_body()
        )

    def test_join_omits_missing_name(self):
        assert JoinCommand(player_uuid="p1").to_body() == '{"playerUuid":"p1"}'
        assert (
            JoinCommand(player_uuid="p1", player_name="Alice").to_body()
            == '{"playerUuid":"p1","playerName":"Alice"}'
        )

    def test_status_body(self):
        assert (
            StatusCommand(player_uuid="p1", active=True).to_body()
            == '{"playerUuid":"p1","active":true}'
        )

    def test_commands_are_frozen(self):
        cmd = ReadyCommand(player_uuid="p1")
        with pytest.raises(Exception):
            cmd.player_uuid = "p2"
