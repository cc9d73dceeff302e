"""Room page — roster, ready state, role card and game controls."""

from __future__ import annotations

import logging
import time
from typing import Any, MutableMapping

import streamlit as st

from src.config.settings import get_settings
from src.realtime.sync_client import RoomState, RoomSyncClient, connect_room
from src.room.models import Role

logger = logging.getLogger(__name__)

_SESSION_KEYS = (
    "room_client",
    "room_client_error",
    "room_code",
    "_last_revision",
    "_last_connected",
    "_last_presence",
)


def _room_client() -> RoomSyncClient | None:
    """Return the session's client for the current room, opening it once.

    A failed connect is remembered so reruns do not retry it until the
    user asks to reconnect.
    """
    ss = st.session_state
    room_code = ss.get("room_code")
    client: RoomSyncClient | None = ss.get("room_client")

    # A different room always gets a fresh client
    if client is not None and client.room_code != room_code:
        client.close()
        client = None
        ss.pop("room_client", None)

    if client is None and room_code and not ss.get("room_client_error"):
        try:
            client = connect_room(
                room_code,
                ss["player_uuid"],
                player_name=ss.get("username"),
            )
        except Exception:
            logger.exception("Could not open room %s", room_code)
            ss["room_client_error"] = True
            return None
        ss["room_client"] = client
    return client


def _remember_render(ss: MutableMapping[str, Any], state: RoomState) -> None:
    """Record the snapshot the page was rendered from."""
    ss["_last_revision"] = state.revision
    ss["_last_connected"] = state.is_connected


def _needs_rerun(ss: MutableMapping[str, Any], state: RoomState) -> bool:
    """Whether ``state`` differs from what the page last rendered."""
    if "_last_revision" not in ss:
        return False
    return (
        ss["_last_revision"] != state.revision
        or ss.get("_last_connected") != state.is_connected
    )


def _leave_room(client: RoomSyncClient | None) -> None:
    ss = st.session_state
    if client is not None:
        client.leave()
        client.close()
    for key in _SESSION_KEYS:
        ss.pop(key, None)
    ss["page"] = "home"
    st.rerun()


def render_room_page() -> None:
    """Render the room page."""
    ss = st.session_state
    if not ss.get("room_code") or not ss.get("player_uuid"):
        ss["page"] = "home"
        st.rerun()
        return

    client = _room_client()
    st.subheader(f"Room {ss['room_code']}")

    if client is None or not client.is_open:
        st.error("Could not reach the room server.")
        col_retry, col_back = st.columns(2)
        if col_retry.button("Reconnect", use_container_width=True):
            ss.pop("room_client", None)
            ss.pop("room_client_error", None)
            st.rerun()
        if col_back.button("Back", use_container_width=True):
            _leave_room(None)
        return

    # One snapshot per run; the transport thread may replace it meanwhile
    state = client.state
    _remember_render(ss, state)

    if state.is_connected:
        st.success("Connected")
    else:
        st.warning("Connecting...")

    _render_roster(client, state)
    st.divider()
    if state.active_game is not None and not state.active_game.finished:
        _render_game(client, state)
    else:
        _render_lobby_controls(client, state)

    st.divider()
    if st.button("Leave Room", use_container_width=True):
        _leave_room(client)

    _poll_room(client)


def _find_me(client: RoomSyncClient, state: RoomState):
    return next((p for p in state.players if p.uuid == client.player_uuid), None)


def _render_roster(client: RoomSyncClient, state: RoomState) -> None:
    players = state.players
    st.markdown(f"**Players ({len(players)}):**")
    for p in players:
        badges = []
        if p.is_host:
            badges.append("Host")
        if p.is_ready:
            badges.append("Ready")
        if not p.is_active:
            badges.append("Away")
        you = " (You)" if p.uuid == client.player_uuid else ""
        suffix = f" — {', '.join(badges)}" if badges else ""
        st.markdown(f"- {p.display_name}{you}{suffix}")


def _render_lobby_controls(client: RoomSyncClient, state: RoomState) -> None:
    me = _find_me(client, state)
    ready = me.is_ready if me else False
    connected = state.is_connected

    if st.button(
        "Not Ready" if ready else "Ready",
        type="primary",
        disabled=not connected,
        use_container_width=True,
    ):
        client.toggle_ready()

    if me is not None and me.is_host:
        if st.button("Start Game", disabled=not connected, use_container_width=True):
            client.start_game()
    else:
        st.info("Waiting for the host to start the game...")


def _render_game(client: RoomSyncClient, state: RoomState) -> None:
    game = state.active_game
    private = state.private_info or game.private_message
    opened = game.has_opened(client.player_uuid)

    if not opened:
        st.markdown("Your role card is face down.")
        if st.button(
            "Open Card",
            type="primary",
            disabled=not state.is_connected,
            use_container_width=True,
        ):
            client.handle_card_opened()
    elif private is not None:
        st.markdown(f"**Your role:** {private.role.value.title()}")
        if private.knows_word:
            st.markdown(f"**Secret word:** {private.word}")

    waiting = [uuid for uuid, done in game.card_opened.items() if not done]
    if waiting:
        st.caption(f"Waiting for {len(waiting)} player(s) to open their card.")
    elif game.ends_at:
        st.caption(f"Round ends at {game.ends_at}")

    if private is not None and private.role is Role.MASTER and game.all_cards_opened:
        if st.button("End Round", use_container_width=True):
            client.end_play()


@st.fragment(run_every=2)
def _poll_room(client: RoomSyncClient) -> None:
    """Rerun the app when the client's state moved, and keep presence fresh.

    The client is updated from the transport thread, so the page only
    learns about changes by comparing against the snapshot it rendered.
    """
    ss = st.session_state

    now = time.monotonic()
    if now - ss.get("_last_presence", 0.0) >= get_settings().presence_interval:
        client.send_presence()
        ss["_last_presence"] = now

    if _needs_rerun(ss, client.state):
        st.rerun(scope="app")
