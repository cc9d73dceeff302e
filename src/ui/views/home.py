"""Home page — enter a room code and identify yourself."""

from __future__ import annotations

import uuid

import streamlit as st


def render_home_page() -> None:
    """Render the room entry form."""
    ss = st.session_state
    st.title("Insider")
    st.caption("Find the insider before the word is guessed")

    # Keep one identity per browser session so reconnects map to the same player
    if "player_uuid" not in ss:
        ss["player_uuid"] = str(uuid.uuid4())

    with st.form("enter_room_form"):
        username = st.text_input(
            "Your Name",
            max_chars=30,
            placeholder="Enter your name...",
            value=ss.get("username", ""),
        )
        code = st.text_input(
            "Room Code",
            max_chars=6,
            placeholder="e.g. ABC123",
        )
        submitted = st.form_submit_button("Enter Room", type="primary")

    if submitted:
        if not username or not username.strip():
            st.error("Please enter your name.")
            return
        if not code or not code.strip():
            st.error("Please enter a room code.")
            return

        ss["username"] = username.strip()
        ss["room_code"] = code.strip().upper()
        ss["page"] = "room"
        st.rerun()
