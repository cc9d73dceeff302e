"""Page renderers for Insider."""

from src.ui.views.home import render_home_page
from src.ui.views.room import render_room_page

__all__ = ["render_home_page", "render_room_page"]
