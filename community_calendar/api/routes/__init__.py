"""Route modules for the community_calendar server."""

from .admin_routes import register_admin_routes
from .event_routes import register_event_routes

__all__ = [
    "register_admin_routes",
    "register_event_routes",
]
