"""API surface for the invoice relay."""

from .routes import make_routes
from .tools import register_tools

__all__ = ["make_routes", "register_tools"]
