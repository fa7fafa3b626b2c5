"""
HTTP transport for the Logbook server.

Routes live under /api; /health is served at the root.
"""

from .app import create_app
from .routes import router

__all__ = ["create_app", "router"]
