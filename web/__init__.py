"""Monitoring and availability API web server."""

from .app import create_app, start_web_server
from .auth import ApiKeyAuth

__all__ = ["ApiKeyAuth", "create_app", "start_web_server"]
