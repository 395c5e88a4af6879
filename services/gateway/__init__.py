"""
HTTP gateway for the video proxy.

Exposes the FastAPI application and its factory.
"""

from .server import app, create_app

__all__ = ["app", "create_app"]
