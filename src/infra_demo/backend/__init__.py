"""Sample posts service packaged into the container image."""

from .app import app, create_app

__all__ = ["app", "create_app"]
