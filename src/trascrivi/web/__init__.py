"""HTTP surface for Trascrivi."""

from .api import create_app, set_app_instance

__all__ = ["create_app", "set_app_instance"]
