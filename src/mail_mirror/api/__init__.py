"""HTTP API for Mail Mirror."""

from .main import create_app

__all__ = ["create_app"]
