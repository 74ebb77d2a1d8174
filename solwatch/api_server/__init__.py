"""HTTP command surface (FastAPI)."""

from solwatch.api_server.server import create_app

__all__ = ["create_app"]
