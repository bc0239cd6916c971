"""FastAPI surface."""

from mountaingraph.api.app import create_app

__all__ = ["create_app"]
