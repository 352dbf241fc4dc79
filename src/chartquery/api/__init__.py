"""HTTP API for chart queries."""

from chartquery.api.server import app, create_app

__all__ = ["app", "create_app"]
