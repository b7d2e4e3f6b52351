"""Middleware registration."""

from fastapi import FastAPI

from testnet_points.config import Settings
from testnet_points.middleware.error_handler import setup_error_handlers
from testnet_points.middleware.logging import setup_logging
from testnet_points.middleware.request_context import RequestContextMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, error handlers and the per-request log context."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestContextMiddleware)
