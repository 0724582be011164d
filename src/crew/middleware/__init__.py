"""Middleware registration."""

from fastapi import FastAPI

from crew.config import Settings
from crew.middleware.error_handler import setup_error_handlers
from crew.middleware.logging import setup_logging
from crew.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, error handlers and request ids."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
