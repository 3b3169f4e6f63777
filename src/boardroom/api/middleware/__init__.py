"""API middleware package."""

from src.boardroom.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
