"""Middleware package for the Dungeon Encounter Engine."""

from dungeon_engine.middleware.error_handler import setup_error_handlers

__all__ = [
    "setup_error_handlers",
]
