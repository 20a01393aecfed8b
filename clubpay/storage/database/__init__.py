"""Database models and engine setup."""

from .base import Base, get_session, init_db

__all__ = ["Base", "get_session", "init_db"]
