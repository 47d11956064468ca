"""Core application utilities."""

from .config import Settings, get_settings
from .database import (
    async_session_factory,
    close_db,
    engine,
    get_session,
    init_db,
)
from .security import (
    TokenPayload,
    create_access_token,
    decode_token,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "engine",
    "async_session_factory",
    "get_session",
    "init_db",
    "close_db",
    # Security
    "TokenPayload",
    "create_access_token",
    "decode_token",
]
