# Configuration, database and logging shared by the whole service
from .config import get_settings, settings
from .database import (
    Base,
    async_session_maker,
    check_db_connection,
    engine,
    get_db,
    session_scope,
)
from .logging import get_logger, setup_logging

__all__ = [
    "Base",
    "async_session_maker",
    "check_db_connection",
    "engine",
    "get_db",
    "get_logger",
    "get_settings",
    "session_scope",
    "settings",
    "setup_logging",
]
