"""
Database Module
"""
from .connection import (
    init_database,
    close_database,
    create_schema,
    get_db,
    get_engine,
    get_session_factory,
    session_scope,
)
from .capabilities import SchemaCapabilities, detect_capabilities
from .models import Base

__all__ = [
    "init_database",
    "close_database",
    "create_schema",
    "get_db",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "SchemaCapabilities",
    "detect_capabilities",
    "Base",
]
