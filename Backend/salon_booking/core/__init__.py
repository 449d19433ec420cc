"""
Core module - configuration, database and response formatting.
"""
from .config import Settings, get_settings
from .db import (
    AsyncSessionLocal,
    Base,
    CommitSessionLocal,
    build_commit_engine,
    build_engine,
    commit_sessionmaker,
    commit_engine,
    engine,
    get_session,
)
from .responses import (
    ApiResponse,
    ErrorDetail,
    ErrorCodes,
    success_response,
    error_response,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "Base",
    "engine",
    "commit_engine",
    "get_session",
    "build_commit_engine",
    "build_engine",
    "commit_sessionmaker",
    "AsyncSessionLocal",
    "CommitSessionLocal",
    # Responses
    "ApiResponse",
    "ErrorDetail",
    "ErrorCodes",
    "success_response",
    "error_response",
]
