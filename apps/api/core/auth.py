"""
Authentication dependencies.

Provides FastAPI dependencies for:
- The session / record stores bound to the running connection manager
- Getting the current authenticated user from a bearer session token
"""
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import Optional

from core.exceptions import UnauthorizedError
from core.redis_connection import RedisConnectionManager, get_connection_manager
from schemas import User
from services.health_data import HealthDataService
from services.record_store import RecordStore
from services.session_store import SessionStore

# Use auto_error=False to handle missing credentials manually and return 401 (not 403)
security = HTTPBearer(auto_error=False)


def get_session_store(
    manager: RedisConnectionManager = Depends(get_connection_manager),
) -> SessionStore:
    return SessionStore(manager)


def get_health_service(
    manager: RedisConnectionManager = Depends(get_connection_manager),
) -> HealthDataService:
    return HealthDataService(RecordStore(manager))


def get_session_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """The raw bearer token. 401 when the header is missing."""
    if not credentials or not credentials.credentials:
        raise UnauthorizedError("Not authenticated")
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_session_token),
    sessions: SessionStore = Depends(get_session_store),
) -> User:
    """
    Resolve the bearer session token to its user.

    InvalidSession propagates and is rendered as 401 by the exception handlers.
    """
    return sessions.verify(token)
