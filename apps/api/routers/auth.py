"""
Authentication API endpoints.

Provides:
- User registration
- Login (opaque session token)
- Current user lookup
- Logout
"""
from fastapi import APIRouter, Depends, Response, status
import logging

from core.auth import get_current_user, get_session_store, get_session_token
from core.config import settings
from core.exceptions import ValidationError
from core.security import MAX_PASSWORD_BYTES
from schemas import AuthResponse, User, UserLogin, UserRegister
from services.session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 6


def _auth_response(user: User, token: str) -> AuthResponse:
    return AuthResponse(user=user, session_token=token, expires_in=settings.SESSION_TTL_S)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserRegister,
    sessions: SessionStore = Depends(get_session_store),
):
    """
    Register a new user account and open its first session.

    Usernames are case-insensitive; a taken name answers 409.
    """
    if len(user_data.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password"
        )
    if len(user_data.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes", field="password"
        )

    user, token = sessions.register(user_data.username, user_data.password, user_data.display_name)
    return _auth_response(user, token)


@router.post("/login", response_model=AuthResponse)
def login(
    credentials: UserLogin,
    sessions: SessionStore = Depends(get_session_store),
):
    """Exchange username and password for a session token."""
    user, token = sessions.login(credentials.username, credentials.password)
    logger.info(f"User {user.id} logged in")
    return _auth_response(user, token)


@router.get("/me", response_model=User)
def get_me(current_user: User = Depends(get_current_user)):
    """Verify the session token and return its user."""
    return current_user


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    token: str = Depends(get_session_token),
    sessions: SessionStore = Depends(get_session_store),
):
    """Invalidate the session token. Logging out twice is not an error."""
    sessions.logout(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
