"""
Auth-scoped session store.

Maps opaque bearer tokens to users, backed by Redis:

    auth:user:<username_lower>   -> {"password_hash": ..., "user": {...}}   (USER_TTL_S)
    auth:user_id:<user_id>       -> <username_lower>                       (USER_TTL_S)
    auth:session:<token>         -> <user_id>                              (SESSION_TTL_S, sliding)

Unknown user and wrong password fail with the same InvalidCredentials error.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import uuid4

from redis.exceptions import ConnectionError, RedisError, TimeoutError

from core.config import settings
from core.errors import (
    ConnectionUnavailable,
    InvalidCredentials,
    InvalidSession,
    StoreUnavailable,
    UsernameTaken,
)
from core.redis_connection import RedisConnectionManager
from core.security import (
    burn_password_check,
    generate_session_token,
    get_password_hash,
    verify_password,
)
from schemas import User

logger = logging.getLogger(__name__)


def normalize_username(username: str) -> str:
    return username.strip().lower()


def user_key(username: str) -> str:
    return f"auth:user:{normalize_username(username)}"


def user_id_key(user_id: str) -> str:
    return f"auth:user_id:{user_id}"


def session_key(token: str) -> str:
    return f"auth:session:{token}"


class SessionStore:
    """Registration, login and bearer-token resolution."""

    def __init__(
        self,
        manager: RedisConnectionManager,
        session_ttl_s: Optional[int] = None,
        user_ttl_s: Optional[int] = None,
    ):
        self.manager = manager
        self.session_ttl_s = session_ttl_s or settings.SESSION_TTL_S
        self.user_ttl_s = user_ttl_s or settings.USER_TTL_S

    def _client(self, write: bool = False):
        try:
            return self.manager.acquire()
        except ConnectionUnavailable as e:
            if write:
                raise StoreUnavailable(e.detail) from e
            raise

    def _fail(self, e: Exception, operation: str, write: bool = False):
        if isinstance(e, (ConnectionError, TimeoutError, OSError)):
            self.manager.mark_unhealthy(e)
        logger.warning(f"Auth store {operation} failed: {e}")
        error_cls = StoreUnavailable if write else ConnectionUnavailable
        raise error_cls(f"Auth store {operation} failed") from e

    def register(self, username: str, password: str, display_name: str) -> Tuple[User, str]:
        """Create the user and a first session. Raises UsernameTaken."""
        username_lower = normalize_username(username)
        user = User(
            id=f"user_{uuid4().hex}",
            username=username_lower,
            display_name=display_name.strip(),
            created_at=datetime.now(timezone.utc),
        )
        payload = json.dumps({
            "password_hash": get_password_hash(password),
            "user": user.model_dump(mode="json"),
        })

        client = self._client(write=True)
        try:
            # NX claims the username atomically
            created = client.set(user_key(username_lower), payload, nx=True, ex=self.user_ttl_s)
            if not created:
                raise UsernameTaken("Username already exists")
            client.setex(user_id_key(user.id), self.user_ttl_s, username_lower)
        except (RedisError, OSError) as e:
            self._fail(e, "register", write=True)

        logger.info(f"Registered user {user.id}")
        return user, self._create_session(user.id)

    def login(self, username: str, password: str) -> Tuple[User, str]:
        """Check credentials and open a new session. Raises InvalidCredentials."""
        record = self._load_user_record(user_key(username))
        if record is None:
            burn_password_check(password)
            raise InvalidCredentials("Invalid username or password")

        if not verify_password(password, record.get("password_hash", "")):
            raise InvalidCredentials("Invalid username or password")

        user = User.model_validate(record["user"])
        return user, self._create_session(user.id)

    def verify(self, token: str) -> User:
        """Resolve a token to its user, extending the session. Raises InvalidSession."""
        if not token:
            raise InvalidSession()

        client = self._client()
        try:
            user_id = client.get(session_key(token))
            username = client.get(user_id_key(user_id)) if user_id else None
        except (RedisError, OSError) as e:
            self._fail(e, "session lookup")

        if not user_id or not username:
            raise InvalidSession()

        record = self._load_user_record(user_key(username))
        if record is None:
            raise InvalidSession()

        try:
            # Continued use keeps the session alive
            client.expire(session_key(token), self.session_ttl_s)
        except (RedisError, OSError) as e:
            logger.warning(f"Could not refresh session TTL: {e}")

        return User.model_validate(record["user"])

    def logout(self, token: str) -> None:
        if not token:
            return
        client = self._client(write=True)
        try:
            client.delete(session_key(token))
        except (RedisError, OSError) as e:
            self._fail(e, "logout", write=True)

    def _create_session(self, user_id: str) -> str:
        token = generate_session_token()
        client = self._client(write=True)
        try:
            client.setex(session_key(token), self.session_ttl_s, user_id)
        except (RedisError, OSError) as e:
            self._fail(e, "session create", write=True)
        return token

    def _load_user_record(self, key: str) -> Optional[dict]:
        client = self._client()
        try:
            raw = client.get(key)
        except (RedisError, OSError) as e:
            self._fail(e, "user lookup")
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.error(f"Corrupt user record at {key}")
            return None
