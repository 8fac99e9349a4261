"""
Tests for the auth-scoped session store.
"""
import json

import pytest

from core.errors import (
    ConnectionUnavailable,
    InvalidCredentials,
    InvalidSession,
    StoreUnavailable,
    UsernameTaken,
)
from services.session_store import session_key, user_id_key, user_key


class TestRegister:
    def test_register_creates_user_and_session(self, session_store, fake_redis):
        user, token = session_store.register("Alice", "correct-horse", "Alice A.")

        assert user.username == "alice"
        assert user.display_name == "Alice A."
        assert user.id.startswith("user_")
        assert fake_redis.get(session_key(token)) == user.id
        assert fake_redis.get(user_id_key(user.id)) == "alice"

    def test_password_is_hashed(self, session_store, fake_redis):
        session_store.register("alice", "correct-horse", "Alice")

        record = json.loads(fake_redis.get(user_key("alice")))
        assert "correct-horse" not in record["password_hash"]
        assert record["password_hash"].startswith("$2")

    def test_username_taken_case_insensitively(self, session_store):
        session_store.register("alice", "correct-horse", "Alice")

        with pytest.raises(UsernameTaken):
            session_store.register("ALICE", "another-pass", "Other Alice")

    def test_register_while_down(self, session_store, fake_redis):
        fake_redis.down = True
        with pytest.raises(StoreUnavailable):
            session_store.register("alice", "correct-horse", "Alice")


class TestLogin:
    def test_login_with_correct_password(self, session_store):
        registered, _ = session_store.register("alice", "correct-horse", "Alice")

        user, token = session_store.login("Alice", "correct-horse")

        assert user.id == registered.id
        assert session_store.verify(token).id == registered.id

    def test_each_login_gets_new_token(self, session_store):
        _, first = session_store.register("alice", "correct-horse", "Alice")
        _, second = session_store.login("alice", "correct-horse")
        assert first != second

    def test_wrong_password(self, session_store):
        session_store.register("alice", "correct-horse", "Alice")

        with pytest.raises(InvalidCredentials):
            session_store.login("alice", "wrong-horse")

    def test_unknown_user_same_error(self, session_store):
        with pytest.raises(InvalidCredentials) as excinfo:
            session_store.login("nobody", "whatever-pass")
        assert excinfo.value.detail == "Invalid username or password"


class TestVerify:
    def test_verify_extends_session(self, session_store, fake_redis):
        _, token = session_store.register("alice", "correct-horse", "Alice")
        fake_redis._ttls[session_key(token)] = 10

        session_store.verify(token)

        assert fake_redis.ttl(session_key(token)) == session_store.session_ttl_s

    def test_unknown_token(self, session_store):
        with pytest.raises(InvalidSession):
            session_store.verify("not-a-token")

    def test_empty_token(self, session_store):
        with pytest.raises(InvalidSession):
            session_store.verify("")

    def test_expired_session(self, session_store, fake_redis):
        _, token = session_store.register("alice", "correct-horse", "Alice")
        fake_redis.expire_now(session_key(token))

        with pytest.raises(InvalidSession):
            session_store.verify(token)

    def test_user_record_gone(self, session_store, fake_redis):
        _, token = session_store.register("alice", "correct-horse", "Alice")
        fake_redis.expire_now(user_key("alice"))

        with pytest.raises(InvalidSession):
            session_store.verify(token)

    def test_verify_while_down(self, session_store, fake_redis):
        _, token = session_store.register("alice", "correct-horse", "Alice")
        fake_redis.down = True

        with pytest.raises(ConnectionUnavailable):
            session_store.verify(token)


class TestLogout:
    def test_logout_invalidates_token(self, session_store):
        _, token = session_store.register("alice", "correct-horse", "Alice")

        session_store.logout(token)

        with pytest.raises(InvalidSession):
            session_store.verify(token)

    def test_logout_is_idempotent(self, session_store):
        _, token = session_store.register("alice", "correct-horse", "Alice")
        session_store.logout(token)
        session_store.logout(token)
        session_store.logout("")

    def test_logout_keeps_other_sessions(self, session_store):
        _, first = session_store.register("alice", "correct-horse", "Alice")
        _, second = session_store.login("alice", "correct-horse")

        session_store.logout(first)

        assert session_store.verify(second).username == "alice"
