"""
Per-user Record Store

Typed CRUD over Redis for the three record kinds. Each record lives under

    user:<user_id>:<kind>:<key>          (JSON body, SETEX with the record TTL)

and its key is appended to a per-user index list

    user:<user_id>:<index_name>          (RPUSH, insertion ordered, no duplicates)

so "all records for this user" never needs a key scan.

Index entries are a hint, not a guarantee: records expire on their own TTL and
the write + index append are two separate commands, so a listed key whose body
is gone is skipped silently.
"""
import logging
from typing import List, Optional

from pydantic import BaseModel, ValidationError
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from core.config import settings
from core.errors import ConnectionUnavailable, StoreUnavailable
from core.redis_connection import RedisConnectionManager
from schemas import RecordKind, index_key, parse_record, record_key

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (ConnectionError, TimeoutError, OSError)

# Lua: append ARGV[1] to the index list unless it is already there, atomically.
INDEX_APPEND_LUA = """
local items = redis.call('LRANGE', KEYS[1], 0, -1)
for _, item in ipairs(items) do
  if item == ARGV[1] then
    return 0
  end
end
redis.call('RPUSH', KEYS[1], ARGV[1])
return 1
"""


class RecordStore:
    """Redis-backed record storage scoped by user id."""

    def __init__(self, manager: RedisConnectionManager, record_ttl_s: Optional[int] = None):
        self.manager = manager
        self.record_ttl_s = record_ttl_s or settings.RECORD_TTL_S

    def _handle_redis_error(self, e: RedisError, operation: str, error_cls) -> None:
        if isinstance(e, _TRANSIENT_ERRORS):
            self.manager.mark_unhealthy(e)
        logger.warning(f"Redis {operation} failed: {e}")
        raise error_cls(f"Redis {operation} failed: {e}") from e

    def put(self, user_id: str, kind: RecordKind, key: str, record: BaseModel) -> None:
        """Write a record and make sure the user's index references it."""
        try:
            client = self.manager.acquire()
        except ConnectionUnavailable as e:
            raise StoreUnavailable(e.detail) from e

        rkey = record_key(user_id, kind, key)
        ikey = index_key(user_id, kind)
        try:
            client.setex(rkey, self.record_ttl_s, record.model_dump_json())
            client.eval(INDEX_APPEND_LUA, 1, ikey, key)
        except (RedisError, OSError) as e:
            self._handle_redis_error(e, f"write of {rkey}", StoreUnavailable)

    def get(self, user_id: str, kind: RecordKind, key: str) -> Optional[BaseModel]:
        """Return the record, or None when it does not exist."""
        client = self.manager.acquire()
        rkey = record_key(user_id, kind, key)
        try:
            raw = client.get(rkey)
        except (RedisError, OSError) as e:
            self._handle_redis_error(e, f"read of {rkey}", ConnectionUnavailable)
        return self._decode(kind, rkey, raw)

    def list(self, user_id: str, kind: RecordKind) -> List[BaseModel]:
        """All records in index insertion order; dangling index entries are dropped."""
        client = self.manager.acquire()
        ikey = index_key(user_id, kind)
        try:
            keys = client.lrange(ikey, 0, -1)
            if not keys:
                return []
            bodies = client.mget([record_key(user_id, kind, k) for k in keys])
        except (RedisError, OSError) as e:
            self._handle_redis_error(e, f"list of {ikey}", ConnectionUnavailable)

        records = []
        for key, raw in zip(keys, bodies):
            record = self._decode(kind, record_key(user_id, kind, key), raw)
            if record is not None:
                records.append(record)
        return records

    def keys(self, user_id: str, kind: RecordKind) -> List[str]:
        """Raw index contents (may reference expired records)."""
        client = self.manager.acquire()
        ikey = index_key(user_id, kind)
        try:
            return list(client.lrange(ikey, 0, -1))
        except (RedisError, OSError) as e:
            self._handle_redis_error(e, f"read of {ikey}", ConnectionUnavailable)

    def delete(self, user_id: str, kind: RecordKind, key: str) -> None:
        """Remove the record and its index entry. Deleting a missing key is fine."""
        try:
            client = self.manager.acquire()
        except ConnectionUnavailable as e:
            raise StoreUnavailable(e.detail) from e

        rkey = record_key(user_id, kind, key)
        try:
            client.delete(rkey)
            client.lrem(index_key(user_id, kind), 0, key)
        except (RedisError, OSError) as e:
            self._handle_redis_error(e, f"delete of {rkey}", StoreUnavailable)

    def clear(self, user_id: str) -> int:
        """Delete every record and index of a user. Returns the number of keys removed."""
        try:
            client = self.manager.acquire()
        except ConnectionUnavailable as e:
            raise StoreUnavailable(e.detail) from e

        try:
            doomed = []
            for kind in RecordKind:
                ikey = index_key(user_id, kind)
                doomed.append(ikey)
                doomed.extend(record_key(user_id, kind, k) for k in client.lrange(ikey, 0, -1))
            return int(client.delete(*doomed) or 0)
        except (RedisError, OSError) as e:
            self._handle_redis_error(e, f"clear for user {user_id}", StoreUnavailable)

    @staticmethod
    def _decode(kind: RecordKind, rkey: str, raw) -> Optional[BaseModel]:
        if not raw:
            return None
        try:
            return parse_record(kind, raw)
        except ValidationError as e:
            logger.warning(f"Skipping unreadable record {rkey}: {e.error_count()} validation error(s)")
            return None
