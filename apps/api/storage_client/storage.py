"""
HealthStorage: the storage interface the journal UI talks to.

Holds the signed-in session, serves reads through the RequestCache and routes
every operation through the AvailabilityFallback. All work runs in the client
execution context, so nothing here can reach the server's Redis connection.

Data operations take the user id explicitly and refuse any id other than the
signed-in user's.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Set

from core.config import settings
from core.errors import ConnectionUnavailable, InvalidSession
from core.execution_context import client_context
from schemas import (
    DailyAssessment,
    ExerciseSession,
    FatigueScale,
    FatigueScaleType,
    ImportBundle,
    ImportSummary,
    RecordKind,
    ReportSummary,
    User,
)
from storage_client.cache import CacheKey, RequestCache
from storage_client.fallback import AvailabilityFallback, StorageResult, StorageSource
from storage_client.local_store import LocalStore
from storage_client.remote import HealthApiClient

logger = logging.getLogger(__name__)

RECENT_KEY = "recent"
ALL_KEY = "all"


@dataclass
class AuthSession:
    user_id: str
    token: str
    user: User


def _record_cache_key(user_id: str, kind: RecordKind, key: str) -> CacheKey:
    return (user_id, kind.value, key)


def _list_cache_key(user_id: str, kind: RecordKind, which: str) -> CacheKey:
    return (user_id, kind.index_name, which)


class HealthStorage:
    def __init__(
        self,
        remote: Optional[HealthApiClient] = None,
        local: Optional[LocalStore] = None,
        cache: Optional[RequestCache] = None,
    ):
        self.remote = remote or HealthApiClient()
        self.local = local if local is not None else LocalStore.from_settings()
        self.cache = cache or RequestCache()
        self.fallback = AvailabilityFallback(self.remote, self.local, self.cache)
        self.session: Optional[AuthSession] = None

    async def aclose(self) -> None:
        await self.remote.aclose()

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def authenticate(self, username: str, password: str) -> AuthSession:
        with client_context():
            auth = await self.remote.login(username, password)
            return await self._start_session(auth.user, auth.session_token)

    async def register(self, username: str, password: str, display_name: str) -> AuthSession:
        with client_context():
            auth = await self.remote.register(username, password, display_name)
            return await self._start_session(auth.user, auth.session_token)

    async def verify_session(self, token: str) -> User:
        """Resolve a stored token (e.g. on app start) and adopt it as the session."""
        with client_context():
            user = await self.remote.verify(token)
            self.remote.session_token = token
            await self._start_session(user, token)
            return user

    async def end_session(self, token: Optional[str] = None) -> None:
        with client_context():
            token = token or (self.session.token if self.session else None)
            try:
                await self.remote.logout(token)
            except ConnectionUnavailable as e:
                logger.warning(f"Logout not confirmed by the server: {e.detail}")

            if self.session and (token is None or token == self.session.token):
                self.cache.invalidate_user(self.session.user_id)
                self.session = None
                self.remote.session_token = None

    async def _start_session(self, user: User, token: str) -> AuthSession:
        if self.session and self.session.user_id != user.id:
            self.cache.invalidate_user(self.session.user_id)
        self.session = AuthSession(user_id=user.id, token=token, user=user)
        await self.fallback.refresh_availability(user.id, force=True, migrate=True)
        return self.session

    def _require_user(self, user_id: str) -> None:
        if self.session is None or self.session.user_id != user_id:
            raise InvalidSession("Not signed in as this user")

    async def _prepare(self, user_id: str) -> None:
        self._require_user(user_id)
        await self.fallback.refresh_availability(user_id)

    @property
    def storage_status(self) -> str:
        if self.session is None:
            return "Not authenticated"
        if self.fallback.remote_available:
            return "Cloud storage connected"
        if self.local.available:
            return "Offline: saving on this device"
        return "Storage unavailable"

    async def is_backend_available(self, force_refresh: bool = False) -> bool:
        with client_context():
            user_id = self.session.user_id if self.session else None
            return await self.fallback.refresh_availability(user_id, force=force_refresh)

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    async def _save(self, user_id: str, kind: RecordKind, record) -> StorageSource:
        with client_context():
            await self._prepare(user_id)
            result = await self.fallback.save(user_id, kind, record)
            self.cache.put(
                _record_cache_key(user_id, kind, result.value.record_key),
                result.value,
                settings.CACHE_TTL_ASSESSMENT_S,
            )
            return result.source

    async def _list(self, user_id: str, kind: RecordKind, which: str, limit: Optional[int], force_refresh: bool):
        with client_context():
            await self._prepare(user_id)

            async def fetch():
                return (await self.fallback.list(user_id, kind, limit)).value

            return await self.cache.get_or_fetch(
                _list_cache_key(user_id, kind, which),
                settings.CACHE_TTL_LIST_S,
                fetch,
                force_refresh=force_refresh,
            )

    async def save_daily_assessment(self, user_id: str, assessment: DailyAssessment) -> StorageSource:
        """Upsert the day's assessment. Returns where it landed."""
        return await self._save(user_id, RecordKind.ASSESSMENT, assessment)

    async def get_daily_assessment(
        self, user_id: str, on: date, force_refresh: bool = False
    ) -> Optional[DailyAssessment]:
        with client_context():
            await self._prepare(user_id)
            key = on.isoformat()

            async def fetch():
                return (await self.fallback.get(user_id, RecordKind.ASSESSMENT, key)).value

            return await self.cache.get_or_fetch(
                _record_cache_key(user_id, RecordKind.ASSESSMENT, key),
                settings.CACHE_TTL_ASSESSMENT_S,
                fetch,
                force_refresh=force_refresh,
            )

    async def list_recent_assessments(self, user_id: str, force_refresh: bool = False) -> List[DailyAssessment]:
        return await self._list(
            user_id, RecordKind.ASSESSMENT, RECENT_KEY, settings.RECENT_ASSESSMENTS_LIMIT, force_refresh
        )

    async def save_fatigue_scale(self, user_id: str, scale: FatigueScale) -> StorageSource:
        return await self._save(user_id, RecordKind.FATIGUE_SCALE, scale)

    async def list_fatigue_scales(self, user_id: str, force_refresh: bool = False) -> List[FatigueScale]:
        return await self._list(user_id, RecordKind.FATIGUE_SCALE, ALL_KEY, None, force_refresh)

    async def submitted_scale_types(self, user_id: str, on: date) -> Set[FatigueScaleType]:
        """Questionnaire types already submitted for a date (one of each per day is the UI's rule)."""
        scales = await self.list_fatigue_scales(user_id, force_refresh=True)
        return {scale.type for scale in scales if scale.date == on}

    async def save_exercise_session(self, user_id: str, session: ExerciseSession) -> StorageSource:
        return await self._save(user_id, RecordKind.EXERCISE_SESSION, session)

    async def list_exercise_sessions(self, user_id: str, force_refresh: bool = False) -> List[ExerciseSession]:
        return await self._list(user_id, RecordKind.EXERCISE_SESSION, ALL_KEY, None, force_refresh)

    async def delete_record(self, user_id: str, kind: RecordKind, key: str) -> StorageSource:
        with client_context():
            await self._prepare(user_id)
            result: StorageResult = await self.fallback.delete(user_id, kind, key)
            self.cache.invalidate(_record_cache_key(user_id, kind, key))
            return result.source

    # -------------------------------------------------------------------------
    # Bulk / reports
    # -------------------------------------------------------------------------

    async def export_all_user_data(self, user_id: str) -> str:
        """Everything stored for the user as a JSON document."""
        with client_context():
            await self._prepare(user_id)
            result = await self.fallback.export(user_id, self.session.user.username)
            return result.value.model_dump_json(indent=2)

    async def import_user_data(self, user_id: str, bundle: ImportBundle) -> ImportSummary:
        with client_context():
            await self._prepare(user_id)
            result = await self.fallback.import_bundle(user_id, bundle)
            self.cache.invalidate_user(user_id)
            return result.value

    async def clear_all_data(self, user_id: str) -> int:
        with client_context():
            await self._prepare(user_id)
            result = await self.fallback.clear(user_id)
            self.cache.invalidate_user(user_id)
            return result.value

    async def get_report_summary(self, user_id: str) -> ReportSummary:
        with client_context():
            await self._prepare(user_id)
            return (await self.fallback.report_summary(user_id)).value
