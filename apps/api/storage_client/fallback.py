"""
Availability fallback between the remote API and device-local storage.

`remote_available` is only changed by `refresh_availability()`. While it is set,
operations go to the API; a ConnectionUnavailable during a single call degrades
just that call to local storage. When neither backend can take the operation it
fails with StorageFailure instead of pretending to succeed.

When a session starts, or the API comes back while one is active, the signed-in
user's local records are migrated to the server, once per device.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from pydantic import BaseModel

from core.config import settings
from core.errors import (
    AuthError,
    ConnectionUnavailable,
    LocalStorageUnavailable,
    StorageError,
    StorageFailure,
)
from schemas import (
    DailyAssessment,
    DataExport,
    ImportBundle,
    ImportSummary,
    RecordKind,
    ReportSummary,
    most_recent_first,
)
from services.reports import build_report_summary
from storage_client.cache import CacheKey, RequestCache
from storage_client.local_store import LocalStore
from storage_client.remote import HealthApiClient

logger = logging.getLogger(__name__)

HEALTH_KEY: CacheKey = ("", "health", "api")


class StorageSource(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass
class StorageResult:
    value: Any
    source: StorageSource
    # True when the remote was expected but the call had to go local
    degraded: bool = False


@dataclass
class MigrationReport:
    migrated: int = 0
    failed: int = 0
    skipped: bool = False

    @property
    def completed(self) -> bool:
        return not self.skipped and self.failed == 0


class AvailabilityFallback:
    def __init__(
        self,
        remote: HealthApiClient,
        local: LocalStore,
        cache: RequestCache,
        health_ttl_s: Optional[float] = None,
    ):
        self.remote = remote
        self.local = local
        self.cache = cache
        self.health_ttl_s = settings.CACHE_TTL_HEALTH_S if health_ttl_s is None else health_ttl_s
        self.remote_available = False
        self._migration_lock = asyncio.Lock()

    async def refresh_availability(
        self, user_id: Optional[str] = None, force: bool = False, migrate: bool = False
    ) -> bool:
        """
        Probe the API (result cached) and update `remote_available`.

        Local data is migrated when the API comes back after being unavailable, or
        when `migrate` is set (a session just started). A cached "still up" result
        never re-runs a migration, so a failed one waits for the next of those.
        """
        healthy = bool(await self.cache.get_or_fetch(
            HEALTH_KEY, self.health_ttl_s, self.remote.health_check, force_refresh=force
        ))
        came_back = healthy and not self.remote_available
        if healthy != self.remote_available:
            logger.info(f"Remote storage {'available' if healthy else 'unavailable'}")
        self.remote_available = healthy

        if (came_back or migrate) and healthy and user_id and self.remote.session_token:
            await self.migrate_local_data(user_id)
        return healthy

    async def _route(
        self,
        operation: str,
        remote_call: Callable[[], Awaitable[Any]],
        local_call: Callable[[], Any],
    ) -> StorageResult:
        degraded = False
        if self.remote_available:
            try:
                return StorageResult(await remote_call(), StorageSource.REMOTE)
            except ConnectionUnavailable as e:
                logger.warning(
                    f"{operation}: remote storage unavailable, using local storage",
                    extra={"extra_fields": {"operation": operation, "error_code": e.error_code}},
                )
                degraded = True

        try:
            return StorageResult(local_call(), StorageSource.LOCAL, degraded)
        except LocalStorageUnavailable as e:
            logger.error(f"{operation} failed: no remote or local storage available")
            raise StorageFailure(
                f"{operation} did not complete: remote and local storage are both unavailable"
            ) from e

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    async def save(self, user_id: str, kind: RecordKind, record: BaseModel) -> StorageResult:
        """Persist a record. The result value is the record as stored."""
        return await self._route(
            f"save {kind.value}",
            lambda: self.remote.save_record(kind, record),
            lambda: self._save_local(user_id, kind, record),
        )

    def _save_local(self, user_id: str, kind: RecordKind, record: BaseModel) -> BaseModel:
        if kind is RecordKind.ASSESSMENT:
            existing = self.local.get(user_id, kind, record.record_key)
            stored = existing.merged_with(record) if existing else record
        else:
            stored = record.model_copy(update={"user_id": user_id})
        self.local.put(user_id, kind, stored.record_key, stored)
        return stored

    async def get(self, user_id: str, kind: RecordKind, key: str) -> StorageResult:
        return await self._route(
            f"get {kind.value}",
            lambda: self.remote.get_record(kind, key),
            lambda: self.local.get(user_id, kind, key),
        )

    async def list(self, user_id: str, kind: RecordKind, limit: Optional[int] = None) -> StorageResult:
        """Most recent first."""
        def local_list() -> List[BaseModel]:
            records = most_recent_first(self.local.list(user_id, kind))
            return records[:limit] if limit is not None else records

        return await self._route(
            f"list {kind.index_name}",
            lambda: self.remote.list_records(kind, limit),
            local_list,
        )

    async def delete(self, user_id: str, kind: RecordKind, key: str) -> StorageResult:
        return await self._route(
            f"delete {kind.value}",
            lambda: self.remote.delete_record(kind, key),
            lambda: self.local.delete(user_id, kind, key),
        )

    # -------------------------------------------------------------------------
    # Bulk / reports
    # -------------------------------------------------------------------------

    async def export(self, user_id: str, username: Optional[str] = None) -> StorageResult:
        def local_export() -> DataExport:
            bundle = self.local.dump_bundle(user_id)
            return DataExport(
                assessments=most_recent_first(bundle.assessments),
                fatigue_scales=most_recent_first(bundle.fatigue_scales),
                exercise_sessions=most_recent_first(bundle.exercise_sessions),
                username=username,
            )

        return await self._route("export", self.remote.export, local_export)

    async def import_bundle(self, user_id: str, bundle: ImportBundle) -> StorageResult:
        def local_import() -> ImportSummary:
            summary = ImportSummary()
            for assessment in sorted(bundle.assessments, key=lambda a: a.date):
                self._save_local(user_id, RecordKind.ASSESSMENT, assessment)
                summary.assessments += 1
            for scale in bundle.fatigue_scales:
                self._save_local(user_id, RecordKind.FATIGUE_SCALE, scale)
                summary.fatigue_scales += 1
            for session in bundle.exercise_sessions:
                self._save_local(user_id, RecordKind.EXERCISE_SESSION, session)
                summary.exercise_sessions += 1
            return summary

        return await self._route(
            "import", lambda: self.remote.import_bundle(bundle), local_import
        )

    async def clear(self, user_id: str) -> StorageResult:
        return await self._route("clear", self.remote.clear, lambda: self.local.clear(user_id))

    async def report_summary(self, user_id: str) -> StorageResult:
        def local_summary() -> ReportSummary:
            assessments: List[DailyAssessment] = most_recent_first(
                self.local.list(user_id, RecordKind.ASSESSMENT)
            )
            return build_report_summary(
                assessments[:settings.RECENT_ASSESSMENTS_LIMIT],
                most_recent_first(self.local.list(user_id, RecordKind.FATIGUE_SCALE)),
                self.local.list(user_id, RecordKind.EXERCISE_SESSION),
            )

        return await self._route("report summary", self.remote.report_summary, local_summary)

    # -------------------------------------------------------------------------
    # Migration
    # -------------------------------------------------------------------------

    async def migrate_local_data(self, user_id: str, force: bool = False) -> MigrationReport:
        """
        Copy the user's local records to the server through the normal save path.

        The device marker is written only when local records existed and every one
        of them was saved; on any failure the local data stays and the next
        session start, or the API coming back, retries. Re-running is harmless:
        the server upserts by key.
        """
        async with self._migration_lock:
            if not self.local.available:
                return MigrationReport(skipped=True)
            try:
                if self.local.migration_done() and not force:
                    return MigrationReport(skipped=True)
                bundle = self.local.dump_bundle(user_id)
            except LocalStorageUnavailable as e:
                logger.warning(f"Local data migration skipped: {e.detail}")
                return MigrationReport(skipped=True)

            if bundle.is_empty():
                return MigrationReport()

            report = MigrationReport()
            pending = (
                [(RecordKind.ASSESSMENT, a) for a in sorted(bundle.assessments, key=lambda a: a.date)]
                + [(RecordKind.FATIGUE_SCALE, s) for s in bundle.fatigue_scales]
                + [(RecordKind.EXERCISE_SESSION, s) for s in bundle.exercise_sessions]
            )
            for kind, record in pending:
                try:
                    await self.remote.save_record(kind, record)
                    report.migrated += 1
                except ConnectionUnavailable as e:
                    report.failed += len(pending) - report.migrated - report.failed
                    logger.warning(f"Local data migration interrupted: {e.detail}")
                    break
                except (StorageError, AuthError) as e:
                    report.failed += 1
                    logger.warning(f"Could not migrate local {kind.value} {record.record_key}: {e}")

            self.cache.invalidate_user(user_id)

            if report.failed:
                logger.warning(
                    "Local data migration incomplete; local data kept",
                    extra={"extra_fields": {"migrated": report.migrated, "failed": report.failed}},
                )
                return report

            try:
                self.local.mark_migration_done()
            except LocalStorageUnavailable as e:
                logger.warning(f"Could not record migration marker: {e.detail}")
            logger.info(
                f"Migrated {report.migrated} local records to remote storage",
                extra={"extra_fields": {"user_id": user_id, "migrated": report.migrated}},
            )
            return report
