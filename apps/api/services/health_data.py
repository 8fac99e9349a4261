"""
Health data service.

Typed operations on top of the RecordStore: merge-upsert for daily assessments,
most-recent-first listings, export/import bundles, per-record delete.
"""
import logging
from datetime import date
from typing import List, Optional

from schemas import (
    DailyAssessment,
    DataExport,
    ExerciseSession,
    FatigueScale,
    ImportBundle,
    ImportSummary,
    RecordKind,
    most_recent_first,
)
from services.record_store import RecordStore

logger = logging.getLogger(__name__)


class HealthDataService:
    """Per-user health record operations."""

    def __init__(self, store: RecordStore):
        self.store = store

    # -------------------------------------------------------------------------
    # Daily assessments
    # -------------------------------------------------------------------------

    def save_daily_assessment(self, user_id: str, assessment: DailyAssessment) -> DailyAssessment:
        """Upsert: merge into the record already stored for that date."""
        existing = self.store.get(user_id, RecordKind.ASSESSMENT, assessment.record_key)
        merged = existing.merged_with(assessment) if existing else assessment
        self.store.put(user_id, RecordKind.ASSESSMENT, merged.record_key, merged)
        return merged

    def get_daily_assessment(self, user_id: str, on: date) -> Optional[DailyAssessment]:
        return self.store.get(user_id, RecordKind.ASSESSMENT, on.isoformat())

    def list_assessments(self, user_id: str, limit: Optional[int] = None) -> List[DailyAssessment]:
        assessments = most_recent_first(self.store.list(user_id, RecordKind.ASSESSMENT))
        if limit is not None:
            assessments = assessments[:limit]
        return assessments

    # -------------------------------------------------------------------------
    # Fatigue scales
    # -------------------------------------------------------------------------

    def save_fatigue_scale(self, user_id: str, scale: FatigueScale) -> FatigueScale:
        stored = scale.model_copy(update={"user_id": user_id})
        self.store.put(user_id, RecordKind.FATIGUE_SCALE, stored.record_key, stored)
        return stored

    def get_fatigue_scale(self, user_id: str, scale_id: str) -> Optional[FatigueScale]:
        return self.store.get(user_id, RecordKind.FATIGUE_SCALE, scale_id)

    def list_fatigue_scales(self, user_id: str) -> List[FatigueScale]:
        return most_recent_first(self.store.list(user_id, RecordKind.FATIGUE_SCALE))

    # -------------------------------------------------------------------------
    # Exercise sessions
    # -------------------------------------------------------------------------

    def save_exercise_session(self, user_id: str, session: ExerciseSession) -> ExerciseSession:
        stored = session.model_copy(update={"user_id": user_id})
        self.store.put(user_id, RecordKind.EXERCISE_SESSION, stored.record_key, stored)
        return stored

    def get_exercise_session(self, user_id: str, session_id: str) -> Optional[ExerciseSession]:
        return self.store.get(user_id, RecordKind.EXERCISE_SESSION, session_id)

    def list_exercise_sessions(self, user_id: str) -> List[ExerciseSession]:
        return most_recent_first(self.store.list(user_id, RecordKind.EXERCISE_SESSION))

    # -------------------------------------------------------------------------
    # Bulk
    # -------------------------------------------------------------------------

    def delete_record(self, user_id: str, kind: RecordKind, key: str) -> None:
        self.store.delete(user_id, kind, key)

    def export_all(self, user_id: str, username: Optional[str] = None) -> DataExport:
        return DataExport(
            assessments=self.list_assessments(user_id),
            fatigue_scales=self.list_fatigue_scales(user_id),
            exercise_sessions=self.list_exercise_sessions(user_id),
            username=username,
        )

    def import_bundle(self, user_id: str, bundle: ImportBundle) -> ImportSummary:
        """Upsert every record in the bundle through the normal save path."""
        summary = ImportSummary()
        # Oldest first so merges apply in the order the records were made
        for assessment in sorted(bundle.assessments, key=lambda a: a.date):
            self.save_daily_assessment(user_id, assessment)
            summary.assessments += 1
        for scale in bundle.fatigue_scales:
            self.save_fatigue_scale(user_id, scale)
            summary.fatigue_scales += 1
        for session in bundle.exercise_sessions:
            self.save_exercise_session(user_id, session)
            summary.exercise_sessions += 1

        logger.info(
            f"Imported records for user {user_id}",
            extra={"extra_fields": summary.model_dump()},
        )
        return summary

    def clear_all(self, user_id: str) -> int:
        removed = self.store.clear(user_id)
        logger.info(f"Cleared {removed} keys for user {user_id}")
        return removed
