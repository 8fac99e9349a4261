"""
Health Records API Router

Per-user daily assessments, fatigue questionnaires and exercise sessions.
The user is always the one behind the session token; no route accepts a user id.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from core.auth import get_current_user, get_health_service
from core.config import settings
from schemas import (
    DailyAssessment,
    DataExport,
    ExerciseSession,
    FatigueScale,
    ImportBundle,
    ImportSummary,
    RecordKind,
    ReportSummary,
    User,
)
from services.health_data import HealthDataService
from services.reports import build_report_summary

router = APIRouter(prefix="/v1", tags=["Health Records"])


# =============================================================================
# DAILY ASSESSMENTS
# =============================================================================

@router.post("/assessments", response_model=DailyAssessment)
def save_assessment(
    assessment: DailyAssessment,
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    """
    Create or update the assessment for a date.

    Fields present in the body replace the stored ones; the merged record is returned.
    """
    return service.save_daily_assessment(current_user.id, assessment)


@router.get("/assessments", response_model=List[DailyAssessment])
def list_assessments(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    """Most recent first, capped at RECENT_ASSESSMENTS_LIMIT unless a limit is given."""
    return service.list_assessments(current_user.id, limit or settings.RECENT_ASSESSMENTS_LIMIT)


@router.get("/assessments/{assessment_date}", response_model=Optional[DailyAssessment])
def get_assessment(
    assessment_date: date,
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    """The assessment for that date, or null."""
    return service.get_daily_assessment(current_user.id, assessment_date)


@router.delete("/assessments/{assessment_date}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assessment(
    assessment_date: date,
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    service.delete_record(current_user.id, RecordKind.ASSESSMENT, assessment_date.isoformat())
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# FATIGUE SCALES
# =============================================================================

@router.post("/fatigue-scales", response_model=FatigueScale, status_code=status.HTTP_201_CREATED)
def save_fatigue_scale(
    scale: FatigueScale,
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    return service.save_fatigue_scale(current_user.id, scale)


@router.get("/fatigue-scales", response_model=List[FatigueScale])
def list_fatigue_scales(
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    return service.list_fatigue_scales(current_user.id)


@router.get("/fatigue-scales/{scale_id}", response_model=Optional[FatigueScale])
def get_fatigue_scale(
    scale_id: str,
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    return service.get_fatigue_scale(current_user.id, scale_id)


@router.delete("/fatigue-scales/{scale_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_fatigue_scale(
    scale_id: str,
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    service.delete_record(current_user.id, RecordKind.FATIGUE_SCALE, scale_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# EXERCISE SESSIONS
# =============================================================================

@router.post("/exercise-sessions", response_model=ExerciseSession, status_code=status.HTTP_201_CREATED)
def save_exercise_session(
    session: ExerciseSession,
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    return service.save_exercise_session(current_user.id, session)


@router.get("/exercise-sessions", response_model=List[ExerciseSession])
def list_exercise_sessions(
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    return service.list_exercise_sessions(current_user.id)


@router.get("/exercise-sessions/{session_id}", response_model=Optional[ExerciseSession])
def get_exercise_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    return service.get_exercise_session(current_user.id, session_id)


@router.delete("/exercise-sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_exercise_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    service.delete_record(current_user.id, RecordKind.EXERCISE_SESSION, session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# EXPORT / IMPORT / CLEAR / REPORTS
# =============================================================================

@router.get("/export", response_model=DataExport)
def export_data(
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    """Everything stored for the user, as one bundle."""
    return service.export_all(current_user.id, current_user.username)


@router.post("/import", response_model=ImportSummary)
def import_data(
    bundle: ImportBundle,
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    """Upsert every record of an exported bundle. Assessments merge by date."""
    return service.import_bundle(current_user.id, bundle)


@router.delete("/records")
def clear_records(
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    removed = service.clear_all(current_user.id)
    return {"removed": removed}


@router.get("/reports/summary", response_model=ReportSummary)
def report_summary(
    current_user: User = Depends(get_current_user),
    service: HealthDataService = Depends(get_health_service),
):
    return build_report_summary(
        service.list_assessments(current_user.id, settings.RECENT_ASSESSMENTS_LIMIT),
        service.list_fatigue_scales(current_user.id),
        service.list_exercise_sessions(current_user.id),
    )
