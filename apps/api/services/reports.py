"""
Report aggregation over a user's recent records.
"""
from collections import Counter
from typing import List, Sequence

from schemas import (
    DailyAssessment,
    ExerciseSession,
    FatigueScale,
    FatigueScaleType,
    ReportSummary,
    SymptomCount,
)
from services.scoring import readiness_recommendation

REPORT_WINDOW_DAYS = 30
RECENT_SCALES = 5
TOP_SYMPTOMS = 5


def build_report_summary(
    assessments: Sequence[DailyAssessment],
    fatigue_scales: Sequence[FatigueScale],
    exercise_sessions: Sequence[ExerciseSession] = (),
) -> ReportSummary:
    """
    Summarize the last 30 tracked days. All inputs are expected most-recent-first.

    Days without a morning check count as zero readiness / zero energy, so the
    averages reflect missed mornings.
    """
    window: List[DailyAssessment] = list(assessments[:REPORT_WINDOW_DAYS])
    days = len(window)

    if days:
        readiness_total = sum(
            a.morning_assessment.exercise_readiness_score if a.morning_assessment else 0
            for a in window
        )
        energy_total = sum(
            a.morning_assessment.energy_waking if a.morning_assessment else 0
            for a in window
        )
        avg_readiness = round(readiness_total / days)
        avg_energy = round(energy_total / days, 1)
    else:
        avg_readiness = 0
        avg_energy = 0.0

    symptoms = Counter(symptom for a in window for symptom in a.symptoms)

    return ReportSummary(
        days_tracked=days,
        avg_readiness_score=avg_readiness,
        readiness_recommendation=readiness_recommendation(avg_readiness) if days else None,
        avg_energy_level=avg_energy,
        exercise_days=sum(1 for a in window if a.exercise_session is not None),
        exercise_session_count=len(exercise_sessions),
        recent_fss=[s for s in fatigue_scales if s.type is FatigueScaleType.FSS][:RECENT_SCALES],
        recent_facit_f=[s for s in fatigue_scales if s.type is FatigueScaleType.FACIT_F][:RECENT_SCALES],
        top_symptoms=[
            SymptomCount(symptom=symptom, count=count)
            for symptom, count in symptoms.most_common(TOP_SYMPTOMS)
        ],
    )
