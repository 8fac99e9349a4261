"""
Record and API schemas.

One model per record kind. Records are validated whenever they cross a storage
boundary (HTTP body, Redis value, device-local file), and derived fields
(readiness score, scale totals and interpretations) are recomputed on every
validation rather than accepted from the caller.
"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Optional, Type
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from services.scoring import (
    readiness_score,
    scale_interpretation,
    scale_total,
    validate_scale_scores,
)


class RecordKind(str, Enum):
    """The three persisted record kinds."""
    ASSESSMENT = "assessment"
    FATIGUE_SCALE = "fatigue_scale"
    EXERCISE_SESSION = "exercise_session"

    @property
    def index_name(self) -> str:
        """Name of the per-user index list for this kind."""
        return _INDEX_NAMES[self]


_INDEX_NAMES = {
    RecordKind.ASSESSMENT: "assessments",
    RecordKind.FATIGUE_SCALE: "fatigue_scales",
    RecordKind.EXERCISE_SESSION: "exercise_sessions",
}


def new_record_id() -> str:
    return uuid4().hex


def record_key(user_id: str, kind: RecordKind, key: str) -> str:
    """Storage address of one record, shared by Redis and the device-local store."""
    return f"user:{user_id}:{kind.value}:{key}"


def index_key(user_id: str, kind: RecordKind) -> str:
    return f"user:{user_id}:{kind.index_name}"


# Alias for fields that are themselves named "date"
DateValue = date

Rating = Annotated[int, Field(ge=1, le=10)]
RPE = Annotated[int, Field(ge=0, le=10)]
RecordId = Annotated[str, Field(min_length=1, max_length=128, pattern=r"^[A-Za-z0-9_.-]+$")]


# =============================================================================
# DAILY ASSESSMENT
# =============================================================================

class MorningAssessment(BaseModel):
    """Five 1-10 morning ratings."""
    sleep_quality: Rating
    energy_waking: Rating
    mental_clarity: Rating
    physical_readiness: Rating
    motivation: Rating

    @computed_field
    @property
    def exercise_readiness_score(self) -> int:
        return readiness_score([
            self.sleep_quality,
            self.energy_waking,
            self.mental_clarity,
            self.physical_readiness,
            self.motivation,
        ])


class MedicalData(BaseModel):
    hemoglobin: Optional[float] = Field(default=None, ge=0)
    hematocrit: Optional[float] = Field(default=None, ge=0)
    blood_pressure_sys: Optional[float] = Field(default=None, ge=0)
    blood_pressure_dia: Optional[float] = Field(default=None, ge=0)
    date: Optional[DateValue] = None


class ExerciseType(BaseModel):
    id: str
    name: str
    category: str


class PreExercise(BaseModel):
    time: str
    last_meal: float = Field(ge=0)  # hours since last meal
    hydration: int = Field(ge=0, le=10)
    baseline_rpe: RPE


class DuringExerciseEntry(BaseModel):
    time: str
    rpe: RPE
    talk_test: bool
    symptoms: List[str] = Field(default_factory=list)


class PostExercise(BaseModel):
    immediate_rpe: RPE
    recovery_30min: Optional[RPE] = None
    recovery_2hr: Optional[RPE] = None
    satisfaction: int = Field(ge=0, le=10)


class ExerciseSessionDetail(BaseModel):
    """Pre / during / post exertion phases of one exercise session."""
    exercise_type: Optional[ExerciseType] = None
    pre_exercise: Optional[PreExercise] = None
    during_exercise: List[DuringExerciseEntry] = Field(default_factory=list)
    post_exercise: Optional[PostExercise] = None


class DailyAssessment(BaseModel):
    """At most one per user per calendar date."""
    date: date
    morning_assessment: Optional[MorningAssessment] = None
    daily_notes: Optional[str] = None
    symptoms: List[str] = Field(default_factory=list)
    medical_data: Optional[MedicalData] = None
    exercise_session: Optional[ExerciseSessionDetail] = None

    @field_validator("symptoms")
    @classmethod
    def _symptoms_as_set(cls, value: List[str]) -> List[str]:
        seen: List[str] = []
        for symptom in value:
            symptom = symptom.strip()
            if symptom and symptom not in seen:
                seen.append(symptom)
        return seen

    @property
    def record_key(self) -> str:
        return self.date.isoformat()

    def merged_with(self, update: "DailyAssessment") -> "DailyAssessment":
        """
        Upsert semantics: fields the update explicitly carries replace the
        stored ones, everything else is kept.
        """
        if update.date != self.date:
            raise ValueError("Cannot merge assessments for different dates")
        data = self.model_dump(exclude_unset=True)
        data.update(update.model_dump(exclude_unset=True))
        # The merged record counts as having set what either side set
        return DailyAssessment.model_validate(data)


# =============================================================================
# FATIGUE SCALES
# =============================================================================

class FatigueScaleType(str, Enum):
    FSS = "FSS"
    FACIT_F = "FACIT-F"


class FatigueScale(BaseModel):
    """One questionnaire submission."""
    id: RecordId = Field(default_factory=new_record_id)
    user_id: Optional[str] = None
    date: date
    type: FatigueScaleType
    scores: List[int]

    @model_validator(mode="after")
    def _check_scores(self):
        validate_scale_scores(self.type.value, self.scores)
        return self

    @computed_field
    @property
    def total_score(self) -> float:
        return float(scale_total(self.type.value, self.scores))

    @computed_field
    @property
    def interpretation(self) -> str:
        return scale_interpretation(self.type.value, self.total_score)

    @property
    def record_key(self) -> str:
        return self.id


# =============================================================================
# EXERCISE SESSIONS
# =============================================================================

class ExerciseSession(BaseModel):
    """Standalone exercise log entry. Append-only."""
    id: RecordId = Field(default_factory=new_record_id)
    user_id: Optional[str] = None
    date: date
    exercise_name: str = Field(min_length=1)
    duration_minutes: float = Field(ge=0)
    session: ExerciseSessionDetail = Field(default_factory=ExerciseSessionDetail)

    @property
    def record_key(self) -> str:
        return self.id


RECORD_MODELS: Dict[RecordKind, Type[BaseModel]] = {
    RecordKind.ASSESSMENT: DailyAssessment,
    RecordKind.FATIGUE_SCALE: FatigueScale,
    RecordKind.EXERCISE_SESSION: ExerciseSession,
}


def parse_record(kind: RecordKind, data) -> BaseModel:
    """Validate raw data (dict or JSON text) as a record of the given kind."""
    model = RECORD_MODELS[kind]
    if isinstance(data, (str, bytes)):
        return model.model_validate_json(data)
    return model.model_validate(data)


def most_recent_first(records: list) -> list:
    """
    Sort by record date, newest first. Index order is insertion order, so among
    records sharing a date the later insertion comes first.
    """
    return sorted(reversed(records), key=lambda r: r.date, reverse=True)


# =============================================================================
# AUTH
# =============================================================================

class User(BaseModel):
    id: str
    username: str
    display_name: str
    created_at: datetime


class UserRegister(BaseModel):
    """Schema for user registration."""
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1)
    display_name: str = Field(min_length=1, max_length=100)

    @field_validator("username", "display_name")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class UserLogin(BaseModel):
    """Schema for user login."""
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class AuthResponse(BaseModel):
    """Schema for register/login responses."""
    user: User
    session_token: str
    token_type: str = "bearer"
    expires_in: int


# =============================================================================
# EXPORT / IMPORT / REPORTS
# =============================================================================

class ImportBundle(BaseModel):
    assessments: List[DailyAssessment] = Field(default_factory=list)
    fatigue_scales: List[FatigueScale] = Field(default_factory=list)
    exercise_sessions: List[ExerciseSession] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.assessments or self.fatigue_scales or self.exercise_sessions)


class DataExport(ImportBundle):
    exported_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    username: Optional[str] = None


class ImportSummary(BaseModel):
    assessments: int = 0
    fatigue_scales: int = 0
    exercise_sessions: int = 0


class SymptomCount(BaseModel):
    symptom: str
    count: int


class ReportSummary(BaseModel):
    """Aggregates over the most recent assessments and questionnaires."""
    days_tracked: int
    avg_readiness_score: int
    readiness_recommendation: Optional[str] = None
    avg_energy_level: float
    exercise_days: int
    exercise_session_count: int
    recent_fss: List[FatigueScale]
    recent_facit_f: List[FatigueScale]
    top_symptoms: List[SymptomCount]
