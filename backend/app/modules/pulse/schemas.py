# app/modules/pulse/schemas.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional, Union
from datetime import date, datetime
from app.shared.enums import PulseScale, PulseCadence, ResponseStatus, DispatchStatus


# ── Questions ──────────────────────────────────────────────

class PulseQuestionIn(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    scale: PulseScale = PulseScale.LIKERT_1_5
    active: bool = True


class PulseQuestionUpdate(BaseModel):
    text: Optional[str] = Field(None, min_length=1, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    scale: Optional[PulseScale] = None
    active: Optional[bool] = None


class PulseQuestionOut(BaseModel):
    id: str
    text: str
    category: Optional[str] = None
    scale: PulseScale
    active: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class QuestionDeleteOut(BaseModel):
    id: str
    deleted: bool
    deactivated: bool


# ── Planning ───────────────────────────────────────────────

class PulseScheduleIn(BaseModel):
    """
    day_of_week : 0 = lundi. N'est utilisé que sans rotation de cohortes.
    cohort_day_map : 7 index de cohorte, lundi → dimanche.
    """
    enabled: Optional[bool] = None
    cadence: Optional[PulseCadence] = None
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    time_of_day: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    timezone: Optional[str] = Field(None, min_length=1)
    rotating_cohorts: Optional[bool] = None
    cohort_count: Optional[int] = Field(None, ge=1, le=7)
    cohort_day_map: Optional[List[int]] = Field(None, min_length=7, max_length=7)


class PulseScheduleOut(BaseModel):
    tenant_id: str
    enabled: bool
    cadence: PulseCadence
    day_of_week: int
    time_of_day: str
    timezone: str
    rotating_cohorts: bool
    cohort_count: int
    cohort_day_map: Optional[List[int]] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class CohortSeedOut(BaseModel):
    cohort_count: int
    assigned: int
    sizes: Dict[str, int]


# ── Dispatch ───────────────────────────────────────────────

class TriggerIn(BaseModel):
    cohort: Optional[str] = None


class NotificationFailureOut(BaseModel):
    user_id: str
    reason: str
    model_config = ConfigDict(from_attributes=True)


class DispatchOut(BaseModel):
    tenant_id: str
    status: DispatchStatus
    cycle_key: Optional[str] = None
    cohort_name: Optional[str] = None
    question_id: Optional[str] = None
    sent: int = 0
    failures: List[NotificationFailureOut] = []
    model_config = ConfigDict(from_attributes=True)


# ── Réponse one-tap ────────────────────────────────────────

class PulseRespondIn(BaseModel):
    token: str = Field(..., min_length=1)
    score: int


class PulseRespondOut(BaseModel):
    status: ResponseStatus
    question_id: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class InviteStatusOut(BaseModel):
    valid: bool
    question_text: Optional[str] = None
    scale: Optional[PulseScale] = None
    responded: bool = False
    expired: bool = False
    model_config = ConfigDict(from_attributes=True)


class OneTapPreviewOut(InviteStatusOut):
    """Page de confirmation d'un lien email : rien n'est enregistré avant le POST."""
    token: str
    score: int
    score_in_scale: bool


# ── Membre ─────────────────────────────────────────────────

class PendingInviteOut(BaseModel):
    token: str
    question_id: str
    question_text: str
    category: Optional[str] = None
    scale: PulseScale
    sent_at: datetime
    expires_at: datetime


class HistoryWeekOut(BaseModel):
    week_start: date
    week: str
    completed: int


class ParticipationHistoryOut(BaseModel):
    weeks: List[HistoryWeekOut]
    total_completed: int


# ── Agrégats ───────────────────────────────────────────────

class BucketOut(BaseModel):
    week_start: date
    week: str
    count: int
    mean: Union[float, str]      # "insufficient_data" sous le seuil
    insufficient: bool
    model_config = ConfigDict(from_attributes=True)


class QuestionStatsOut(BaseModel):
    question_id: str
    question_text: Optional[str] = None
    category: Optional[str] = None
    scale: Optional[str] = None
    team_id: Optional[str] = None
    count: int
    mean: Union[float, str]
    insufficient: bool
    trend: List[BucketOut]
    model_config = ConfigDict(from_attributes=True)


class PulseSummaryOut(BaseModel):
    threshold: int
    window_start: datetime
    window_end: datetime
    total_responses: int
    total_invites: int
    participation_rate: float
    questions: List[QuestionStatsOut]
    overall_trend: List[BucketOut]
    heatmap: Dict[str, Dict[str, BucketOut]]
    model_config = ConfigDict(from_attributes=True)
