"""Pydantic request/response schemas.

Schemas keep the shapes of service inputs and API outputs stable. The
`*Create` models validate required fields and enum literals before a
record is inserted; the `*Patch` models hold one optional slot per
mutable field and are merged with `changes_from` in the services.
"""

import re
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SubjectStatus = Literal["strong", "pending", "weak", "completed"]
TaskType = Literal["Theory", "PYQs", "Mock Test", "Revision"]
TaskStatus = Literal["pending", "completed", "revise-again"]
TaskPriority = Literal["high", "medium", "low"]
TestType = Literal["Full Length", "Subject Test", "PYQ"]
TestStatus = Literal["attempted", "not_attempted"]
MasteryLevel = Literal["new", "learning", "mastered"]


_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def _check_iso_date(value: Optional[str]) -> Optional[str]:
    """Accept only `YYYY-MM-DD`; per-day lookups match the stored string exactly."""
    if value is None:
        return value
    if not _ISO_DATE.fullmatch(value):
        raise ValueError("due_date must be a YYYY-MM-DD date")
    date.fromisoformat(value)
    return value


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid")


class _Output(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# users

class UserCreate(_Input):
    """Provisioning payload sent by the identity provider webhook."""
    external_id: str = Field(min_length=1)
    name: str
    email: str
    avatar_url: Optional[str] = None
    target_score: Optional[int] = None


class ProvisionIn(_Input):
    """Optional extras when a signed-in caller provisions themselves."""
    target_score: Optional[int] = None


class UserPatch(_Input):
    name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    target_score: Optional[int] = None


class UserOut(_Output):
    id: str
    external_id: str
    name: str
    email: str
    avatar_url: Optional[str] = None
    target_score: Optional[int] = None
    created_at: datetime


# subjects

class SubjectCreate(_Input):
    name: str = Field(min_length=1)
    progress: float = Field(ge=0, le=100)
    status: SubjectStatus
    weightage: float = Field(ge=0, le=100)


class SubjectPatch(_Input):
    name: Optional[str] = Field(default=None, min_length=1)
    progress: Optional[float] = Field(default=None, ge=0, le=100)
    status: Optional[SubjectStatus] = None
    weightage: Optional[float] = Field(default=None, ge=0, le=100)


class SubjectProgressIn(_Input):
    """Body of the dedicated progress update; `status` is optional."""
    progress: float = Field(ge=0, le=100)
    status: Optional[SubjectStatus] = None


class SubjectOut(_Output):
    id: str
    user_id: str
    name: str
    progress: float
    status: SubjectStatus
    weightage: float
    created_at: datetime


# tasks

class TaskCreate(_Input):
    title: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    type: TaskType
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def due_date_is_iso(cls, value):
        return _check_iso_date(value)


class TaskPatch(_Input):
    title: Optional[str] = Field(default=None, min_length=1)
    subject_id: Optional[str] = Field(default=None, min_length=1)
    type: Optional[TaskType] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def due_date_is_iso(cls, value):
        return _check_iso_date(value)


class TaskStatusIn(_Input):
    status: TaskStatus


class TaskOut(_Output):
    id: str
    user_id: str
    subject_id: str
    title: str
    type: TaskType
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[str] = None
    created_at: datetime


# tests

class TestCreate(_Input):
    name: str = Field(min_length=1)
    type: TestType
    status: TestStatus
    score: Optional[float] = None
    accuracy: Optional[float] = None


class TestPatch(_Input):
    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[TestType] = None
    status: Optional[TestStatus] = None
    score: Optional[float] = None
    accuracy: Optional[float] = None


class TestResultIn(_Input):
    """Result of an attempt; every field is required, unlike `TestPatch`."""
    score: float
    accuracy: float
    status: TestStatus


class TestOut(_Output):
    id: str
    user_id: str
    name: str
    type: TestType
    status: TestStatus
    score: Optional[float] = None
    accuracy: Optional[float] = None
    created_at: datetime


# revision

class DeckCreate(_Input):
    name: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)


class DeckPatch(_Input):
    name: Optional[str] = Field(default=None, min_length=1)


class DeckOut(_Output):
    id: str
    user_id: str
    subject_id: str
    name: str
    created_at: datetime


class FlashcardCreate(_Input):
    front: str = Field(min_length=1)
    back: str = Field(min_length=1)
    mastery_level: MasteryLevel = "new"


class FlashcardPatch(_Input):
    front: Optional[str] = Field(default=None, min_length=1)
    back: Optional[str] = Field(default=None, min_length=1)
    mastery_level: Optional[MasteryLevel] = None


class FlashcardOut(_Output):
    id: str
    deck_id: str
    front: str
    back: str
    mastery_level: MasteryLevel
    created_at: datetime


# aggregation views

class TrendPoint(BaseModel):
    date: str
    score: float
    accuracy: float


class PerformanceTrends(BaseModel):
    score_trend: List[TrendPoint]
    average_score: float
    average_accuracy: float
    total_tests: int
    improvement: float


class WeakTopic(BaseModel):
    """Shape a real weak-topic analyzer must produce."""
    topic: str
    subject: str
    accuracy: float
    attempts: int
    trend: Literal["declining", "stable", "improving"]
    last_studied: str
    recommended_actions: List[str]


class RevisionRecommendation(BaseModel):
    topic: str
    priority: TaskPriority
    study_time: str
    resources: List[str]
    deadline: str


class DashboardSummary(BaseModel):
    overall_progress: float
    overall_progress_rounded: int
    completed_tasks: int
    total_tasks: int
    subject_count: int
    todays_tasks: List[TaskOut]
    days_remaining: int
    target_score: Optional[int] = None


class CreatedOut(BaseModel):
    id: str


class DeletedOut(BaseModel):
    id: str
    cards_removed: int = 0
