from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict
from datetime import datetime

from assessment.core.constants import ExamAttemptStatusEnum, FINALIZED_STATUSES
from assessment.schemas.question import QuestionForStudent
from assessment.utils.clock import as_naive_utc


class AttemptRecord(BaseModel):
    id: int
    exam_id: int
    student_id: int
    attempt_number: int
    status: ExamAttemptStatusEnum = Field(default=ExamAttemptStatusEnum.IN_PROGRESS)
    started_at: datetime
    completed_at: Optional[datetime] = None
    time_spent_seconds: int = 0
    score: Optional[float] = None
    max_score: Optional[float] = None
    passed: Optional[bool] = None
    is_fully_scored: Optional[bool] = None
    needs_rescore: bool = False

    model_config = ConfigDict(from_attributes=True)

    @field_validator("started_at", "completed_at")
    @classmethod
    def naive_utc(cls, v: Optional[datetime]):
        return as_naive_utc(v) if v else v

    @property
    def is_in_progress(self) -> bool:
        return self.status == ExamAttemptStatusEnum.IN_PROGRESS

    @property
    def is_finalized(self) -> bool:
        return self.status in FINALIZED_STATUSES


class AttemptSession(BaseModel):
    """Everything a client needs to (re)open a running attempt."""
    attempt: AttemptRecord
    remaining_seconds: int
    questions: List[QuestionForStudent] = []
    answers: Dict[int, str] = {}
    answered_count: int = 0


class AnswerDraft(BaseModel):
    question_id: int
    answer_text: str = ""


class SaveAnswersRequest(BaseModel):
    answers: List[AnswerDraft]


class SaveAnswersResult(BaseModel):
    attempt_id: int
    accepted: bool = True  # False once the attempt stopped taking answers
    answered_count: int
    pending_question_ids: List[int] = []
    flushed: bool = True


class FinalizeOutcome(BaseModel):
    """`applied` is False when another path finalized the attempt first."""
    applied: bool
    attempt: AttemptRecord


class AttemptResult(BaseModel):
    attempt_id: int
    exam_id: int
    attempt_number: int
    status: ExamAttemptStatusEnum
    score: Optional[float] = None
    max_score: Optional[float] = None
    score_percentage: Optional[float] = None
    passed: Optional[bool] = None
    is_fully_scored: bool = False
    needs_rescore: bool = False
    time_spent_minutes: int = 0
    completed_at: Optional[datetime] = None


class ExamResultsSummary(BaseModel):
    exam_id: int
    student_id: int
    attempts: List[AttemptResult] = []
    best_score_percentage: Optional[float] = None
    average_score_percentage: Optional[float] = None
    average_time_spent_minutes: Optional[int] = None
    attempts_used: int = 0
    attempts_allowed: int = 1


class ManualGradeRequest(BaseModel):
    points: float = Field(ge=0)
