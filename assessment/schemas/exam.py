from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime

from assessment.utils.clock import as_naive_utc


class ExamRules(BaseModel):
    """The grading-relevant view of an exam, as the attempt engine sees it."""
    id: int
    title: str
    course_id: Optional[int] = None
    duration_minutes: int = Field(gt=0)
    passing_score: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_attempts: int = Field(default=1, ge=0)
    total_questions: int = 0

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("start_date", "end_date")
    @classmethod
    def naive_utc(cls, v: Optional[datetime]):
        return as_naive_utc(v) if v else v

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    @property
    def unlimited_attempts(self) -> bool:
        return self.max_attempts == 0

    def is_open(self, now: datetime) -> bool:
        if self.start_date and now < self.start_date:
            return False
        if self.end_date and now > self.end_date:
            return False
        return True
