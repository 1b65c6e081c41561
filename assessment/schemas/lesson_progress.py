from pydantic import BaseModel, Field
from typing import Optional

from assessment.core.constants import EnrollmentStatusEnum


class LessonWatchRequest(BaseModel):
    watched_percentage: int = Field(ge=0, le=100)


class LessonProgressView(BaseModel):
    lesson_id: int
    course_id: int
    is_completed: bool
    watched_percentage: int = 0


class CourseProgress(BaseModel):
    student_id: int
    course_id: int
    total_lessons: int
    completed_lessons: int
    progress_percentage: int
    status: Optional[EnrollmentStatusEnum] = None
