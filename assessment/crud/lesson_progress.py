from typing import Optional
from sqlalchemy.orm import Session

from assessment.crud.base import CRUDBase
from assessment.models.lesson import Lesson
from assessment.models.lesson_progress import LessonProgress
from pydantic import BaseModel

class CRUDLessonProgress(CRUDBase[LessonProgress, BaseModel, BaseModel]):

    def get_by_student_and_lesson(self, db: Session, student_id: int, lesson_id: int) -> Optional[LessonProgress]:
        return (
            db.query(LessonProgress)
            .filter(LessonProgress.student_id == student_id)
            .filter(LessonProgress.lesson_id == lesson_id)
            .first()
        )

    def count_completed(self, db: Session, student_id: int, course_id: int) -> int:
        # lessons removed from the course no longer count
        return (
            db.query(LessonProgress)
            .join(Lesson, Lesson.id == LessonProgress.lesson_id)
            .filter(LessonProgress.student_id == student_id)
            .filter(LessonProgress.is_completed == True)
            .filter(Lesson.course_id == course_id)
            .filter(Lesson.deleted_at == None)
            .count()
        )


lesson_progress = CRUDLessonProgress(LessonProgress)
