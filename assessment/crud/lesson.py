from sqlalchemy.orm import Session

from assessment.crud.base import CRUDBase
from assessment.models.lesson import Lesson
from pydantic import BaseModel

class CRUDLesson(CRUDBase[Lesson, BaseModel, BaseModel]):

    def count_by_course(self, db: Session, course_id: int) -> int:
        return self._query(db).filter(Lesson.course_id == course_id).count()


lesson = CRUDLesson(Lesson)
