from typing import Optional
from sqlalchemy.orm import Session

from assessment.crud.base import CRUDBase
from assessment.models.course_enrollment import CourseEnrollment
from pydantic import BaseModel

class CRUDCourseEnrollment(CRUDBase[CourseEnrollment, BaseModel, BaseModel]):

    def get_by_user_and_course(self, db: Session, student_id: int, course_id: int) -> Optional[CourseEnrollment]:
        return (
            db.query(CourseEnrollment)
            .filter(CourseEnrollment.student_id == student_id)
            .filter(CourseEnrollment.course_id == course_id)
            .first()
        )


course_enrollment = CRUDCourseEnrollment(CourseEnrollment)
