from typing import List
from sqlalchemy.orm import Session

from assessment.crud.base import CRUDBase
from assessment.models.question import Question
from pydantic import BaseModel

class CRUDQuestion(CRUDBase[Question, BaseModel, BaseModel]):

    def get_by_exam(self, db: Session, exam_id: int) -> List[Question]:
        return (
            self._query(db)
            .filter(Question.exam_id == exam_id)
            .order_by(Question.position.asc(), Question.id.asc())
            .all()
        )

    def count_by_exam(self, db: Session, exam_id: int) -> int:
        return self._query(db).filter(Question.exam_id == exam_id).count()


question = CRUDQuestion(Question)
