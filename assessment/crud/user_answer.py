from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import exists, update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assessment.core.constants import ExamAttemptStatusEnum
from assessment.crud.base import CRUDBase
from assessment.models.exam_attempt import ExamAttempt
from assessment.models.user_answer import UserAnswer
from pydantic import BaseModel

class CRUDUserAnswer(CRUDBase[UserAnswer, BaseModel, BaseModel]):

    def _attempt_in_progress(self, exam_attempt_id: int):
        return exists().where(
            ExamAttempt.id == exam_attempt_id,
            ExamAttempt.status == ExamAttemptStatusEnum.IN_PROGRESS,
        )

    def get_by_attempt_and_question(self, db: Session, exam_attempt_id: int,
                                    question_id: int) -> Optional[UserAnswer]:
        return (
            db.query(UserAnswer)
            .filter(UserAnswer.exam_attempt_id == exam_attempt_id)
            .filter(UserAnswer.question_id == question_id)
            .first()
        )

    def get_all_by_attempt(self, db: Session, exam_attempt_id: int) -> List[UserAnswer]:
        return (
            db.query(UserAnswer)
            .filter(UserAnswer.exam_attempt_id == exam_attempt_id)
            .order_by(UserAnswer.question_id.asc())
            .all()
        )

    def upsert_if_in_progress(self, db: Session, *, exam_attempt_id: int, question_id: int,
                              answer_text: str, modified_at: datetime) -> bool:
        """Write an answer only while its attempt is in progress.

        Returns False when the attempt is no longer in progress. Writing the
        value already stored is a no-op that still returns True.
        """
        existing = self.get_by_attempt_and_question(db, exam_attempt_id, question_id)
        if existing:
            if existing.answer_text == answer_text:
                return bool(db.query(self._attempt_in_progress(exam_attempt_id)).scalar())
            result = db.execute(
                sa_update(UserAnswer)
                .where(UserAnswer.id == existing.id)
                .where(self._attempt_in_progress(exam_attempt_id))
                .values(answer_text=answer_text, last_modified_at=modified_at)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

        if not db.query(self._attempt_in_progress(exam_attempt_id)).scalar():
            return False
        try:
            self.create(db, obj_in={
                "exam_attempt_id": exam_attempt_id,
                "question_id": question_id,
                "answer_text": answer_text,
                "last_modified_at": modified_at,
            })
        except IntegrityError:
            # another writer inserted the same (attempt, question) first
            db.rollback()
            return self.upsert_if_in_progress(
                db, exam_attempt_id=exam_attempt_id, question_id=question_id,
                answer_text=answer_text, modified_at=modified_at,
            )
        return True

    def apply_grades(self, db: Session, *, exam_attempt_id: int, grades: Dict[int, tuple]) -> None:
        """grades maps question_id -> (is_correct, score)."""
        for answer in self.get_all_by_attempt(db, exam_attempt_id=exam_attempt_id):
            if answer.question_id in grades:
                answer.is_correct, answer.score = grades[answer.question_id]
                db.add(answer)
        db.commit()

    def set_manual_score(self, db: Session, *, exam_attempt_id: int, question_id: int,
                         points: float, graded_by: Optional[int]) -> UserAnswer:
        answer = self.get_by_attempt_and_question(db, exam_attempt_id, question_id)
        if not answer:
            # an unanswered essay can still be graded (usually zero)
            answer = self.create(db, obj_in={
                "exam_attempt_id": exam_attempt_id,
                "question_id": question_id,
                "answer_text": "",
            }, commit=False)
        return self.update(db, db_obj=answer, obj_in={"manual_score": points, "graded_by": graded_by})

    def get_manual_scores(self, db: Session, exam_attempt_id: int) -> Dict[int, float]:
        return {
            a.question_id: a.manual_score
            for a in self.get_all_by_attempt(db, exam_attempt_id=exam_attempt_id)
            if a.manual_score is not None
        }


user_answer = CRUDUserAnswer(UserAnswer)
