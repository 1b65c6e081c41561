from datetime import datetime
from typing import List, Optional

from sqlalchemy import update as sa_update
from sqlalchemy.orm import Session

from assessment.core.constants import ExamAttemptStatusEnum, FINALIZED_STATUSES
from assessment.crud.base import CRUDBase
from assessment.models.exam_attempt import ExamAttempt
from assessment.schemas.exam_attempt import AttemptRecord

class CRUDExamAttempt(CRUDBase[ExamAttempt, AttemptRecord, AttemptRecord]):

    def get_by_user_and_exam(self, db: Session, student_id: int, exam_id: int) -> List[ExamAttempt]:
        return (
            self._query(db)
            .filter(ExamAttempt.student_id == student_id)
            .filter(ExamAttempt.exam_id == exam_id)
            .order_by(ExamAttempt.attempt_number.asc())
            .all()
        )

    def get_all_in_progress(self, db: Session) -> List[ExamAttempt]:
        return (
            self._query(db)
            .filter(ExamAttempt.status == ExamAttemptStatusEnum.IN_PROGRESS)
            .order_by(ExamAttempt.started_at.asc())
            .all()
        )

    def get_needing_rescore(self, db: Session, limit: int = 100) -> List[ExamAttempt]:
        return (
            self._query(db)
            .filter(ExamAttempt.needs_rescore == True)
            .filter(ExamAttempt.status.in_(FINALIZED_STATUSES))
            .limit(limit)
            .all()
        )

    def finalize(
        self,
        db: Session,
        *,
        attempt_id: int,
        from_status: ExamAttemptStatusEnum,
        to_status: ExamAttemptStatusEnum,
        completed_at: datetime,
        time_spent_seconds: int,
    ) -> bool:
        """Compare-and-set on status. True only for the caller whose update matched."""
        result = db.execute(
            sa_update(ExamAttempt)
            .where(ExamAttempt.id == attempt_id)
            .where(ExamAttempt.status == from_status)
            .values(
                status=to_status,
                completed_at=completed_at,
                time_spent_seconds=time_spent_seconds,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    def set_score(
        self,
        db: Session,
        *,
        attempt_id: int,
        score: float,
        max_score: float,
        passed: Optional[bool],
        is_fully_scored: bool,
    ) -> bool:
        result = db.execute(
            sa_update(ExamAttempt)
            .where(ExamAttempt.id == attempt_id)
            .where(ExamAttempt.status.in_(FINALIZED_STATUSES))
            .values(
                score=score,
                max_score=max_score,
                passed=passed,
                is_fully_scored=is_fully_scored,
                needs_rescore=False,
                rescore_reason=None,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    def mark_for_rescore(self, db: Session, *, attempt_id: int, reason: str) -> None:
        db.execute(
            sa_update(ExamAttempt)
            .where(ExamAttempt.id == attempt_id)
            .values(needs_rescore=True, rescore_reason=reason[:255])
            .execution_options(synchronize_session=False)
        )
        db.commit()


exam_attempt = CRUDExamAttempt(ExamAttempt)
