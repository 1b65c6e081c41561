import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assessment.core.constants import ExamAttemptStatusEnum
from assessment.core.database import SessionLocal
from assessment.core.exceptions import AttemptConflict, AttemptNotFound
from assessment.crud.exam_attempt import exam_attempt as crud_exam_attempt
from assessment.crud.user_answer import user_answer as crud_user_answer
from assessment.schemas.exam_attempt import AttemptRecord
from assessment.schemas.scoring import ScoreResult

logger = logging.getLogger(__name__)


class AttemptStore(ABC):
    """Durable attempts and answers.

    The attempt row changes only through answer upserts, the single
    compare-and-set finalize and score writes on already finalized attempts.
    """

    @abstractmethod
    async def create_attempt(self, exam_id: int, student_id: int, attempt_number: int,
                             started_at: datetime) -> AttemptRecord: ...

    @abstractmethod
    async def get_attempt(self, attempt_id: int) -> Optional[AttemptRecord]: ...

    @abstractmethod
    async def list_attempts(self, exam_id: int, student_id: int) -> List[AttemptRecord]: ...

    @abstractmethod
    async def list_in_progress(self) -> List[AttemptRecord]: ...

    @abstractmethod
    async def upsert_answer(self, attempt_id: int, question_id: int, value: str,
                            modified_at: datetime) -> bool: ...

    @abstractmethod
    async def get_answers(self, attempt_id: int) -> Dict[int, str]: ...

    @abstractmethod
    async def finalize_attempt(self, attempt_id: int, from_status: ExamAttemptStatusEnum,
                               to_status: ExamAttemptStatusEnum, completed_at: datetime,
                               time_spent_seconds: int) -> bool: ...

    @abstractmethod
    async def set_score(self, attempt_id: int, result: ScoreResult, passed: Optional[bool]) -> bool: ...

    @abstractmethod
    async def mark_for_rescore(self, attempt_id: int, reason: str) -> None: ...

    @abstractmethod
    async def list_needing_rescore(self) -> List[AttemptRecord]: ...

    @abstractmethod
    async def record_manual_grade(self, attempt_id: int, question_id: int, points: float,
                                  grader_id: Optional[int]) -> None: ...

    @abstractmethod
    async def get_manual_grades(self, attempt_id: int) -> Dict[int, float]: ...


class SQLAlchemyAttemptStore(AttemptStore):
    """AttemptStore over the ORM, one short-lived session per operation."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def create_attempt(self, exam_id: int, student_id: int, attempt_number: int,
                             started_at: datetime) -> AttemptRecord:
        with self._session() as db:
            try:
                row = crud_exam_attempt.create(db, obj_in={
                    "exam_id": exam_id,
                    "student_id": student_id,
                    "attempt_number": attempt_number,
                    "status": ExamAttemptStatusEnum.IN_PROGRESS,
                    "started_at": started_at,
                })
            except IntegrityError:
                db.rollback()
                raise AttemptConflict(
                    "This attempt was already started.",
                    details={"exam_id": exam_id, "attempt_number": attempt_number},
                )
            return AttemptRecord.model_validate(row)

    async def get_attempt(self, attempt_id: int) -> Optional[AttemptRecord]:
        with self._session() as db:
            row = crud_exam_attempt.get(db, id=attempt_id)
            return AttemptRecord.model_validate(row) if row else None

    async def list_attempts(self, exam_id: int, student_id: int) -> List[AttemptRecord]:
        with self._session() as db:
            rows = crud_exam_attempt.get_by_user_and_exam(db, student_id=student_id, exam_id=exam_id)
            return [AttemptRecord.model_validate(r) for r in rows]

    async def list_in_progress(self) -> List[AttemptRecord]:
        with self._session() as db:
            return [AttemptRecord.model_validate(r) for r in crud_exam_attempt.get_all_in_progress(db)]

    async def upsert_answer(self, attempt_id: int, question_id: int, value: str,
                            modified_at: datetime) -> bool:
        with self._session() as db:
            return crud_user_answer.upsert_if_in_progress(
                db,
                exam_attempt_id=attempt_id,
                question_id=question_id,
                answer_text=value,
                modified_at=modified_at,
            )

    async def get_answers(self, attempt_id: int) -> Dict[int, str]:
        with self._session() as db:
            return {
                a.question_id: a.answer_text
                for a in crud_user_answer.get_all_by_attempt(db, exam_attempt_id=attempt_id)
                if a.answer_text
            }

    async def finalize_attempt(self, attempt_id: int, from_status: ExamAttemptStatusEnum,
                               to_status: ExamAttemptStatusEnum, completed_at: datetime,
                               time_spent_seconds: int) -> bool:
        with self._session() as db:
            return crud_exam_attempt.finalize(
                db,
                attempt_id=attempt_id,
                from_status=from_status,
                to_status=to_status,
                completed_at=completed_at,
                time_spent_seconds=time_spent_seconds,
            )

    async def set_score(self, attempt_id: int, result: ScoreResult, passed: Optional[bool]) -> bool:
        with self._session() as db:
            stored = crud_exam_attempt.set_score(
                db,
                attempt_id=attempt_id,
                score=result.total_score,
                max_score=result.max_score,
                passed=passed,
                is_fully_scored=result.is_fully_scored,
            )
            if stored:
                crud_user_answer.apply_grades(
                    db,
                    exam_attempt_id=attempt_id,
                    grades={g.question_id: (g.is_correct, g.points_awarded) for g in result.grades},
                )
            return stored

    async def mark_for_rescore(self, attempt_id: int, reason: str) -> None:
        with self._session() as db:
            crud_exam_attempt.mark_for_rescore(db, attempt_id=attempt_id, reason=reason)

    async def list_needing_rescore(self) -> List[AttemptRecord]:
        with self._session() as db:
            return [AttemptRecord.model_validate(r) for r in crud_exam_attempt.get_needing_rescore(db)]

    async def record_manual_grade(self, attempt_id: int, question_id: int, points: float,
                                  grader_id: Optional[int]) -> None:
        with self._session() as db:
            if not crud_exam_attempt.get(db, id=attempt_id):
                raise AttemptNotFound("Exam attempt not found.", details={"attempt_id": attempt_id})
            crud_user_answer.set_manual_score(
                db, exam_attempt_id=attempt_id, question_id=question_id,
                points=points, graded_by=grader_id,
            )

    async def get_manual_grades(self, attempt_id: int) -> Dict[int, float]:
        with self._session() as db:
            return crud_user_answer.get_manual_scores(db, exam_attempt_id=attempt_id)
