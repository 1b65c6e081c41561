import logging
from typing import Callable, List

from pydantic import ValidationError
from sqlalchemy.orm import Session

from assessment.core.constants import QuestionTypeEnum
from assessment.core.database import SessionLocal
from assessment.core.exceptions import ExamNotFound, QuestionCatalogError
from assessment.crud.exam import exam as crud_exam
from assessment.crud.question import question as crud_question
from assessment.models.question import Question as QuestionRow
from assessment.schemas.exam import ExamRules
from assessment.schemas.question import Question, question_adapter

logger = logging.getLogger(__name__)


def _options_from_row(raw) -> list:
    options = []
    for index, option in enumerate(raw or []):
        if isinstance(option, dict):
            options.append({"id": str(option.get("id", index)), "text": str(option.get("text", ""))})
        else:
            options.append({"id": str(option), "text": str(option)})
    return options


def to_question(row: QuestionRow) -> Question:
    data = {
        "id": row.id,
        "exam_id": row.exam_id,
        "position": row.position,
        "question_text": row.question_text,
        "points": row.points,
        "question_type": QuestionTypeEnum(row.question_type).value,
    }
    if row.question_type == QuestionTypeEnum.SINGLE_CHOICE:
        data["options"] = _options_from_row(row.options)
        data["correct_option_id"] = row.correct_answer
    elif row.question_type == QuestionTypeEnum.TRUE_FALSE:
        data["correct_option_id"] = (row.correct_answer or "").strip().lower()
    elif row.question_type == QuestionTypeEnum.SHORT_ANSWER:
        data["canonical_answer"] = row.correct_answer or ""

    try:
        return question_adapter.validate_python(data)
    except ValidationError as e:
        logger.error(f"Question {row.id} of exam {row.exam_id} has an invalid answer key: {e}")
        raise QuestionCatalogError(
            f"Question {row.id} is misconfigured.",
            details={"question_id": row.id, "errors": e.errors(include_url=False)},
        )


class QuestionCatalog:
    """Read-only access to exams and their ordered questions."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def get_exam(self, exam_id: int) -> ExamRules:
        db = self.session_factory()
        try:
            exam = crud_exam.get(db, id=exam_id)
            if not exam:
                raise ExamNotFound("Exam not found.", details={"exam_id": exam_id})
            rules = ExamRules.model_validate(exam)
            return rules.model_copy(update={"total_questions": crud_question.count_by_exam(db, exam_id=exam_id)})
        finally:
            db.close()

    def get_questions(self, exam_id: int) -> List[Question]:
        db = self.session_factory()
        try:
            return [to_question(row) for row in crud_question.get_by_exam(db, exam_id=exam_id)]
        finally:
            db.close()
