import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from assessment.schemas.question import (
    EssayQuestion,
    Question,
    ShortAnswerQuestion,
    SingleChoiceQuestion,
    TrueFalseQuestion,
)
from assessment.schemas.scoring import QuestionGrade, ScoreResult

logger = logging.getLogger(__name__)


def normalize(value: str) -> str:
    return value.strip().casefold()


class ScoringEngine:
    """Scores answers against each question type's grading rule.

    Essays never count toward the automatic subtotal; until every essay has a
    manual grade the result is provisional (``is_fully_scored`` is False).
    """

    def grade_question(self, question: Question, answer: Any,
                       manual_points: Optional[float] = None) -> QuestionGrade:
        if isinstance(question, SingleChoiceQuestion):
            correct = isinstance(answer, str) and answer.strip() == question.correct_option_id
        elif isinstance(question, TrueFalseQuestion):
            correct = isinstance(answer, str) and normalize(answer) == question.correct_option_id
        elif isinstance(question, ShortAnswerQuestion):
            correct = isinstance(answer, str) and normalize(answer) == normalize(question.canonical_answer)
        elif isinstance(question, EssayQuestion):
            if manual_points is None:
                return QuestionGrade(question_id=question.id, is_correct=None, points_awarded=0.0, auto_scored=False)
            points = min(float(manual_points), float(question.points))
            return QuestionGrade(question_id=question.id, is_correct=None, points_awarded=points, auto_scored=False)
        else:
            raise TypeError(f"Unsupported question type: {type(question).__name__}")

        return QuestionGrade(
            question_id=question.id,
            is_correct=correct,
            points_awarded=float(question.points) if correct else 0.0,
        )

    def score(self, questions: Iterable[Question], answers: Mapping[int, Any],
              manual_grades: Optional[Dict[int, float]] = None) -> ScoreResult:
        manual_grades = manual_grades or {}
        result = ScoreResult()
        for question in questions:
            grade = self.grade_question(question, answers.get(question.id), manual_grades.get(question.id))
            result.grades.append(grade)
            result.max_score += question.points
            if grade.auto_scored:
                result.auto_score += grade.points_awarded
                result.max_auto_scorable += question.points
            elif question.id in manual_grades:
                result.manual_score += grade.points_awarded
            else:
                result.is_fully_scored = False

        logger.debug(
            f"Scored {len(result.grades)} questions: auto {result.auto_score}/{result.max_auto_scorable}, "
            f"manual {result.manual_score}, fully scored {result.is_fully_scored}"
        )
        return result


scoring_engine = ScoringEngine()
