from pydantic import BaseModel
from typing import List, Optional


class QuestionGrade(BaseModel):
    question_id: int
    is_correct: Optional[bool] = None  # None for questions awaiting a manual grade
    points_awarded: float = 0.0
    auto_scored: bool = True


class ScoreResult(BaseModel):
    auto_score: float = 0.0
    max_auto_scorable: float = 0.0
    manual_score: float = 0.0
    max_score: float = 0.0
    is_fully_scored: bool = True
    grades: List[QuestionGrade] = []

    @property
    def total_score(self) -> float:
        return self.auto_score + self.manual_score

    @property
    def percentage(self) -> float:
        if self.max_score <= 0:
            return 0.0
        return round(self.total_score / self.max_score * 100, 2)

    def passed(self, passing_score: Optional[float]) -> Optional[bool]:
        if not self.is_fully_scored or passing_score is None:
            return None
        return self.percentage >= passing_score
