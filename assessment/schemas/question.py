from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from assessment.core.constants import QuestionTypeEnum


class QuestionOption(BaseModel):
    id: str
    text: str


class QuestionBase(BaseModel):
    id: int
    exam_id: int
    position: int = 0
    question_text: str
    points: int = Field(default=1, ge=0)

    model_config = ConfigDict(frozen=True)


class SingleChoiceQuestion(QuestionBase):
    question_type: Literal["single_choice"] = "single_choice"
    options: List[QuestionOption]
    correct_option_id: str

    @field_validator("options")
    @classmethod
    def unique_option_ids(cls, v: List[QuestionOption]):
        ids = [o.id for o in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Option ids must be unique.")
        if len(ids) < 2:
            raise ValueError("A single choice question needs at least two options.")
        return v

    @model_validator(mode="after")
    def one_correct_option(self):
        if self.correct_option_id not in {o.id for o in self.options}:
            raise ValueError("The correct option must be one of the question's options.")
        return self

    @property
    def correct_option(self) -> QuestionOption:
        return next(o for o in self.options if o.id == self.correct_option_id)


class TrueFalseQuestion(QuestionBase):
    question_type: Literal["true_false"] = "true_false"
    correct_option_id: Literal["true", "false"]

    @property
    def options(self) -> List[QuestionOption]:
        return [QuestionOption(id="true", text="True"), QuestionOption(id="false", text="False")]


class ShortAnswerQuestion(QuestionBase):
    question_type: Literal["short_answer"] = "short_answer"
    canonical_answer: str

    @field_validator("canonical_answer")
    @classmethod
    def not_blank(cls, v: str):
        if not v.strip():
            raise ValueError("Canonical answer cannot be blank.")
        return v


class EssayQuestion(QuestionBase):
    question_type: Literal["essay"] = "essay"


Question = Annotated[
    Union[SingleChoiceQuestion, TrueFalseQuestion, ShortAnswerQuestion, EssayQuestion],
    Field(discriminator="question_type"),
]

question_adapter = TypeAdapter(Question)


class QuestionForStudent(BaseModel):
    """A question as shown while an attempt is running: no answer key."""
    id: int
    position: int
    question_text: str
    question_type: QuestionTypeEnum
    points: int
    options: Optional[List[QuestionOption]] = None

    model_config = ConfigDict(use_enum_values=True)

    @classmethod
    def from_question(cls, question: "Question") -> "QuestionForStudent":
        options = getattr(question, "options", None)
        return cls(
            id=question.id,
            position=question.position,
            question_text=question.question_text,
            question_type=question.question_type,
            points=question.points,
            options=list(options) if options is not None else None,
        )
