"""Input shapes for the quiz core.

Questions are a tagged variant on ``question_type``: a multiple-choice
question has ``options`` and no sample answer, a written one has an optional
``sample_answer`` and no options.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from quizly.errors import ValidationError


class Role(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class QuestionType(str, Enum):
    MCQ = "mcq"
    WRITTEN = "written"


class Option(BaseModel):
    text: str = Field(min_length=1)
    is_correct: bool = False


class MultipleChoiceQuestion(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question_type: Literal["mcq"] = "mcq"
    question_text: str = Field(min_length=1)
    options: list[Option]
    points: int = Field(default=1, ge=1)
    order_index: Optional[int] = Field(default=None, ge=1)

    @field_validator("options")
    @classmethod
    def check_options(cls, options: list[Option]) -> list[Option]:
        if len(options) < 2:
            raise ValueError("MCQ questions must have at least 2 options")
        if not any(option.is_correct for option in options):
            raise ValueError("At least one option must be marked as correct")
        return options


class WrittenQuestion(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question_type: Literal["written"] = "written"
    question_text: str = Field(min_length=1)
    sample_answer: Optional[str] = None
    points: int = Field(default=1, ge=1)
    order_index: Optional[int] = Field(default=None, ge=1)


QuestionDefinition = Annotated[
    Union[MultipleChoiceQuestion, WrittenQuestion],
    Field(discriminator="question_type"),
]

_question_adapter = TypeAdapter(QuestionDefinition)


class QuestionPatch(BaseModel):
    question_text: Optional[str] = Field(default=None, min_length=1)
    question_type: Optional[QuestionType] = None
    options: Optional[list[Option]] = None
    sample_answer: Optional[str] = None
    points: Optional[int] = Field(default=None, ge=1)
    order_index: Optional[int] = Field(default=None, ge=1)


class QuestionOrder(BaseModel):
    question_id: int
    order_index: int = Field(ge=1)


class QuizCreate(BaseModel):
    title: str = Field(min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    class_id: int
    time_limit: Optional[int] = Field(default=None, ge=1, le=180)
    available_from: Optional[datetime] = None
    available_to: Optional[datetime] = None
    allow_review: bool = True
    passing_score: Optional[float] = Field(default=None, ge=0, le=100)


class QuizUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    time_limit: Optional[int] = Field(default=None, ge=1, le=180)
    available_from: Optional[datetime] = None
    available_to: Optional[datetime] = None
    allow_review: Optional[bool] = None
    passing_score: Optional[float] = Field(default=None, ge=0, le=100)


class AnswerPayload(BaseModel):
    selected_options: Optional[list[int]] = None
    written_answer: Optional[str] = None


class GradeEntry(BaseModel):
    question_id: int
    score: float = Field(ge=0)
    feedback: Optional[str] = None


def _errors_by_field(exc: PydanticValidationError, default_field: str) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err["loc"]]
        # discriminated unions prefix the location with the tag value
        if loc and loc[0] in (QuestionType.MCQ.value, QuestionType.WRITTEN.value):
            loc = loc[1:]
        field = ".".join(loc) or default_field
        message = err["msg"]
        if err["type"] == "extra_forbidden":
            message = "Not allowed for this question type"
        errors.setdefault(field, []).append(message)
    return errors


def validate_input(model, data: Any, default_field: str = "body"):
    """Coerce ``data`` (a dict or a model instance) into ``model``.

    Raises quizly's ValidationError keyed by field name on failure.
    """
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_errors_by_field(exc, default_field)) from exc


def parse_question(data: Any) -> Union[MultipleChoiceQuestion, WrittenQuestion]:
    if isinstance(data, (MultipleChoiceQuestion, WrittenQuestion)):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    try:
        return _question_adapter.validate_python(data)
    except PydanticValidationError as exc:
        raise ValidationError(_errors_by_field(exc, "question_type")) from exc
