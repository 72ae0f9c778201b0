import json
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint
from datetime import datetime, timezone


def now_utc():
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands datetimes back naive; they were written as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    full_name: Optional[str] = None
    role: str = Field(default="student")  # admin|teacher|student
    created_at: datetime = Field(default_factory=now_utc)


class Class(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("code", name="uq_class_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    code: str = Field(index=True)
    description: Optional[str] = None
    owner_id: int = Field(foreign_key="user.id")
    created_at: datetime = Field(default_factory=now_utc)


class Enrollment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    class_id: int = Field(foreign_key="class.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    role_in_class: str = Field(default="student")
    joined_at: datetime = Field(default_factory=now_utc)


class Quiz(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    class_id: int = Field(foreign_key="class.id", index=True)
    created_by: int = Field(foreign_key="user.id", index=True)
    is_published: bool = Field(default=False, index=True)
    time_limit: Optional[int] = None  # minutes
    available_from: Optional[datetime] = None
    available_to: Optional[datetime] = None
    allow_review: bool = Field(default=True)
    passing_score: Optional[float] = None  # percentage 0-100
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)
    version: int = Field(default=1)  # bumped on every write, see db.bump_version


class Question(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    question_text: str
    question_type: str  # mcq|written
    options: Optional[str] = None  # JSON: list of {text, is_correct}
    sample_answer: Optional[str] = None
    points: int = Field(default=1)
    order_index: int = Field(index=True)
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)

    def option_list(self) -> list[dict]:
        return json.loads(self.options) if self.options else []


class Submission(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("quiz_id", "student_id", name="uq_submission_quiz_student"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    student_id: int = Field(foreign_key="user.id", index=True)
    started_at: datetime = Field(default_factory=now_utc)
    submitted_at: Optional[datetime] = None
    is_complete: bool = Field(default=False, index=True)
    total_score: Optional[float] = None
    percentage_score: Optional[float] = None
    is_passed: Optional[bool] = None
    graded_by: Optional[int] = Field(default=None, foreign_key="user.id")
    graded_at: Optional[datetime] = None
    version: int = Field(default=1)


class Answer(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    submission_id: int = Field(foreign_key="submission.id", index=True)
    question_id: int = Field(foreign_key="question.id")
    position: int
    selected_options: str = Field(default="[]")  # JSON: list of option indexes
    written_answer: str = Field(default="")
    is_evaluated: bool = Field(default=False)
    score: Optional[float] = None
    feedback: Optional[str] = None

    def selected_list(self) -> list[int]:
        return json.loads(self.selected_options) if self.selected_options else []
