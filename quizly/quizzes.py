"""Quiz authoring and the draft -> published gate."""
import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import delete, func
from sqlmodel import Session, select

from quizly.auth import Principal, require_role
from quizly.classes import enrolled_class_ids, get_owned_class, is_enrolled
from quizly.config import get_settings
from quizly.db import bump_version, get_session, transaction
from quizly.errors import BadRequestError, ForbiddenError, NotFoundError, ValidationError
from quizly.models import Answer, Class, Question, Quiz, Submission, as_utc, now_utc
from quizly.schemas import QuizCreate, QuizUpdate, Role, validate_input

logger = logging.getLogger(__name__)

# cannot change once students may have started
STRUCTURAL_FIELDS = ("time_limit", "passing_score")


def is_available(quiz: Quiz, now: Optional[datetime] = None) -> bool:
    """Published and inside its availability window (bounds inclusive)."""
    if not quiz.is_published:
        return False
    now = as_utc(now) if now else now_utc()
    available_from = as_utc(quiz.available_from)
    available_to = as_utc(quiz.available_to)
    if available_from is not None and available_from > now:
        return False
    if available_to is not None and available_to < now:
        return False
    return True


def check_window(available_from: Optional[datetime], available_to: Optional[datetime]) -> None:
    if available_from is None or available_to is None:
        return
    if as_utc(available_to) <= as_utc(available_from):
        raise ValidationError.for_field(
            "available_to", "Available to date must be after available from date"
        )


def get_owned_quiz(session: Session, principal: Principal, quiz_id: int, lock: bool = False) -> Quiz:
    """Load a quiz owned by the calling teacher.

    With ``lock`` the row is selected FOR UPDATE, which serializes publishing
    against question changes on backends that support row locks.
    """
    require_role(principal, Role.TEACHER)
    q = select(Quiz).where(Quiz.id == quiz_id, Quiz.created_by == principal.user_id)
    if lock:
        q = q.with_for_update()
    quiz = session.exec(q).first()
    if not quiz:
        raise NotFoundError("Quiz not found or you don't have permission")
    return quiz


def touch(session: Session, quiz: Quiz) -> None:
    """Record a write to the quiz or its questions.

    Fails with ConflictError if the quiz changed since it was loaded in this
    transaction, so publishing and question edits cannot interleave.
    """
    bump_version(session, quiz, updated_at=now_utc())


def count_questions(session: Session, quiz_id: int) -> int:
    q = select(func.count(Question.id)).where(Question.quiz_id == quiz_id)
    return session.exec(q).one()


def _new_quiz(principal: Principal, data: QuizCreate) -> Quiz:
    check_window(data.available_from, data.available_to)
    return Quiz(
        title=data.title,
        description=data.description,
        class_id=data.class_id,
        created_by=principal.user_id,
        time_limit=data.time_limit,
        available_from=as_utc(data.available_from),
        available_to=as_utc(data.available_to),
        allow_review=data.allow_review,
        passing_score=data.passing_score,
    )


def _require_owned_class(session: Session, principal: Principal, class_id: int) -> Class:
    cls = get_owned_class(session, principal.user_id, class_id)
    if not cls:
        raise NotFoundError("Class not found or you don't have permission")
    return cls


def create_quiz(principal: Principal, data: QuizCreate | dict) -> Quiz:
    require_role(principal, Role.TEACHER)
    data = validate_input(QuizCreate, data)
    with transaction() as session:
        _require_owned_class(session, principal, data.class_id)
        quiz = _new_quiz(principal, data)
        session.add(quiz)
        session.flush()
        session.refresh(quiz)
    logger.info("Quiz %s created by teacher %s in class %s", quiz.id, principal.user_id, quiz.class_id)
    return quiz


def create_quiz_with_questions(principal: Principal, data: QuizCreate | dict, questions: Iterable[Any]):
    """Create a quiz and its questions in one transaction.

    Returns ``(quiz, questions)``. A question without ``order_index`` takes its
    1-based position in the list.
    """
    from quizly.questions import build_question

    require_role(principal, Role.TEACHER)
    data = validate_input(QuizCreate, data)
    with transaction() as session:
        _require_owned_class(session, principal, data.class_id)
        quiz = _new_quiz(principal, data)
        session.add(quiz)
        session.flush()
        rows = []
        for position, definition in enumerate(questions, start=1):
            row = build_question(quiz.id, definition, default_order=position)
            session.add(row)
            rows.append(row)
        session.flush()
        session.refresh(quiz)
        for row in rows:
            session.refresh(row)
    logger.info("Quiz %s created with %d questions by teacher %s", quiz.id, len(rows), principal.user_id)
    return quiz, rows


def update_quiz(principal: Principal, quiz_id: int, changes: QuizUpdate | dict) -> Quiz:
    changes = validate_input(QuizUpdate, changes).model_dump(exclude_unset=True)
    for field in ("title", "allow_review"):
        if field in changes and changes[field] is None:
            del changes[field]
    with transaction() as session:
        quiz = get_owned_quiz(session, principal, quiz_id, lock=True)
        if quiz.is_published:
            touched = [f for f in STRUCTURAL_FIELDS if f in changes and changes[f] != getattr(quiz, f)]
            if touched:
                raise BadRequestError(
                    f"Cannot change {', '.join(touched)} of a published quiz"
                )
        for field in ("available_from", "available_to"):
            if field in changes:
                changes[field] = as_utc(changes[field])
        check_window(
            changes.get("available_from", quiz.available_from),
            changes.get("available_to", quiz.available_to),
        )
        for field, value in changes.items():
            setattr(quiz, field, value)
        touch(session, quiz)
        session.flush()
        session.refresh(quiz)
    logger.info("Quiz %s updated by teacher %s: %s", quiz_id, principal.user_id, sorted(changes))
    return quiz


def publish_quiz(principal: Principal, quiz_id: int) -> Quiz:
    with transaction() as session:
        quiz = get_owned_quiz(session, principal, quiz_id, lock=True)
        if quiz.is_published:
            return quiz
        if count_questions(session, quiz.id) == 0:
            raise BadRequestError("Cannot publish a quiz with no questions")
        check_window(quiz.available_from, quiz.available_to)
        quiz.is_published = True
        touch(session, quiz)
        session.flush()
        session.refresh(quiz)
    logger.info("Quiz %s published by teacher %s", quiz_id, principal.user_id)
    return quiz


def unpublish_quiz(principal: Principal, quiz_id: int) -> Quiz:
    if not get_settings().allow_unpublish:
        raise BadRequestError("Unpublishing quizzes is not enabled")
    with transaction() as session:
        quiz = get_owned_quiz(session, principal, quiz_id, lock=True)
        if not quiz.is_published:
            return quiz
        started = session.exec(select(Submission.id).where(Submission.quiz_id == quiz.id)).first()
        if started is not None:
            raise BadRequestError("Cannot unpublish a quiz that students have already started")
        quiz.is_published = False
        touch(session, quiz)
        session.flush()
        session.refresh(quiz)
    logger.info("Quiz %s unpublished by teacher %s", quiz_id, principal.user_id)
    return quiz


def delete_quiz(principal: Principal, quiz_id: int) -> None:
    with transaction() as session:
        quiz = get_owned_quiz(session, principal, quiz_id, lock=True)
        submission_ids = select(Submission.id).where(Submission.quiz_id == quiz.id)
        session.exec(delete(Answer).where(Answer.submission_id.in_(submission_ids)))
        session.exec(delete(Submission).where(Submission.quiz_id == quiz.id))
        session.exec(delete(Question).where(Question.quiz_id == quiz.id))
        session.delete(quiz)
    logger.info("Quiz %s deleted by teacher %s", quiz_id, principal.user_id)


def _public_question(question: Question, hide_answers: bool) -> dict:
    data = question.model_dump()
    options = question.option_list()
    if hide_answers:
        options = [{"text": o["text"]} for o in options]
        data.pop("sample_answer", None)
    data["options"] = options if question.question_type == "mcq" else None
    return data


def get_quiz(principal: Principal, quiz_id: int, with_questions: bool = False) -> dict:
    """Quiz visible to the caller, optionally with its ordered questions.

    Students only see published, currently available quizzes of classes they
    are enrolled in, and never see which options are correct.
    """
    with get_session() as session:
        quiz = session.get(Quiz, quiz_id)
        if not quiz:
            raise NotFoundError("Quiz not found")
        if principal.is_teacher:
            if quiz.created_by != principal.user_id:
                raise ForbiddenError("You don't have permission to access this quiz")
        elif principal.is_student:
            if not is_enrolled(session, principal.user_id, quiz.class_id):
                raise ForbiddenError("You are not enrolled in this class")
            if not quiz.is_published:
                raise ForbiddenError("This quiz is not available yet")
            if not is_available(quiz):
                raise ForbiddenError("This quiz is not currently available")
        elif not principal.is_admin:
            raise ForbiddenError("You don't have permission to access this quiz")

        result = {"quiz": quiz, "questions": None}
        if with_questions:
            q = select(Question).where(Question.quiz_id == quiz_id).order_by(Question.order_index, Question.id)
            result["questions"] = [
                _public_question(question, hide_answers=principal.is_student)
                for question in session.exec(q)
            ]
        return result


def get_teacher_quizzes(principal: Principal, class_id: Optional[int] = None) -> list[Quiz]:
    require_role(principal, Role.TEACHER)
    with get_session() as session:
        q = select(Quiz).where(Quiz.created_by == principal.user_id)
        if class_id is not None:
            q = q.where(Quiz.class_id == class_id)
        return list(session.exec(q.order_by(Quiz.created_at.desc(), Quiz.id.desc())))


def get_student_quizzes(principal: Principal, class_id: Optional[int] = None) -> list[Quiz]:
    """Published quizzes of the student's classes that are open right now."""
    require_role(principal, Role.STUDENT)
    with get_session() as session:
        class_ids = enrolled_class_ids(session, principal.user_id)
        if class_id is not None:
            if class_id not in class_ids:
                raise ForbiddenError("You are not enrolled in this class")
            class_ids = [class_id]
        if not class_ids:
            return []
        q = select(Quiz).where(Quiz.class_id.in_(class_ids), Quiz.is_published == True)  # noqa: E712
        quizzes = session.exec(q.order_by(Quiz.created_at.desc(), Quiz.id.desc()))
        return [quiz for quiz in quizzes if is_available(quiz)]
