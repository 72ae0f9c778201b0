"""Ordered question definitions of a quiz.

Every write is refused once the owning quiz is published.
"""
import json
import logging
from typing import Any, Iterable, Union

from sqlalchemy import func
from sqlmodel import Session, select

from quizly.auth import Principal, require_role
from quizly.db import get_session, transaction
from quizly.errors import BadRequestError, ForbiddenError, NotFoundError, ValidationError
from quizly.models import Question, Quiz, now_utc
from quizly.quizzes import get_owned_quiz, touch
from quizly.schemas import (
    MultipleChoiceQuestion,
    Option,
    QuestionOrder,
    QuestionPatch,
    Role,
    WrittenQuestion,
    parse_question,
    validate_input,
)

logger = logging.getLogger(__name__)

Definition = Union[MultipleChoiceQuestion, WrittenQuestion]


def question_definition(question: Question) -> Definition:
    """Rebuild the tagged definition from a stored row."""
    if question.question_type == "mcq":
        return MultipleChoiceQuestion.model_construct(
            question_type="mcq",
            question_text=question.question_text,
            options=[_option(o) for o in question.option_list()],
            points=question.points,
            order_index=question.order_index,
        )
    return WrittenQuestion.model_construct(
        question_type="written",
        question_text=question.question_text,
        sample_answer=question.sample_answer,
        points=question.points,
        order_index=question.order_index,
    )


def _option(data: dict) -> Option:
    return Option(text=data["text"], is_correct=bool(data.get("is_correct")))


def _apply_definition(question: Question, definition: Definition) -> None:
    question.question_text = definition.question_text
    question.question_type = definition.question_type
    question.points = definition.points
    if isinstance(definition, MultipleChoiceQuestion):
        question.options = json.dumps([o.model_dump() for o in definition.options])
        question.sample_answer = None
    else:
        question.options = None
        question.sample_answer = definition.sample_answer
    if definition.order_index is not None:
        question.order_index = definition.order_index


def build_question(quiz_id: int, definition: Any, default_order: int) -> Question:
    definition = parse_question(definition)
    question = Question(
        quiz_id=quiz_id,
        question_text=definition.question_text,
        question_type=definition.question_type,
        order_index=definition.order_index or default_order,
    )
    _apply_definition(question, definition)
    return question


def next_order_index(session: Session, quiz_id: int) -> int:
    q = select(func.max(Question.order_index)).where(Question.quiz_id == quiz_id)
    highest = session.exec(q).one()
    return (highest or 0) + 1


def _editable_quiz(session: Session, principal: Principal, quiz_id: int) -> Quiz:
    quiz = get_owned_quiz(session, principal, quiz_id, lock=True)
    if quiz.is_published:
        raise BadRequestError("Cannot modify a published quiz")
    return quiz


def _owned_question(session: Session, principal: Principal, question_id: int) -> tuple[Question, Quiz]:
    require_role(principal, Role.TEACHER)
    question = session.get(Question, question_id)
    if not question:
        raise NotFoundError("Question not found")
    q = select(Quiz).where(Quiz.id == question.quiz_id).with_for_update()
    quiz = session.exec(q).first()
    if not quiz or quiz.created_by != principal.user_id:
        raise ForbiddenError("You don't have permission to modify this question")
    return question, quiz


def create_question(principal: Principal, quiz_id: int, definition: Any) -> Question:
    definition = parse_question(definition)
    with transaction() as session:
        quiz = _editable_quiz(session, principal, quiz_id)
        question = build_question(quiz.id, definition, default_order=next_order_index(session, quiz.id))
        session.add(question)
        touch(session, quiz)
        session.flush()
        session.refresh(question)
    logger.info("Question %s added to quiz %s at index %s", question.id, quiz_id, question.order_index)
    return question


def add_questions_batch(principal: Principal, quiz_id: int, definitions: Iterable[Any]) -> list[Question]:
    definitions = [parse_question(d) for d in definitions]
    if not definitions:
        raise BadRequestError("Questions must be a non-empty array")
    with transaction() as session:
        quiz = _editable_quiz(session, principal, quiz_id)
        start = next_order_index(session, quiz.id)
        questions = [
            build_question(quiz.id, definition, default_order=start + i)
            for i, definition in enumerate(definitions)
        ]
        session.add_all(questions)
        touch(session, quiz)
        session.flush()
        for question in questions:
            session.refresh(question)
    logger.info("%d questions added to quiz %s", len(questions), quiz_id)
    return questions


def get_questions_for_quiz(quiz_id: int) -> list[Question]:
    with get_session() as session:
        q = select(Question).where(Question.quiz_id == quiz_id).order_by(Question.order_index, Question.id)
        return list(session.exec(q))


def get_question(principal: Principal, question_id: int) -> Question:
    require_role(principal, Role.TEACHER)
    with get_session() as session:
        question = session.get(Question, question_id)
        if not question:
            raise NotFoundError("Question not found")
        quiz = session.get(Quiz, question.quiz_id)
        if not quiz or quiz.created_by != principal.user_id:
            raise ForbiddenError("You don't have permission to access this question")
        return question


def update_question(principal: Principal, question_id: int, patch: QuestionPatch | dict) -> Question:
    """Apply a partial update.

    Changing ``question_type`` drops the other type's fields: switching to
    multiple choice needs a fresh ``options`` list in the same patch.
    """
    changes = validate_input(QuestionPatch, patch).model_dump(mode="json", exclude_unset=True)
    with transaction() as session:
        question, quiz = _owned_question(session, principal, question_id)
        if quiz.is_published:
            raise BadRequestError("Cannot modify a published quiz")
        merged = question_definition(question).model_dump(mode="json")
        new_type = changes.get("question_type") or merged["question_type"]
        if new_type != merged["question_type"]:
            merged.pop("options", None)
            merged.pop("sample_answer", None)
        for field, value in changes.items():
            # an explicit None only clears the written sample answer
            if value is None and not (field == "sample_answer" and new_type == "written"):
                continue
            merged[field] = value
        merged["question_type"] = new_type
        _apply_definition(question, parse_question(merged))
        question.updated_at = now_utc()
        session.add(question)
        touch(session, quiz)
        session.flush()
        session.refresh(question)
    logger.info("Question %s updated: %s", question_id, sorted(changes))
    return question


def reorder_questions(principal: Principal, quiz_id: int, orders: Iterable[Any]) -> list[Question]:
    """Assign new order indexes in one transaction.

    Every question must belong to the quiz; otherwise nothing is written.
    """
    orders = list(orders)
    if not orders:
        raise BadRequestError("Question orders must be a non-empty array")
    parsed = [validate_input(QuestionOrder, item, default_field="question_orders") for item in orders]
    ids = [item.question_id for item in parsed]
    if len(set(ids)) != len(ids):
        raise ValidationError.for_field("question_orders", "Each question may appear only once")

    with transaction() as session:
        quiz = _editable_quiz(session, principal, quiz_id)
        q = select(Question).where(Question.quiz_id == quiz.id, Question.id.in_(ids))
        by_id = {question.id: question for question in session.exec(q)}
        foreign = [qid for qid in ids if qid not in by_id]
        if foreign:
            raise ValidationError.for_field(
                "question_orders",
                f"Questions do not belong to this quiz: {', '.join(str(i) for i in foreign)}",
            )
        for item in parsed:
            question = by_id[item.question_id]
            question.order_index = item.order_index
            question.updated_at = now_utc()
            session.add(question)
        touch(session, quiz)
    logger.info("Questions of quiz %s reordered: %s", quiz_id, [(i.question_id, i.order_index) for i in parsed])
    return get_questions_for_quiz(quiz_id)


def delete_question(principal: Principal, question_id: int) -> None:
    with transaction() as session:
        question, quiz = _owned_question(session, principal, question_id)
        if quiz.is_published:
            raise BadRequestError("Cannot modify a published quiz")
        session.delete(question)
        touch(session, quiz)
    logger.info("Question %s deleted from quiz %s", question_id, quiz.id)

