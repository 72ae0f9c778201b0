"""One student's attempt at one quiz.

States: in progress -> completed -> graded. An attempt is created by
``start_attempt`` only, at most once per (quiz, student); every transition
runs in a single transaction and validates before it writes.
"""
import json
import logging
from datetime import timedelta
from typing import Any, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from quizly.auth import Principal, require_role
from quizly.classes import is_enrolled
from quizly.config import get_settings
from quizly.db import bump_version, get_session, transaction
from quizly.errors import BadRequestError, ForbiddenError, NotFoundError, ValidationError
from quizly.models import Answer, Question, Quiz, Submission, as_utc, now_utc
from quizly.quizzes import is_available
from quizly.schemas import AnswerPayload, GradeEntry, Role, validate_input
from quizly.scoring import score_multiple_choice, summarize

logger = logging.getLogger(__name__)

IN_PROGRESS = "in_progress"
COMPLETED = "completed"
GRADED = "graded"


def submission_state(submission: Submission) -> str:
    if not submission.is_complete:
        return IN_PROGRESS
    if submission.graded_at is None:
        return COMPLETED
    return GRADED


def _answers(session: Session, submission_id: int) -> list[Answer]:
    q = select(Answer).where(Answer.submission_id == submission_id).order_by(Answer.position)
    return list(session.exec(q))


def _questions(session: Session, answers: Iterable[Answer]) -> dict[int, Question]:
    ids = [a.question_id for a in answers]
    if not ids:
        return {}
    return {q.id: q for q in session.exec(select(Question).where(Question.id.in_(ids)))}


def _find_submission(session: Session, quiz_id: int, student_id: int) -> Optional[Submission]:
    q = select(Submission).where(Submission.quiz_id == quiz_id, Submission.student_id == student_id)
    return session.exec(q).first()


def _detail(session: Session, submission: Submission, quiz: Optional[Quiz] = None, redact: bool = False) -> dict:
    quiz = quiz or session.get(Quiz, submission.quiz_id)
    answers = _answers(session, submission.id)
    questions = _questions(session, answers)
    started_at = as_utc(submission.started_at)
    expires_at = None
    if quiz is not None and quiz.time_limit:
        expires_at = started_at + timedelta(minutes=quiz.time_limit)

    answer_rows = []
    for answer in answers:
        row = {
            "question_id": answer.question_id,
            "position": answer.position,
            "selected_options": answer.selected_list(),
            "written_answer": answer.written_answer,
            "is_evaluated": answer.is_evaluated,
            "score": answer.score,
            "feedback": answer.feedback,
        }
        if redact:
            row["score"] = None
            row["feedback"] = None
        answer_rows.append(row)

    return {
        "id": submission.id,
        "quiz_id": submission.quiz_id,
        "student_id": submission.student_id,
        "state": submission_state(submission),
        "started_at": started_at,
        "submitted_at": as_utc(submission.submitted_at),
        "expires_at": expires_at,
        "is_complete": submission.is_complete,
        "answers": answer_rows,
        "auto_score": sum(a.score or 0.0 for a in answers if a.is_evaluated),
        "max_score": float(sum(q.points for q in questions.values())),
        "total_score": submission.total_score,
        "percentage_score": submission.percentage_score,
        "is_passed": submission.is_passed,
        "graded_by": submission.graded_by,
        "graded_at": as_utc(submission.graded_at),
    }


def _student_submission(session: Session, principal: Principal, submission_id: int) -> Submission:
    require_role(principal, Role.STUDENT)
    q = select(Submission).where(Submission.id == submission_id).with_for_update()
    submission = session.exec(q).first()
    if not submission:
        raise NotFoundError("Submission not found")
    if submission.student_id != principal.user_id:
        raise ForbiddenError("You don't have permission to modify this submission")
    return submission


def start_attempt(principal: Principal, quiz_id: int) -> dict:
    """Start the caller's attempt, or return the one already in progress."""
    require_role(principal, Role.STUDENT)
    try:
        with transaction() as session:
            quiz = session.get(Quiz, quiz_id)
            if not quiz:
                raise NotFoundError("Quiz not found")
            if not quiz.is_published:
                raise BadRequestError("This quiz is not available")
            if not is_available(quiz):
                raise BadRequestError("This quiz is not currently available")
            if not is_enrolled(session, principal.user_id, quiz.class_id):
                raise ForbiddenError("You are not enrolled in this class")

            existing = _find_submission(session, quiz.id, principal.user_id)
            if existing is not None:
                if existing.is_complete:
                    raise BadRequestError("You have already completed this quiz")
                logger.info("Student %s resumed submission %s", principal.user_id, existing.id)
                return _detail(session, existing, quiz)

            q = select(Question).where(Question.quiz_id == quiz.id).order_by(Question.order_index, Question.id)
            questions = list(session.exec(q))
            if not questions:
                raise BadRequestError("This quiz has no questions")

            submission = Submission(
                quiz_id=quiz.id,
                student_id=principal.user_id,
                started_at=now_utc(),
                is_complete=False,
            )
            session.add(submission)
            session.flush()
            session.add_all(
                Answer(submission_id=submission.id, question_id=question.id, position=position)
                for position, question in enumerate(questions, start=1)
            )
            session.flush()
            detail = _detail(session, submission, quiz)
    except IntegrityError:
        # lost a race against a concurrent start; the unique (quiz, student)
        # constraint kept the other attempt, so hand that one back
        with get_session() as session:
            existing = _find_submission(session, quiz_id, principal.user_id)
            if existing is None:
                raise
            if existing.is_complete:
                raise BadRequestError("You have already completed this quiz")
            logger.warning("Concurrent start of quiz %s by student %s, returning submission %s",
                           quiz_id, principal.user_id, existing.id)
            return _detail(session, existing)

    logger.info("Student %s started submission %s for quiz %s", principal.user_id, detail["id"], quiz_id)
    return detail


def record_answer(principal: Principal, submission_id: int, question_id: int, payload: AnswerPayload | dict) -> dict:
    """Overwrite one answer slot. Nothing is scored here."""
    payload = validate_input(AnswerPayload, payload)
    with transaction() as session:
        submission = _student_submission(session, principal, submission_id)
        if submission.is_complete:
            raise BadRequestError("Submission is already complete")
        q = select(Answer).where(Answer.submission_id == submission.id, Answer.question_id == question_id)
        answer = session.exec(q).first()
        question = session.get(Question, question_id)
        if answer is None or question is None:
            raise NotFoundError("Question is not part of this submission")

        if question.question_type == "mcq":
            if payload.selected_options is None:
                raise ValidationError.for_field("selected_options", "Selected options are required")
            option_count = len(question.option_list())
            invalid = [i for i in payload.selected_options if i < 0 or i >= option_count]
            if invalid:
                raise ValidationError.for_field(
                    "selected_options", f"Option indexes out of range: {', '.join(map(str, invalid))}"
                )
            answer.selected_options = json.dumps(sorted(set(payload.selected_options)))
        else:
            if payload.written_answer is None:
                raise ValidationError.for_field("written_answer", "Written answer is required")
            answer.written_answer = payload.written_answer
        session.add(answer)
        bump_version(session, submission)
        session.flush()
        detail = _detail(session, submission)
    logger.info("Submission %s: answer recorded for question %s", submission_id, question_id)
    return detail


def complete_attempt(principal: Principal, submission_id: int) -> dict:
    """Close the attempt and score its multiple-choice answers.

    Written answers stay unevaluated until the teacher grades them.
    """
    with transaction() as session:
        submission = _student_submission(session, principal, submission_id)
        if submission.is_complete:
            raise BadRequestError("Submission is already complete")
        answers = _answers(session, submission.id)
        questions = _questions(session, answers)
        for answer in answers:
            question = questions.get(answer.question_id)
            if question is None or question.question_type != "mcq":
                continue
            answer.score = score_multiple_choice(question.option_list(), answer.selected_list(), question.points)
            answer.is_evaluated = True
            session.add(answer)
        bump_version(session, submission, is_complete=True, submitted_at=now_utc())
        session.flush()
        detail = _detail(session, submission)
    logger.info("Submission %s completed, auto score %s", submission_id, detail["auto_score"])
    return detail


def grade_attempt(principal: Principal, submission_id: int, grades: Iterable[Any], total_score: Optional[float] = None) -> dict:
    """Write teacher scores and feedback and finalize the result.

    ``total_score`` defaults to the sum of all evaluated answer scores.
    """
    require_role(principal, Role.TEACHER)
    entries = [validate_input(GradeEntry, g, default_field="answers") for g in grades]
    if total_score is not None and total_score < 0:
        raise ValidationError.for_field("total_score", "Total score must be at least 0")
    settings = get_settings()

    with transaction() as session:
        q = select(Submission).where(Submission.id == submission_id).with_for_update()
        submission = session.exec(q).first()
        if not submission:
            raise NotFoundError("Submission not found")
        quiz = session.get(Quiz, submission.quiz_id)
        if quiz is None or quiz.created_by != principal.user_id:
            raise ForbiddenError("You don't have permission to grade this submission")
        if not submission.is_complete:
            raise BadRequestError("Submission has not been completed yet")
        if submission.graded_at is not None and not settings.allow_regrade:
            raise BadRequestError("Submission has already been graded")

        answers = {a.question_id: a for a in _answers(session, submission.id)}
        questions = _questions(session, answers.values())
        errors: dict[str, list[str]] = {}
        for entry in entries:
            if entry.question_id not in answers:
                errors.setdefault("answers", []).append(
                    f"Question {entry.question_id} is not part of this submission"
                )
            elif settings.enforce_score_ceiling and entry.score > questions[entry.question_id].points:
                errors.setdefault("answers", []).append(
                    f"Score for question {entry.question_id} exceeds its "
                    f"{questions[entry.question_id].points} points"
                )
        if errors:
            raise ValidationError(errors)

        for entry in entries:
            answer = answers[entry.question_id]
            answer.score = entry.score
            answer.feedback = entry.feedback
            answer.is_evaluated = True
            session.add(answer)

        if total_score is None:
            total_score = sum(a.score or 0.0 for a in answers.values() if a.is_evaluated)
        max_score = sum(q.points for q in questions.values())
        result = summarize(total_score, max_score, quiz.passing_score)

        bump_version(
            session,
            submission,
            total_score=result.total_score,
            percentage_score=result.percentage_score,
            is_passed=result.is_passed,
            graded_by=principal.user_id,
            graded_at=now_utc(),
        )
        session.flush()
        detail = _detail(session, submission, quiz)
    logger.info("Submission %s graded by teacher %s: %s/%s (%.1f%%)", submission_id, principal.user_id,
                result.total_score, result.max_score, result.percentage_score)
    return detail


def get_submission(principal: Principal, submission_id: int) -> dict:
    with get_session() as session:
        submission = session.get(Submission, submission_id)
        if not submission:
            raise NotFoundError("Submission not found")
        quiz = session.get(Quiz, submission.quiz_id)
        if principal.is_student:
            if submission.student_id != principal.user_id:
                raise ForbiddenError("You don't have permission to access this submission")
            redact = submission.is_complete and quiz is not None and not quiz.allow_review
            return _detail(session, submission, quiz, redact=redact)
        if principal.is_teacher:
            if quiz is None or quiz.created_by != principal.user_id:
                raise ForbiddenError("You don't have permission to access this submission")
        elif not principal.is_admin:
            raise ForbiddenError("You don't have permission to access this submission")
        return _detail(session, submission, quiz)


def find_attempt(principal: Principal, quiz_id: int) -> Optional[dict]:
    """The caller's attempt at ``quiz_id``, if any."""
    require_role(principal, Role.STUDENT)
    with get_session() as session:
        submission = _find_submission(session, quiz_id, principal.user_id)
        if submission is None:
            return None
        quiz = session.get(Quiz, quiz_id)
        redact = submission.is_complete and quiz is not None and not quiz.allow_review
        return _detail(session, submission, quiz, redact=redact)


def get_quiz_submissions(principal: Principal, quiz_id: int) -> list[dict]:
    require_role(principal, Role.TEACHER)
    with get_session() as session:
        quiz = session.exec(
            select(Quiz).where(Quiz.id == quiz_id, Quiz.created_by == principal.user_id)
        ).first()
        if not quiz:
            raise NotFoundError("Quiz not found or you don't have permission")
        q = select(Submission).where(Submission.quiz_id == quiz_id).order_by(Submission.id)
        return [_detail(session, submission, quiz) for submission in list(session.exec(q))]


def get_attempted_quizzes(principal: Principal) -> list[Quiz]:
    """Quizzes the student has an attempt at, whether or not still open."""
    require_role(principal, Role.STUDENT)
    with get_session() as session:
        q = (
            select(Quiz)
            .join(Submission, Submission.quiz_id == Quiz.id)
            .where(Submission.student_id == principal.user_id)
            .order_by(Submission.started_at.desc())
        )
        return list(session.exec(q))
