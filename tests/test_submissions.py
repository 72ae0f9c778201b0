from datetime import timedelta

import pytest

from quizly import submissions
from quizly.classes import join_class_by_code
from quizly.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from quizly.models import now_utc
from quizly.questions import add_questions_batch
from quizly.quizzes import create_quiz, get_student_quizzes, publish_quiz, update_quiz
from quizly.submissions import (
    complete_attempt,
    find_attempt,
    get_attempted_quizzes,
    get_quiz_submissions,
    get_submission,
    grade_attempt,
    record_answer,
    start_attempt,
)


@pytest.fixture
def quiz(teacher, draft_quiz, question_defs):
    """Published quiz: mcq worth 2 (option 1 correct), written worth 3."""
    add_questions_batch(teacher, draft_quiz.id, [
        question_defs.mcq('Which is a vector?', correct=(1,), count=3, points=2),
        question_defs.written('Define velocity', points=3),
    ])
    update_quiz(teacher, draft_quiz.id, {'passing_score': 50, 'time_limit': 15})
    return publish_quiz(teacher, draft_quiz.id)


def _ids(attempt):
    return [a['question_id'] for a in attempt['answers']]


def _finished(student, quiz, selected=(1,), text='distance over time'):
    attempt = start_attempt(student, quiz.id)
    mcq_id, written_id = _ids(attempt)
    record_answer(student, attempt['id'], mcq_id, {'selected_options': list(selected)})
    record_answer(student, attempt['id'], written_id, {'written_answer': text})
    return complete_attempt(student, attempt['id'])


def test_start_creates_answer_slots(student, quiz):
    attempt = start_attempt(student, quiz.id)
    assert attempt['state'] == 'in_progress'
    assert [a['position'] for a in attempt['answers']] == [1, 2]
    assert all(a['selected_options'] == [] and a['written_answer'] == '' for a in attempt['answers'])
    assert attempt['max_score'] == 5.0
    assert attempt['expires_at'] - attempt['started_at'] == timedelta(minutes=15)


def test_start_twice_returns_same_attempt(teacher, student, quiz):
    first = start_attempt(student, quiz.id)
    second = start_attempt(student, quiz.id)
    assert first['id'] == second['id']
    assert len(get_quiz_submissions(teacher, quiz.id)) == 1


def test_start_after_completion_is_rejected(student, quiz):
    _finished(student, quiz)
    with pytest.raises(BadRequestError):
        start_attempt(student, quiz.id)


def test_concurrent_start_returns_existing_attempt(monkeypatch, student, quiz):
    existing = start_attempt(student, quiz.id)
    real_find = submissions._find_submission
    calls = []

    def stale_find(session, quiz_id, student_id):
        calls.append(quiz_id)
        if len(calls) == 1:
            return None
        return real_find(session, quiz_id, student_id)

    monkeypatch.setattr(submissions, '_find_submission', stale_find)
    again = start_attempt(student, quiz.id)
    assert again['id'] == existing['id']
    assert len(calls) == 2


def test_start_requires_enrollment(make_user, quiz):
    with pytest.raises(ForbiddenError):
        start_attempt(make_user('student'), quiz.id)


def test_start_requires_published_and_open_quiz(teacher, student, classroom, draft_quiz, question_defs):
    add_questions_batch(teacher, draft_quiz.id, [question_defs.mcq()])
    with pytest.raises(BadRequestError):
        start_attempt(student, draft_quiz.id)

    later = create_quiz(teacher, {
        'title': 'Next week', 'class_id': classroom.id,
        'available_from': now_utc() + timedelta(days=7),
    })
    add_questions_batch(teacher, later.id, [question_defs.mcq()])
    publish_quiz(teacher, later.id)
    with pytest.raises(BadRequestError):
        start_attempt(student, later.id)

    with pytest.raises(NotFoundError):
        start_attempt(student, 9999)


def test_teacher_cannot_start(teacher, quiz):
    with pytest.raises(ForbiddenError):
        start_attempt(teacher, quiz.id)


def test_record_answer_validation(make_user, student, quiz):
    attempt = start_attempt(student, quiz.id)
    mcq_id, written_id = _ids(attempt)

    with pytest.raises(ValidationError) as exc:
        record_answer(student, attempt['id'], mcq_id, {'selected_options': [3]})
    assert 'selected_options' in exc.value.errors
    with pytest.raises(ValidationError):
        record_answer(student, attempt['id'], mcq_id, {'written_answer': 'B'})
    with pytest.raises(ValidationError):
        record_answer(student, attempt['id'], written_id, {'selected_options': [0]})
    with pytest.raises(NotFoundError):
        record_answer(student, attempt['id'], 9999, {'written_answer': 'x'})
    with pytest.raises(ForbiddenError):
        record_answer(make_user('student'), attempt['id'], written_id, {'written_answer': 'x'})


def test_record_answer_overwrites(student, quiz):
    attempt = start_attempt(student, quiz.id)
    mcq_id, written_id = _ids(attempt)
    record_answer(student, attempt['id'], mcq_id, {'selected_options': [0]})
    detail = record_answer(student, attempt['id'], mcq_id, {'selected_options': [2, 1, 2]})
    assert detail['answers'][0]['selected_options'] == [1, 2]
    assert detail['answers'][0]['is_evaluated'] is False
    assert detail['answers'][0]['score'] is None


def test_complete_scores_multiple_choice_only(student, quiz):
    done = _finished(student, quiz)
    mcq_answer, written_answer = done['answers']
    assert done['state'] == 'completed'
    assert done['submitted_at'] is not None
    assert (mcq_answer['is_evaluated'], mcq_answer['score']) == (True, 2.0)
    assert (written_answer['is_evaluated'], written_answer['score']) == (False, None)
    assert done['auto_score'] == 2.0
    assert done['total_score'] is None


def test_complete_wrong_selection_scores_zero(student, quiz):
    done = _finished(student, quiz, selected=(0, 1))
    assert done['answers'][0]['score'] == 0.0


def test_no_answers_after_completion(student, quiz):
    done = _finished(student, quiz)
    with pytest.raises(BadRequestError):
        record_answer(student, done['id'], _ids(done)[1], {'written_answer': 'late edit'})
    with pytest.raises(BadRequestError):
        complete_attempt(student, done['id'])


def test_grade_full_flow(teacher, student, quiz):
    done = _finished(student, quiz)
    written_id = _ids(done)[1]

    graded = grade_attempt(teacher, done['id'], [
        {'question_id': written_id, 'score': 3, 'feedback': 'Good'},
    ], total_score=5)

    assert graded['state'] == 'graded'
    assert graded['total_score'] == 5
    assert graded['percentage_score'] == 100.0
    assert graded['is_passed'] is True
    assert graded['graded_by'] == teacher.user_id
    assert graded['answers'][1]['feedback'] == 'Good'

    seen = get_submission(student, done['id'])
    assert seen['answers'][1]['score'] == 3.0


def test_grade_total_defaults_to_sum(teacher, student, quiz):
    done = _finished(student, quiz, selected=(0,))
    graded = grade_attempt(teacher, done['id'], [{'question_id': _ids(done)[1], 'score': 2.5}])
    assert graded['total_score'] == 2.5
    assert graded['percentage_score'] == 50.0
    assert graded['is_passed'] is True


def test_grade_below_passing_score(teacher, student, quiz):
    done = _finished(student, quiz, selected=(0,))
    graded = grade_attempt(teacher, done['id'], [{'question_id': _ids(done)[1], 'score': 1}])
    assert graded['percentage_score'] == 20.0
    assert graded['is_passed'] is False


def test_grade_requires_completed_attempt(teacher, student, quiz):
    attempt = start_attempt(student, quiz.id)
    with pytest.raises(BadRequestError):
        grade_attempt(teacher, attempt['id'], [])


def test_grade_by_other_teacher(make_user, student, quiz):
    done = _finished(student, quiz)
    with pytest.raises(ForbiddenError):
        grade_attempt(make_user('teacher'), done['id'], [])
    with pytest.raises(ForbiddenError):
        grade_attempt(student, done['id'], [])


def test_regrade_needs_flag(monkeypatch, teacher, student, quiz):
    done = _finished(student, quiz)
    written_id = _ids(done)[1]
    grade_attempt(teacher, done['id'], [{'question_id': written_id, 'score': 1}])
    with pytest.raises(BadRequestError):
        grade_attempt(teacher, done['id'], [{'question_id': written_id, 'score': 3}])

    monkeypatch.setenv('QUIZLY_ALLOW_REGRADE', 'true')
    regraded = grade_attempt(teacher, done['id'], [{'question_id': written_id, 'score': 3}])
    assert regraded['total_score'] == 5.0


def test_grade_rejects_foreign_question(teacher, student, quiz):
    done = _finished(student, quiz)
    with pytest.raises(ValidationError) as exc:
        grade_attempt(teacher, done['id'], [{'question_id': 9999, 'score': 1}])
    assert 'answers' in exc.value.errors
    assert get_submission(teacher, done['id'])['state'] == 'completed'


def test_grade_rejects_negative_scores(teacher, student, quiz):
    done = _finished(student, quiz)
    with pytest.raises(ValidationError):
        grade_attempt(teacher, done['id'], [{'question_id': _ids(done)[1], 'score': -1}])
    with pytest.raises(ValidationError):
        grade_attempt(teacher, done['id'], [], total_score=-2)


def test_score_ceiling_is_optional(monkeypatch, teacher, student, quiz):
    done = _finished(student, quiz)
    written_id = _ids(done)[1]

    monkeypatch.setenv('QUIZLY_ENFORCE_SCORE_CEILING', '1')
    with pytest.raises(ValidationError):
        grade_attempt(teacher, done['id'], [{'question_id': written_id, 'score': 4}])

    monkeypatch.delenv('QUIZLY_ENFORCE_SCORE_CEILING')
    graded = grade_attempt(teacher, done['id'], [{'question_id': written_id, 'score': 4}])
    assert graded['total_score'] == 6.0
    assert graded['percentage_score'] == 120.0


def test_review_hidden_when_disallowed(teacher, student, quiz):
    update_quiz(teacher, quiz.id, {'allow_review': False})
    done = _finished(student, quiz)
    grade_attempt(teacher, done['id'], [{'question_id': _ids(done)[1], 'score': 3, 'feedback': 'ok'}])

    mine = get_submission(student, done['id'])
    assert all(a['score'] is None and a['feedback'] is None for a in mine['answers'])
    assert mine['total_score'] == 5.0
    assert find_attempt(student, quiz.id)['answers'][1]['feedback'] is None

    theirs = get_submission(teacher, done['id'])
    assert theirs['answers'][1]['feedback'] == 'ok'


def test_submission_access(make_user, teacher, student, quiz):
    attempt = start_attempt(student, quiz.id)
    with pytest.raises(ForbiddenError):
        get_submission(make_user('student'), attempt['id'])
    with pytest.raises(ForbiddenError):
        get_submission(make_user('teacher'), attempt['id'])
    with pytest.raises(NotFoundError):
        get_submission(teacher, 9999)
    assert find_attempt(make_user('student'), quiz.id) is None


def test_quiz_submissions_listing(make_user, teacher, student, classroom, quiz):
    other = make_user('student')
    join_class_by_code(classroom.code.lower(), other.user_id)
    _finished(student, quiz)
    start_attempt(other, quiz.id)

    rows = get_quiz_submissions(teacher, quiz.id)
    assert [r['student_id'] for r in rows] == [student.user_id, other.user_id]
    assert [r['state'] for r in rows] == ['completed', 'in_progress']

    with pytest.raises(NotFoundError):
        get_quiz_submissions(make_user('teacher'), quiz.id)


def test_answer_rejected_after_concurrent_completion(monkeypatch, student, quiz):
    attempt = start_attempt(student, quiz.id)
    mcq_id = _ids(attempt)[0]
    record_answer(student, attempt['id'], mcq_id, {'selected_options': [1]})

    real_lookup = submissions._student_submission
    calls = []

    def lookup_then_complete(session, principal, submission_id):
        found = real_lookup(session, principal, submission_id)
        calls.append(submission_id)
        if len(calls) == 1:
            # the student submits from another tab while this answer is in flight
            complete_attempt(principal, submission_id)
        return found

    monkeypatch.setattr(submissions, '_student_submission', lookup_then_complete)
    with pytest.raises(ConflictError):
        record_answer(student, attempt['id'], mcq_id, {'selected_options': [0]})

    monkeypatch.setattr(submissions, '_student_submission', real_lookup)
    mine = get_submission(student, attempt['id'])
    assert mine['state'] == 'completed'
    assert mine['answers'][0]['selected_options'] == [1]
    assert mine['answers'][0]['score'] == 2.0


def test_attempt_reachable_after_window_closes(teacher, student, quiz):
    _finished(student, quiz)
    assert get_attempted_quizzes(student)[0].id == quiz.id

    update_quiz(teacher, quiz.id, {'available_to': now_utc() - timedelta(minutes=1)})
    assert get_student_quizzes(student) == []
    assert [q.id for q in get_attempted_quizzes(student)] == [quiz.id]
    assert find_attempt(student, quiz.id)['state'] == 'completed'
