import itertools
import os

import pytest

# must be set before quizly.db creates its engine
TEST_DB = os.path.join(os.getcwd(), 'test_quizly.db')
os.environ['DATABASE_URL'] = f"sqlite:///{TEST_DB}"

from sqlmodel import SQLModel  # noqa: E402

from quizly.auth import principal_for  # noqa: E402
from quizly.classes import create_class, join_class_by_code  # noqa: E402
from quizly.db import engine, get_session, init_db  # noqa: E402
from quizly.models import User  # noqa: E402
from quizly.quizzes import create_quiz  # noqa: E402

FLAGS = ('QUIZLY_ALLOW_REGRADE', 'QUIZLY_ALLOW_UNPUBLISH', 'QUIZLY_ENFORCE_SCORE_CEILING')


@pytest.fixture(scope='session', autouse=True)
def reset_db():
    # Ensure a clean DB for the test session
    try:
        os.remove(TEST_DB)
    except FileNotFoundError:
        pass
    init_db()
    yield
    engine.dispose()
    try:
        os.remove(TEST_DB)
    except FileNotFoundError:
        pass


@pytest.fixture(autouse=True)
def clean_tables(monkeypatch):
    for flag in FLAGS:
        monkeypatch.delenv(flag, raising=False)
    SQLModel.metadata.drop_all(engine)
    init_db()
    yield


@pytest.fixture
def make_user():
    counter = itertools.count(1)

    def _make(role='student'):
        n = next(counter)
        with get_session() as s:
            user = User(email=f'{role}{n}@example.com', password_hash='x', full_name=f'{role.title()} {n}', role=role)
            s.add(user)
            s.commit()
            s.refresh(user)
        return principal_for(user)

    return _make


@pytest.fixture
def teacher(make_user):
    return make_user('teacher')


@pytest.fixture
def student(make_user):
    return make_user('student')


@pytest.fixture
def classroom(teacher, student):
    cls = create_class('Physics', 'Unit test class', teacher.user_id)
    join_class_by_code(cls.code, student.user_id)
    return cls


@pytest.fixture
def draft_quiz(teacher, classroom):
    return create_quiz(teacher, {'title': 'Kinematics', 'class_id': classroom.id})


def mcq(text='Pick one', correct=(0,), count=2, points=1, **extra):
    options = [{'text': f'Option {i}', 'is_correct': i in correct} for i in range(count)]
    return {'question_type': 'mcq', 'question_text': text, 'options': options, 'points': points, **extra}


def written(text='Explain', points=1, **extra):
    return {'question_type': 'written', 'question_text': text, 'sample_answer': 'Sample', 'points': points, **extra}


@pytest.fixture
def question_defs():
    """Builders for question definitions: ``question_defs.mcq(...)``, ``question_defs.written(...)``."""
    return type('QuestionDefs', (), {'mcq': staticmethod(mcq), 'written': staticmethod(written)})
