import pytest

from quizly.auth import Principal, authenticate_user, create_user, get_user_by_id, require_role
from quizly.classes import create_class, get_user_classes, join_class_by_code
from quizly.errors import BadRequestError, ForbiddenError, NotFoundError
from quizly.schemas import Role


def test_register_and_sign_in():
    user = create_user('ada@example.com', 's3cret', full_name='Ada', role='teacher')
    assert user.password_hash != 's3cret'
    assert authenticate_user('ada@example.com', 's3cret').id == user.id
    assert authenticate_user('ada@example.com', 'wrong') is None
    assert authenticate_user('nobody@example.com', 's3cret') is None
    assert get_user_by_id(user.id).role == 'teacher'


def test_register_rejects_duplicates_and_unknown_roles():
    create_user('dup@example.com', 'pw')
    with pytest.raises(BadRequestError):
        create_user('dup@example.com', 'pw')
    with pytest.raises(BadRequestError):
        create_user('new@example.com', 'pw', role='principal')


def test_require_role():
    teacher = Principal(user_id=1, role='teacher')
    require_role(teacher, Role.TEACHER, Role.ADMIN)
    with pytest.raises(ForbiddenError):
        require_role(teacher, Role.STUDENT)


def test_owner_is_enrolled_as_teacher(teacher):
    cls = create_class('Biology', None, teacher.user_id)
    assert len(cls.code) == 6
    assert [c.id for c in get_user_classes(teacher.user_id)] == [cls.id]


def test_join_code_collision_is_retried(teacher):
    first = create_class('One', None, teacher.user_id, code='SAME01')
    second = create_class('Two', None, teacher.user_id, code='SAME01')
    assert first.code == 'SAME01'
    assert second.code != 'SAME01'


def test_join_is_idempotent(teacher, student):
    cls = create_class('History', None, teacher.user_id)
    first = join_class_by_code(f'  {cls.code.lower()} ', student.user_id)
    second = join_class_by_code(cls.code, student.user_id)
    assert first.id == second.id
    assert first.role_in_class == 'student'


def test_join_unknown_code(student):
    with pytest.raises(NotFoundError):
        join_class_by_code('NOPE00', student.user_id)


def test_custom_join_code_is_normalized(teacher, student):
    cls = create_class('Art', None, teacher.user_id, code=' abc123 ')
    assert cls.code == 'ABC123'
    assert join_class_by_code('abc123', student.user_id).class_id == cls.id
