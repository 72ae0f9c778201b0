import logging
import random
import string

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from quizly.db import get_session
from quizly.errors import NotFoundError
from quizly.models import Class, Enrollment

logger = logging.getLogger(__name__)

CODE_ATTEMPTS = 5


def _generate_code(length: int = 6) -> str:
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


def create_class(title: str, description: str | None, owner_id: int, code: str | None = None) -> Class:
    """Create a class and enroll its owner as teacher.

    A collision on the unique join code is retried with a fresh code.
    """
    for _ in range(CODE_ATTEMPTS):
        candidate = (code or _generate_code()).strip().upper()
        code = None
        try:
            with get_session() as session:
                cls = Class(title=title, description=description, owner_id=owner_id, code=candidate)
                session.add(cls)
                session.flush()
                session.add(Enrollment(class_id=cls.id, user_id=owner_id, role_in_class='teacher'))
                session.commit()
                session.refresh(cls)
                logger.info("Class %s created by user %s with code %s", cls.id, owner_id, cls.code)
                return cls
        except IntegrityError:
            logger.warning("Join code %s already taken, retrying", candidate)
    raise RuntimeError("Could not allocate a unique join code")


def join_class_by_code(code: str, user_id: int) -> Enrollment:
    with get_session() as session:
        q = select(Class).where(Class.code == code.strip().upper())
        cls = session.exec(q).first()
        if not cls:
            raise NotFoundError("Class not found")
        # joining twice returns the existing enrollment
        q2 = select(Enrollment).where(Enrollment.class_id == cls.id, Enrollment.user_id == user_id)
        existing = session.exec(q2).first()
        if existing:
            return existing
        enroll = Enrollment(class_id=cls.id, user_id=user_id, role_in_class='student')
        session.add(enroll)
        session.commit()
        session.refresh(enroll)
        logger.info("User %s joined class %s", user_id, cls.id)
        return enroll


def get_user_classes(user_id: int):
    with get_session() as session:
        q = select(Class).join(Enrollment, Enrollment.class_id == Class.id).where(Enrollment.user_id == user_id)
        return list(session.exec(q))


def get_owned_class(session: Session, teacher_id: int, class_id: int) -> Class | None:
    q = select(Class).where(Class.id == class_id, Class.owner_id == teacher_id)
    return session.exec(q).first()


def is_enrolled(session: Session, student_id: int, class_id: int) -> bool:
    q = select(Enrollment).where(
        Enrollment.class_id == class_id,
        Enrollment.user_id == student_id,
        Enrollment.role_in_class == 'student',
    )
    return session.exec(q).first() is not None


def enrolled_class_ids(session: Session, student_id: int) -> list[int]:
    q = select(Enrollment.class_id).where(
        Enrollment.user_id == student_id,
        Enrollment.role_in_class == 'student',
    )
    return list(session.exec(q))
