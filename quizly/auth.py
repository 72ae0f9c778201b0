from dataclasses import dataclass

from passlib.context import CryptContext
from sqlmodel import select

from quizly.db import get_session
from quizly.errors import BadRequestError, ForbiddenError
from quizly.models import User
from quizly.schemas import Role

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, resolved before any quiz operation runs."""
    user_id: int
    role: str

    @property
    def is_teacher(self) -> bool:
        return self.role == Role.TEACHER.value

    @property
    def is_student(self) -> bool:
        return self.role == Role.STUDENT.value

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def principal_for(user: User) -> Principal:
    return Principal(user_id=user.id, role=user.role)


def require_role(principal: Principal, *roles: Role) -> None:
    allowed = {Role(r).value for r in roles}
    if principal.role not in allowed:
        raise ForbiddenError("You don't have permission to perform this action")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_user(email: str, password: str, full_name: str | None = None, role: str = "student"):
    if role not in {r.value for r in Role}:
        raise BadRequestError(f"Unknown role: {role}")
    with get_session() as session:
        q = select(User).where(User.email == email)
        existing = session.exec(q).first()
        if existing:
            raise BadRequestError("User already exists")
        user = User(email=email, password_hash=hash_password(password), full_name=full_name, role=role)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


def authenticate_user(email: str, password: str):
    with get_session() as session:
        q = select(User).where(User.email == email)
        user = session.exec(q).first()
        if not user:
            return None
        if verify_password(password, user.password_hash):
            return user
        return None


def get_user_by_id(user_id: int):
    with get_session() as session:
        return session.get(User, user_id)
