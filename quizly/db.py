from contextlib import contextmanager
from typing import Callable, TypeVar

from sqlalchemy import update
from sqlmodel import SQLModel, create_engine, Session

from quizly.config import get_settings
from quizly.errors import ConflictError

DATABASE_URL = get_settings().database_url

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)

T = TypeVar("T")


def init_db():
    # models must be imported so their tables are registered on the metadata
    import quizly.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    return Session(engine, expire_on_commit=False)


@contextmanager
def transaction():
    """Session whose writes commit together, or roll back on any exception."""
    with get_session() as session:
        with session.begin():
            yield session


def run_in_transaction(fn: Callable[[Session], T]) -> T:
    with transaction() as session:
        return fn(session)


def bump_version(session: Session, row, **values) -> None:
    """Advance ``row.version`` only if no one else has since it was read.

    Raises ConflictError when another transaction committed a change to the
    row first.
    """
    model = type(row)
    seen = row.version
    stmt = (
        update(model)
        .where(model.id == row.id, model.version == seen)
        .values(version=seen + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if session.exec(stmt).rowcount != 1:
        raise ConflictError(f"{model.__name__} {row.id} was changed by another request, please retry")
    row.version = seen + 1
    for field, value in values.items():
        setattr(row, field, value)
