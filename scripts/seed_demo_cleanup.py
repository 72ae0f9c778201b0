import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from sqlalchemy import delete
from sqlmodel import select

from quizly.auth import principal_for
from quizly.db import get_session, transaction
from quizly.models import Answer, Class, Enrollment, Quiz, Submission, User
from quizly.quizzes import delete_quiz


SEED_USER_PREFIX = "seed_student"
SEED_QUIZ_PREFIX = "[SEED]"


def main():
    parser = argparse.ArgumentParser(description="Cleanup seeded demo data for a class.")
    parser.add_argument("--class-code", required=True, help="Class code to cleanup.")
    args = parser.parse_args()

    with get_session() as session:
        cls = session.exec(select(Class).where(Class.code == args.class_code)).first()
        if not cls:
            raise SystemExit(f"Class not found for code: {args.class_code}")
        teacher = session.get(User, cls.owner_id)
        quizzes = session.exec(select(Quiz).where(Quiz.class_id == cls.id)).all()
        seed_quiz_ids = [q.id for q in quizzes if q.title.startswith(SEED_QUIZ_PREFIX)]

    for quiz_id in seed_quiz_ids:
        delete_quiz(principal_for(teacher), quiz_id)

    with transaction() as session:
        seed_users = session.exec(
            select(User).where(User.email.like(f"{SEED_USER_PREFIX}+%"))
        ).all()
        seed_user_ids = [u.id for u in seed_users]
        if seed_user_ids:
            submission_ids = select(Submission.id).where(Submission.student_id.in_(seed_user_ids))
            session.exec(delete(Answer).where(Answer.submission_id.in_(submission_ids)))
            session.exec(delete(Submission).where(Submission.student_id.in_(seed_user_ids)))
            session.exec(
                delete(Enrollment).where(
                    Enrollment.class_id == cls.id,
                    Enrollment.user_id.in_(seed_user_ids),
                )
            )
            session.exec(delete(User).where(User.id.in_(seed_user_ids)))

    print(f"Seed cleanup complete for class code {args.class_code}.")


if __name__ == "__main__":
    main()
