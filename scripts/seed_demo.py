import argparse
import random
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from sqlmodel import select

from quizly.auth import principal_for
from quizly.classes import join_class_by_code
from quizly.db import get_session, init_db
from quizly.logging_config import setup_logging
from quizly.models import Class, User
from quizly.quizzes import create_quiz_with_questions, publish_quiz
from quizly.submissions import complete_attempt, record_answer, start_attempt


SEED_USER_PREFIX = "seed_student"
SEED_QUIZ_PREFIX = "[SEED]"


def _seed_students(cls, count):
    users = []
    with get_session() as session:
        for i in range(count):
            email = f"{SEED_USER_PREFIX}+{cls.code.lower()}_{i+1}@example.com"
            user = session.exec(select(User).where(User.email == email)).first()
            if not user:
                user = User(
                    email=email,
                    password_hash="seed",
                    full_name=f"Seed Student {i+1}",
                    role="student",
                )
                session.add(user)
                session.commit()
                session.refresh(user)
            users.append(user)
    for user in users:
        join_class_by_code(cls.code, user.id)
    return users


def _question_defs(quiz_no, count):
    defs = []
    for qn in range(count):
        if qn % 3 == 2:
            defs.append({
                "question_type": "written",
                "question_text": f"Seed written question {quiz_no}-{qn+1}",
                "sample_answer": "Any reasonable explanation",
                "points": 2,
            })
        else:
            defs.append({
                "question_type": "mcq",
                "question_text": f"Seed MCQ {quiz_no}-{qn+1}",
                "options": [
                    {"text": "Option A", "is_correct": True},
                    {"text": "Option B", "is_correct": False},
                    {"text": "Option C", "is_correct": False},
                ],
                "points": 1,
            })
    return defs


def main():
    parser = argparse.ArgumentParser(description="Seed demo quizzes and attempts for a class.")
    parser.add_argument("--class-code", required=True, help="Class code to seed.")
    parser.add_argument("--students", type=int, default=8)
    parser.add_argument("--quizzes", type=int, default=2)
    parser.add_argument("--questions", type=int, default=6)
    args = parser.parse_args()

    setup_logging()
    init_db()
    random.seed(42)

    with get_session() as session:
        cls = session.exec(select(Class).where(Class.code == args.class_code)).first()
        if not cls:
            raise SystemExit(f"Class not found for code: {args.class_code}")
        teacher = session.get(User, cls.owner_id)

    teacher_p = principal_for(teacher)
    students = _seed_students(cls, args.students)

    for qi in range(args.quizzes):
        quiz, _ = create_quiz_with_questions(
            teacher_p,
            {"title": f"{SEED_QUIZ_PREFIX} Demo Quiz {qi+1}", "class_id": cls.id, "passing_score": 50},
            _question_defs(qi + 1, args.questions),
        )
        publish_quiz(teacher_p, quiz.id)

        for idx, student in enumerate(students):
            success_rate = (0.35, 0.6, 0.85)[idx % 3]
            student_p = principal_for(student)
            attempt = start_attempt(student_p, quiz.id)
            for answer in attempt["answers"]:
                if answer["position"] % 3 == 0:
                    record_answer(student_p, attempt["id"], answer["question_id"],
                                  {"written_answer": "Seeded answer"})
                else:
                    picked = 0 if random.random() < success_rate else 1
                    record_answer(student_p, attempt["id"], answer["question_id"],
                                  {"selected_options": [picked]})
            complete_attempt(student_p, attempt["id"])

    print(
        f"Seed complete for class {cls.title} ({cls.code}). "
        f"Students={args.students}, Quizzes={args.quizzes}"
    )


if __name__ == "__main__":
    main()
