import io
import logging

import pandas as pd
import streamlit as st

from quizly.app_state import init_app
from quizly.ui import (
    apply_global_styles,
    format_compact_time,
    format_score,
    render_hero,
    render_sidebar,
    require_principal,
    show_error,
)
from quizly.auth import get_user_by_id
from quizly.errors import QuizlyError
from quizly.questions import get_questions_for_quiz
from quizly.quizzes import get_teacher_quizzes
from quizly.submissions import get_quiz_submissions, grade_attempt

logger = logging.getLogger(__name__)

st.set_page_config(page_title="Grading", page_icon="✅", layout="wide")

init_app()
apply_global_styles()
render_sidebar()

principal = require_principal("teacher")

render_hero("Grading", "Review completed attempts, score written answers and finalize results.")

quizzes = [q for q in get_teacher_quizzes(principal) if q.is_published]
if not quizzes:
    st.info("No published quizzes yet.")
    st.stop()

quiz_map = {q.title: q for q in quizzes}
quiz = quiz_map[st.selectbox("Quiz", list(quiz_map.keys()))]

try:
    submissions = get_quiz_submissions(principal, quiz.id)
except QuizlyError as exc:
    show_error(exc)
    st.stop()

if not submissions:
    st.info("No attempts yet.")
    st.stop()


def _student_label(student_id):
    user = get_user_by_id(student_id)
    if not user:
        return str(student_id)
    return user.full_name or user.email


rows = []
for sub in submissions:
    rows.append({
        "submission": sub["id"],
        "student": _student_label(sub["student_id"]),
        "state": sub["state"],
        "submitted": format_compact_time(sub["submitted_at"]),
        "auto score": sub["auto_score"],
        "score": format_score(sub["total_score"], sub["max_score"]),
        "percentage": sub["percentage_score"],
        "passed": sub["is_passed"],
    })
df = pd.DataFrame(rows)
st.dataframe(df, use_container_width=True, hide_index=True)

csv_buf = io.StringIO()
df.to_csv(csv_buf, index=False)
st.download_button("Download CSV", csv_buf.getvalue(), file_name=f"quiz_{quiz.id}_results.csv", mime="text/csv")

gradable = [s for s in submissions if s["state"] != "in_progress"]
if not gradable:
    st.info("No completed attempts to grade yet.")
    st.stop()

sub_map = {f"#{s['id']} · {_student_label(s['student_id'])} ({s['state']})": s for s in gradable}
submission = sub_map[st.selectbox("Attempt", list(sub_map.keys()))]
questions = {q.id: q for q in get_questions_for_quiz(quiz.id)}

grades = []
for i, answer in enumerate(submission["answers"], 1):
    question = questions.get(answer["question_id"])
    if question is None:
        continue
    st.markdown(f"**{i}. {question.question_text}** ({question.points} pt)")
    if question.question_type == "mcq":
        options = question.option_list()
        picked = [options[idx]["text"] for idx in answer["selected_options"] if idx < len(options)]
        st.write(f"Selected: {', '.join(picked) or '-'}")
    else:
        st.write(answer["written_answer"] or "-")
        if question.sample_answer:
            st.caption(f"Sample answer: {question.sample_answer}")
    key = f"{submission['id']}_{question.id}"
    score = st.number_input("Score", min_value=0.0, value=float(answer["score"] or 0.0), step=0.5,
                            key=f"score_{key}")
    feedback = st.text_input("Feedback", value=answer["feedback"] or "", key=f"feedback_{key}")
    grades.append({"question_id": question.id, "score": score, "feedback": feedback or None})

total = sum(g["score"] for g in grades)
st.markdown(f"**Total:** {format_score(total, submission['max_score'])}")

if st.button("Save grade", type="primary"):
    try:
        graded = grade_attempt(principal, submission["id"], grades, total_score=total)
        st.success(f"Graded: {graded['percentage_score']:.0f}%")
        st.rerun()
    except QuizlyError as exc:
        show_error(exc)
