import logging
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
from quizly.errors import QuizlyError
from quizly.quizzes import get_quiz, get_student_quizzes
from quizly.submissions import (
    complete_attempt,
    find_attempt,
    get_attempted_quizzes,
    record_answer,
    start_attempt,
)

logger = logging.getLogger(__name__)

st.set_page_config(page_title="Take a Quiz", page_icon="📝", layout="wide")

init_app()
apply_global_styles()
render_sidebar()

principal = require_principal("student")

render_hero("Take a Quiz", "Each quiz can be attempted once. Answers are saved until you submit.")

open_quizzes = get_student_quizzes(principal)
open_ids = {q.id for q in open_quizzes}
# finished attempts stay reachable after the window closes
quizzes = open_quizzes + [q for q in get_attempted_quizzes(principal) if q.id not in open_ids]
if not quizzes:
    st.info("No quiz is open for your classes right now.")
    st.stop()

quiz_map = {q.title if q.id in open_ids else f"{q.title} (closed)": q for q in quizzes}
quiz = quiz_map[st.selectbox("Quiz", list(quiz_map.keys()))]
if quiz.description:
    st.write(quiz.description)

attempt = find_attempt(principal, quiz.id)

if attempt is None:
    if quiz.time_limit:
        st.caption(f"Time limit: {quiz.time_limit} minutes")
    if st.button("Start", type="primary"):
        try:
            start_attempt(principal, quiz.id)
            st.rerun()
        except QuizlyError as exc:
            show_error(exc)
    st.stop()

if attempt["state"] != "in_progress":
    st.success(f"Submitted {format_compact_time(attempt['submitted_at'])}")
    if attempt["state"] == "graded":
        st.metric("Score", format_score(attempt["total_score"], attempt["max_score"]),
                  f"{attempt['percentage_score']:.0f}%")
        if attempt["is_passed"] is not None:
            st.write("Passed ✅" if attempt["is_passed"] else "Not passed ❌")
    else:
        st.info("Waiting for the teacher to grade this attempt.")
    if quiz.allow_review:
        for i, answer in enumerate(attempt["answers"], 1):
            score = answer["score"]
            st.write(f"**Question {i}:** {'not graded yet' if score is None else score}")
            if answer["feedback"]:
                st.caption(answer["feedback"])
    st.stop()

if attempt["expires_at"]:
    st.caption(f"Suggested finish time: {format_compact_time(attempt['expires_at'])}")

try:
    questions = get_quiz(principal, quiz.id, with_questions=True)["questions"]
except QuizlyError as exc:
    show_error(exc)
    st.stop()

answers = {a["question_id"]: a for a in attempt["answers"]}
for i, question in enumerate(questions, 1):
    answer = answers.get(question["id"])
    if answer is None:
        continue
    st.markdown(f"**{i}. {question['question_text']}** ({question['points']} pt)")
    if question["question_type"] == "mcq":
        labels = [o["text"] for o in question["options"]]
        chosen = st.multiselect(
            "Select all that apply",
            options=list(range(len(labels))),
            default=answer["selected_options"],
            format_func=lambda idx, labels=labels: labels[idx],
            key=f"sel_{attempt['id']}_{question['id']}",
        )
        payload = {"selected_options": chosen}
    else:
        text = st.text_area("Your answer", value=answer["written_answer"],
                            key=f"txt_{attempt['id']}_{question['id']}")
        payload = {"written_answer": text}
    if st.button("Save answer", key=f"save_{attempt['id']}_{question['id']}"):
        try:
            record_answer(principal, attempt["id"], question["id"], payload)
            st.success("Saved.")
        except QuizlyError as exc:
            show_error(exc)

st.markdown("---")
if st.button("Submit quiz", type="primary"):
    try:
        complete_attempt(principal, attempt["id"])
        st.rerun()
    except QuizlyError as exc:
        show_error(exc)
