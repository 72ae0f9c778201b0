import logging
from datetime import datetime, time, timezone

import streamlit as st

from quizly.app_state import init_app
from quizly.ui import apply_global_styles, render_hero, render_sidebar, require_principal, show_error
from quizly.classes import get_user_classes
from quizly.config import get_settings
from quizly.errors import QuizlyError
from quizly.questions import (
    create_question,
    delete_question,
    get_questions_for_quiz,
    reorder_questions,
    update_question,
)
from quizly.quizzes import (
    create_quiz,
    delete_quiz,
    get_teacher_quizzes,
    publish_quiz,
    unpublish_quiz,
    update_quiz,
)

logger = logging.getLogger(__name__)

st.set_page_config(page_title="Quiz Builder", page_icon="🛠️", layout="wide")

init_app()
apply_global_styles()
render_sidebar()

principal = require_principal("teacher")

render_hero("Quiz Builder", "Draft a quiz, add questions in order, then publish it to the class.")

classes = [c for c in get_user_classes(principal.user_id) if c.owner_id == principal.user_id]
if not classes:
    st.info("Create a class first.")
    st.page_link("pages/1_Classes.py", label="Classes", icon="🏫")
    st.stop()

class_map = {f"{c.title} ({c.code})": c for c in classes}
active_class = class_map[st.selectbox("Class", list(class_map.keys()))]


def _combine(day, moment):
    if not day:
        return None
    return datetime.combine(day, moment or time(0, 0), tzinfo=timezone.utc)


with st.expander("New quiz", expanded=False):
    title = st.text_input("Title")
    description = st.text_area("Description")
    col1, col2, col3 = st.columns(3)
    with col1:
        time_limit = st.number_input("Time limit (minutes, 0 = none)", min_value=0, max_value=180, value=0)
    with col2:
        passing_score = st.number_input("Passing score % (0 = none)", min_value=0, max_value=100, value=0)
    with col3:
        allow_review = st.checkbox("Students may review answers", value=True)
    col4, col5 = st.columns(2)
    with col4:
        from_day = st.date_input("Available from (UTC)", value=None, key="from_day")
        from_time = st.time_input("From time", value=None, key="from_time")
    with col5:
        to_day = st.date_input("Available to (UTC)", value=None, key="to_day")
        to_time = st.time_input("To time", value=None, key="to_time")
    if st.button("Create quiz", type="primary"):
        try:
            quiz = create_quiz(principal, {
                "title": title.strip(),
                "description": description.strip() or None,
                "class_id": active_class.id,
                "time_limit": time_limit or None,
                "passing_score": passing_score or None,
                "allow_review": allow_review,
                "available_from": _combine(from_day, from_time),
                "available_to": _combine(to_day, to_time),
            })
            st.session_state.selected_quiz_id = quiz.id
            st.success(f"Quiz created: {quiz.title}")
            st.rerun()
        except QuizlyError as exc:
            show_error(exc)

quizzes = get_teacher_quizzes(principal, class_id=active_class.id)
if not quizzes:
    st.info("No quizzes in this class yet.")
    st.stop()

quiz_map = {f"{q.title} ({'published' if q.is_published else 'draft'})": q for q in quizzes}
labels = list(quiz_map.keys())
default = next(
    (i for i, q in enumerate(quizzes) if q.id == st.session_state.selected_quiz_id), 0
)
quiz = quiz_map[st.selectbox("Quiz", labels, index=default)]
st.session_state.selected_quiz_id = quiz.id

questions = get_questions_for_quiz(quiz.id)
st.markdown(f"**Status:** {'Published' if quiz.is_published else 'Draft'} · **Questions:** {len(questions)}")

with st.expander("Quiz settings"):
    new_title = st.text_input("Title", value=quiz.title, key=f"title_{quiz.id}")
    new_desc = st.text_area("Description", value=quiz.description or "", key=f"desc_{quiz.id}")
    new_review = st.checkbox("Students may review answers", value=quiz.allow_review, key=f"review_{quiz.id}")
    if st.button("Save settings", key=f"save_settings_{quiz.id}"):
        try:
            update_quiz(principal, quiz.id, {
                "title": new_title.strip(),
                "description": new_desc.strip() or None,
                "allow_review": new_review,
            })
            st.success("Saved.")
            st.rerun()
        except QuizlyError as exc:
            show_error(exc)

if not quiz.is_published:
    st.subheader("Add question")
    q_type = st.radio("Type", ["Multiple choice", "Written"], horizontal=True)
    q_text = st.text_area("Question text", key="new_q_text")
    q_points = st.number_input("Points", min_value=1, value=1, key="new_q_points")
    definition = {"question_text": q_text.strip(), "points": int(q_points)}
    if q_type == "Multiple choice":
        option_count = st.number_input("Number of options", min_value=2, max_value=8, value=4)
        options = []
        for i in range(int(option_count)):
            c1, c2 = st.columns([5, 1])
            with c1:
                text = st.text_input(f"Option {i + 1}", key=f"opt_text_{i}")
            with c2:
                correct = st.checkbox("Correct", key=f"opt_correct_{i}")
            options.append({"text": text.strip(), "is_correct": correct})
        definition.update({"question_type": "mcq", "options": options})
    else:
        sample = st.text_area("Sample answer (teacher reference)", key="new_q_sample")
        definition.update({"question_type": "written", "sample_answer": sample.strip() or None})

    if st.button("Add question", type="primary"):
        try:
            create_question(principal, quiz.id, definition)
            st.success("Question added.")
            st.rerun()
        except QuizlyError as exc:
            show_error(exc)

st.subheader("Questions")
if not questions:
    st.info("No questions yet. A quiz needs at least one question before it can be published.")

new_orders = []
for question in questions:
    with st.expander(f"{question.order_index}. {question.question_text}", expanded=False):
        st.caption(f"{'Multiple choice' if question.question_type == 'mcq' else 'Written'} · {question.points} pt")
        if question.question_type == "mcq":
            for i, option in enumerate(question.option_list()):
                mark = "✅" if option.get("is_correct") else "▫️"
                st.write(f"{mark} {i + 1}. {option['text']}")
        elif question.sample_answer:
            st.info(question.sample_answer)
        if not quiz.is_published:
            order = st.number_input("Order", min_value=1, value=question.order_index, key=f"order_{question.id}")
            new_orders.append({"question_id": question.id, "order_index": int(order)})
            points = st.number_input("Points", min_value=1, value=question.points, key=f"points_{question.id}")
            c1, c2 = st.columns(2)
            with c1:
                if st.button("Save points", key=f"save_points_{question.id}"):
                    try:
                        update_question(principal, question.id, {"points": int(points)})
                        st.rerun()
                    except QuizlyError as exc:
                        show_error(exc)
            with c2:
                if st.button("Delete", key=f"delete_{question.id}"):
                    try:
                        delete_question(principal, question.id)
                        st.rerun()
                    except QuizlyError as exc:
                        show_error(exc)

if new_orders and st.button("Save order"):
    try:
        reorder_questions(principal, quiz.id, new_orders)
        st.success("Order saved.")
        st.rerun()
    except QuizlyError as exc:
        show_error(exc)

st.markdown("---")
col1, col2 = st.columns(2)
with col1:
    if not quiz.is_published:
        if st.button("Publish", type="primary"):
            try:
                publish_quiz(principal, quiz.id)
                st.success("Published.")
                st.rerun()
            except QuizlyError as exc:
                show_error(exc)
    elif get_settings().allow_unpublish:
        if st.button("Unpublish"):
            try:
                unpublish_quiz(principal, quiz.id)
                st.rerun()
            except QuizlyError as exc:
                show_error(exc)
with col2:
    confirm = st.checkbox("Also delete all attempts", key=f"confirm_delete_{quiz.id}")
    if st.button("Delete quiz", disabled=not confirm):
        try:
            delete_quiz(principal, quiz.id)
            st.session_state.selected_quiz_id = None
            st.rerun()
        except QuizlyError as exc:
            show_error(exc)
