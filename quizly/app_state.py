import streamlit as st

from quizly.db import init_db
from quizly.logging_config import setup_logging


def init_app():
    setup_logging()
    init_db()

    if "user" not in st.session_state:
        st.session_state.user = None

    if "selected_quiz_id" not in st.session_state:
        st.session_state.selected_quiz_id = None

    if "active_submission_id" not in st.session_state:
        st.session_state.active_submission_id = None
