import logging
import streamlit as st

from quizly.app_state import init_app
from quizly.ui import apply_global_styles, render_hero, render_sidebar, require_principal, show_error
from quizly.classes import create_class, get_user_classes, join_class_by_code
from quizly.errors import QuizlyError

logger = logging.getLogger(__name__)

st.set_page_config(page_title="Classes", page_icon="🏫", layout="wide")

init_app()
apply_global_styles()
render_sidebar()

principal = require_principal()

render_hero("Classes", "Teachers create classes; students join them with the join code.")

if principal.is_teacher:
    st.subheader("Create a class")
    class_title = st.text_input("Class title")
    class_desc = st.text_area("Description")
    if st.button("Create", type="primary"):
        if not class_title.strip():
            st.error("Class title cannot be empty.")
        else:
            try:
                cls = create_class(class_title.strip(), class_desc.strip(), principal.user_id)
                st.success(f"Class created. Join code: {cls.code}")
            except Exception:
                logger.exception("Class creation failed")
                st.error("Could not create the class. Please try again.")
else:
    st.subheader("Join a class")
    code = st.text_input("Join code", max_chars=6)
    if st.button("Join", type="primary"):
        try:
            join_class_by_code(code, principal.user_id)
            st.success("Joined.")
            st.rerun()
        except QuizlyError as exc:
            show_error(exc)

st.markdown("---")
st.subheader("Your classes")
classes = get_user_classes(principal.user_id)
if not classes:
    st.info("No classes yet.")
for cls in classes:
    with st.expander(f"{cls.title} ({cls.code})"):
        st.write(cls.description or "")
