import streamlit as st

from quizly.app_state import init_app
from quizly.ui import apply_global_styles, render_hero, render_sidebar, current_principal
from quizly.classes import get_user_classes

st.set_page_config(
    page_title="Quizly",
    page_icon="📝",
    layout="wide",
    initial_sidebar_state="expanded"
)

init_app()
apply_global_styles()
render_sidebar()

render_hero("Quizly", "Classes, quizzes and grading for teachers and students.")

principal = current_principal()
if principal is None:
    st.info("Sign in or register from the sidebar to get started.")
    st.stop()

classes = get_user_classes(principal.user_id)

col1, col2 = st.columns(2)
with col1:
    st.subheader("Your classes")
    if classes:
        for cls in classes:
            st.write(f"- **{cls.title}** ({cls.code})")
    else:
        st.info("No classes yet.")

with col2:
    st.subheader("Next steps")
    if principal.is_teacher:
        st.page_link("pages/1_Classes.py", label="Create a class and share its join code", icon="🏫")
        st.page_link("pages/2_Quiz_Builder.py", label="Build and publish a quiz", icon="🛠️")
        st.page_link("pages/4_Grading.py", label="Grade completed attempts", icon="✅")
    else:
        st.page_link("pages/1_Classes.py", label="Join a class with a code", icon="🏫")
        st.page_link("pages/3_Take_Quiz.py", label="Take an available quiz", icon="📝")
