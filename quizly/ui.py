import logging
from datetime import datetime

import streamlit as st

from quizly.auth import Principal, authenticate_user, create_user
from quizly.errors import QuizlyError, ValidationError

logger = logging.getLogger(__name__)

ERROR_PREFIX = {
    400: "Request rejected",
    403: "Not allowed",
    404: "Not found",
    409: "Changed meanwhile",
}


def apply_global_styles():
    st.markdown(
        """
        <style>
        @import url('https://fonts.googleapis.com/css2?family=Space+Grotesk:wght@400;600;700&family=IBM+Plex+Sans:wght@400;600&display=swap');

        :root {
            --bg-0: #0b0f14;
            --bg-1: #0f141b;
            --fg-0: #e6edf3;
            --fg-1: #c6d1dc;
            --accent: #4cc9f0;
        }

        .stApp {
            background: radial-gradient(1200px 600px at 15% -10%, #1a2230 0%, var(--bg-0) 60%);
            color: var(--fg-0);
            font-family: "IBM Plex Sans", sans-serif;
        }

        h1, h2, h3, h4 {
            font-family: "Space Grotesk", sans-serif;
            letter-spacing: 0.3px;
        }

        .hero {
            padding: 1.5rem 1.75rem;
            background: linear-gradient(120deg, #141b24 0%, #0f141b 55%, #111925 100%);
            border: 1px solid #1f2a38;
            border-radius: 16px;
            margin-bottom: 1.5rem;
        }

        .hero p {
            color: var(--fg-1);
            margin: 0;
        }

        [data-testid="stSidebarNav"] {
            display: none;
        }
        </style>
        """,
        unsafe_allow_html=True,
    )


def render_hero(title: str, subtitle: str):
    st.markdown(
        f"""
        <div class="hero">
            <h2>{title}</h2>
            <p>{subtitle}</p>
        </div>
        """,
        unsafe_allow_html=True,
    )


def render_sidebar():
    with st.sidebar:
        st.header("Account")
        render_auth()
        st.divider()
        render_nav()


def render_auth():
    if st.session_state.user is None:
        auth_tab = st.selectbox("Account", ["Sign in", "Register"], key="auth_tab")
        if auth_tab == "Sign in":
            email = st.text_input("Email", key="login_email")
            password = st.text_input("Password", type="password", key="login_password")
            if st.button("Sign in", key="login_btn"):
                try:
                    user = authenticate_user(email, password)
                    if user:
                        st.session_state.user = {
                            "id": user.id,
                            "email": user.email,
                            "role": user.role,
                            "full_name": user.full_name,
                        }
                        st.rerun()
                    else:
                        st.error("Wrong email or password")
                except Exception:
                    logger.exception("Sign-in failed")
                    st.error("Could not sign in. Please try again.")
        else:
            reg_email = st.text_input("Email", key="reg_email")
            reg_name = st.text_input("Full name", key="reg_name")
            reg_password = st.text_input("Password", type="password", key="reg_password")
            role_choice = st.selectbox("Role", ["student", "teacher"], key="reg_role")
            if st.button("Register", key="reg_btn"):
                try:
                    create_user(reg_email, reg_password, full_name=reg_name, role=role_choice)
                    st.success("Registered. You can sign in now.")
                except QuizlyError as exc:
                    show_error(exc)
                except Exception:
                    logger.exception("Registration failed")
                    st.error("Registration failed. Please try again.")
    else:
        name = st.session_state.user.get("full_name") or st.session_state.user.get("email")
        st.markdown(f"**Signed in as:** {name} ({st.session_state.user.get('role')})")
        if st.button("Sign out", key="logout_btn"):
            st.session_state.user = None
            st.session_state.active_submission_id = None
            st.rerun()


def render_nav():
    user = st.session_state.get("user")
    role = user.get("role") if user else "student"

    st.header("Menu")
    st.page_link("app.py", label="Home", icon="🏠")
    st.page_link("pages/1_Classes.py", label="Classes", icon="🏫")
    if role == "teacher":
        st.page_link("pages/2_Quiz_Builder.py", label="Quiz Builder", icon="🛠️")
        st.page_link("pages/4_Grading.py", label="Grading", icon="✅")
    else:
        st.page_link("pages/3_Take_Quiz.py", label="Take a Quiz", icon="📝")


def current_principal() -> Principal | None:
    user = st.session_state.get("user")
    if not user:
        return None
    return Principal(user_id=user["id"], role=user["role"])


def require_principal(*roles: str) -> Principal:
    """Stop the page unless someone with one of ``roles`` is signed in."""
    principal = current_principal()
    if principal is None:
        st.info("Please sign in first.")
        st.stop()
    if roles and principal.role not in roles:
        st.info(f"This page is only available to {' / '.join(roles)} accounts.")
        st.stop()
    return principal


def show_error(exc: Exception):
    if isinstance(exc, ValidationError):
        st.error(ERROR_PREFIX[400])
        for field, messages in exc.errors.items():
            st.caption(f"{field}: {'; '.join(messages)}")
    elif isinstance(exc, QuizlyError):
        prefix = ERROR_PREFIX.get(exc.status_code, "Error")
        st.error(f"{prefix}: {exc.message}")
    else:
        logger.exception("Unexpected error", exc_info=exc)
        st.error("Something went wrong. Please try again.")


def format_compact_time(value):
    if not value:
        return ""
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value))
        except ValueError:
            return str(value)
    if dt.tzinfo:
        dt = dt.astimezone()
    return dt.strftime("%d %b %H:%M")


def format_score(score, max_score):
    def as_int_or_float(value):
        try:
            num = float(value)
        except (TypeError, ValueError):
            return value
        if num.is_integer():
            return int(num)
        return num

    if score is None:
        return "-"
    return f"{as_int_or_float(score)}/{as_int_or_float(max_score)}"
