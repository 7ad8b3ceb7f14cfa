import streamlit as st
import sentry_sdk

from infrastructure.observability import setup_observability
setup_observability()

from utils import session_manager
from use_cases import bootstrap

st.set_page_config(page_title="Travel Bookings", layout="centered")

# Health Check (Basic load-balancer heartbeat)
if st.query_params.get("health") == "1":
    st.write({"status": "ok"})
    st.stop()

# --- STARTUP ORCHESTRATION ---
startup_result = bootstrap.run_startup()
if startup_result.status == "STOP":
    st.stop()

reconciler = session_manager.get_reconciler()
session = reconciler.session

if not session.is_authenticated:
    st.title("Sign in")
    with st.form("login_form", clear_on_submit=False):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        as_admin = st.checkbox("Administrator")
        submitted = st.form_submit_button("Sign in")
    if submitted:
        result = reconciler.admin_login(email, password) if as_admin else reconciler.login(email, password)
        if result.ok:
            st.session_state.redirect_to = session_manager.pop_return_path()
            st.rerun()
        st.error(result.reason)
    st.stop()

sentry_sdk.set_user({"id": session.user.id, "role": session.user.role})

st.title(f"Welcome, {session.user.name}")
if session.last_error:
    st.warning(f"Could not refresh your profile ({session.last_error.value}); showing saved details.")
st.caption(session.user.email)

if st.button("Sign out", key="logout_btn", type="secondary"):
    session_manager.logout()
