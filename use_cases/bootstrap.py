"""Startup orchestration: schema setup and session restore."""

from dataclasses import dataclass
from typing import Literal, Tuple

import auth
from utils import session_manager

StartupStatus = Literal["CONTINUE", "STOP"]


@dataclass(frozen=True)
class StartupResult:
    """Result contract for startup/bootstrap orchestration."""

    status: StartupStatus
    planned_steps: Tuple[str, ...]
    session_status: str = ""


def run_startup() -> StartupResult:
    """Prepare the session database and restore the stored session once per browser session."""
    executed_steps = []

    auth.init_session_db()
    executed_steps.append("init_session_db")

    session_manager.init_session_state()
    executed_steps.append("init_session_state")

    reconciler = session_manager.get_reconciler()
    if not session_manager.st.session_state.session_restored:
        reconciler.start()
        executed_steps.append("restore_session")
        session_manager.st.session_state.session_restored = True

    return StartupResult(
        status="CONTINUE",
        planned_steps=tuple(executed_steps),
        session_status=reconciler.session.status.value,
    )
