from unittest.mock import MagicMock, patch

import pytest

from infrastructure.repositories.sqlite_audit_repository import AuditAction
from use_cases import rbac_policy
from use_cases.rbac_policy import (
    ADMIN_ONLY,
    AUTHENTICATED,
    ROLE_TABLE,
    USER_ONLY,
    AccessOutcome,
    LiteralSegment,
    ParamSegment,
    RoleTable,
    compile_pattern,
    decide,
)
from use_cases.session_models import Session, SessionStatus, UserSnapshot


def session_for(role):
    user = UserSnapshot(id="1", name="T", email="t@x.io", role=role)
    return Session(status=SessionStatus.AUTHENTICATED, token="tok", user=user)


def test_compile_pattern_builds_typed_segments():
    pattern = compile_pattern("/checkout/:id")
    assert pattern.segments == (LiteralSegment("checkout"), ParamSegment("id"))


@pytest.mark.parametrize("bad", ["bookings/:id", "/bookings/:"])
def test_compile_pattern_rejects_malformed(bad):
    with pytest.raises(ValueError):
        compile_pattern(bad)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/bookings/abc123", True),
        ("/bookings/BK-2025-001", True),
        ("/bookings/abc123/extra", False),
        ("/bookings", False),
        ("/bookings//", False),
        ("/other/abc123", False),
    ],
)
def test_parameterized_pattern_is_full_path_match(path, expected):
    assert compile_pattern("/bookings/:id").matches(path) is expected


def test_literal_pattern_does_not_prefix_match():
    pattern = compile_pattern("/admin")
    assert pattern.matches("/admin")
    assert not pattern.matches("/admin/bookings")


def test_pattern_params_extraction():
    assert compile_pattern("/checkout/:id").params("/checkout/pkg-9") == {"id": "pkg-9"}
    assert compile_pattern("/checkout/:id").params("/checkout") is None


def test_query_string_is_ignored():
    assert compile_pattern("/bookings/:id").matches("/bookings/b1?tab=payments")


@pytest.mark.parametrize("role", ["user", "admin", "guest"])
def test_detail_path_rule_holds_for_any_role(role):
    table = RoleTable({role: ["/bookings/:id"]})
    assert table.allows(role, "/bookings/abc123")
    assert not table.allows(role, "/bookings/abc123/extra")


def test_role_without_table_entry_is_unrestricted():
    assert RoleTable({"admin": ["/admin"]}).allows("user", "/anything")


@pytest.mark.parametrize("requirement", [AUTHENTICATED, ADMIN_ONLY, USER_ONLY])
def test_unauthenticated_session_redirects_to_login(requirement):
    decision = decide(Session(), requirement, "/bookings/b1")

    assert decision.outcome == AccessOutcome.REDIRECT_LOGIN
    assert decision.requested_path == "/bookings/b1"
    assert decision.redirect_to == "/login"


def test_authenticating_session_is_pending():
    session = Session(status=SessionStatus.AUTHENTICATING, token="tok")
    assert decide(session, AUTHENTICATED, "/profile").outcome == AccessOutcome.PENDING


def test_role_mismatch_redirects_unauthorized():
    decision = decide(session_for("user"), ADMIN_ONLY, "/admin/bookings")

    assert decision.outcome == AccessOutcome.REDIRECT_UNAUTHORIZED
    assert decision.redirect_to == "/unauthorized"


def test_role_requirement_checked_before_route_table():
    # `/bookings/:id` is in the user table, but the admin requirement fails first.
    decision = decide(session_for("user"), ADMIN_ONLY, "/bookings/b1")
    assert decision.outcome == AccessOutcome.REDIRECT_UNAUTHORIZED


def test_path_outside_role_table_redirects_unauthorized():
    decision = decide(session_for("user"), AUTHENTICATED, "/admin/users")
    assert decision.outcome == AccessOutcome.REDIRECT_UNAUTHORIZED


def test_allowed_paths():
    assert decide(session_for("user"), USER_ONLY, "/checkout/pkg1").allowed
    assert decide(session_for("admin"), ADMIN_ONLY, "/admin/payments").allowed
    assert not decide(session_for("admin"), AUTHENTICATED, "/bookings/b1").allowed


def test_default_table_contents():
    assert ROLE_TABLE.allows("user", "/bookings/abc123")
    assert not ROLE_TABLE.allows("user", "/bookings/abc123/extra")
    assert ROLE_TABLE.allows("admin", "/admin/dashboard")


@patch("auth.get_audit_repo")
def test_enforce_deny_logs_audit(mock_get_audit_repo):
    mock_repo = MagicMock()
    mock_get_audit_repo.return_value = mock_repo

    decision = rbac_policy.enforce(session_for("user"), ADMIN_ONLY, "/admin/users")

    assert decision.outcome == AccessOutcome.REDIRECT_UNAUTHORIZED
    mock_repo.log_action.assert_called_once()
    call_args, call_kwargs = mock_repo.log_action.call_args
    assert call_args[0] == AuditAction.RBAC_DENIED
    assert call_kwargs.get("result") == "deny"
    assert call_kwargs.get("target_type") == "route"
    assert call_kwargs.get("actor_user_id") == "1"
    assert call_kwargs.get("actor_role") == "user"
    assert call_kwargs["metadata"]["path"] == "/admin/users"
    assert call_kwargs["metadata"]["requirement"] == "admin"


@patch("auth.get_audit_repo")
def test_enforce_allow_and_pending_are_not_audited(mock_get_audit_repo):
    rbac_policy.enforce(session_for("user"), USER_ONLY, "/profile")
    rbac_policy.enforce(Session(status=SessionStatus.AUTHENTICATING, token="t"), AUTHENTICATED, "/profile")

    mock_get_audit_repo.return_value.log_action.assert_not_called()
