import pytest

from use_cases.session_models import Session, SessionStatus, UserSnapshot, is_admin


def test_is_admin() -> None:
    admin_user = UserSnapshot(id="1", name="Admin", email="a@x.io", role="admin")
    regular_user = UserSnapshot(id="2", name="User", email="u@x.io", role="user")
    assert is_admin(admin_user) is True
    assert is_admin(regular_user) is False
    assert is_admin(None) is False


def test_from_api_accepts_mongo_style_ids() -> None:
    user = UserSnapshot.from_api({"_id": "abc", "name": "Zara", "email": "z@x.io", "role": "admin", "profileImage": "z.png"})
    assert user == UserSnapshot(id="abc", name="Zara", email="z@x.io", role="admin", profile_image="z.png")


def test_from_api_unknown_role_is_user() -> None:
    assert UserSnapshot.from_api({"id": 7, "role": "superuser"}).role == "user"


def test_from_api_requires_id() -> None:
    with pytest.raises(ValueError):
        UserSnapshot.from_api({"name": "nobody"})


def test_merged_only_touches_profile_fields() -> None:
    user = UserSnapshot(id="1", name="Old", email="o@x.io", role="user")
    merged = user.merged({"name": "New", "profileImage": "n.png", "role": "admin", "id": "2"})
    assert merged == UserSnapshot(id="1", name="New", email="o@x.io", role="user", profile_image="n.png")


def test_session_token_presence_must_match_status() -> None:
    with pytest.raises(ValueError):
        Session(status=SessionStatus.UNAUTHENTICATED, token="tok")
    with pytest.raises(ValueError):
        Session(status=SessionStatus.AUTHENTICATED)

    assert Session(status=SessionStatus.AUTHENTICATING, token="tok").is_authenticated is False
