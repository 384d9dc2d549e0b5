import jwt
import pytest
from fastapi import HTTPException

from boatcare.core.auth import get_current_user
from boatcare.core.config import get_settings
from boatcare.schemas.service_request import ActorRole


def _make_token(
    secret: str,
    aud: str,
    *,
    app_role: str | None = "CORPORATE",
    user_role: str | None = None,
) -> str:
    app_meta = {}
    if app_role is not None:
        app_meta["role"] = app_role
    user_meta = {}
    if user_role is not None:
        user_meta["role"] = user_role

    payload = {
        "sub": "00000000-0000-0000-0000-000000000123",
        "email": "corporate@test.local",
        "app_metadata": app_meta,
        "user_metadata": user_meta,
        "aud": aud,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def jwt_env(monkeypatch):
    monkeypatch.setenv("SUPABASE_JWT_SECRET", "test-secret")
    monkeypatch.setenv("SUPABASE_JWT_AUDIENCE", "authenticated")
    get_settings.cache_clear()


def test_get_current_user_accepts_matching_audience(jwt_env):
    token = _make_token("test-secret", "authenticated")
    user = get_current_user(authorization=f"Bearer {token}")
    assert user.role == "CORPORATE"
    actor = user.to_actor()
    assert actor.role == ActorRole.CORPORATE
    assert actor.id == "00000000-0000-0000-0000-000000000123"


def test_get_current_user_rejects_wrong_audience(jwt_env):
    token = _make_token("test-secret", "other")
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=f"Bearer {token}")
    assert exc.value.status_code == 401


def test_get_current_user_rejects_wrong_secret(jwt_env):
    token = _make_token("another-secret", "authenticated")
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=f"Bearer {token}")
    assert exc.value.status_code == 401


def test_get_current_user_ignores_user_metadata_role(jwt_env):
    token = _make_token("test-secret", "authenticated", app_role=None, user_role="CORPORATE")
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=f"Bearer {token}")
    assert exc.value.status_code == 403


def test_get_current_user_rejects_unknown_role(jwt_env):
    token = _make_token("test-secret", "authenticated", app_role="ADMIN")
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=f"Bearer {token}")
    assert exc.value.status_code == 403


def test_missing_bearer_token(jwt_env):
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=None)
    assert exc.value.status_code == 401
