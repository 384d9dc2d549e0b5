import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Header, HTTPException

from boatcare.core.config import get_settings
from boatcare.schemas.service_request import ActorRole
from boatcare.services.request_records import ActorContext

logger = logging.getLogger(__name__)

ALLOWED_ROLES = {role.value for role in ActorRole}


@dataclass
class CurrentUser:
    id: str
    role: str
    email: Optional[str] = None

    def to_actor(self) -> ActorContext:
        return ActorContext(role=ActorRole(self.role), id=self.id)


def _extract_role(payload: dict) -> Optional[str]:
    # Role comes only from server-managed app_metadata; user_metadata is user-editable.
    app_meta = payload.get("app_metadata") or {}
    raw = app_meta.get("role")
    if raw is None:
        return None
    role = str(raw).strip().upper()
    if role not in ALLOWED_ROLES:
        return None
    return role


def _decode_options(settings):
    audience = (settings.supabase_jwt_audience or "").strip()
    decode_kwargs = {}
    options = {}
    if audience:
        decode_kwargs["audience"] = audience
        options["verify_aud"] = True
    else:
        options["verify_aud"] = False
    return decode_kwargs, options


def decode_token(token: str) -> Optional[dict]:
    """Verify an HS256 bearer token; returns the claims or None."""
    settings = get_settings()
    decode_kwargs, options = _decode_options(settings)
    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            options=options,
            **decode_kwargs,
        )
    except jwt.InvalidTokenError as exc:
        logger.debug("Token verification failed: %s", exc)
        return None


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> CurrentUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Missing bearer token")

    token = authorization.split(" ", 1)[1].strip()
    settings = get_settings()
    if not settings.supabase_jwt_secret:
        raise HTTPException(500, "SUPABASE_JWT_SECRET is not configured")

    payload = decode_token(token)
    if payload is None:
        raise HTTPException(401, "Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(401, "Invalid token")

    role = _extract_role(payload)
    if not role:
        raise HTTPException(403, "Missing role")

    return CurrentUser(id=str(user_id), role=role, email=payload.get("email"))

