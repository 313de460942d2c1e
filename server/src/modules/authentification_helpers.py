import secrets
from typing import Optional, Tuple
from fastapi import Request

from db_mongo import get_col, USERS_COL
from settings import settings
from server.src.modules.errors import Forbidden, Unauthorized

# token -> (discord user id, role); filled by the Discord OAuth callback service
SESSIONS: dict[str, Tuple[str, str]] = {}

_ALLOWED_ROLES = {"user", "moderator", "admin"}


def make_token() -> str:
    return secrets.token_hex(16)

def get_auth_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth.split(" ", 1)[1].strip()
    return None

def _csv_ids(raw: str | None) -> set[str]:
    return {part.strip() for part in str(raw or "").split(",") if part.strip()}

def find_user(user_id: str) -> Optional[dict]:
    return get_col(USERS_COL).find_one({"discordId": user_id})

def _stored_role(user_id: str) -> str:
    doc = get_col(USERS_COL).find_one({"discordId": user_id}, {"_id": 0, "role": 1}) or {}
    role = str(doc.get("role") or "user").lower()
    return role if role in _ALLOWED_ROLES else "user"

def is_admin(user_id: str) -> bool:
    return user_id in _csv_ids(settings.admin_user_ids) or _stored_role(user_id) == "admin"

def is_moderator(user_id: str) -> bool:
    if user_id in _csv_ids(settings.moderator_user_ids) or is_admin(user_id):
        return True
    return _stored_role(user_id) == "moderator"

def current_user(request: Request) -> Optional[Tuple[str, str]]:
    token = get_auth_token(request)
    if not token or token not in SESSIONS:
        return None
    return SESSIONS[token]

def require_auth(request: Request, roles: Optional[list[str]] = None) -> Tuple[str, str]:
    """Return (user_id, role) or raise Unauthorized / Forbidden."""
    identity = current_user(request)
    if not identity:
        raise Unauthorized()
    user_id, role = identity
    if roles:
        allowed = role in roles
        if not allowed and "admin" in roles:
            allowed = is_admin(user_id)
        if not allowed and "moderator" in roles:
            allowed = is_moderator(user_id)
        if not allowed:
            raise Forbidden()
    return user_id, role
