from fastapi import APIRouter, Query, Request

from server.src.modules.authentification_helpers import find_user, require_auth
from server.src.modules.errors import NotFound
from server.src.modules.logging_helpers import write_audit_safely
from server.src.modules.token_ledger import token_history

router = APIRouter(tags=["tokens"])


@router.get("/tokens")
def get_my_tokens(request: Request, limit: int = Query(default=100, ge=1, le=1000)):
    user_id, _ = require_auth(request)
    user = find_user(user_id) or {"discordId": user_id, "tokens": 0}
    return token_history(user, limit)

@router.get("/admin/users/{user_id}/tokens")
def admin_user_tokens(user_id: str, request: Request, limit: int = Query(default=100, ge=1, le=1000)):
    viewer, _ = require_auth(request, roles=["moderator", "admin"])
    user = find_user(user_id)
    if not user:
        raise NotFound("User not found")
    history = token_history(user, limit)
    write_audit_safely("tokens.view", viewer, user_id, None, {"count": history["totalTransactions"]})
    return history
