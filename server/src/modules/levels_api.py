from typing import Any

from fastapi import APIRouter, Body, Query, Request
from fastapi.responses import JSONResponse
from pymongo import DESCENDING

from db_mongo import get_col, USERS_COL
from server.src.modules.authentification_helpers import find_user, require_auth
from server.src.modules.errors import NoExchangeableLevels, NotFound
from server.src.modules.exchange_service import (
    exchange_levels,
    get_or_create_user,
    import_mee6_levels,
    leveling_state,
    preview_exchange,
)
from server.src.modules.leveling_helpers import level_progress, progress_bar
from server.src.modules.logging_helpers import write_audit_safely

router = APIRouter(tags=["levels"])


def _rank_of(level: int, xp: int) -> int:
    ahead = get_col(USERS_COL).count_documents({"$or": [
        {"leveling.level": {"$gt": level}},
        {"leveling.level": level, "leveling.xp": {"$gt": xp}},
    ]})
    return ahead + 1


# ---------- Exchange ----------
@router.get("/exchange")
@router.get("/levels/exchange")
def get_exchange_preview(request: Request):
    user_id, _ = require_auth(request)
    return preview_exchange(find_user(user_id))

@router.post("/exchange")
@router.post("/levels/exchange")
def post_exchange(request: Request):
    user_id, _ = require_auth(request)
    get_or_create_user(user_id)
    try:
        result = exchange_levels(user_id)
    except NoExchangeableLevels as e:
        return JSONResponse({"success": False, "error": e.message}, status_code=400)
    write_audit_safely("levels.exchange", user_id, user_id, None,
                       {"levels": result["levelsExchanged"], "tokens": result["tokensReceived"]})
    return {
        "success": True,
        "levelsExchanged": result["levelsExchanged"],
        "tokensReceived": result["tokensReceived"],
        "newLevel": result["newLevel"],
        "newBalance": result["newBalance"],
    }


# ---------- Rank / leaderboard ----------
@router.get("/levels/rank")
def get_rank(request: Request, user_id: str | None = Query(default=None)):
    me, _ = require_auth(request)
    target = (user_id or me).strip()
    user = find_user(target)
    if user_id and not user:
        raise NotFound("User not found")
    leveling = (user or {}).get("leveling") or {}
    state = leveling_state(user)
    level, xp = state["level"], state["xp"]
    progress = level_progress(level, xp)
    return {
        "userId": target,
        "level": level,
        "xp": xp,
        "rank": _rank_of(level, xp) if user else None,
        "progress": progress,
        "progressBar": progress_bar(progress["current"], progress["needed"]),
        "totalMessages": state["totalMessages"],
        "hasImportedFromMee6": bool(leveling.get("hasImportedFromMee6")),
        "importedMee6Level": leveling.get("importedMee6Level"),
        "exchange": preview_exchange(user),
    }

@router.get("/levels/leaderboard")
def get_leaderboard(request: Request, limit: int = Query(default=10, ge=5, le=25)):
    require_auth(request)
    cursor = (
        get_col(USERS_COL)
        .find({"leveling": {"$exists": True}}, {"_id": 0, "discordId": 1, "leveling.level": 1, "leveling.xp": 1})
        .sort([("leveling.level", DESCENDING), ("leveling.xp", DESCENDING)])
        .limit(limit)
    )
    users = []
    for position, doc in enumerate(cursor, start=1):
        state = leveling_state(doc)
        users.append({
            "rank": position,
            "userId": doc.get("discordId"),
            "level": state["level"],
            "xp": state["xp"],
        })
    return {"limit": limit, "users": users}


# ---------- MEE6 import ----------
@router.post("/levels/import")
def post_import(request: Request, payload: dict[str, Any] = Body(...)):
    user_id, _ = require_auth(request)
    result = import_mee6_levels(
        user_id,
        payload.get("mee6Level"),
        payload.get("lastExchangedLevel", 0),
    )
    write_audit_safely("levels.import", user_id, user_id, None, {"level": result["importedLevel"]})
    return result
