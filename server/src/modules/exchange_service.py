from __future__ import annotations

from typing import Any

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from db_mongo import get_col, USERS_COL
from settings import settings
from server.src.modules.errors import (
    AlreadyImported,
    ExchangeConflict,
    InvalidInput,
    NoExchangeableLevels,
    NotFound,
)
from server.src.modules.leveling_helpers import xp_required_for_level
from server.src.modules.logging_helpers import logger
from server.src.modules.token_ledger import append_transaction, utc_now

EXCHANGE_HISTORY_LIMIT = 20
EXCHANGE_MAX_ATTEMPTS = 3
MEE6_MAX_LEVEL = 1000
DEFAULT_LEVEL = 1
DEFAULT_WATERMARK = 0


def default_leveling() -> dict[str, Any]:
    return {
        "xp": 0,
        "level": DEFAULT_LEVEL,
        "lastMessageTime": None,
        "totalMessages": 0,
        "lastExchangedLevel": DEFAULT_WATERMARK,
        "totalLevelsExchanged": 0,
        "exchangeHistory": [],
        "hasImportedFromMee6": False,
        "mee6ImportDate": None,
        "importedMee6Level": None,
    }


def get_or_create_user(user_id: str) -> dict:
    col = get_col(USERS_COL)
    try:
        col.update_one(
            {"discordId": user_id},
            {"$setOnInsert": {
                "tokens": 0,
                "createdAt": utc_now(),
                "leveling": default_leveling(),
            }},
            upsert=True,
        )
    except DuplicateKeyError:
        # concurrent insert for the same id won the race
        pass
    return col.find_one({"discordId": user_id})


def leveling_state(user: dict | None) -> dict[str, int]:
    """Level fields with the schema defaults filled in for missing values."""
    leveling = (user or {}).get("leveling") or {}
    level = leveling.get("level")
    last = leveling.get("lastExchangedLevel")
    return {
        "level": int(level) if level is not None else DEFAULT_LEVEL,
        "xp": int(leveling.get("xp") or 0),
        "lastExchangedLevel": int(last) if last is not None else DEFAULT_WATERMARK,
        "totalLevelsExchanged": int(leveling.get("totalLevelsExchanged") or 0),
        "totalMessages": int(leveling.get("totalMessages") or 0),
    }


def preview_exchange(user: dict | None) -> dict[str, int]:
    state = leveling_state(user)
    level = state["level"]
    last = state["lastExchangedLevel"]
    exchangeable = max(0, level - last)
    return {
        "exchangeableLevels": exchangeable,
        "potentialTokens": exchangeable * settings.tokens_per_level,
        "currentLevel": level,
        "lastExchangedLevel": last,
        "totalLevelsExchanged": state["totalLevelsExchanged"],
        "currentTokenBalance": int((user or {}).get("tokens") or 0),
    }


def _field_filter(path: str, value: int, default: int) -> dict:
    if value == default:
        # documents written before the field existed read as the default
        return {"$or": [
            {path: value},
            {path: None},
            {path: {"$exists": False}},
        ]}
    return {path: value}


def exchange_levels(user_id: str) -> dict[str, Any]:
    """Convert every level gained since the last exchange into tokens.

    The watermark, the counters and the balance live on the same user
    document and are written by one conditional update keyed on the level
    state that was read, so two concurrent exchanges cannot both credit.
    """
    col = get_col(USERS_COL)
    for attempt in range(1, EXCHANGE_MAX_ATTEMPTS + 1):
        user = col.find_one({"discordId": user_id})
        if not user:
            raise NotFound("User not found")
        preview = preview_exchange(user)
        levels = preview["exchangeableLevels"]
        if levels <= 0:
            raise NoExchangeableLevels()

        level = preview["currentLevel"]
        last = preview["lastExchangedLevel"]
        tokens = levels * settings.tokens_per_level
        record = {"levelsExchanged": levels, "tokensReceived": tokens, "timestamp": utc_now()}

        query = {"discordId": user_id, "$and": [
            _field_filter("leveling.level", level, DEFAULT_LEVEL),
            _field_filter("leveling.lastExchangedLevel", last, DEFAULT_WATERMARK),
        ]}
        before = col.find_one_and_update(
            query,
            {
                "$set": {"leveling.level": level, "leveling.lastExchangedLevel": level},
                "$inc": {"leveling.totalLevelsExchanged": levels, "tokens": tokens},
                "$push": {"leveling.exchangeHistory": {"$each": [record], "$slice": -EXCHANGE_HISTORY_LIMIT}},
            },
            return_document=ReturnDocument.BEFORE,
        )
        if before is None:
            logger.info("Exchange CAS miss for user=%s (attempt %d)", user_id, attempt)
            continue

        balance_before = int(before.get("tokens") or 0)
        balance_after = balance_before + tokens
        try:
            append_transaction(
                user_id,
                tokens,
                "earned",
                "level_exchange",
                f"Exchanged {levels} levels for tokens",
                balance_before,
                balance_after,
            )
        except PyMongoError:
            # the credit is already applied; read-time legacy reconciliation covers the missing row
            logger.exception("Ledger append failed after exchange for user=%s", user_id)

        logger.info("User %s exchanged %d levels for %d tokens", user_id, levels, tokens)
        return {
            "success": True,
            "levelsExchanged": levels,
            "tokensReceived": tokens,
            "newLevel": level,
            "lastExchangedLevel": level,
            "previousExchangedLevel": last,
            "newBalance": balance_after,
            "totalMessages": leveling_state(before)["totalMessages"],
        }
    raise ExchangeConflict()


def import_mee6_levels(user_id: str, mee6_level: int, last_exchanged_level: int = 0) -> dict[str, Any]:
    """One-time import of a MEE6 level with its exchange watermark."""
    try:
        mee6_level = int(mee6_level)
        last_exchanged_level = int(last_exchanged_level)
    except (TypeError, ValueError):
        raise InvalidInput("Levels must be integers")
    if mee6_level < 1 or mee6_level > MEE6_MAX_LEVEL:
        raise InvalidInput(f"Invalid MEE6 level. Please provide a level between 1 and {MEE6_MAX_LEVEL}.")
    if last_exchanged_level < 0 or last_exchanged_level >= mee6_level:
        raise InvalidInput("Invalid last exchanged level. Must be between 0 and your current MEE6 level.")

    user = get_or_create_user(user_id)
    if (user.get("leveling") or {}).get("hasImportedFromMee6"):
        raise AlreadyImported()

    now = utc_now()
    updated = get_col(USERS_COL).find_one_and_update(
        {"discordId": user_id, "leveling.hasImportedFromMee6": {"$ne": True}},
        {"$set": {
            "leveling.level": mee6_level,
            "leveling.xp": xp_required_for_level(mee6_level),
            "leveling.lastExchangedLevel": last_exchanged_level,
            "leveling.hasImportedFromMee6": True,
            "leveling.mee6ImportDate": now,
            "leveling.importedMee6Level": mee6_level,
        }},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise AlreadyImported()

    preview = preview_exchange(updated)
    logger.info("User %s imported level %d from MEE6 (last exchanged %d)", user_id, mee6_level, last_exchanged_level)
    return {
        "success": True,
        "importedLevel": mee6_level,
        "lastExchangedLevel": last_exchanged_level,
        "exchangeableLevels": preview["exchangeableLevels"],
        "potentialTokens": preview["potentialTokens"],
        "importDate": now.isoformat(),
    }
