from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from pymongo import DESCENDING

from db_mongo import get_col, TRANSACTIONS_COL
from server.src.modules.errors import InvalidInput

TRANSACTION_TYPES = ("earned", "spent")
LEGACY_CATEGORY = "legacy"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_utc(value: Any) -> str | None:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value) if value else None


def append_transaction(
    user_id: str,
    amount: int,
    type_: str,
    category: str,
    description: str = "",
    balance_before: int = 0,
    balance_after: int = 0,
    link: str = "",
) -> dict[str, Any]:
    """Append one immutable ledger record. Prior records are never touched."""
    amount = int(amount)
    if amount <= 0:
        raise InvalidInput("Transaction amount must be positive")
    if type_ not in TRANSACTION_TYPES:
        raise InvalidInput(f"Unsupported transaction type: {type_}")
    doc = {
        "userId": user_id,
        "amount": amount,
        "type": type_,
        "category": (category or "").strip(),
        "description": (description or "").strip(),
        "link": (link or "").strip(),
        "balanceBefore": int(balance_before),
        "balanceAfter": int(balance_after),
        "timestamp": utc_now(),
    }
    get_col(TRANSACTIONS_COL).insert_one(dict(doc))
    return doc


def summarize(user_id: str) -> dict[str, int]:
    pipeline = [
        {"$match": {"userId": user_id}},
        {"$group": {"_id": "$type", "total": {"$sum": "$amount"}, "count": {"$sum": 1}}},
    ]
    totals = {"earned": 0, "spent": 0}
    count = 0
    for row in get_col(TRANSACTIONS_COL).aggregate(pipeline):
        if row["_id"] in totals:
            totals[row["_id"]] += int(row.get("total") or 0)
        count += int(row.get("count") or 0)
    return {"totalEarned": totals["earned"], "totalSpent": totals["spent"], "totalTransactions": count}


def account_created_at(user: dict) -> datetime | None:
    created = user.get("createdAt")
    if isinstance(created, datetime):
        return created
    oid = user.get("_id")
    if isinstance(oid, ObjectId):
        return oid.generation_time
    return None


def legacy_entry(user: dict, summary: dict[str, int]) -> dict[str, Any] | None:
    """Synthetic row closing the gap between ledger net and the stored balance.

    Derived on every read and never persisted.
    """
    balance = int(user.get("tokens") or 0)
    net = int(summary.get("totalEarned") or 0) - int(summary.get("totalSpent") or 0)
    delta = balance - net
    if delta == 0:
        return None
    return {
        "userId": user.get("discordId"),
        "amount": abs(delta),
        "type": "earned" if delta >= 0 else "spent",
        "category": LEGACY_CATEGORY,
        "description": "Balance carried over from before transaction tracking",
        "link": "",
        "balanceBefore": 0,
        "balanceAfter": delta,
        "timestamp": iso_utc(account_created_at(user)),
        "synthetic": True,
    }


def _public(doc: dict) -> dict:
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["timestamp"] = iso_utc(out.get("timestamp"))
    return out


def recent_transactions(user_id: str, limit: int = 100) -> list[dict]:
    cursor = (
        get_col(TRANSACTIONS_COL)
        .find({"userId": user_id}, {"_id": 0})
        .sort("timestamp", DESCENDING)
        .limit(max(1, int(limit)))
    )
    return [_public(doc) for doc in cursor]


def token_history(user: dict, limit: int = 100) -> dict[str, Any]:
    user_id = user.get("discordId")
    summary = summarize(user_id)
    transactions = recent_transactions(user_id, limit)
    earned = summary["totalEarned"]
    spent = summary["totalSpent"]
    count = summary["totalTransactions"]

    legacy = legacy_entry(user, summary)
    if legacy:
        transactions.append(legacy)
        count += 1
        if legacy["type"] == "earned":
            earned += legacy["amount"]
        else:
            spent += legacy["amount"]

    return {
        "currentBalance": int(user.get("tokens") or 0),
        "totalEarned": earned,
        "totalSpent": spent,
        "totalTransactions": count,
        "transactions": transactions,
    }
