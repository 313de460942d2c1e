from __future__ import annotations

import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database

from db_mongo import get_col, get_inventories_db, CHARACTERS_COL, MOD_CHARACTERS_COL, ITEMS_COL
from settings import settings
from server.src.modules.logging_helpers import logger


class InventoryRepository(ABC):
    """Open-ended set of inventory partitions, one per character."""

    @abstractmethod
    def list_partitions(self) -> list[str]:
        ...

    @abstractmethod
    def query_partition(self, name: str, pipeline: list[dict]) -> list[dict]:
        ...


class MongoInventoryRepository(InventoryRepository):
    def __init__(self, db: Optional[Database] = None):
        self.db = db if db is not None else get_inventories_db()

    def list_partitions(self) -> list[str]:
        return sorted(n for n in self.db.list_collection_names() if not n.startswith("system."))

    def query_partition(self, name: str, pipeline: list[dict]) -> list[dict]:
        return list(self.db[name].aggregate(pipeline))


def partition_name(character_name: str) -> str:
    return (character_name or "").strip().lower()


def item_name_filter(item_name: str) -> dict:
    return {"$regex": f"^{re.escape(item_name)}$", "$options": "i"}


def _as_object_id(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return value


def resolve_character_names(character_ids: Iterable[Any]) -> dict[str, str]:
    """One batched lookup per directory collection, not one per character."""
    ids = list({_as_object_id(cid) for cid in character_ids})
    if not ids:
        return {}
    names: dict[str, str] = {}
    for col_name in (CHARACTERS_COL, MOD_CHARACTERS_COL):
        for doc in get_col(col_name).find({"_id": {"$in": ids}}, {"name": 1}):
            names.setdefault(str(doc["_id"]), doc.get("name") or "")
    return names


def _scan_partitions(repo: InventoryRepository, names: list[str], pipeline: list[dict], workers: int) -> list[list[dict]]:
    def scan(name: str) -> list[dict]:
        try:
            return repo.query_partition(name, pipeline)
        except Exception:
            logger.warning("Skipping inventory partition %s", name, exc_info=True)
            return []

    if workers <= 1 or len(names) <= 1:
        return [scan(n) for n in names]
    with ThreadPoolExecutor(max_workers=min(workers, len(names))) as pool:
        return list(pool.map(scan, names))


def aggregate_item_ownership(
    item_name: str,
    repo: Optional[InventoryRepository] = None,
    workers: Optional[int] = None,
) -> dict[str, Any]:
    """Total quantity of `item_name` held per character across every partition."""
    repo = repo or MongoInventoryRepository()
    workers = settings.aggregation_workers if workers is None else workers
    pipeline = [
        {"$match": {"itemName": item_name_filter(item_name)}},
        {"$group": {"_id": "$characterId", "quantity": {"$sum": "$quantity"}}},
    ]
    partitions = repo.list_partitions()

    merged: dict[str, dict[str, Any]] = {}
    for rows in _scan_partitions(repo, partitions, pipeline, workers):
        for row in rows:
            if row.get("_id") is None:
                continue
            key = str(row["_id"])
            entry = merged.setdefault(key, {"characterId": key, "raw_id": row["_id"], "quantity": 0})
            entry["quantity"] += int(row.get("quantity") or 0)

    ranked = sorted(merged.values(), key=lambda e: e["quantity"], reverse=True)
    names = resolve_character_names(e["raw_id"] for e in ranked)
    characters = [
        {"characterId": e["characterId"], "characterName": names.get(e["characterId"], "Unknown"), "quantity": e["quantity"]}
        for e in ranked
    ]
    return {
        "itemName": item_name,
        "totalInWorld": sum(c["quantity"] for c in characters),
        "characters": characters,
    }


def _as_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    if value is not None:
        return [str(value)]
    return []


def user_characters(user_id: str) -> list[dict]:
    chars = []
    for col_name, is_mod in ((CHARACTERS_COL, False), (MOD_CHARACTERS_COL, True)):
        for doc in get_col(col_name).find({"userId": user_id}, {"_id": 1, "name": 1}):
            chars.append({"_id": doc["_id"], "name": doc.get("name") or "", "isModCharacter": is_mod})
    return chars


def aggregate_user_inventory(user_id: str, repo: Optional[InventoryRepository] = None) -> list[dict]:
    """Every item a user's characters hold, grouped by item name."""
    repo = repo or MongoInventoryRepository()
    by_item: dict[str, list[dict]] = {}
    for character in user_characters(user_id):
        pipeline = [{"$match": {"characterId": character["_id"], "quantity": {"$gt": 0}}}]
        try:
            rows = repo.query_partition(partition_name(character["name"]), pipeline)
        except Exception:
            logger.warning("Error processing inventory for %s", character["name"], exc_info=True)
            continue
        for row in rows:
            name = str(row.get("itemName") or "")
            if not name:
                continue
            by_item.setdefault(name.lower(), []).append({
                "itemName": name,
                "characterName": character["name"],
                "quantity": int(row.get("quantity") or 0),
                "category": row.get("category"),
                "type": row.get("type"),
                "image": row.get("image"),
            })

    catalog: dict[str, dict] = {}
    if by_item:
        names = sorted({e["itemName"] for entries in by_item.values() for e in entries})
        for doc in get_col(ITEMS_COL).find({"itemName": {"$in": names}}, {"_id": 0, "itemName": 1, "category": 1, "type": 1, "image": 1}):
            catalog[str(doc.get("itemName") or "").lower()] = doc

    items = []
    for key, entries in by_item.items():
        first = entries[0]
        details = catalog.get(key, {})
        items.append({
            "itemName": first["itemName"],
            "total": sum(e["quantity"] for e in entries),
            "characters": [{"characterName": e["characterName"], "quantity": e["quantity"]} for e in entries],
            "category": _as_list(details.get("category") if details.get("category") is not None else first["category"]),
            "type": _as_list(details.get("type") if details.get("type") is not None else first["type"]),
            "image": details.get("image") or first["image"],
        })
    items.sort(key=lambda i: i["itemName"].lower())
    return items
