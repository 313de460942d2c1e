from functools import lru_cache
from urllib.parse import urlparse
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.database import Database
from settings import settings

USERS_COL = "users"
TRANSACTIONS_COL = "tokentransactions"
CHARACTERS_COL = "characters"
MOD_CHARACTERS_COL = "modcharacters"
ITEMS_COL = "items"
AUDIT_COL = "audit_logs"


def is_mock_uri(uri: str | None = None) -> bool:
    return str(uri if uri is not None else settings.mongodb_uri or "").startswith("mongomock://")

@lru_cache
def get_client() -> MongoClient:
    uri = settings.mongodb_uri
    if is_mock_uri(uri):
        import mongomock
        return mongomock.MongoClient()
    if not uri or "xxxx.mongodb.net" in uri or "example.com" in uri:
        raise RuntimeError("MONGODB_URI is missing or still a placeholder.")
    return MongoClient(uri, tz_aware=True)

def _db_name_from_uri_fallback() -> str:
    if is_mock_uri():
        return settings.db_name
    u = urlparse(settings.mongodb_uri or "")
    return (u.path or "").lstrip("/") or settings.db_name

def get_db() -> Database:
    return get_client()[_db_name_from_uri_fallback()]

def get_inventories_db() -> Database:
    # one collection per character lives here, named after the character
    return get_client()[settings.inventories_db_name]

def get_col(name: str):
    return get_db()[name]

def ensure_indexes() -> None:
    db = get_db()
    db[USERS_COL].create_index("discordId", unique=True)
    db[USERS_COL].create_index([("leveling.level", DESCENDING), ("leveling.xp", DESCENDING)])
    db[TRANSACTIONS_COL].create_index([("userId", ASCENDING), ("timestamp", DESCENDING)])
    db[CHARACTERS_COL].create_index("userId")
    db[MOD_CHARACTERS_COL].create_index("userId")
    db[ITEMS_COL].create_index("itemName")
