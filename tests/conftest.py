import os
from contextlib import asynccontextmanager

import pytest
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("CORS_ORIGINS", "http://localhost")
os.environ.setdefault("MONGODB_URI", "mongomock://localhost")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("AGGREGATION_WORKERS", "1")

from db_mongo import get_db, get_inventories_db
from main import app
from server.src.modules.authentification_helpers import SESSIONS, make_token


@pytest.fixture(autouse=True)
def clean_state():
    for db in (get_db(), get_inventories_db()):
        for name in db.list_collection_names():
            db.drop_collection(name)
    SESSIONS.clear()
    yield
    SESSIONS.clear()


@asynccontextmanager
async def api_client(user_id: str | None = "1001", role: str = "user"):
    headers: dict[str, str] = {}
    if user_id:
        token = make_token()
        SESSIONS[token] = (user_id, role)
        headers["Authorization"] = f"Bearer {token}"
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as client:
        yield client
