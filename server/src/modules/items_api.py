from fastapi import APIRouter, Request

from server.src.modules.authentification_helpers import require_auth
from server.src.modules.errors import InvalidInput
from server.src.modules.inventory_aggregator import aggregate_item_ownership, aggregate_user_inventory

MAX_ITEM_NAME = 200

router = APIRouter(tags=["inventories"])


@router.get("/items/{item_name}/ownership")
def item_ownership(item_name: str, request: Request):
    require_auth(request)
    name = (item_name or "").strip()
    if not name or len(name) > MAX_ITEM_NAME:
        raise InvalidInput("Invalid item name")
    return aggregate_item_ownership(name)

@router.get("/inventories/aggregated")
def aggregated_inventory(request: Request):
    user_id, _ = require_auth(request)
    return {"data": aggregate_user_inventory(user_id)}
