import pytest
from bson import ObjectId

from db_mongo import get_col
from server.src.modules.inventory_aggregator import (
    InventoryRepository,
    MongoInventoryRepository,
    aggregate_item_ownership,
    aggregate_user_inventory,
)
from tests.conftest import api_client
from tests.helpers import seed_character, seed_inventory_row


class FakeRepository(InventoryRepository):
    def __init__(self, partitions: dict, broken: tuple = ()):
        self.partitions = partitions
        self.broken = set(broken)
        self.calls: list[str] = []

    def list_partitions(self):
        return list(self.partitions) + list(self.broken)

    def query_partition(self, name, pipeline):
        self.calls.append(name)
        if name in self.broken:
            raise RuntimeError(f"collection {name} is malformed")
        return self.partitions[name]


def test_repository_requires_both_operations():
    class ListOnly(InventoryRepository):
        def list_partitions(self):
            return []

    with pytest.raises(TypeError):
        InventoryRepository()
    with pytest.raises(TypeError):
        ListOnly()


def test_partials_are_summed_not_overwritten():
    anna = seed_character("Anna")
    repo = FakeRepository({
        "anna": [{"_id": anna, "quantity": 3}],
        "stray": [{"_id": anna, "quantity": 2}],
    })
    result = aggregate_item_ownership("Apple", repo=repo)
    assert result["characters"] == [{"characterId": str(anna), "characterName": "Anna", "quantity": 5}]
    assert result["totalInWorld"] == 5


def test_failing_partition_is_skipped():
    anna = seed_character("Anna")
    bo = seed_character("Bo", mod=True)
    repo = FakeRepository(
        {"anna": [{"_id": anna, "quantity": 3}], "bo": [{"_id": bo, "quantity": 7}]},
        broken=("ghost",),
    )
    result = aggregate_item_ownership("Apple", repo=repo, workers=4)
    assert "ghost" in repo.calls
    assert [c["characterName"] for c in result["characters"]] == ["Bo", "Anna"]
    assert result["totalInWorld"] == 10


def test_unknown_character_ids_still_counted():
    repo = FakeRepository({"lost": [{"_id": ObjectId(), "quantity": 4}, {"_id": None, "quantity": 9}]})
    result = aggregate_item_ownership("Apple", repo=repo)
    assert result["characters"][0]["characterName"] == "Unknown"
    assert result["totalInWorld"] == 4


def test_mongo_partitions_match_item_case_insensitively():
    anna = seed_character("Anna")
    cid = seed_character("Cid")
    seed_inventory_row("anna", anna, "Apple", 3)
    seed_inventory_row("anna", anna, "apple", 1)
    seed_inventory_row("anna", anna, "Apple Pie", 10)
    seed_inventory_row("cid", cid, "APPLE", 6)

    result = aggregate_item_ownership("apple", repo=MongoInventoryRepository())
    assert result["characters"] == [
        {"characterId": str(cid), "characterName": "Cid", "quantity": 6},
        {"characterId": str(anna), "characterName": "Anna", "quantity": 4},
    ]
    assert result["totalInWorld"] == 10


def test_user_inventory_groups_by_item():
    anna = seed_character("Anna")
    bo = seed_character("Bo", mod=True)
    other = seed_character("Zed", user_id="other")
    get_col("items").insert_one({"itemName": "Apple", "category": "Food", "type": ["Natural"], "image": "apple.png"})
    seed_inventory_row("anna", anna, "Apple", 3)
    seed_inventory_row("anna", anna, "Rope", 0)
    seed_inventory_row("bo", bo, "apple", 2)
    seed_inventory_row("zed", other, "Apple", 50)

    items = aggregate_user_inventory("1001")
    assert len(items) == 1
    apple = items[0]
    assert apple["total"] == 5
    assert apple["category"] == ["Food"]
    assert apple["type"] == ["Natural"]
    assert apple["image"] == "apple.png"
    assert {c["characterName"] for c in apple["characters"]} == {"Anna", "Bo"}


def test_user_inventory_falls_back_to_row_fields_for_null_catalog_values():
    anna = seed_character("Anna")
    get_col("items").insert_one({"itemName": "Rope", "category": None, "type": None, "image": None})
    seed_inventory_row("anna", anna, "Rope", 2, category="Tools", type="Material", image="rope.png")

    rope = aggregate_user_inventory("1001")[0]
    assert rope["category"] == ["Tools"]
    assert rope["type"] == ["Material"]
    assert rope["image"] == "rope.png"


@pytest.mark.asyncio
async def test_ownership_endpoint():
    anna = seed_character("Anna")
    seed_inventory_row("anna", anna, "Apple", 3)
    async with api_client() as client:
        resp = await client.get("/items/Apple/ownership")
        assert resp.status_code == 200
        assert resp.json() == {
            "itemName": "Apple",
            "totalInWorld": 3,
            "characters": [{"characterId": str(anna), "characterName": "Anna", "quantity": 3}],
        }

        blank = await client.get("/items/%20/ownership")
        assert blank.status_code == 400

    async with api_client(user_id=None) as client:
        resp = await client.get("/items/Apple/ownership")
        assert resp.status_code == 401


@pytest.mark.asyncio
async def test_aggregated_inventory_endpoint():
    anna = seed_character("Anna")
    seed_inventory_row("anna", anna, "Apple", 3)
    async with api_client() as client:
        resp = await client.get("/inventories/aggregated")
        assert resp.status_code == 200
        assert resp.json()["data"][0]["itemName"] == "Apple"
