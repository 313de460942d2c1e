from datetime import datetime, timezone

from bson import ObjectId

from db_mongo import get_col, get_inventories_db


def seed_user(user_id: str, level: int = 1, last_exchanged: int = 0, tokens: int = 0, xp: int = 0, **extra):
    doc = {
        "discordId": user_id,
        "tokens": tokens,
        "createdAt": datetime(2023, 1, 1, tzinfo=timezone.utc),
        "leveling": {
            "xp": xp,
            "level": level,
            "totalMessages": 0,
            "lastExchangedLevel": last_exchanged,
            "totalLevelsExchanged": 0,
            "hasImportedFromMee6": False,
            "importedMee6Level": None,
        },
    }
    doc.update(extra)
    get_col("users").insert_one(doc)
    return doc


def seed_character(name: str, user_id: str = "1001", mod: bool = False) -> ObjectId:
    col = "modcharacters" if mod else "characters"
    return get_col(col).insert_one({"name": name, "userId": user_id}).inserted_id


def seed_inventory_row(partition: str, character_id, item_name: str, quantity: int, **extra):
    row = {"characterId": character_id, "itemName": item_name, "quantity": quantity}
    row.update(extra)
    get_inventories_db()[partition].insert_one(row)
