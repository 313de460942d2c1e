import logging
import datetime
from pymongo.errors import PyMongoError
from db_mongo import get_col, AUDIT_COL
from settings import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("tinglebot")

def write_audit(action, user_id, target_id, before, after):
    get_col(AUDIT_COL).insert_one({
        "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "user": user_id, "action": action, "target": target_id,
        "before": before, "after": after
    })

def write_audit_safely(action, user_id, target_id, before, after):
    """Audit for writes that are already committed; a failed insert only logs."""
    try:
        write_audit(action, user_id, target_id, before, after)
    except PyMongoError:
        logger.exception("Audit write failed for action=%s user=%s", action, user_id)
