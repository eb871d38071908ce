"""Activity log writes and queries."""

from typing import List, Optional

from taskflow.database import get_db
from taskflow.utils.helpers import serialize_doc, utc_now


async def log_activity(
    user_id: str,
    action: str,
    entity_type: str,
    entity_id: str,
    entity_name: str = "",
    description: str = "",
    workspace_id: Optional[str] = None,
    board_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    session=None,
) -> None:
    db = get_db()
    await db.activity_logs.insert_one({
        "user_id": user_id,
        "action": action,
        "description": description,
        "entity": {"type": entity_type, "id": entity_id, "name": entity_name},
        "workspace_id": workspace_id,
        "board_id": board_id,
        "metadata": metadata or {},
        "created_at": utc_now(),
    }, session=session)


async def entity_history(entity_type: str, entity_id: str, limit: int = 50) -> List[dict]:
    db = get_db()
    cursor = db.activity_logs.find(
        {"entity.type": entity_type, "entity.id": entity_id}
    ).sort("created_at", -1).limit(limit)
    return [serialize_doc(doc) async for doc in cursor]
