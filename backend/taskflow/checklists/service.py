"""Checklists attached to tasks."""

from typing import List, Optional

from bson import ObjectId

from taskflow.boards import positions
from taskflow.database import get_db
from taskflow.tasks.service import task_context
from taskflow.utils.errors import ConflictError, NotFoundError, ValidationError
from taskflow.utils.helpers import serialize_doc, to_object_id, utc_now


def recount(checklist: dict) -> dict:
    items = checklist.get("items", [])
    done = sum(1 for i in items if i.get("completed"))
    checklist["stats"] = {
        "total_items": len(items),
        "completed_items": done,
        "completion_percentage": round(done / len(items) * 100) if items else 0,
    }
    return checklist


def set_completed(checklist: dict, item_id: str, completed: bool, user_id: str) -> dict:
    items = positions.normalize(checklist.get("items", []))
    item = next((i for i in items if i["id"] == item_id), None)
    if item is None:
        raise NotFoundError("Checklist item not found")

    if completed and checklist.get("settings", {}).get("require_complete_order"):
        earlier_open = [i for i in items if i["position"] < item["position"] and not i.get("completed")]
        if earlier_open:
            raise ValidationError("Complete earlier items first")

    item["completed"] = completed
    item["completed_at"] = utc_now() if completed else None
    item["completed_by"] = user_id if completed else None
    checklist["items"] = items
    return recount(checklist)


def _new_item(text: str, assigned_to: Optional[str] = None, due_date=None) -> dict:
    return {
        "id": str(ObjectId()),
        "text": text,
        "completed": False,
        "completed_at": None,
        "completed_by": None,
        "assigned_to": assigned_to,
        "due_date": due_date,
    }


async def _load(checklist_id: str) -> dict:
    db = get_db()
    doc = await db.checklists.find_one({"_id": to_object_id(checklist_id, "Checklist")})
    if doc is None:
        raise NotFoundError("Checklist not found")
    return doc


async def _save(checklist: dict) -> dict:
    db = get_db()
    version = checklist.get("version", 0)
    recount(checklist)
    result = await db.checklists.update_one(
        {"_id": checklist["_id"], "version": version},
        {"$set": {
            "title": checklist["title"],
            "settings": checklist.get("settings", {}),
            "items": checklist.get("items", []),
            "stats": checklist["stats"],
            "updated_at": utc_now(),
            "version": version + 1,
        }},
    )
    if result.matched_count == 0:
        raise ConflictError("Checklist was modified by another request, please retry")
    checklist["version"] = version + 1
    return serialize_doc(checklist)


async def list_checklists(task_id: str, user_id: str) -> List[dict]:
    db = get_db()
    await task_context(task_id, user_id)
    cursor = db.checklists.find({"task_id": task_id}).sort("created_at", 1)
    return [serialize_doc(doc) async for doc in cursor]


async def create_checklist(task_id: str, user_id: str, data: dict) -> dict:
    db = get_db()
    await task_context(task_id, user_id, "edit")
    items = [{**_new_item(text), "position": i} for i, text in enumerate(data.get("items") or [])]
    doc = {
        "task_id": task_id,
        "title": data["title"],
        "items": items,
        "settings": {"require_complete_order": data.get("require_complete_order", False)},
        "created_by": user_id,
        "version": 0,
        "created_at": utc_now(),
        "updated_at": utc_now(),
    }
    recount(doc)
    result = await db.checklists.insert_one(doc)
    doc["_id"] = result.inserted_id
    return serialize_doc(doc)


async def _editable(checklist_id: str, user_id: str) -> dict:
    checklist = await _load(checklist_id)
    await task_context(checklist["task_id"], user_id, "edit")
    return checklist


async def update_checklist(checklist_id: str, user_id: str, fields: dict) -> dict:
    checklist = await _editable(checklist_id, user_id)
    if fields.get("title") is not None:
        checklist["title"] = fields["title"]
    if fields.get("require_complete_order") is not None:
        checklist.setdefault("settings", {})["require_complete_order"] = fields["require_complete_order"]
    return await _save(checklist)


async def add_item(checklist_id: str, user_id: str, data: dict) -> dict:
    checklist = await _editable(checklist_id, user_id)
    item = _new_item(data["text"], data.get("assigned_to"), data.get("due_date"))
    checklist["items"] = positions.insert_at(checklist.get("items", []), item, data.get("position"), key="id")
    return await _save(checklist)


async def update_item(checklist_id: str, item_id: str, user_id: str, fields: dict) -> dict:
    checklist = await _editable(checklist_id, user_id)
    item = next((i for i in checklist.get("items", []) if i["id"] == item_id), None)
    if item is None:
        raise NotFoundError("Checklist item not found")

    if fields.get("text") is not None:
        item["text"] = fields["text"]
    for key in ("assigned_to", "due_date"):
        if key in fields:
            item[key] = fields[key]
    if fields.get("completed") is not None:
        set_completed(checklist, item_id, fields["completed"], user_id)
    return await _save(checklist)


async def delete_item(checklist_id: str, item_id: str, user_id: str) -> dict:
    checklist = await _editable(checklist_id, user_id)
    checklist["items"] = positions.remove(checklist.get("items", []), item_id, key="id")
    return await _save(checklist)


async def reorder_items(checklist_id: str, user_id: str, ordered_ids: List[str]) -> dict:
    checklist = await _editable(checklist_id, user_id)
    checklist["items"] = positions.reorder(checklist.get("items", []), ordered_ids, key="id")
    return await _save(checklist)


async def delete_checklist(checklist_id: str, user_id: str) -> None:
    db = get_db()
    checklist = await _editable(checklist_id, user_id)
    await db.checklists.delete_one({"_id": checklist["_id"]})
