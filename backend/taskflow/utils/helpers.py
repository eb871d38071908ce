"""Common utility functions."""

from datetime import datetime, timezone
from bson import ObjectId
from bson.errors import InvalidId
from typing import Any, Dict

from taskflow.utils.errors import NotFoundError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Mongo hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: Dict) -> Dict:
    """Convert MongoDB document for JSON serialization."""
    if doc is None:
        return None
    result = {}
    for key, value in doc.items():
        if key == "_id":
            result["id"] = str(value)
        else:
            result[key] = _serialize_value(value)
    return result


def to_object_id(value: str, label: str = "Resource") -> ObjectId:
    """Parse a path id, reporting malformed ids as missing resources."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(f"{label} not found")


def envelope(data: Any = None, message: str = "OK") -> Dict:
    return {"success": True, "message": message, "data": data}
