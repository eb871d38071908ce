"""Dense ordering for position-indexed lists.

Used for the tasks inside a column, the columns of a board and checklist
items. Every function returns a new list whose ``position`` values are a
permutation of ``0..n-1``; neighbours are shifted rather than renumbered
from scratch so relative order is preserved.
"""

from typing import Iterable, List

from taskflow.utils.errors import NotFoundError, ValidationError


def _copy(entries: Iterable[dict]) -> List[dict]:
    return [dict(e) for e in entries]


def normalize(entries: Iterable[dict]) -> List[dict]:
    ordered = sorted(_copy(entries), key=lambda e: e.get("position", 0))
    for index, entry in enumerate(ordered):
        entry["position"] = index
    return ordered


def is_dense(entries: Iterable[dict]) -> bool:
    positions = sorted(e.get("position") for e in entries)
    return positions == list(range(len(positions)))


def _clamp(position, size: int) -> int:
    if position is None or position > size:
        return size
    return max(0, position)


def index_of(entries: Iterable[dict], item_id, key: str) -> int:
    for entry in entries:
        if entry[key] == item_id:
            return entry["position"]
    raise NotFoundError("Item not found in list")


def insert_at(entries: Iterable[dict], entry: dict, position: int = None, key: str = "task_id") -> List[dict]:
    """Insert ``entry`` at ``position``, moving it if it is already present."""
    current = normalize(e for e in entries if e[key] != entry[key])
    target = _clamp(position, len(current))
    for other in current:
        if other["position"] >= target:
            other["position"] += 1
    current.append({**entry, "position": target})
    return normalize(current)


def remove(entries: Iterable[dict], item_id, key: str = "task_id") -> List[dict]:
    current = normalize(entries)
    removed_at = index_of(current, item_id, key)
    result = []
    for entry in current:
        if entry[key] == item_id:
            continue
        if entry["position"] > removed_at:
            entry["position"] -= 1
        result.append(entry)
    return result


def move(entries: Iterable[dict], item_id, new_position: int, key: str = "task_id") -> List[dict]:
    current = normalize(entries)
    old = index_of(current, item_id, key)
    new = _clamp(new_position, len(current) - 1)
    for entry in current:
        if entry[key] == item_id:
            entry["position"] = new
        elif old < new and old < entry["position"] <= new:
            entry["position"] -= 1
        elif new < old and new <= entry["position"] < old:
            entry["position"] += 1
    return normalize(current)


def reorder(entries: Iterable[dict], ordered_ids: List, key: str = "task_id") -> List[dict]:
    current = {e[key]: dict(e) for e in entries}
    if len(ordered_ids) != len(current) or set(ordered_ids) != set(current):
        raise ValidationError("Order must list every item exactly once")
    result = []
    for index, item_id in enumerate(ordered_ids):
        entry = current[item_id]
        entry["position"] = index
        result.append(entry)
    return result
