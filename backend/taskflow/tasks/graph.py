"""Precedence graph over task dependencies.

An edge ``a -> b`` means ``a`` must finish before ``b``. A task's
``blocked_by`` entry on ``d`` contributes ``d -> task``; a ``blocks`` entry
contributes ``task -> d``. ``related_to`` carries no ordering and is ignored.
"""

from collections import deque
from typing import Dict, Iterable, Set

BLOCKS = "blocks"
BLOCKED_BY = "blocked_by"
RELATED_TO = "related_to"
DEPENDENCY_TYPES = (BLOCKS, BLOCKED_BY, RELATED_TO)


def edge_for(task_id: str, depends_on: str, dep_type: str):
    if dep_type == BLOCKED_BY:
        return depends_on, task_id
    if dep_type == BLOCKS:
        return task_id, depends_on
    return None


def precedence_edges(tasks: Iterable[dict]) -> Dict[str, Set[str]]:
    graph: Dict[str, Set[str]] = {}
    for task in tasks:
        task_id = str(task["_id"])
        for dep in task.get("dependencies", []):
            edge = edge_for(task_id, str(dep["task_id"]), dep.get("type", BLOCKED_BY))
            if edge is None:
                continue
            before, after = edge
            graph.setdefault(before, set()).add(after)
    return graph


def reaches(graph: Dict[str, Set[str]], start: str, goal: str) -> bool:
    seen = {start}
    queue = deque([start])
    while queue:
        node = queue.popleft()
        if node == goal:
            return True
        for nxt in graph.get(node, ()):
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return False


def would_create_cycle(graph: Dict[str, Set[str]], before: str, after: str) -> bool:
    """True if adding ``before -> after`` closes a cycle."""
    if before == after:
        return True
    return reaches(graph, after, before)
