"""Tests for task placement, dependencies and column upkeep against a mocked database."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bson import ObjectId

from taskflow.boards import positions
from taskflow.checklists import service as checklists_service
from taskflow.columns import service as columns_service
from taskflow.tasks import service
from taskflow.utils.errors import ConflictError, ValidationError

BOARD = {"_id": ObjectId(), "workspace_id": "ws-1", "space_id": "sp-1", "owner_id": "u1"}
SPACE = {"_id": ObjectId()}
WORKSPACE = {"_id": ObjectId()}


class _Cursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self._docs:
            yield doc


def _column(status, *task_ids):
    return {
        "_id": ObjectId(),
        "name": status,
        "board_id": str(BOARD["_id"]),
        "status_mapping": status,
        "task_ids": [{"task_id": t, "position": i} for i, t in enumerate(task_ids)],
        "settings": {},
        "version": 0,
    }


def _task(task_id, column, **extra):
    task = {
        "_id": ObjectId(task_id),
        "title": "Write docs",
        "board_id": str(BOARD["_id"]),
        "workspace_id": "ws-1",
        "column_id": str(column["_id"]),
        "status": column["status_mapping"],
        "watchers": [],
        "dependencies": [],
    }
    task.update(extra)
    return task


@pytest.fixture
def mock_db():
    db = AsyncMock()
    db.columns.update_one.return_value = MagicMock(matched_count=1)
    with patch("taskflow.tasks.service.get_db", return_value=db), \
         patch("taskflow.columns.service.get_db", return_value=db):
        yield db


@pytest.fixture
def quiet():
    with patch("taskflow.tasks.service.log_activity", new_callable=AsyncMock), \
         patch("taskflow.tasks.service.emit_board_event", new_callable=AsyncMock) as emit, \
         patch("taskflow.tasks.service.notify_many", new_callable=AsyncMock):
        yield emit


def _saved_task_lists(db):
    return {c.args[0]["_id"]: c.args[1]["$set"]["task_ids"] for c in db.columns.update_one.await_args_list}


def _in_context(task):
    return patch("taskflow.tasks.service.task_context", new_callable=AsyncMock,
                 return_value=(task, BOARD, SPACE, WORKSPACE))


def _columns(*columns):
    lookup = {str(c["_id"]): c for c in columns}
    return patch("taskflow.columns.service.load_column", new_callable=AsyncMock,
                 side_effect=lambda column_id, session=None: lookup[column_id])


# Placement

@pytest.mark.asyncio
async def test_move_across_columns_keeps_both_dense(mock_db, quiet):
    t1, t2, t3, x0, x1 = (str(ObjectId()) for _ in range(5))
    source = _column("todo", t1, t2, t3)
    target = _column("in_progress", x0, x1)
    task = _task(t2, source)

    with _in_context(task), _columns(source, target):
        result = await service.move_task(t2, "u1", str(target["_id"]), 1)

    saved = _saved_task_lists(mock_db)
    assert [e["task_id"] for e in saved[source["_id"]]] == [t1, t3]
    assert [e["task_id"] for e in saved[target["_id"]]] == [x0, t2, x1]
    assert positions.is_dense(saved[source["_id"]])
    assert positions.is_dense(saved[target["_id"]])
    assert result["status"] == "in_progress"
    assert result["position"] == 1
    assert quiet.await_args.args[1] == "task:moved"


@pytest.mark.asyncio
async def test_move_to_foreign_board_column_rejected(mock_db, quiet):
    t1 = str(ObjectId())
    source = _column("todo", t1)
    elsewhere = {**_column("todo"), "board_id": "other-board"}

    with _in_context(_task(t1, source)), _columns(source, elsewhere):
        with pytest.raises(ValidationError):
            await service.move_task(t1, "u1", str(elsewhere["_id"]), 0)
    mock_db.columns.update_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_task_closes_gap_and_strips_dependencies(mock_db, quiet):
    t1, t2, t3 = (str(ObjectId()) for _ in range(3))
    column = _column("todo", t1, t2, t3)

    with _in_context(_task(t1, column)), _columns(column):
        await service.delete_task(t1, "u1")

    remaining = _saved_task_lists(mock_db)[column["_id"]]
    assert [(e["task_id"], e["position"]) for e in remaining] == [(t2, 0), (t3, 1)]
    mock_db.tasks.update_many.assert_awaited_once_with(
        {"dependencies.task_id": t1}, {"$pull": {"dependencies": {"task_id": t1}}}, session=None,
    )
    mock_db.checklists.delete_many.assert_awaited_once_with({"task_id": t1}, session=None)


# Dependencies

def _graph_store(docs):
    """Answer the precedence-graph query the way MongoDB would."""
    def find(query, projection=None):
        ids = set(query["$or"][0]["_id"]["$in"])
        refs = set(query["$or"][1]["dependencies.task_id"]["$in"])
        return _Cursor(
            d for d in docs
            if d["_id"] in ids or any(dep["task_id"] in refs for dep in d.get("dependencies", []))
        )
    return MagicMock(side_effect=find)


@pytest.fixture
def chain():
    """Three tasks where a blocks b and b blocks c."""
    a, b, c = (str(ObjectId()) for _ in range(3))
    column = _column("todo", a, b, c)
    docs = [
        _task(a, column),
        _task(b, column, dependencies=[{"task_id": a, "type": "blocked_by"}]),
        _task(c, column, dependencies=[{"task_id": b, "type": "blocked_by"}]),
    ]
    return docs


@pytest.mark.asyncio
async def test_dependency_closing_a_cycle_is_rejected(mock_db, quiet, chain):
    a, _, c = chain
    mock_db.tasks.find = _graph_store(chain)

    with _in_context(a), \
         patch("taskflow.tasks.service.load_task", new_callable=AsyncMock, return_value=c):
        with pytest.raises(ValidationError, match="Circular"):
            await service.add_dependency(str(a["_id"]), "u1", str(c["_id"]), "blocked_by")
    mock_db.tasks.find_one_and_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_dependency_along_the_chain_is_stored(mock_db, quiet, chain):
    a, _, c = chain
    mock_db.tasks.find = _graph_store(chain)
    mock_db.tasks.find_one_and_update.return_value = {**c, "dependencies": c["dependencies"] + [
        {"task_id": str(a["_id"]), "type": "blocked_by"}
    ]}

    with _in_context(c), \
         patch("taskflow.tasks.service.load_task", new_callable=AsyncMock, return_value=a):
        result = await service.add_dependency(str(c["_id"]), "u1", str(a["_id"]), "blocked_by")

    assert len(result["dependencies"]) == 2
    query = mock_db.tasks.find_one_and_update.await_args.args[0]
    assert query["dependencies.task_id"] == {"$ne": str(a["_id"])}


@pytest.mark.asyncio
async def test_self_dependency_rejected_before_lookup(mock_db):
    task_id = str(ObjectId())
    with pytest.raises(ValidationError):
        await service.add_dependency(task_id, "u1", task_id, "blocks")
    mock_db.tasks.find_one.assert_not_awaited()


# Columns and checklists

@pytest.mark.asyncio
async def test_delete_column_that_gained_tasks_keeps_positions(mock_db):
    doomed = _column("review")
    mock_db.columns.find_one.return_value = doomed
    mock_db.columns.delete_one.return_value = MagicMock(deleted_count=0)

    with patch("taskflow.columns.service.board_context", new_callable=AsyncMock), \
         patch("taskflow.columns.service.board_columns", new_callable=AsyncMock,
               return_value=[{**_column("todo"), "position": 0}, {**doomed, "position": 1}]), \
         patch("taskflow.columns.service.emit_board_event", new_callable=AsyncMock) as emit:
        with pytest.raises(ConflictError):
            await columns_service.delete_column(str(doomed["_id"]), "u1")

    mock_db.columns.update_one.assert_not_awaited()
    emit.assert_not_awaited()


@pytest.mark.asyncio
async def test_null_item_text_is_ignored():
    checklist = {
        "_id": ObjectId(),
        "task_id": "t1",
        "title": "Release",
        "items": [{"id": "i1", "text": "Tag build", "position": 0, "completed": False}],
        "settings": {},
        "version": 0,
    }
    db = AsyncMock()
    db.checklists.update_one.return_value = MagicMock(matched_count=1)
    with patch("taskflow.checklists.service.get_db", return_value=db), \
         patch("taskflow.checklists.service._editable", new_callable=AsyncMock, return_value=checklist):
        result = await checklists_service.update_item("cl", "i1", "u1", {"text": None, "assigned_to": "u2"})

    assert result["items"][0]["text"] == "Tag build"
    assert result["items"][0]["assigned_to"] == "u2"
