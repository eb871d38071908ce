"""Tests for the task dependency precedence graph."""

from taskflow.tasks import graph


def _task(task_id, *deps):
    return {"_id": task_id, "dependencies": [{"task_id": d, "type": t} for d, t in deps]}


def test_edge_direction_follows_dependency_type():
    assert graph.edge_for("t", "d", graph.BLOCKED_BY) == ("d", "t")
    assert graph.edge_for("t", "d", graph.BLOCKS) == ("t", "d")
    assert graph.edge_for("t", "d", graph.RELATED_TO) is None


def test_precedence_edges_ignore_related():
    tasks = [
        _task("a", ("b", graph.BLOCKED_BY)),
        _task("c", ("a", graph.RELATED_TO)),
    ]
    assert graph.precedence_edges(tasks) == {"b": {"a"}}


def test_self_dependency_is_a_cycle():
    assert graph.would_create_cycle({}, "a", "a")


def test_direct_cycle_detected():
    # a is blocked by b, so b -> a. Adding a -> b closes the loop.
    edges = graph.precedence_edges([_task("a", ("b", graph.BLOCKED_BY))])
    assert graph.would_create_cycle(edges, "a", "b")


def test_transitive_cycle_detected():
    edges = graph.precedence_edges([
        _task("b", ("a", graph.BLOCKED_BY)),
        _task("c", ("b", graph.BLOCKED_BY)),
    ])
    assert graph.would_create_cycle(edges, "c", "a")
    assert not graph.would_create_cycle(edges, "a", "c")


def test_blocks_and_blocked_by_mix():
    # a blocks b  => a -> b ; c blocked_by b => b -> c
    edges = graph.precedence_edges([
        _task("a", ("b", graph.BLOCKS)),
        _task("c", ("b", graph.BLOCKED_BY)),
    ])
    assert graph.reaches(edges, "a", "c")
    assert graph.would_create_cycle(edges, "c", "a")


def test_unrelated_tasks_do_not_cycle():
    edges = graph.precedence_edges([_task("a", ("b", graph.BLOCKED_BY))])
    assert not graph.would_create_cycle(edges, "x", "y")
