"""
test_board_ordering.py — Tests for the pure board list helpers

Called by: pytest
Depends on: crmboard/board/ordering.py
"""

import re

from crmboard.board.ordering import (
    array_move,
    find_lead,
    is_temporary_stage,
    name_taken,
    reindex,
    temp_stage_id,
)


def _stages(*names):
    return [{"id": n.lower(), "name": n, "position": i} for i, n in enumerate(names)]


# ── array_move ───────────────────────────────────────────────────────


def test_array_move_forward():
    assert array_move(["a", "b", "c", "d"], 0, 2) == ["b", "c", "a", "d"]


def test_array_move_backward():
    assert array_move(["a", "b", "c", "d"], 3, 1) == ["a", "d", "b", "c"]


def test_array_move_same_index_is_a_copy():
    items = ["a", "b"]
    moved = array_move(items, 1, 1)
    assert moved == items
    assert moved is not items


def test_array_move_does_not_mutate_input():
    items = ["a", "b", "c"]
    array_move(items, 0, 2)
    assert items == ["a", "b", "c"]


def test_array_move_is_a_permutation():
    items = list(range(8))
    for src in range(8):
        for dst in range(8):
            assert sorted(array_move(items, src, dst)) == items


# ── reindex ──────────────────────────────────────────────────────────


def test_reindex_reports_only_changed():
    stages = _stages("A", "B", "C")
    stages = array_move(stages, 1, 0)
    changed = reindex(stages)
    assert changed == ["b", "a"]
    assert [s["position"] for s in stages] == [0, 1, 2]


def test_reindex_noop_when_dense():
    assert reindex(_stages("A", "B")) == []


# ── Temporary stages ─────────────────────────────────────────────────


def test_temp_stage_id_format():
    sid = temp_stage_id()
    assert re.fullmatch(r"temp-\d+-\d+", sid)
    assert is_temporary_stage(sid)


def test_real_ids_are_not_temporary():
    assert not is_temporary_stage("0b6f2d0c-6a7e-4f2d-9b1c-2f4a3c8d9e10")


# ── Names & lookup ───────────────────────────────────────────────────


def test_name_taken_case_and_whitespace_insensitive():
    stages = _stages("Prospecting", "Proposal")
    assert name_taken(stages, "  prospecting ")
    assert not name_taken(stages, "Closing")


def test_name_taken_ignores_the_stage_being_renamed():
    stages = _stages("Prospecting")
    assert not name_taken(stages, "PROSPECTING", ignore_id="prospecting")


def test_find_lead():
    board = {"s1": [{"id": "L1"}], "s2": [{"id": "L2"}, {"id": "L3"}]}
    assert find_lead(board, "L3") == ("s2", 1)
    assert find_lead(board, "missing") is None
