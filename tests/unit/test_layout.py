"""Unit tests for the graph layout engine and layout worker."""

import asyncio
import random

import pytest

from gitcanopy.layout import (
    LayoutOutcome,
    LayoutWorker,
    assign_lanes,
    calculate_layout,
    compute_lineage,
    run_layout,
)
from gitcanopy.models import Author, Branch, CanopySettings, Commit

AUTHOR = Author(name="Test User", email="test@example.com", avatar_url="")


def make_commit(hash_, parents, branch, timestamp):
    return Commit(
        hash=hash_,
        short_hash=hash_[:7],
        parents=parents,
        message=f"commit {hash_}",
        short_message=f"commit {hash_}",
        author=AUTHOR,
        committer=AUTHOR,
        timestamp=timestamp,
        is_merge=len(parents) > 1,
        branch_name=branch,
    )


@pytest.fixture
def linear_commits():
    return [
        make_commit("c3", ["c2"], "main", 3),
        make_commit("c2", ["c1"], "main", 2),
        make_commit("c1", [], "main", 1),
    ]


@pytest.fixture
def merge_commits():
    """R <- F (feature) and R <- M2 (main), merged into M on main."""
    return [
        make_commit("m", ["m2", "f"], "main", 4),
        make_commit("m2", ["r"], "main", 3),
        make_commit("f", ["r"], "feature/x", 2),
        make_commit("r", [], "main", 1),
    ]


class TestLaneAssignment:
    """Tests for branch lane allocation."""

    def test_main_gets_lane_zero(self, merge_commits):
        ordered = sorted(merge_commits, key=lambda c: c.timestamp)

        assert assign_lanes(ordered) == {"main": 0, "feature/x": 1}

    def test_lane_zero_unused_without_main(self):
        commits = [
            make_commit("a", [], "feature/a", 1),
            make_commit("b", ["a"], "feature/b", 2),
        ]

        data = calculate_layout(commits, [])

        assert {node.lane for node in data.nodes} == {1, 2}

    def test_unnamed_commits_default_to_main(self):
        data = calculate_layout([make_commit("a", [], None, 1)], [])

        assert data.nodes[0].lane == 0


class TestCalculateLayout:
    """Tests for node placement, edges and lane rails."""

    def test_linear_history(self, linear_commits):
        data = calculate_layout(linear_commits, [], head_commit_hash="c3")

        assert [n.id for n in data.nodes] == ["c1", "c2", "c3"]
        assert [(n.x, n.y) for n in data.nodes] == [(40, 60), (40, 120), (40, 180)]
        assert [n.size for n in data.nodes] == [7, 7, 10]
        assert all(n.shape == "circle" for n in data.nodes)
        assert [e.id for e in data.edges] == ["c1-c2", "c2-c3"]
        assert data.nodes[0].children == ["c2"]

        assert len(data.lane_segments) == 1
        rail = data.lane_segments[0]
        assert (rail.lane, rail.start_y, rail.end_y, rail.branch_name) == (0, 60, 180, "main")

        assert data.width == 80
        assert data.height == 240
        assert (data.bounds.min_x, data.bounds.max_x) == (0, 80)
        assert (data.bounds.min_y, data.bounds.max_y) == (0, 240)

    def test_merge_history(self, merge_commits):
        data = calculate_layout(merge_commits, [])
        nodes = {n.id: n for n in data.nodes}

        assert nodes["m"].shape == "diamond"
        assert nodes["f"].lane == 1
        assert nodes["f"].x == 80
        assert sorted(nodes["r"].children) == ["f", "m2"]

        edges = {e.id: e for e in data.edges}
        assert set(edges) == {"r-f", "r-m2", "m2-m", "f-m"}
        assert edges["f-m"].type == "merge"
        assert edges["m2-m"].type == "merge"
        assert edges["r-f"].type == "normal"
        assert edges["r-f"].color == nodes["f"].color

    def test_rows_strictly_increase(self, merge_commits):
        data = calculate_layout(merge_commits, [])
        ys = [n.y for n in data.nodes]

        assert all(a < b for a, b in zip(ys, ys[1:]))

    def test_edges_reference_known_nodes(self):
        commits = [
            make_commit("b", ["a"], "main", 2),
            make_commit("a", ["outside-page"], "main", 1),
        ]

        data = calculate_layout(commits, [])
        ids = {n.id for n in data.nodes}

        assert [e.id for e in data.edges] == ["a-b"]
        assert all(e.source in ids and e.target in ids for e in data.edges)

    def test_lane_segments_cover_every_node(self, merge_commits):
        data = calculate_layout(merge_commits, [])

        for node in data.nodes:
            rail = next(s for s in data.lane_segments if s.lane == node.lane)
            assert rail.start_y <= node.y <= rail.end_y
            assert rail.x == node.x

    def test_deterministic_and_order_independent(self, merge_commits):
        shuffled = list(merge_commits)
        random.Random(7).shuffle(shuffled)

        first = calculate_layout(merge_commits, [])
        second = calculate_layout(shuffled, [])

        assert first.model_dump() == second.model_dump()

    def test_branch_colors_from_branch_list(self, merge_commits):
        branches = [Branch(name="feature/x", type="feature", object_name="f", color="#123456")]

        data = calculate_layout(merge_commits, branches)

        assert next(n for n in data.nodes if n.id == "f").color == "#123456"

    def test_custom_spacing(self, linear_commits):
        data = calculate_layout(linear_commits, [], lane_width=10, row_height=20)

        assert [(n.x, n.y) for n in data.nodes] == [(10, 20), (10, 40), (10, 60)]

    def test_empty_input(self):
        data = calculate_layout([], [])

        assert data.nodes == []
        assert data.width == 0
        assert data.height == 0


class TestLineage:
    """Tests for ancestor/descendant reachability."""

    def test_feature_commit(self, merge_commits):
        data = calculate_layout(merge_commits, [])

        lineage = compute_lineage(data, "f")

        assert lineage.ancestors == {"f", "r"}
        assert lineage.descendants == {"f", "m"}
        assert lineage.highlighted == {"f", "r", "m"}

    def test_root_reaches_everything(self, merge_commits):
        data = calculate_layout(merge_commits, [])

        lineage = compute_lineage(data, "r")

        assert lineage.ancestors == {"r"}
        assert lineage.descendants == {"r", "f", "m2", "m"}

    def test_diamond_visits_shared_ancestor_once(self, merge_commits):
        data = calculate_layout(merge_commits, [])

        assert compute_lineage(data, "m").ancestors == {"m", "m2", "f", "r"}

    def test_unknown_focus(self, linear_commits):
        data = calculate_layout(linear_commits, [])

        lineage = compute_lineage(data, "missing")

        assert lineage.ancestors == set()
        assert lineage.descendants == set()


class TestLayoutWorker:
    """Tests for off-thread layout with sequencing."""

    def test_run_layout_success(self, linear_commits):
        payload = {
            "commits": [c.model_dump() for c in linear_commits],
            "branches": [],
            "lane_width": 40,
            "row_height": 60,
        }

        result = run_layout(payload)

        assert result["type"] == "success"
        assert len(result["result"]["nodes"]) == 3

    def test_run_layout_error(self):
        result = run_layout({"commits": [{"hash": "x"}], "branches": [], "lane_width": 40, "row_height": 60})

        assert result["type"] == "error"
        assert result["error"]

    @pytest.mark.asyncio
    async def test_request_returns_layout(self, linear_commits):
        with LayoutWorker(CanopySettings()) as worker:
            outcome = await worker.request(linear_commits, [], head_commit_hash="c3")

            assert outcome.ok
            assert outcome.sequence == 1
            assert outcome.stale is False
            assert outcome.data.nodes[-1].size == 10
            assert worker.accept(outcome) is True

    @pytest.mark.asyncio
    async def test_older_result_is_stale(self, linear_commits, merge_commits):
        with LayoutWorker(CanopySettings()) as worker:
            older, newer = await asyncio.gather(
                worker.request(linear_commits, []),
                worker.request(merge_commits, []),
            )

            assert older.sequence < newer.sequence
            assert older.stale is True
            assert newer.stale is False
            assert worker.accept(older) is False
            assert worker.accept(newer) is True
            assert worker.latest_accepted == newer.sequence

    def test_accept_rejects_replays(self):
        worker = LayoutWorker(CanopySettings())
        worker.latest_requested = 3

        assert worker.accept(LayoutOutcome(sequence=3)) is True
        assert worker.accept(LayoutOutcome(sequence=3)) is False
        assert worker.accept(LayoutOutcome(sequence=2)) is False
        worker.shutdown()
