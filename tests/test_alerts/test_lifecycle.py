"""Tests for alert reconciliation and the lifecycle tracker."""

from datetime import timedelta

import pytest

from rabbitwatch.alerts.config import AlertConfig
from rabbitwatch.alerts.lifecycle import (
    AlertLifecycleTracker,
    AlertStore,
    in_vhost_scope,
    reconcile,
)
from rabbitwatch.alerts.thresholds import DEFAULT_THRESHOLDS
from rabbitwatch.alerts.triggers import classify
from tests.conftest import COLLECTED_AT, make_alert, make_node, make_queue, make_snapshot

T0 = COLLECTED_AT
T1 = COLLECTED_AT + timedelta(minutes=1)
T2 = COLLECTED_AT + timedelta(minutes=2)


def _alert(name: str, **kwargs):
    return make_alert(name=name, **kwargs)


@pytest.fixture
def tracker():
    return AlertLifecycleTracker(AlertStore(), AlertConfig())


class TestReconcile:
    def test_first_cycle_everything_new(self):
        result = reconcile([_alert("a"), _alert("b")], [], T0)
        assert [a.source.name for a in result.newly_active] == ["a", "b"]
        assert result.still_active == []
        assert result.newly_resolved == []

    def test_continuing_keeps_original_timestamp(self):
        previous = [_alert("a", timestamp=T0)]
        candidate = _alert("a", severity="critical", timestamp=T1)

        result = reconcile([candidate], previous, T1)

        assert result.newly_active == []
        assert len(result.still_active) == 1
        assert result.still_active[0].timestamp == T0
        assert result.still_active[0].severity == "critical"

    def test_absent_alert_resolved(self):
        result = reconcile([], [_alert("a", timestamp=T0)], T1)
        assert len(result.newly_resolved) == 1
        assert result.newly_resolved[0].resolved is True
        assert result.newly_resolved[0].resolved_at == T1

    def test_partitions_are_disjoint(self):
        previous = [_alert("a"), _alert("b")]
        result = reconcile([_alert("b"), _alert("c")], previous, T1)

        new = {a.key for a in result.newly_active}
        still = {a.key for a in result.still_active}
        gone = {a.key for a in result.newly_resolved}
        assert new.isdisjoint(still)
        assert gone.isdisjoint(new | still)


class TestLifecycleTracker:
    @pytest.mark.asyncio
    async def test_a_b_then_b_then_b_c(self, tracker):
        a, b, c = _alert("a"), _alert("b"), _alert("c")

        first = await tracker.apply("ws-1", "srv-1", [a, b], now=T0)
        assert {x.source.name for x in first.newly_active} == {"a", "b"}

        second = await tracker.apply("ws-1", "srv-1", [b], now=T1)
        assert [x.source.name for x in second.newly_resolved] == ["a"]
        assert [x.source.name for x in second.still_active] == ["b"]
        assert second.newly_active == []

        third = await tracker.apply("ws-1", "srv-1", [b, c], now=T2)
        assert [x.source.name for x in third.newly_active] == ["c"]
        assert [x.source.name for x in third.still_active] == ["b"]
        assert third.newly_resolved == []

        active = await tracker.store.get_active("ws-1", "srv-1")
        assert {x.source.name for x in active} == {"b", "c"}
        b_active = next(x for x in active if x.source.name == "b")
        assert b_active.timestamp == T0

        resolved = await tracker.store.get_resolved("ws-1", "srv-1")
        assert [x.source.name for x in resolved] == ["a"]
        assert resolved[0].resolved_at == T1

    @pytest.mark.asyncio
    async def test_memory_recovers_and_resolves(self, tracker):
        hot = make_snapshot([make_node(mem_used=92, mem_limit=100)])
        cool = make_snapshot([make_node(mem_used=70, mem_limit=100)])

        first = await tracker.apply("ws-1", "srv-1", classify(hot, DEFAULT_THRESHOLDS), now=T0)
        assert [a.category for a in first.newly_active] == ["memory"]

        second = await tracker.apply("ws-1", "srv-1", classify(cool, DEFAULT_THRESHOLDS), now=T1)
        assert [a.category for a in second.newly_resolved] == ["memory"]
        assert await tracker.store.get_active("ws-1", "srv-1") == []

    @pytest.mark.asyncio
    async def test_same_candidates_twice_is_a_no_op(self, tracker):
        candidates = [_alert("a"), _alert("b")]
        await tracker.apply("ws-1", "srv-1", candidates, now=T0)
        result = await tracker.apply("ws-1", "srv-1", candidates, now=T1)

        assert result.newly_active == []
        assert result.newly_resolved == []
        assert len(result.still_active) == 2

    @pytest.mark.asyncio
    async def test_stamps_workspace(self, tracker):
        result = await tracker.apply("ws-1", "srv-1", [_alert("a")], now=T0)
        assert result.newly_active[0].workspace_id == "ws-1"

    @pytest.mark.asyncio
    async def test_servers_are_independent(self, tracker):
        await tracker.apply("ws-1", "srv-1", [_alert("a")], now=T0)
        await tracker.apply("ws-1", "srv-2", [], now=T1)

        assert len(await tracker.store.get_active("ws-1", "srv-1")) == 1

    @pytest.mark.asyncio
    async def test_vhost_scoped_check_leaves_other_vhosts_alone(self, tracker):
        snapshot = make_snapshot(queues=[
            make_queue("orders", vhost="prod", messages=20_000),
            make_queue("orders", vhost="staging", messages=20_000),
        ])
        await tracker.apply("ws-1", "srv-1", classify(snapshot, DEFAULT_THRESHOLDS), now=T0)

        # A prod-only check where the prod queue recovered
        prod_only = make_snapshot(queues=[make_queue("orders", vhost="prod")], vhost="prod")
        result = await tracker.apply(
            "ws-1", "srv-1", classify(prod_only, DEFAULT_THRESHOLDS), vhost="prod", now=T1,
        )

        assert [a.vhost for a in result.newly_resolved] == ["prod"]
        active = await tracker.store.get_active("ws-1", "srv-1")
        assert [a.vhost for a in active] == ["staging"]

    @pytest.mark.asyncio
    async def test_purges_resolved_after_retention(self):
        tracker = AlertLifecycleTracker(AlertStore(), AlertConfig(resolved_retention_days=1))
        await tracker.apply("ws-1", "srv-1", [_alert("a")], now=T0)
        await tracker.apply("ws-1", "srv-1", [], now=T1)
        assert len(await tracker.store.get_resolved("ws-1", "srv-1")) == 1

        purged = await tracker.purge_expired(T1 + timedelta(days=2))

        assert purged == 1
        assert await tracker.store.get_resolved("ws-1", "srv-1") == []


class TestVhostScope:
    def test_node_alerts_always_in_scope(self):
        assert in_vhost_scope(_alert("n1"), "prod")

    def test_queue_alert_matches_vhost(self):
        alert = make_alert(name="q", category="queue", source_type="queue", vhost="prod")
        assert in_vhost_scope(alert, "prod")
        assert not in_vhost_scope(alert, "staging")
        assert in_vhost_scope(alert, None)
