"""Tests for threshold sets, validation and the per-workspace store."""

import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from rabbitwatch.alerts.errors import (
    NotFoundError,
    PermissionDeniedError,
    ThresholdValidationError,
)
from rabbitwatch.alerts.thresholds import (
    DEFAULT_THRESHOLDS,
    LOWER_IS_WORSE,
    PERCENT_METRICS,
    WARNING_ONLY,
    MetricThreshold,
    ThresholdSet,
    ThresholdStore,
    validate_thresholds,
)


def random_valid_thresholds(rng: random.Random) -> ThresholdSet:
    """Generate a ThresholdSet that satisfies range and ordering rules."""
    bounds = {}
    for metric in ThresholdSet.metric_names():
        ceiling = 100.0 if metric in PERCENT_METRICS else 1_000_000.0
        low = rng.uniform(0, ceiling / 2)
        high = rng.uniform(low + 1, ceiling)
        if metric in WARNING_ONLY:
            bounds[metric] = MetricThreshold(warning=low)
        elif metric in LOWER_IS_WORSE:
            bounds[metric] = MetricThreshold(warning=high, critical=low)
        else:
            bounds[metric] = MetricThreshold(warning=low, critical=high)
    return ThresholdSet(**bounds)


@pytest.fixture
def plans():
    plans = AsyncMock()
    plans.can_modify_thresholds = AsyncMock(return_value=True)
    return plans


@pytest.fixture
def store(plans):
    return ThresholdStore(plans)


class TestDefaults:
    def test_defaults_are_valid(self):
        assert validate_thresholds(DEFAULT_THRESHOLDS) == {}

    def test_disk_is_lower_is_worse(self):
        assert DEFAULT_THRESHOLDS.disk.critical < DEFAULT_THRESHOLDS.disk.warning

    def test_consumer_utilization_has_no_critical(self):
        assert DEFAULT_THRESHOLDS.consumer_utilization.critical is None
        assert DEFAULT_THRESHOLDS.to_dict()["consumer_utilization"] == {"warning": 10}

    def test_every_metric_serialized(self):
        assert set(DEFAULT_THRESHOLDS.to_dict()) == set(DEFAULT_THRESHOLDS.metric_names())
        assert len(DEFAULT_THRESHOLDS.metric_names()) == 10


class TestMerge:
    def test_partial_bound_keeps_other_bound(self):
        merged = DEFAULT_THRESHOLDS.merge({"memory": {"warning": 70}})
        assert merged.memory == MetricThreshold(warning=70, critical=95)
        assert merged.disk == DEFAULT_THRESHOLDS.disk

    def test_does_not_mutate_original(self):
        DEFAULT_THRESHOLDS.merge({"memory": {"warning": 70}})
        assert DEFAULT_THRESHOLDS.memory.warning == 80

    def test_unknown_metric(self):
        with pytest.raises(ThresholdValidationError) as exc_info:
            DEFAULT_THRESHOLDS.merge({"cpu": {"warning": 50}})
        assert exc_info.value.metrics == ["cpu"]

    def test_non_numeric_bound(self):
        with pytest.raises(ThresholdValidationError) as exc_info:
            DEFAULT_THRESHOLDS.merge({"sockets": {"warning": "high"}})
        assert exc_info.value.metrics == ["sockets"]

    def test_boolean_is_not_a_number(self):
        with pytest.raises(ThresholdValidationError):
            DEFAULT_THRESHOLDS.merge({"sockets": {"warning": True}})

    def test_unexpected_field(self):
        with pytest.raises(ThresholdValidationError) as exc_info:
            DEFAULT_THRESHOLDS.merge({"memory": {"warning": 70, "info": 50}})
        assert "unexpected fields" in exc_info.value.errors["memory"]

    def test_consumer_utilization_rejects_critical(self):
        with pytest.raises(ThresholdValidationError) as exc_info:
            DEFAULT_THRESHOLDS.merge({"consumer_utilization": {"warning": 5, "critical": 1}})
        assert exc_info.value.metrics == ["consumer_utilization"]


class TestValidate:
    @pytest.mark.parametrize("metric", ["memory", "file_descriptors", "sockets", "queue_messages", "run_queue"])
    def test_critical_must_exceed_warning(self, metric):
        merged = DEFAULT_THRESHOLDS.merge({metric: {"warning": 50, "critical": 50}})
        assert set(validate_thresholds(merged)) == {metric}

    def test_disk_critical_must_be_below_warning(self):
        merged = DEFAULT_THRESHOLDS.merge({"disk": {"warning": 10, "critical": 20}})
        errors = validate_thresholds(merged)
        assert set(errors) == {"disk"}
        assert "lower" in errors["disk"]

    def test_percent_out_of_range(self):
        merged = DEFAULT_THRESHOLDS.merge({"memory": {"warning": 90, "critical": 120}})
        assert set(validate_thresholds(merged)) == {"memory"}

    def test_counts_may_exceed_100(self):
        merged = DEFAULT_THRESHOLDS.merge({"queue_messages": {"warning": 500, "critical": 1000}})
        assert validate_thresholds(merged) == {}

    def test_negative_rejected(self):
        merged = DEFAULT_THRESHOLDS.merge({"run_queue": {"warning": -1}})
        assert set(validate_thresholds(merged)) == {"run_queue"}

    def test_names_every_offending_metric(self):
        merged = DEFAULT_THRESHOLDS.merge({
            "memory": {"warning": 96},
            "disk": {"critical": 50},
        })
        assert set(validate_thresholds(merged)) == {"memory", "disk"}

    @pytest.mark.parametrize("seed", range(25))
    def test_generated_valid_sets_pass(self, seed):
        thresholds = random_valid_thresholds(random.Random(seed))
        assert validate_thresholds(thresholds) == {}

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_rejected(self, value):
        merged = DEFAULT_THRESHOLDS.merge({
            "consumer_utilization": {"warning": value},
            "queue_messages": {"critical": value},
        })
        errors = validate_thresholds(merged)
        assert set(errors) == {"consumer_utilization", "queue_messages"}
        assert "finite" in errors["consumer_utilization"]


class TestThresholdStore:
    @pytest.mark.asyncio
    async def test_unknown_workspace_gets_defaults(self, store):
        assert await store.get_thresholds("ws-new") == DEFAULT_THRESHOLDS
        assert store.get_defaults() == DEFAULT_THRESHOLDS

    @pytest.mark.asyncio
    async def test_update_persists(self, store):
        updated = await store.update_thresholds("ws-1", {"memory": {"warning": 70, "critical": 90}})

        assert updated.memory == MetricThreshold(warning=70, critical=90)
        assert await store.get_thresholds("ws-1") == updated
        assert await store.get_thresholds("ws-2") == DEFAULT_THRESHOLDS

    @pytest.mark.asyncio
    async def test_partial_updates_accumulate(self, store):
        await store.update_thresholds("ws-1", {"memory": {"warning": 70}})
        await store.update_thresholds("ws-1", {"memory": {"critical": 85}})

        assert (await store.get_thresholds("ws-1")).memory == MetricThreshold(70, 85)

    @pytest.mark.asyncio
    async def test_partial_update_validated_against_stored_values(self, store):
        await store.update_thresholds("ws-1", {"memory": {"warning": 70, "critical": 80}})

        # warning 85 is above the stored critical 80
        with pytest.raises(ThresholdValidationError) as exc_info:
            await store.update_thresholds("ws-1", {"memory": {"warning": 85}})
        assert exc_info.value.metrics == ["memory"]

    @pytest.mark.asyncio
    async def test_rejected_update_is_not_persisted(self, store):
        with pytest.raises(ThresholdValidationError):
            await store.update_thresholds("ws-1", {
                "memory": {"warning": 60},
                "disk": {"warning": 5},
            })

        assert await store.get_thresholds("ws-1") == DEFAULT_THRESHOLDS

    @pytest.mark.asyncio
    async def test_permission_checked_before_validation(self, store, plans):
        plans.can_modify_thresholds.return_value = False

        with pytest.raises(PermissionDeniedError):
            await store.update_thresholds("ws-1", {"memory": {"warning": 999}})

    @pytest.mark.asyncio
    async def test_can_modify_denies_on_collaborator_failure(self, store, plans):
        plans.can_modify_thresholds.side_effect = RuntimeError("plan service down")

        assert await store.can_modify("ws-1") is False
        with pytest.raises(PermissionDeniedError):
            await store.update_thresholds("ws-1", {"memory": {"warning": 70}})

    @pytest.mark.asyncio
    async def test_nan_bound_not_stored(self, store):
        with pytest.raises(ThresholdValidationError) as exc_info:
            await store.update_thresholds(
                "ws-1", {"consumer_utilization": {"warning": float("nan")}},
            )

        assert exc_info.value.metrics == ["consumer_utilization"]
        assert await store.get_thresholds("ws-1") == DEFAULT_THRESHOLDS

    @pytest.mark.asyncio
    async def test_unknown_workspace_not_found(self, store, plans):
        plans.can_modify_thresholds.side_effect = NotFoundError("Workspace not found: ws-x")

        with pytest.raises(NotFoundError):
            await store.can_modify("ws-x")
        with pytest.raises(NotFoundError):
            await store.update_thresholds("ws-x", {"memory": {"warning": 70}})

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_serialized(self, store):
        await asyncio.gather(
            store.update_thresholds("ws-1", {"memory": {"warning": 70}}),
            store.update_thresholds("ws-1", {"disk": {"warning": 25}}),
        )

        result = await store.get_thresholds("ws-1")
        assert result.memory.warning == 70
        assert result.disk.warning == 25

    @pytest.mark.asyncio
    async def test_directory_plan_gating(self, directory):
        store = ThresholdStore(directory)
        assert await store.can_modify("ws-1") is True

        directory.user_plans["user-1"] = "FREE"
        assert await store.can_modify("ws-1") is False
