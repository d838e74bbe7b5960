"""Per-workspace alert thresholds.

Holds the warning/critical bounds for every metric family, merges
partial workspace updates over the system defaults, and enforces the
ordering invariant: ``critical`` must be strictly worse than
``warning``. Worse means higher for every metric except disk, which
is measured as percentage *free* and is worse when lower.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, fields, replace
from typing import Any

from rabbitwatch.alerts.errors import (
    NotFoundError,
    PermissionDeniedError,
    ThresholdValidationError,
)

logger = logging.getLogger(__name__)

PERCENT_METRICS: frozenset[str] = frozenset({
    "memory",
    "disk",
    "file_descriptors",
    "sockets",
    "processes",
    "consumer_utilization",
    "connections",
})

COUNT_METRICS: frozenset[str] = frozenset({
    "queue_messages",
    "unacked_messages",
    "run_queue",
})

# Metrics where a lower value is worse
LOWER_IS_WORSE: frozenset[str] = frozenset({"disk"})

# Metrics that only carry a warning bound
WARNING_ONLY: frozenset[str] = frozenset({"consumer_utilization"})


@dataclass(frozen=True)
class MetricThreshold:
    """Warning and critical bounds for one metric."""

    warning: float
    critical: float | None = None

    def to_dict(self) -> dict[str, float]:
        data = {"warning": self.warning}
        if self.critical is not None:
            data["critical"] = self.critical
        return data


@dataclass(frozen=True)
class ThresholdSet:
    """Thresholds for every metric family of a workspace."""

    memory: MetricThreshold
    disk: MetricThreshold
    file_descriptors: MetricThreshold
    sockets: MetricThreshold
    processes: MetricThreshold
    queue_messages: MetricThreshold
    unacked_messages: MetricThreshold
    consumer_utilization: MetricThreshold
    connections: MetricThreshold
    run_queue: MetricThreshold

    @classmethod
    def metric_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def get(self, metric: str) -> MetricThreshold:
        return getattr(self, metric)

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {name: self.get(name).to_dict() for name in self.metric_names()}

    def merge(self, partial: dict[str, Any]) -> "ThresholdSet":
        """Overlay a partial update on this set.

        Args:
            partial: ``{metric: {"warning": x, "critical": y}}`` with any
                subset of metrics and bounds.

        Returns:
            A new ThresholdSet. The result is not validated.

        Raises:
            ThresholdValidationError: On unknown metrics or malformed entries.
        """
        errors: dict[str, str] = {}
        updates: dict[str, MetricThreshold] = {}
        known = set(self.metric_names())

        for metric, bounds in partial.items():
            if metric not in known:
                errors[metric] = "unknown metric"
                continue
            if bounds is None:
                continue
            if not isinstance(bounds, dict):
                errors[metric] = "expected an object with warning/critical"
                continue

            unexpected = set(bounds) - {"warning", "critical"}
            if unexpected:
                errors[metric] = f"unexpected fields: {sorted(unexpected)}"
                continue
            if metric in WARNING_ONLY and bounds.get("critical") is not None:
                errors[metric] = "metric has no critical bound"
                continue

            current = self.get(metric)
            merged = current
            for bound in ("warning", "critical"):
                value = bounds.get(bound)
                if value is None:
                    continue
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    errors[metric] = f"{bound} must be a number"
                    break
                merged = replace(merged, **{bound: float(value)})
            else:
                updates[metric] = merged

        if errors:
            raise ThresholdValidationError(errors)
        return replace(self, **updates)


DEFAULT_THRESHOLDS = ThresholdSet(
    memory=MetricThreshold(warning=80, critical=95),
    disk=MetricThreshold(warning=15, critical=10),  # percentage free
    file_descriptors=MetricThreshold(warning=80, critical=90),
    sockets=MetricThreshold(warning=80, critical=90),
    processes=MetricThreshold(warning=80, critical=90),
    queue_messages=MetricThreshold(warning=10_000, critical=50_000),
    unacked_messages=MetricThreshold(warning=1_000, critical=5_000),
    consumer_utilization=MetricThreshold(warning=10),  # minimum utilization
    connections=MetricThreshold(warning=80, critical=95),
    run_queue=MetricThreshold(warning=10, critical=20),
)


def validate_thresholds(thresholds: ThresholdSet) -> dict[str, str]:
    """Check range and ordering rules for every metric.

    Returns:
        Mapping of offending metric name to reason (empty when valid).
    """
    errors: dict[str, str] = {}

    for metric in thresholds.metric_names():
        bound = thresholds.get(metric)
        values = [bound.warning] + ([bound.critical] if bound.critical is not None else [])

        if not all(math.isfinite(v) for v in values):
            errors[metric] = "thresholds must be finite numbers"
            continue
        if any(v < 0 for v in values):
            errors[metric] = "thresholds must be non-negative"
            continue
        if metric in PERCENT_METRICS and any(v > 100 for v in values):
            errors[metric] = "percentage thresholds must be between 0 and 100"
            continue

        if bound.critical is None:
            if metric not in WARNING_ONLY:
                errors[metric] = "critical threshold is required"
            continue

        if metric in LOWER_IS_WORSE:
            if not bound.critical < bound.warning:
                errors[metric] = "critical must be lower than warning"
        elif not bound.critical > bound.warning:
            errors[metric] = "critical must be higher than warning"

    return errors


class ThresholdStore:
    """Keyed store of workspace threshold overrides.

    Reads merge workspace overrides over ``DEFAULT_THRESHOLDS`` and never
    fail. Writes go through ``update_thresholds`` only, are gated by the
    plan collaborator, validated as a whole, and serialized per workspace.
    """

    def __init__(
        self,
        plan_provider: Any,
        overrides: dict[str, ThresholdSet] | None = None,
    ) -> None:
        self._plans = plan_provider
        self._overrides: dict[str, ThresholdSet] = dict(overrides or {})
        self._locks: dict[str, asyncio.Lock] = {}

    def get_defaults(self) -> ThresholdSet:
        return DEFAULT_THRESHOLDS

    async def get_thresholds(self, workspace_id: str) -> ThresholdSet:
        """Thresholds in effect for a workspace (defaults if none stored)."""
        return self._overrides.get(workspace_id, DEFAULT_THRESHOLDS)

    async def can_modify(self, workspace_id: str) -> bool:
        """Whether the workspace's plan allows editing thresholds.

        Collaborator failures deny rather than raise; an unknown
        workspace raises NotFoundError.
        """
        try:
            return bool(await self._plans.can_modify_thresholds(workspace_id))
        except NotFoundError:
            raise
        except Exception as e:
            logger.error(
                "Failed to check threshold permissions for %s: %s",
                workspace_id, e,
            )
            return False

    async def update_thresholds(
        self,
        workspace_id: str,
        partial: dict[str, Any],
    ) -> ThresholdSet:
        """Validate and store a partial threshold update.

        Args:
            workspace_id: Workspace to update.
            partial: Metrics and bounds to change.

        Returns:
            The full ThresholdSet now in effect.

        Raises:
            NotFoundError: Workspace does not exist.
            PermissionDeniedError: Plan does not allow threshold edits.
            ThresholdValidationError: Merged result violates an invariant.
        """
        if not await self.can_modify(workspace_id):
            raise PermissionDeniedError(
                "Your current plan does not allow threshold modifications. "
                "Upgrade your plan to customize alert thresholds."
            )

        lock = self._locks.setdefault(workspace_id, asyncio.Lock())
        async with lock:
            current = await self.get_thresholds(workspace_id)
            merged = current.merge(partial)

            errors = validate_thresholds(merged)
            if errors:
                logger.info(
                    "Rejected threshold update for %s: %s",
                    workspace_id, sorted(errors),
                )
                raise ThresholdValidationError(errors)

            self._overrides[workspace_id] = merged

        logger.info(
            "Thresholds updated for workspace %s: %s",
            workspace_id, sorted(partial),
        )
        return merged
