"""Alert lifecycle: new, continuing and resolved alerts across cycles.

``reconcile`` is a pure set difference keyed by the alert fingerprint.
``AlertStore`` keeps the active and resolved collections per
(workspace, server), and ``AlertLifecycleTracker`` applies each cycle's
candidates to it under a per-server lock.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from rabbitwatch.alerts.config import AlertConfig
from rabbitwatch.alerts.schemas import Alert

logger = logging.getLogger(__name__)

StoreKey = tuple[str, str]


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation.

    Attributes:
        still_active: Alerts present before and now, with their original
            timestamp and refreshed details.
        newly_active: Alerts seen for the first time this cycle.
        newly_resolved: Alerts that cleared, marked resolved.
    """

    still_active: list[Alert] = field(default_factory=list)
    newly_active: list[Alert] = field(default_factory=list)
    newly_resolved: list[Alert] = field(default_factory=list)

    @property
    def active(self) -> list[Alert]:
        return self.still_active + self.newly_active


def reconcile(
    candidates: list[Alert],
    previously_active: list[Alert],
    now: datetime,
) -> ReconcileResult:
    """Diff this cycle's candidates against the previously active set.

    A continuing alert keeps its first-detected timestamp and is not
    reported as new, even if its severity changed. An alert absent from
    the candidates is resolved at ``now``.

    Args:
        candidates: Alerts produced by the classifier this cycle.
        previously_active: Active alerts before this cycle.
        now: Time of this cycle.

    Returns:
        ReconcileResult with the three partitions.
    """
    previous = {alert.key: alert for alert in previously_active}
    result = ReconcileResult()
    seen: set[str] = set()

    for candidate in candidates:
        key = candidate.key
        if key in seen:
            continue
        seen.add(key)

        prior = previous.get(key)
        if prior is not None:
            result.still_active.append(dataclasses.replace(
                candidate,
                timestamp=prior.timestamp,
                workspace_id=candidate.workspace_id or prior.workspace_id,
            ))
        else:
            result.newly_active.append(dataclasses.replace(
                candidate, timestamp=now, resolved=False, resolved_at=None,
            ))

    for key, prior in previous.items():
        if key not in seen:
            result.newly_resolved.append(prior.resolve(now))

    return result


def in_vhost_scope(alert: Alert, vhost: str | None) -> bool:
    """Whether an alert belongs to a check scoped to ``vhost``.

    Node and cluster alerts are always in scope; queue alerts only when
    their vhost matches. ``vhost=None`` means every vhost.
    """
    if vhost is None or alert.source.type != "queue":
        return True
    return alert.vhost == vhost


class AlertStore:
    """In-memory active and resolved alert collections.

    Active alerts are keyed by fingerprint within each (workspace, server)
    pair; resolved alerts are appended and purged by age.
    """

    def __init__(self) -> None:
        self._active: dict[StoreKey, dict[str, Alert]] = {}
        self._resolved: dict[StoreKey, list[Alert]] = {}

    async def get_active(self, workspace_id: str, server_id: str) -> list[Alert]:
        return list(self._active.get((workspace_id, server_id), {}).values())

    async def set_active(
        self, workspace_id: str, server_id: str, alerts: list[Alert],
    ) -> None:
        self._active[(workspace_id, server_id)] = {a.key: a for a in alerts}

    async def get_resolved(self, workspace_id: str, server_id: str) -> list[Alert]:
        return list(self._resolved.get((workspace_id, server_id), []))

    async def add_resolved(
        self, workspace_id: str, server_id: str, alerts: list[Alert],
    ) -> None:
        if alerts:
            self._resolved.setdefault((workspace_id, server_id), []).extend(alerts)

    async def purge_resolved(self, older_than: datetime) -> int:
        """Drop resolved alerts resolved before ``older_than``.

        Returns:
            Number of alerts purged.
        """
        purged = 0
        for key, alerts in self._resolved.items():
            kept = [a for a in alerts if a.resolved_at and a.resolved_at >= older_than]
            purged += len(alerts) - len(kept)
            self._resolved[key] = kept
        return purged


class AlertLifecycleTracker:
    """Applies classifier output to the alert store, one cycle at a time.

    Cycles for the same (workspace, server) are serialized; cycles for
    different servers run independently.
    """

    def __init__(self, store: AlertStore, config: AlertConfig | None = None) -> None:
        self._store = store
        self._config = config or AlertConfig()
        self._locks: dict[StoreKey, asyncio.Lock] = {}

    @property
    def store(self) -> AlertStore:
        return self._store

    async def apply(
        self,
        workspace_id: str,
        server_id: str,
        candidates: list[Alert],
        vhost: str | None = None,
        now: datetime | None = None,
    ) -> ReconcileResult:
        """Reconcile candidates with the stored active set and persist.

        When ``vhost`` is given, only queue alerts of that vhost (plus node
        and cluster alerts) take part; queue alerts of other vhosts are
        left untouched.

        Args:
            workspace_id: Owning workspace.
            server_id: Server the candidates were classified for.
            candidates: Classifier output for this cycle.
            vhost: Scope of the check that produced the candidates.
            now: Cycle time (defaults to current UTC time).

        Returns:
            ReconcileResult describing what changed.
        """
        now = now or datetime.now(timezone.utc)
        candidates = [
            dataclasses.replace(alert, workspace_id=workspace_id)
            for alert in candidates
        ]

        lock = self._locks.setdefault((workspace_id, server_id), asyncio.Lock())
        async with lock:
            active = await self._store.get_active(workspace_id, server_id)
            in_scope = [a for a in active if in_vhost_scope(a, vhost)]
            out_of_scope = [a for a in active if not in_vhost_scope(a, vhost)]

            result = reconcile(candidates, in_scope, now)

            await self._store.set_active(
                workspace_id, server_id, out_of_scope + result.active,
            )
            await self._store.add_resolved(
                workspace_id, server_id, result.newly_resolved,
            )

        if result.newly_active or result.newly_resolved:
            logger.info(
                "Alert lifecycle for server %s: %d new, %d continuing, %d resolved",
                server_id,
                len(result.newly_active),
                len(result.still_active),
                len(result.newly_resolved),
            )

        await self.purge_expired(now)
        return result

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Remove resolved alerts older than the retention window."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self._config.resolved_retention_days)
        purged = await self._store.purge_resolved(cutoff)
        if purged:
            logger.info("Purged %d resolved alerts older than %s", purged, cutoff)
        return purged
