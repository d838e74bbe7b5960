"""Interfaces to the systems the alert engine depends on.

The engine never talks to persistence, billing or the broker directly.
It is handed a ``MetricsSource`` to poll servers, a ``PlanProvider`` to
answer entitlement questions and a ``ServerDirectory`` to resolve
servers and workspaces. In-memory implementations back the API process
and the tests.
"""

from dataclasses import dataclass, field
from typing import Protocol

from rabbitwatch.alerts.errors import MetricsUnavailableError, NotFoundError
from rabbitwatch.alerts.snapshot import MetricsSnapshot

FREE_PLAN = "FREE"

# Plans whose workspaces may customize thresholds
THRESHOLD_EDIT_PLANS: frozenset[str] = frozenset({"DEVELOPER", "ENTERPRISE"})


@dataclass
class ServerInfo:
    """A monitored RabbitMQ server."""

    id: str
    name: str
    workspace_id: str
    management_url: str | None = None
    username: str = "guest"
    password: str = "guest"


@dataclass
class WorkspaceInfo:
    id: str
    name: str
    owner_id: str


class MetricsSource(Protocol):
    async def fetch_snapshot(
        self, server: ServerInfo, vhost: str | None = None,
    ) -> MetricsSnapshot:
        """Poll a server. Raises MetricsUnavailableError on failure."""
        ...

    async def ping(self, server: ServerInfo) -> None:
        """Check connectivity. Raises MetricsUnavailableError on failure."""
        ...


class PlanProvider(Protocol):
    async def get_user_plan(self, user_id: str) -> str: ...

    async def can_modify_thresholds(self, workspace_id: str) -> bool: ...

    async def is_workspace_owner(self, user_id: str, workspace_id: str) -> bool: ...


class ServerDirectory(Protocol):
    async def get_server(self, server_id: str, workspace_id: str) -> ServerInfo: ...

    async def list_servers(self) -> list[ServerInfo]: ...

    async def get_workspace(self, workspace_id: str) -> WorkspaceInfo: ...


@dataclass
class InMemoryDirectory:
    """Server directory and plan provider backed by dictionaries.

    A user's plan defaults to FREE. A workspace may edit thresholds when
    its owner's plan is in ``THRESHOLD_EDIT_PLANS``.
    """

    workspaces: dict[str, WorkspaceInfo] = field(default_factory=dict)
    servers: dict[str, ServerInfo] = field(default_factory=dict)
    user_plans: dict[str, str] = field(default_factory=dict)

    def add_workspace(self, workspace: WorkspaceInfo, owner_plan: str | None = None) -> None:
        self.workspaces[workspace.id] = workspace
        if owner_plan is not None:
            self.user_plans[workspace.owner_id] = owner_plan

    def add_server(self, server: ServerInfo) -> None:
        self.servers[server.id] = server

    async def get_server(self, server_id: str, workspace_id: str) -> ServerInfo:
        server = self.servers.get(server_id)
        if server is None or server.workspace_id != workspace_id:
            raise NotFoundError(f"Server not found: {server_id}")
        return server

    async def list_servers(self) -> list[ServerInfo]:
        return list(self.servers.values())

    async def get_workspace(self, workspace_id: str) -> WorkspaceInfo:
        workspace = self.workspaces.get(workspace_id)
        if workspace is None:
            raise NotFoundError(f"Workspace not found: {workspace_id}")
        return workspace

    async def get_user_plan(self, user_id: str) -> str:
        return self.user_plans.get(user_id, FREE_PLAN)

    async def can_modify_thresholds(self, workspace_id: str) -> bool:
        workspace = await self.get_workspace(workspace_id)
        plan = await self.get_user_plan(workspace.owner_id)
        return plan in THRESHOLD_EDIT_PLANS

    async def is_workspace_owner(self, user_id: str, workspace_id: str) -> bool:
        workspace = self.workspaces.get(workspace_id)
        return workspace is not None and workspace.owner_id == user_id


@dataclass
class StaticMetricsSource:
    """Metrics source that serves preloaded snapshots.

    A server mapped to an exception raises it from both methods, which
    lets callers simulate an unreachable broker.
    """

    snapshots: dict[str, MetricsSnapshot | Exception] = field(default_factory=dict)

    def _lookup(self, server: ServerInfo) -> MetricsSnapshot:
        entry = self.snapshots.get(server.id)
        if entry is None:
            raise MetricsUnavailableError(f"No metrics for server {server.id}")
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def fetch_snapshot(
        self, server: ServerInfo, vhost: str | None = None,
    ) -> MetricsSnapshot:
        snapshot = self._lookup(server)
        if vhost is None:
            return snapshot
        return MetricsSnapshot(
            server_id=snapshot.server_id,
            server_name=snapshot.server_name,
            nodes=snapshot.nodes,
            queues=[q for q in snapshot.queues if q.vhost == vhost],
            cluster=snapshot.cluster,
            vhost=vhost,
            collected_at=snapshot.collected_at,
        )

    async def ping(self, server: ServerInfo) -> None:
        self._lookup(server)
