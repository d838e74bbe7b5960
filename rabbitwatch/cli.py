"""
Command-line interface for rabbitwatch.

Provides commands to run the alerting API, run the alert monitor on its
own, and run one-off checks against the configured RabbitMQ server.

Usage:
    rabbitwatch serve       # Run the API (and the monitor loop)
    rabbitwatch monitor     # Run the alert monitor only
    rabbitwatch check       # Run one detection cycle and print alerts
    rabbitwatch health      # Probe the configured server
    rabbitwatch thresholds  # Print default alert thresholds
"""

import asyncio
import json
import signal
import sys

import click

from rabbitwatch.config.settings import get_settings
from rabbitwatch.observability.logging import setup_logging
from rabbitwatch.observability.metrics import get_metrics

_SEVERITY_COLORS = {"critical": "red", "warning": "yellow", "info": "blue"}
_STATUS_COLORS = {"healthy": "green", "warning": "yellow", "critical": "red"}


def _require_management_url() -> None:
    if not get_settings().management_configured:
        click.echo(click.style("MANAGEMENT_URL is not set", fg="red"))
        sys.exit(2)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """RabbitWatch - RabbitMQ alert detection and notification."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the alerting API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    # Start metrics server on separate port
    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "rabbitwatch.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def monitor(metrics: bool) -> None:
    """Run the alert monitor loop without the API."""
    from rabbitwatch.api.dependencies import build_components

    _require_management_url()

    async def run():
        components = build_components()

        if metrics:
            get_metrics().start_server()

        # Handle shutdown signals
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig, lambda: asyncio.create_task(components.monitor.stop()),
            )

        await components.monitor.start()
        await components.alert_service.drain()

    asyncio.run(run())


@main.command()
@click.option("--vhost", default=None, help="Only check queues of this virtual host")
@click.option("--json", "as_json", is_flag=True, help="Print alerts as JSON")
def check(vhost: str | None, as_json: bool) -> None:
    """Run one detection cycle and print the active alerts."""
    from rabbitwatch.api.dependencies import build_components

    _require_management_url()

    async def run() -> int:
        components = build_components()
        exit_code = 0

        for server in await components.directory.list_servers():
            result = await components.alert_service.run_check(server, vhost)
            if result is None:
                click.echo(click.style(f"{server.name}: metrics unavailable", fg="red"))
                exit_code = 1
                continue

            active = result.lifecycle.active
            if as_json:
                click.echo(json.dumps([a.to_dict() for a in active], indent=2))
                continue

            click.echo(f"\n{server.name}: {len(active)} active alert(s)")
            click.echo("-" * 40)
            for alert in active:
                color = _SEVERITY_COLORS[alert.severity]
                click.echo(click.style(f"  [{alert.severity}] {alert.title}", fg=color))
                click.echo(f"      {alert.description}")
            if any(a.severity == "critical" for a in active):
                exit_code = 1

        await components.alert_service.drain()
        return exit_code

    sys.exit(asyncio.run(run()))


@main.command()
def health() -> None:
    """Probe the configured server directly."""
    from rabbitwatch.api.dependencies import build_components

    _require_management_url()

    async def probe() -> int:
        components = build_components()
        settings = get_settings()
        result = await components.query_service.get_health_check(
            settings.default_server_id, settings.default_workspace_id,
        )

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)
        for name, component in result.checks.items():
            color = _STATUS_COLORS[component.status]
            click.echo(click.style(f"  {name}: {component.status} ({component.message})", fg=color))
        click.echo("-" * 40)

        overall = result.overall
        click.echo(click.style(f"Overall: {overall}", fg=_STATUS_COLORS[overall]))
        return 0 if overall == "healthy" else 1

    sys.exit(asyncio.run(probe()))


@main.command()
def thresholds() -> None:
    """Print the default alert thresholds as JSON."""
    from rabbitwatch.alerts.thresholds import DEFAULT_THRESHOLDS

    click.echo(json.dumps(DEFAULT_THRESHOLDS.to_dict(), indent=2))


if __name__ == "__main__":
    main()
