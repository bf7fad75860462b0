"""Command-line interface for running and checking the monitoring service."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.table import Table

from ..config.loader import ConfigLoader, load_config_from_file
from ..constants import CONSTANTS
from ..core.config import MonitoringConfig
from ..monitoring.models import HealthSnapshot, HealthStatus
from ..monitoring.service import MonitoringService
from ..utils.logging import setup_logging

logger = structlog.get_logger(__name__)
console = Console()

app = typer.Typer(
    name="eventwatch", help="Monitor service health, alerts and metrics", no_args_is_help=True
)

STATUS_STYLES = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.DEGRADED: "yellow",
    HealthStatus.UNHEALTHY: "red",
}


def _load_config(config_file: Optional[Path]) -> MonitoringConfig:
    if config_file is None:
        return MonitoringConfig()
    typer.echo(f"Loading configuration from {config_file}")
    return load_config_from_file(config_file)


@app.command()
def serve(
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to monitoring configuration file"
    ),
    host: str = typer.Option(CONSTANTS.DEFAULT_API_HOST, "--host", help="Bind address"),
    port: int = typer.Option(CONSTANTS.DEFAULT_API_PORT, "--port", "-p", help="Bind port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run the monitoring API server."""
    import uvicorn

    from ..api.main import create_app

    setup_logging(verbose)
    try:
        config = _load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"❌ Error: {e}", err=True)
        raise typer.Exit(1) from e

    uvicorn.run(create_app(config=config), host=host, port=port)


def render_snapshot(snapshot: HealthSnapshot) -> Table:
    """Rich table summarizing one health snapshot."""
    table = Table(title=f"System health: {snapshot.status.value}")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Response time (ms)", justify="right")
    table.add_column("Details")

    for name, health in snapshot.services.items():
        style = STATUS_STYLES[health.status]
        response_time = f"{health.response_time_ms:.1f}" if health.response_time_ms is not None else "-"
        details = ", ".join(f"{key}={value}" for key, value in health.details.items())
        table.add_row(name, f"[{style}]{health.status.value}[/{style}]", response_time, details)

    return table


async def _take_snapshot(service: MonitoringService) -> HealthSnapshot:
    try:
        return await service.get_health_snapshot()
    finally:
        await service.shutdown()


@app.command()
def check(
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to monitoring configuration file"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the snapshot as JSON"),
) -> None:
    """Take one health snapshot and exit non-zero when the system is unhealthy."""
    try:
        config = _load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"❌ Error: {e}", err=True)
        raise typer.Exit(1) from e

    service = MonitoringService.from_config(config)
    snapshot = asyncio.run(_take_snapshot(service))

    if json_output:
        typer.echo(json.dumps(snapshot.to_dict(), indent=2))
    else:
        console.print(render_snapshot(snapshot))

    if snapshot.status == HealthStatus.UNHEALTHY:
        raise typer.Exit(1)


@app.command("init-config")
def init_config(
    output_path: Path = typer.Argument(..., help="Where to write the example configuration"),
    file_format: str = typer.Option("yaml", "--format", "-f", help="yaml or json"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write an example configuration file."""
    if output_path.exists() and not force:
        typer.echo(f"❌ {output_path} already exists (use --force to overwrite)", err=True)
        raise typer.Exit(1)

    try:
        ConfigLoader.save_example_config(output_path, file_format)
    except ValueError as e:
        typer.echo(f"❌ Error: {e}", err=True)
        raise typer.Exit(1) from e

    typer.echo(f"✅ Example configuration written to {output_path}")


if __name__ == "__main__":
    app()
