"""Health check CLI command."""

import click
import httpx
from rich.console import Console
from rich.table import Table

from src.config.settings import settings

console = Console()


@click.command(name="check-health")
@click.option("--url", default=None, help="Server base URL (default: http://localhost:PORT)")
@click.option("--timeout", type=float, default=5.0, help="Request timeout in seconds")
def check_health(url, timeout):
    """Check the health of a running server."""
    base_url = (url or f"http://localhost:{settings.PORT}").rstrip("/")
    console.print(f"[bold blue]Running health checks against {base_url}...[/bold blue]\n")

    try:
        response = httpx.get(f"{base_url}/health", timeout=timeout)
        response.raise_for_status()
        result = response.json()
    except httpx.HTTPError as e:
        console.print(f"[bold red]✗ Could not reach server:[/bold red] {e}")
        raise SystemExit(1)

    # Overall status
    if result["status"] == "healthy":
        console.print("[bold green]✓ System Status: HEALTHY[/bold green]\n")
    else:
        console.print("[bold yellow]⚠ System Status: UNHEALTHY[/bold yellow]\n")

    table = Table(title="Health Check Results")
    table.add_column("Component", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Message")

    for name, check in result["checks"].items():
        status = "✓" if check["healthy"] else "✗"
        status_color = "green" if check["healthy"] else "red"

        table.add_row(
            name.replace("_", " ").title(),
            f"[{status_color}]{status}[/{status_color}]",
            check["message"],
        )

    console.print(table)

    if result["status"] != "healthy":
        raise SystemExit(1)
