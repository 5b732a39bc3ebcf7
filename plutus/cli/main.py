"""
Plutus CLI Main Entry Point

Command-line interface for operating the pricing engine.
"""

import json
import os
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="plutus",
    help="Plutus Experimentation & Dynamic Pricing CLI",
    add_completion=False,
)
console = Console()

# Config directory
CONFIG_DIR = Path.home() / ".plutus"
CONFIG_FILE = CONFIG_DIR / "config.json"


def get_config() -> dict:
    """Load CLI configuration."""
    if not CONFIG_FILE.exists():
        return {
            "plutus_url": os.getenv("PLUTUS_URL", "http://localhost:8080"),
            "admin_key": os.getenv("PLUTUS_ADMIN_API_KEY", ""),
        }

    with open(CONFIG_FILE) as f:
        return json.load(f)


def save_config(config: dict):
    """Save CLI configuration."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    with open(CONFIG_FILE, "w") as f:
        json.dump(config, f, indent=2)
    # Holds the admin key
    CONFIG_FILE.chmod(0o600)


def get_client() -> httpx.Client:
    """Get configured HTTP client."""
    config = get_config()

    headers = {"Content-Type": "application/json"}
    if config.get("admin_key"):
        headers["X-Admin-Key"] = config["admin_key"]

    return httpx.Client(
        base_url=config["plutus_url"],
        headers=headers,
        timeout=30.0,
    )


def _fail(error: Exception):
    console.print(f"[red]Error: {error}[/red]")
    raise typer.Exit(1)


@app.command()
def serve():
    """Run the API server."""
    from plutus.main import cli

    cli()


@app.command()
def price(package_id: str = typer.Argument(..., help="Package id")):
    """Show the current dynamic price of a package."""
    with get_client() as client:
        try:
            response = client.get(f"/api/v1/pricing/{package_id}")
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            _fail(e)

    if data["price"] is None:
        console.print(f"[yellow]{package_id} has no active dynamic price[/yellow]")
    else:
        console.print(f"[bold]{package_id}[/bold]: {data['price']:.2f}")


@app.command()
def recalculate(
    package_id: Optional[str] = typer.Argument(None, help="Package id; all packages when omitted"),
):
    """Trigger a price recalculation."""
    path = f"/api/v1/pricing/{package_id}/recalculate" if package_id else "/api/v1/pricing/recalculate"
    with get_client() as client:
        try:
            response = client.post(path)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            _fail(e)

    prices = data.get("prices") or {data["package_id"]: data["price"]}
    table = Table(title="Prices")
    table.add_column("Package", style="cyan")
    table.add_column("Price", justify="right")
    for pid, value in prices.items():
        table.add_row(pid, f"{value:.2f}")
    console.print(table)


@app.command()
def promotions(
    package_id: Optional[str] = typer.Option(None, "--package", "-p", help="Filter by package"),
    user_id: Optional[str] = typer.Option(None, "--user", "-u", help="Evaluate for a user"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Include inactive promotions"),
):
    """List promotions."""
    with get_client() as client:
        try:
            if show_all:
                response = client.get("/api/v1/promotions/")
            else:
                params = {k: v for k, v in {"package_id": package_id, "user_id": user_id}.items() if v}
                response = client.get("/api/v1/promotions/active", params=params)
            response.raise_for_status()
            items = response.json()
        except httpx.HTTPError as e:
            _fail(e)

    table = Table(title="Promotions")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Status", style="green")
    table.add_column("Priority", justify="right")
    table.add_column("Discount", style="magenta")
    table.add_column("Uses", justify="right")

    for promo in items:
        limits = promo["usage_limits"]
        total = limits.get("total_usage_limit")
        uses = f"{limits['usage_count']}/{total}" if total else str(limits["usage_count"])
        table.add_row(
            promo["id"],
            promo["name"],
            promo["status"],
            str(promo["priority"]),
            promo["discount"]["kind"],
            uses,
        )

    console.print(table)
    console.print(f"\nTotal: {len(items)} promotions")


@app.command()
def experiments(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
):
    """List experiments."""
    with get_client() as client:
        try:
            params = {"status": status} if status else {}
            response = client.get("/api/v1/experiments/", params=params)
            response.raise_for_status()
            items = response.json()
        except httpx.HTTPError as e:
            _fail(e)

    table = Table(title="Experiments")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Type", style="magenta")
    table.add_column("Status", style="green")
    table.add_column("Variants", justify="right")
    table.add_column("Allocation", justify="right")

    for experiment in items:
        table.add_row(
            experiment["id"],
            experiment["name"],
            experiment["type"],
            experiment["status"],
            str(len(experiment["variants"])),
            f"{experiment['traffic_allocation']:.0f}%",
        )

    console.print(table)


@app.command()
def results(experiment_id: str = typer.Argument(..., help="Experiment id")):
    """Show experiment results."""
    with get_client() as client:
        try:
            response = client.get(f"/api/v1/experiments/{experiment_id}/results")
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            _fail(e)

    console.print(f"\n[bold]{experiment_id}[/bold]")
    console.print(f"Participants: {data['total_participants']}")
    console.print(f"Significant: {'yes' if data['is_significant'] else 'no'}")
    if data.get("p_value") is not None:
        console.print(f"p-value: {data['p_value']:.4f}")
    console.print(f"Recommended action: [bold]{data['recommended_action']}[/bold]")

    if data.get("conversion_rates"):
        table = Table(title="Conversion")
        table.add_column("Variant", style="cyan")
        table.add_column("Rate", justify="right")
        table.add_column("Revenue", justify="right")
        for variant_id, rate in data["conversion_rates"].items():
            revenue = data.get("revenue_per_variant", {}).get(variant_id, 0.0)
            table.add_row(variant_id, f"{rate * 100:.2f}%", f"{revenue:.2f}")
        console.print(table)

    for insight in data.get("insights", []):
        console.print(f"  • {insight}")


@app.command()
def config(
    plutus_url: Optional[str] = typer.Option(None, "--url", help="Set Plutus API URL"),
    admin_key: Optional[str] = typer.Option(None, "--admin-key", help="Set admin API key"),
    show: bool = typer.Option(False, "--show", help="Show current config"),
):
    """Manage CLI configuration."""
    cfg = get_config()

    if show:
        rprint({**cfg, "admin_key": "***" if cfg.get("admin_key") else ""})
        return

    if plutus_url:
        cfg["plutus_url"] = plutus_url
    if admin_key:
        cfg["admin_key"] = admin_key

    if plutus_url or admin_key:
        save_config(cfg)
        console.print("[green]✓ Configuration saved[/green]")
    else:
        console.print("Use --show to display current config, or set values with --url / --admin-key")


if __name__ == "__main__":
    app()
