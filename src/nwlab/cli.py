"""
Command-line interface for nwlab.

Commands:
- run: Provision every backend and load the Northwind dataset
- acquire: Stage source data without touching any backend
- datasets: Show entities, their dependencies and staging status
"""

from enum import Enum

import typer
from rich.console import Console
from rich.table import Table

from nwlab.config import settings
from nwlab.datasets.base import BackendKind
from nwlab.log import setup_logging

app = typer.Typer(
    name="nwlab",
    help="Northwind three-store lab provisioning CLI",
    no_args_is_help=True,
)
console = Console()


class BackendChoice(str, Enum):
    TABULAR = "tabular"
    DOCUMENT = "document"
    GRAPH = "graph"
    ALL = "all"


def _targets(choice: BackendChoice) -> list[BackendKind]:
    if choice is BackendChoice.ALL:
        return list(BackendKind)
    return [BackendKind(choice.value)]


@app.command()
def run(
    skip_acquire: bool = typer.Option(
        False, "--skip-acquire", help="Reuse already-staged data (no downloads)"
    ),
    backend: BackendChoice = typer.Option(
        BackendChoice.ALL, "--backend", "-b", help="Scope the run to one backend"
    ),
    compose: bool = typer.Option(
        settings.compose_enabled, "--compose/--no-compose", help="Start containers with docker compose"
    ),
):
    """Provision the backends and load + verify the dataset."""
    from nwlab.etl.runner import ProvisionRunner

    setup_logging(settings.log_level)
    cfg = settings.model_copy(update={"compose_enabled": compose})

    runner = ProvisionRunner(cfg)
    outcome = runner.run(_targets(backend), skip_acquire=skip_acquire)
    raise typer.Exit(code=outcome.exit_code)


@app.command()
def acquire(
    backend: BackendChoice = typer.Option(
        BackendChoice.ALL, "--backend", "-b", help="Stage data for one backend only"
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Re-download even if staged"
    ),
):
    """Download and stage source data."""
    from nwlab.datasets import Acquirer, artifacts_for
    from nwlab.errors import AcquisitionError

    setup_logging(settings.log_level)
    try:
        Acquirer(settings.data_dir).acquire(artifacts_for(set(_targets(backend))), force=force)
    except AcquisitionError as exc:
        console.print(f"[bold red]Acquisition failed:[/] {exc}")
        raise typer.Exit(code=1) from exc
    console.print("[bold green]Done. Data staged under[/] " + str(settings.data_dir))


@app.command()
def datasets():
    """List entities with their dependencies and staged files."""
    from nwlab.datasets import ENTITIES

    table = Table(title="Northwind Entities", show_header=True, header_style="bold cyan")
    table.add_column("Entity", style="cyan")
    table.add_column("Parents", style="dim")
    for kind in BackendKind:
        table.add_column(kind.value.title(), justify="center")

    for entity in ENTITIES:
        cells = []
        for kind in BackendKind:
            if not entity.served_by(kind):
                cells.append("[dim]-[/]")
                continue
            filename = entity.json_file if kind is BackendKind.DOCUMENT else entity.csv_file
            staged = (settings.staging_dir(kind.staging) / filename).exists()
            cells.append("[green]staged[/]" if staged else "[yellow]missing[/]")
        table.add_row(entity.name, ", ".join(sorted(entity.parents)) or "-", *cells)

    console.print(table)


if __name__ == "__main__":
    app()
