"""Command-line interface for repoprobe."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Annotated

import aiofiles
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from repoprobe.analyzer import RepositoryAnalyzer
from repoprobe.exceptions import AnalyzeError, DependencyCycleError
from repoprobe.models import AppProfile, RepositoryAnalysis


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler on stderr."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )
    # Quiet noisy libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)


app = typer.Typer(
    name="repoprobe",
    help="Read-only deployment profiling for repositories and monorepos.",
)


@app.callback()
def main() -> None:
    """Inspect a checkout and report its apps, databases and deploy order."""


def _validate_project_path(path: Path) -> Path:
    if not path.exists():
        raise typer.BadParameter(f"Path does not exist: {path}")
    if not path.is_dir():
        raise typer.BadParameter(f"Path is not a directory: {path}")
    return path.resolve()


def _port_label(profile: AppProfile) -> str:
    if profile.port is None:
        return f"{profile.app.default_port} [dim](default)[/dim]"
    if profile.port.runtime_provided:
        return f"{profile.port.port} [dim]($PORT)[/dim]"
    return str(profile.port.port)


def _apps_table(analysis: RepositoryAnalysis) -> Table:
    table = Table(title="Apps")
    table.add_column("Name", style="cyan")
    table.add_column("Path")
    table.add_column("Framework", style="green")
    table.add_column("Build pack")
    table.add_column("Type")
    table.add_column("Port", justify="right")
    table.add_column("Health check")
    for profile in analysis.apps:
        detected = profile.app
        health = profile.health_check.path if profile.health_check else "-"
        table.add_row(
            detected.name,
            detected.path,
            detected.framework,
            detected.build_pack,
            detected.type,
            _port_label(profile),
            health,
        )
    return table


def _databases_table(analysis: RepositoryAnalysis) -> Table:
    table = Table(title="Databases")
    table.add_column("Type", style="cyan")
    table.add_column("Name")
    table.add_column("Env var", style="green")
    table.add_column("Consumers")
    table.add_column("Detected via", style="dim")
    for database in analysis.databases:
        table.add_row(
            database.type,
            database.name,
            database.env_var_name,
            ", ".join(database.consumers) or "-",
            database.detected_via,
        )
    return table


def _deploy_order_table(analysis: RepositoryAnalysis) -> Table:
    table = Table(title="Deploy order")
    table.add_column("Order", justify="right")
    table.add_column("App", style="cyan")
    table.add_column("Depends on")
    table.add_column("Internal URLs")
    for dependency in analysis.app_dependencies:
        urls = ", ".join(f"{key} -> {target}" for key, target in dependency.internal_urls.items())
        table.add_row(
            str(dependency.deploy_order),
            dependency.app_name,
            ", ".join(dependency.depends_on) or "-",
            urls or "-",
        )
    return table


def _diagnostics_table(analysis: RepositoryAnalysis) -> Table:
    table = Table(title="Diagnostics")
    table.add_column("Stage", style="yellow")
    table.add_column("Path")
    table.add_column("Message")
    for diagnostic in analysis.diagnostics:
        table.add_row(diagnostic.stage, diagnostic.path or "-", diagnostic.message)
    return table


def print_summary(console: Console, analysis: RepositoryAnalysis) -> None:
    """Render an analysis as Rich tables."""
    monorepo = analysis.monorepo
    if monorepo.is_monorepo:
        console.print(f"[bold]Monorepo[/bold] ({monorepo.type}): {', '.join(monorepo.workspace_paths)}")
    if not analysis.apps:
        console.print("[yellow]No apps detected[/yellow]")
        return

    console.print(_apps_table(analysis))
    if analysis.databases:
        console.print(_databases_table(analysis))
    if analysis.services:
        names = ", ".join(f"{s.type} ({', '.join(s.consumers) or 'compose'})" for s in analysis.services)
        console.print(f"[bold]Services:[/bold] {names}")
    if len(analysis.app_dependencies) > 1:
        console.print(_deploy_order_table(analysis))
    if analysis.diagnostics:
        console.print(_diagnostics_table(analysis))


async def write_analysis(path: Path, analysis: RepositoryAnalysis) -> Path:
    """Write the analysis as indented JSON.

    Args:
        path: Destination file; parent directories are created.
        analysis: Result to serialise.

    Returns:
        Path written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "w") as f:
        await f.write(analysis.model_dump_json(indent=2))
    return path


async def _run_analysis(
    project_path: Path, strict: bool, output: Path | None
) -> RepositoryAnalysis:
    analysis = await RepositoryAnalyzer(strict=strict).analyze(project_path)
    if output is not None:
        await write_analysis(output, analysis)
    return analysis


@app.command()
def analyze(
    project_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the repository to analyze. Defaults to current directory.",
        ),
    ] = Path("."),
    as_json: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Print the full analysis as JSON instead of tables.",
        ),
    ] = False,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Also write the JSON analysis to this file.",
        ),
    ] = None,
    strict: Annotated[
        bool,
        typer.Option(
            "--strict",
            help="Fail on dependency cycles instead of reporting a diagnostic.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose logging.",
        ),
    ] = False,
) -> None:
    """Analyze a repository and print its deployment profile."""
    _setup_logging(verbose)
    project_path = _validate_project_path(project_path)
    console = Console()

    try:
        analysis = asyncio.run(_run_analysis(project_path, strict, output))
    except DependencyCycleError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from e
    except AnalyzeError as e:
        console.print(f"[red]✗[/red] Analysis failed: {e}")
        raise typer.Exit(code=1) from e
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        sys.exit(130)

    if as_json:
        typer.echo(analysis.model_dump_json(indent=2))
    else:
        console.print(f"\n[bold]repoprobe[/bold] - {project_path.name}\n")
        print_summary(console, analysis)
    if output is not None and not as_json:
        console.print(f"\n[green]✓[/green] Analysis written to {output}")


if __name__ == "__main__":
    app()
