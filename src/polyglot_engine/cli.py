"""
CLI for polyglot-engine.

Provides commands for configuration, discovering a text, starting a
translation and processing a completed translation job.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.tree import Tree

from polyglot_engine.auth import CredentialsProvider
from polyglot_engine.config import Settings, create_default_config, load_config
from polyglot_engine.errors import PolyglotError, ValidationError
from polyglot_engine.handlers import (
    enqueue_request,
    run_process_translated,
    run_start_translation,
    validate_request_params,
)
from polyglot_engine.library.client import LibraryClientPool
from polyglot_engine.library.paths import parse_library_url
from polyglot_engine.log import setup_logging
from polyglot_engine.models import DiscoveredNode
from polyglot_engine.pipeline import ProgressInfo, StageResult
from polyglot_engine.services import create_secret_store, create_services
from polyglot_engine.tree.discover import TreeDiscoverer
from polyglot_engine.tree.flatten import count_nodes

app = typer.Typer(
    name="polyglot-engine",
    help="Machine translation of hierarchical library texts.",
    add_completion=False,
)

console = Console()


def get_settings(config_path: Path | None = None) -> Settings:
    """Load settings from config file or defaults, and set up logging."""
    if config_path and not config_path.exists():
        console.print(f"[red]Config file not found: {config_path}[/red]")
        raise typer.Exit(1)
    settings = load_config(config_path)
    setup_logging(settings.logging, console)
    return settings


def _display_config(settings: Settings, config_path: Path | None) -> None:
    """Display the configuration being used."""
    config_source = str(config_path) if config_path else "default (config.yaml or built-in)"

    def state(value: str) -> str:
        return value if value else "[red]not set[/red]"

    config_table = Table(show_header=False, box=None, padding=(0, 2))
    config_table.add_column("Key", style="cyan")
    config_table.add_column("Value", style="green")

    config_table.add_row("Config file", config_source)
    config_table.add_row("", "")
    config_table.add_row("[bold]Platform[/bold]", "")
    config_table.add_row("  Base domain", settings.platform.base_domain)
    config_table.add_row("  Bot user", settings.platform.bot_user)
    config_table.add_row("  Cover tag", settings.platform.cover_tag)
    config_table.add_row("  Max concurrent", str(settings.platform.max_concurrent))
    config_table.add_row("", "")
    config_table.add_row("[bold]AWS[/bold]", "")
    config_table.add_row("  Region", state(settings.aws.region))
    config_table.add_row("  Input bucket", state(settings.aws.input_bucket))
    config_table.add_row("  Output bucket", state(settings.aws.output_bucket))
    config_table.add_row(
        "  Translate role",
        "configured" if settings.aws.translate_role_arn else "[red]not set[/red]",
    )
    config_table.add_row("  Library keys path", state(settings.aws.ssm_library_keys_path))
    config_table.add_row("  Queue", state(settings.aws.queue_url))
    config_table.add_row("", "")
    config_table.add_row("[bold]Translation[/bold]", "")
    config_table.add_row("  Source language", settings.translation.source_language)
    config_table.add_row("  Notify from", state(settings.notification.from_address))
    config_table.add_row("", "")
    config_table.add_row("[bold]Rate limits (s)[/bold]", "")
    config_table.add_row("  After subpage listing", str(settings.rate_limit.after_subpage_listing))
    config_table.add_row("  Before content fetch", str(settings.rate_limit.before_content_fetch))
    config_table.add_row("  Between writes", str(settings.rate_limit.between_writes))

    console.print(
        Panel(config_table, title="[bold blue]polyglot-engine[/bold blue]", border_style="blue")
    )


def _render_tree(node: DiscoveredNode, branch: Tree | None = None) -> Tree:
    label = f"[cyan]{escape(node.title or node.path)}[/cyan] [dim]{node.lib}-{node.id}[/dim]"
    if node.url_num_prefix:
        label = f"[magenta]{node.url_num_prefix}[/magenta] {label}"
    current = Tree(label) if branch is None else branch.add(label)
    for child in node.subpages:
        _render_tree(child, current)
    return current


def _print_result(result: StageResult) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Stage", result.stage.value)
    if result.root_key:
        table.add_row("Root key", result.root_key)
    if result.job_id:
        table.add_row("Job ID", result.job_id)
    table.add_row("Pages", str(result.page_count))
    if result.pages_created:
        table.add_row("Pages created", str(result.pages_created))
    if result.failed_subtrees:
        table.add_row("Failed subtrees", ", ".join(result.failed_subtrees))
    for error in result.errors:
        table.add_row(f"[red]{error.get('stage', 'error')}[/red]", str(error.get("error")))

    style = "green" if result.success else "red"
    title = "Complete" if result.success else "Failed"
    console.print(Panel(table, title=f"[bold {style}]{title}[/bold {style}]", border_style=style))


def _run_with_progress(run) -> StageResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=False,
    ) as progress:
        task = progress.add_task("[cyan]Starting...", total=None)

        def on_progress(info: ProgressInfo) -> None:
            detail = f" [dim]{info.detail}[/dim]" if info.detail else ""
            progress.update(task, description=f"[cyan]{info.stage_display}{detail}")

        return asyncio.run(run(on_progress))


@app.command()
def init(
    output_path: Path = typer.Option(
        Path("config.yaml"),
        "--output",
        "-o",
        help="Output path for config file",
    ),
) -> None:
    """Generate a default configuration file."""
    if output_path.exists():
        overwrite = typer.confirm(f"{output_path} already exists. Overwrite?")
        if not overwrite:
            raise typer.Abort()

    create_default_config(output_path)
    console.print(f"[green]Created config file: {output_path}[/green]")
    console.print("\nEdit the file and set your AWS resources, then run:")
    console.print(
        "  polyglot-engine start https://<lib>.libretexts.org/<path> "
        "https://<lib>.libretexts.org/<target> --language es"
    )


@app.command("config")
def show_config(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Display the effective configuration."""
    settings = get_settings(config)
    _display_config(settings, config)


@app.command()
def discover(
    url: str = typer.Argument(..., help="URL of the text's cover page"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Discover a text's page hierarchy without translating it."""
    settings = get_settings(config)
    parsed = parse_library_url(url, settings.platform.base_domain)
    if parsed is None:
        console.print(f"[red]Not a library URL: {url}[/red]")
        raise typer.Exit(1)
    lib, path = parsed

    async def run() -> DiscoveredNode:
        secrets = create_secret_store(settings)
        async with httpx.AsyncClient(timeout=settings.platform.timeout_seconds) as http:
            pool = LibraryClientPool(CredentialsProvider(secrets), http, settings.platform)
            discoverer = TreeDiscoverer(pool, settings.platform, settings.rate_limit)
            return await discoverer.discover(lib, path)

    try:
        with console.status(f"[cyan]Discovering {lib}/{path}..."):
            root = asyncio.run(run())
    except PolyglotError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    console.print(_render_tree(root))
    console.print(f"\n[green]Found {count_nodes(root)} pages[/green]")


@app.command()
def start(
    url: str = typer.Argument(..., help="URL of the text's cover page"),
    target_url: str = typer.Argument(..., help="URL to place the translated text under"),
    language: str = typer.Option(..., "--language", "-l", help="Target language code"),
    notify: str | None = typer.Option(
        None, "--notify", "-n", help="Comma-separated addresses to email on completion"
    ),
    queue: bool = typer.Option(False, "--queue", help="Queue the request instead of running it"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Start translating a text."""
    settings = get_settings(config)
    params = {"url": url, "targetpath": target_url, "language": language}
    if notify:
        params["notify"] = notify

    try:
        request = validate_request_params(params, settings.platform.base_domain)
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        for error in e.errors:
            console.print(f"  [red]- {error}[/red]")
        raise typer.Exit(1) from None

    try:
        services = create_services(settings)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    if queue:
        response = asyncio.run(enqueue_request(params, services.queue, settings))
        if response["statusCode"] != "200":
            console.print(f"[red]Could not queue request: {response['body']}[/red]")
            raise typer.Exit(1)
        console.print("[green]Translation request queued[/green]")
        return

    result = _run_with_progress(
        lambda on_progress: run_start_translation(
            request, settings, services, progress_callback=on_progress
        )
    )
    _print_result(result)
    if not result.success:
        raise typer.Exit(1)


@app.command()
def process(
    job_id: str = typer.Argument(..., help="Identifier of the completed translation job"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Write the output of a completed translation job to the target library."""
    settings = get_settings(config)
    try:
        services = create_services(settings)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    result = _run_with_progress(
        lambda on_progress: run_process_translated(
            job_id, settings, services, progress_callback=on_progress
        )
    )
    _print_result(result)
    if not result.success:
        raise typer.Exit(1)


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
