"""CLI entry point for restsum."""

import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from restsum.analysis import AnalysisResult, run_analysis
from restsum.cache import ResultCache
from restsum.config import (
    default_config_path,
    load_config,
    mask_api_key,
    resolve_api_key,
    set_api_key,
)
from restsum.exceptions import CacheError, ConfigError, RestSumError, ScanError
from restsum.formatter import endpoints_to_json, render_endpoints
from restsum.logger import get_logger, setup_logging

console = Console()
err_console = Console(stderr=True)
logger = get_logger()


@click.group()
@click.version_option(version=__import__("restsum").__version__, prog_name="restsum")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(dir_okay=False),
    help="Config file (default is ~/.restsum/config.yaml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option(
    "--log-file",
    type=click.Path(),
    help="Write logs to file for debugging"
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Optional[str],
    verbose: bool,
    quiet: bool,
    json_output: bool,
    log_file: Optional[str]
) -> None:
    """restsum: find the REST API endpoints in a codebase and summarize
    what each one does with AI."""
    ctx.ensure_object(dict)

    if verbose and quiet:
        click.echo("Error: --verbose and --quiet are mutually exclusive", err=True)
        sys.exit(1)

    setup_logging(
        verbose=verbose,
        quiet=quiet or json_output,
        log_file=Path(log_file) if log_file else None
    )

    config_path = Path(config_file) if config_file else default_config_path()
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["json"] = json_output

    try:
        ctx.obj["config"] = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)


@cli.command(name="sum")
@click.argument("directory", required=False, default=".", type=click.Path(file_okay=False))
@click.option("--no-cache", is_flag=True, help="Disable cache and regenerate all summaries")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Deadline in seconds for generating summaries",
)
@click.pass_context
def sum_command(ctx: click.Context, directory: str, no_cache: bool, timeout: Optional[float]) -> None:
    """Analyze REST API endpoints in DIRECTORY (default: current directory)."""
    config = ctx.obj["config"]
    root = Path(directory).resolve()

    if not root.is_dir():
        err_console.print(f"[red]Directory does not exist: {escape(str(root))}[/red]")
        sys.exit(1)

    api_key = resolve_api_key(config)
    if not api_key:
        err_console.print("[red]Error: API key not set[/red]")
        err_console.print("[yellow]Please set your API key using one of the following methods:[/yellow]")
        err_console.print("[yellow]1. Run: restsum config set api-key YOUR_API_KEY[/yellow]")
        err_console.print(f"[yellow]2. Set environment variable: export {config.ai.api_key_env}=YOUR_API_KEY[/yellow]")
        sys.exit(1)

    show_progress = not (ctx.obj.get("verbose") or ctx.obj.get("quiet") or ctx.obj.get("json"))
    try:
        if show_progress:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task("Analyzing REST API endpoints...", total=None)
                result = run_analysis(
                    root, config, api_key=api_key, use_cache=not no_cache, timeout=timeout
                )
        else:
            result = run_analysis(
                root, config, api_key=api_key, use_cache=not no_cache, timeout=timeout
            )
    except (ScanError, ConfigError) as e:
        err_console.print(f"[red]Error analyzing directory: {escape(str(e))}[/red]")
        sys.exit(1)

    if ctx.obj.get("json"):
        click.echo(endpoints_to_json(result.endpoints, root=str(result.root), stats=_result_stats(result)))
        return

    if not result.endpoints:
        console.print(f"[yellow]No REST API endpoints found in {escape(str(root))}[/yellow]")
        console.print("[yellow]Make sure the directory contains source code with REST API definitions.[/yellow]")
        return

    render_endpoints(result.endpoints, console)
    if not ctx.obj.get("quiet"):
        _print_stats(result)


def _result_stats(result: AnalysisResult) -> dict:
    return {
        "files_scanned": result.files_scanned,
        "endpoints": len(result.endpoints),
        "cached": result.cached,
        "generated": result.generated,
        "failed": result.failed,
        "timed_out": result.report is not None and result.report.timed_out,
        "elapsed_seconds": round(result.elapsed, 3),
    }


def _print_stats(result: AnalysisResult) -> None:
    console.print(f"\n[green]✅ Analysis completed in {result.elapsed:.1f}s[/green]\n")
    if result.cached:
        console.print(
            f"[dim]   • {result.cached}/{len(result.endpoints)} summaries "
            f"from cache ({result.cache_ratio}%)[/dim]"
        )
    if result.generated:
        console.print(f"[dim]   • Generated {result.generated} new summaries[/dim]")
    if result.failed:
        console.print(f"[dim]   • {result.failed} summaries unavailable[/dim]")
    if result.report is not None and result.report.timed_out:
        console.print("[yellow]⚠ Summarization timed out; some endpoints have no summary[/yellow]")


@cli.group(name="config")
def config_group() -> None:
    """Manage configuration settings, including API keys."""
    pass


@config_group.group(name="set")
def config_set() -> None:
    """Set configuration values."""
    pass


@config_set.command(name="api-key")
@click.argument("key")
@click.pass_context
def set_api_key_command(ctx: click.Context, key: str) -> None:
    """Save the API key used for summaries."""
    try:
        path = set_api_key(key, ctx.obj["config_path"])
    except ConfigError as e:
        err_console.print(f"[red]Error saving API key: {escape(str(e))}[/red]")
        sys.exit(1)

    logger.debug(f"API key written to {path}")
    console.print("[green]✓ API key saved successfully![/green]")
    console.print("[yellow]You can now use 'restsum sum' to analyze your APIs.[/yellow]")


@config_group.group(name="get")
def config_get() -> None:
    """Get configuration values."""
    pass


@config_get.command(name="api-key")
@click.pass_context
def get_api_key_command(ctx: click.Context) -> None:
    """Show the current API key (masked)."""
    config = ctx.obj["config"]
    api_key = resolve_api_key(config)

    if not api_key:
        console.print("[yellow]No API key configured.[/yellow]")
        console.print("[yellow]Set one using: restsum config set api-key YOUR_KEY[/yellow]")
        return

    click.echo(f"Current API key: {mask_api_key(api_key)}")


@cli.group(name="cache")
def cache_group() -> None:
    """Manage cached summaries."""
    pass


@cache_group.command(name="clear")
@click.pass_context
def cache_clear(ctx: click.Context) -> None:
    """Remove every cached summary."""
    config = ctx.obj["config"]
    try:
        ResultCache(config.cache.path, expiration=config.cache.expiration).clear()
    except CacheError as e:
        err_console.print(f"[red]Error clearing cache: {escape(str(e))}[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Cleared cache at [cyan]{escape(str(config.cache.path))}[/cyan]")


def main() -> None:
    """Entry point."""
    try:
        cli()
    except RestSumError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)
    except Exception as e:
        err_console.print(f"[red]Unexpected error:[/red] {escape(str(e))}")
        if os.environ.get("RESTSUM_DEBUG"):
            import traceback
            err_console.print(escape(traceback.format_exc()))
        sys.exit(1)


if __name__ == "__main__":
    main()
