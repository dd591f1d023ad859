"""Terminal and JSON rendering of endpoint lists."""

import json
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from restsum.models import Endpoint

METHOD_STYLES = {
    "GET": "green",
    "POST": "blue",
    "PUT": "yellow",
    "DELETE": "red",
    "PATCH": "magenta",
}


def shorten_path(path: str) -> str:
    """Keep only the last two components of long paths."""
    parts = path.split("/")
    if len(parts) > 3:
        return ".../" + "/".join(parts[-2:])
    return path


def styled_method(method: str) -> str:
    style = METHOD_STYLES.get(method.upper())
    if style is None:
        return escape(method)
    return f"[{style}]{escape(method)}[/{style}]"


def build_table(endpoints: Sequence[Endpoint]) -> Table:
    table = Table(show_lines=False, header_style="cyan")
    table.add_column("Method", no_wrap=True)
    table.add_column("Path")
    table.add_column("File", style="dim")
    table.add_column("Summary")

    for endpoint in endpoints:
        table.add_row(
            styled_method(endpoint.method),
            escape(endpoint.path),
            escape(f"{shorten_path(endpoint.file)}:{endpoint.line}"),
            escape(endpoint.summary),
        )
    return table


def group_by_file(endpoints: Sequence[Endpoint]) -> Dict[str, List[Endpoint]]:
    groups: Dict[str, List[Endpoint]] = OrderedDict()
    for endpoint in endpoints:
        groups.setdefault(endpoint.file, []).append(endpoint)
    return groups


def render_endpoints(endpoints: Sequence[Endpoint], console: Optional[Console] = None) -> None:
    """Print the endpoint table followed by a per-file listing."""
    console = console or Console()
    if not endpoints:
        console.print("[yellow]No endpoints found.[/yellow]")
        return

    console.print("\n[green]🔍 REST API Endpoints Summary[/green]\n")
    console.print(f"Found {len(endpoints)} endpoints\n")
    console.print(build_table(endpoints))

    console.print("\n[green]📁 Endpoints by File:[/green]\n")
    for file, group in group_by_file(endpoints).items():
        console.print(f"  [cyan]{escape(file)}[/cyan] ({len(group)} endpoints)")
        for endpoint in group:
            console.print(f"    • {styled_method(endpoint.method)} {escape(endpoint.path)}")


def endpoints_to_json(
    endpoints: Sequence[Endpoint],
    root: Optional[str] = None,
    stats: Optional[Dict[str, Any]] = None,
) -> str:
    """Serialize endpoints, with optional scan root and run statistics."""
    data: Dict[str, Any] = {}
    if root is not None:
        data["root"] = root
    data["endpoints"] = [e.to_dict() for e in endpoints]
    if stats is not None:
        data["stats"] = stats
    return json.dumps(data, indent=2)
