"""CLI for sourcegate.

Usage:
    sourcegate serve sqlite                      # MCP over stdio
    sourcegate serve filesystem --http           # MCP over streamable HTTP
    sourcegate tools postgres                    # List an adapter's tools
    sourcegate check-query "SELECT 1"            # Run the read-only gate
    sourcegate resolve-path ../etc --root .      # Run path confinement
"""

from __future__ import annotations

import json as json_mod
import sys

import click

from sourcegate import __version__
from sourcegate.mcp_server import ADAPTERS
from sourcegate.paths import AccessDeniedError, relative_to_root, resolve_confined
from sourcegate.query_policy import available_dialects, policy_for

_ADAPTER_CHOICE = click.Choice(sorted(ADAPTERS))


@click.group()
@click.version_option(version=__version__, prog_name="sourcegate")
def cli() -> None:
    """sourcegate: guarded MCP access to databases, files and notes."""


@cli.command()
@click.argument("adapter", type=_ADAPTER_CHOICE)
@click.option("--http", "use_http", is_flag=True, help="Serve streamable HTTP instead of stdio")
@click.option("--port", default=None, type=int, help="HTTP port (default 8377)")
def serve(adapter: str, use_http: bool, port: int | None) -> None:
    """Run an MCP server for ADAPTER, configured from environment variables."""
    if use_http:
        from sourcegate.http_app import DEFAULT_PORT
        from sourcegate.http_app import main as http_main

        http_main(adapter, port or DEFAULT_PORT)
        return
    if port is not None:
        click.echo("--port only applies with --http", err=True)
        sys.exit(2)

    import asyncio

    from sourcegate.mcp_server import _run

    asyncio.run(_run(adapter))


@cli.command()
@click.argument("adapter", type=_ADAPTER_CHOICE)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def tools(adapter: str, as_json: bool) -> None:
    """List the tools ADAPTER exposes."""
    tool_defs, _ = ADAPTERS[adapter]()
    if as_json:
        click.echo(json_mod.dumps([t.model_dump(exclude_none=True) for t in tool_defs], indent=2, default=str))
        return
    for t in tool_defs:
        click.echo(f"{t.name:<20} {t.description}")


@cli.command("check-query")
@click.argument("sql")
@click.option("--dialect", default="sqlite", type=click.Choice(available_dialects()), help="SQL dialect (default sqlite)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def check_query(sql: str, dialect: str, as_json: bool) -> None:
    """Classify SQL with the read-only gate. Exits 1 when denied."""
    verdict = policy_for(dialect).classify(sql)
    if as_json:
        click.echo(json_mod.dumps({"dialect": dialect, **verdict.to_dict()}, indent=2))
    elif verdict.allowed:
        click.echo("allowed")
    else:
        click.echo(f"denied: {verdict.reason}")
    if not verdict.allowed:
        sys.exit(1)


@cli.command("resolve-path")
@click.argument("path")
@click.option("--root", required=True, type=click.Path(file_okay=False), help="Confinement root")
def resolve_path(path: str, root: str) -> None:
    """Resolve PATH under --root. Exits 1 when it escapes the root."""
    try:
        resolved = resolve_confined(path, root)
    except AccessDeniedError as e:
        click.echo(str(e), err=True)
        sys.exit(1)
    click.echo(f"{resolved}  ({relative_to_root(resolved, root)})")


if __name__ == "__main__":
    cli()
