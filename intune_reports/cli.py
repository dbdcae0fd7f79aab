"""
Intune compliance report CLI entrypoint.

Usage:
    intune-compliance-report [OPTIONS]
    python -m intune_reports.cli [OPTIONS]
"""

from __future__ import annotations

import json
import re
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

import click
import requests
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .auth import get_token
from .collector import build_report, load_cache
from .enricher import DEFAULT_ACTIVE_DAYS
from .graph import GraphClient
from .models import ReportRow
from .normalizer import compile_terminated_pattern
from .reporter import generate_all, status_counts

console = Console()


def _print_summary(rows: list[ReportRow]) -> None:
    table = Table(title=f"Compliance Summary — {len(rows)} devices", show_header=True, header_style="bold")
    table.add_column("Compliance Status", style="bold")
    table.add_column("Devices", justify="right")

    for status, count in status_counts(rows).items():
        table.add_row(status, str(count))
    console.print(table)

    comanaged = sum(1 for r in rows if r.is_comanaged)
    console.print(f"[dim]Co-managed: {comanaged} · Intune only: {len(rows) - comanaged}[/dim]")


@click.command()
@click.option(
    "--tenant", "-t",
    default=None,
    metavar="TENANT_ID",
    help="Entra tenant ID or domain (e.g. contoso.onmicrosoft.com). Reads from config file if omitted.",
)
@click.option(
    "--client-id", "-c",
    default=None,
    metavar="CLIENT_ID",
    help="Azure app registration client ID. Reads from config file if omitted.",
)
@click.option(
    "--config",
    default=None,
    type=click.Path(exists=False, path_type=Path),
    metavar="PATH",
    help="Path to intune_reports_config.json.",
)
@click.option(
    "--output", "-o",
    default="./output",
    show_default=True,
    type=click.Path(path_type=Path),
    metavar="DIR",
    help="Directory to write the report files.",
)
@click.option(
    "--terminated-pattern",
    default=None,
    metavar="REGEX",
    help="Regular expression matching owner emails of terminated users. "
         "Overrides terminated_pattern in the config file.",
)
@click.option(
    "--active-days",
    default=DEFAULT_ACTIVE_DAYS,
    show_default=True,
    type=click.IntRange(min=1, max=365),
    metavar="DAYS",
    help="Sign-in window for listing the owner's other active devices.",
)
@click.option(
    "--from-cache",
    default=None,
    type=click.Path(exists=True, path_type=Path),
    metavar="CACHE_FILE",
    help="Re-export a previously written report JSON file. Skips Graph API calls.",
)
@click.option(
    "--output-format",
    default="all",
    show_default=True,
    type=click.Choice(["all", "csv", "json"], case_sensitive=False),
    help="Report format(s) to generate.",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress the banner, progress display and summary table. Only print warnings, errors and output paths.",
)
@click.option(
    "--json-output",
    "json_output",
    is_flag=True,
    default=False,
    help="Print a structured JSON summary to stdout after the run.",
)
@click.version_option(__version__, "--version", "-V")
def main(
    tenant: str | None,
    client_id: str | None,
    config: Path | None,
    output: Path,
    terminated_pattern: str | None,
    active_days: int,
    from_cache: Path | None,
    output_format: str,
    quiet: bool,
    json_output: bool,
) -> None:
    """
    Report non-compliant Windows devices in Microsoft Intune.

    Lists Windows devices that are non-compliant, in their grace period, or
    report compliance through Configuration Manager, joined with the owner's
    directory profile and their other recently active Windows devices.

    Exit codes:
      0  Report written
      1  Configuration error or the device query failed
    """
    started = time.monotonic()

    if from_cache and output_format.lower() == "json":
        console.print(
            "[red]--from-cache with --output-format json has nothing to write: "
            "the cache file is already the JSON export. Use csv or all.[/red]"
        )
        sys.exit(1)

    if not quiet:
        console.print(
            Panel(
                f"[bold]Intune Non-Compliant Device Report[/bold]  [dim]v{__version__}[/dim]\n"
                "[dim]Read-only: queries Microsoft Graph, makes no changes to your tenant.[/dim]",
                border_style="cyan",
            )
        )

    if from_cache:
        console.print(f"[cyan]Cache mode — loading rows from {from_cache}[/cyan]")
        try:
            rows, cached = load_cache(from_cache)
        except (json.JSONDecodeError, OSError, ValueError) as exc:
            console.print(f"[red]Error reading cache file: {exc}[/red]")
            sys.exit(1)
        tenant_name = cached.get("tenant", "cached tenant")
        console.print(f"[green]Loaded cache for:[/green] {tenant_name}")
    else:
        token, auth_config = get_token(tenant, client_id, config)
        tenant_name = auth_config.get("tenant_name", auth_config.get("tenant_id", ""))
        console.print(f"[green]Connected to:[/green] {tenant_name}")

        try:
            pattern = compile_terminated_pattern(terminated_pattern or auth_config.get("terminated_pattern"))
        except re.error as exc:
            console.print(f"[red]Invalid terminated-user pattern: {exc}[/red]")
            sys.exit(1)

        client = GraphClient(access_token=token)
        try:
            rows = build_report(
                client, terminated_pattern=pattern, active_days=active_days, quiet=quiet
            )
        except (PermissionError, RuntimeError, requests.RequestException) as exc:
            console.print(
                Panel(
                    f"[red]Device query failed: {exc}[/red]\n\nNo report was written.",
                    title="[red]Fetch Failed[/red]",
                    border_style="red",
                )
            )
            sys.exit(1)

    if not quiet:
        _print_summary(rows)

    outputs = generate_all(
        rows,
        Path(output),
        tenant_name=tenant_name,
        skip_csv=output_format not in ("all", "csv"),
        # Re-exporting from cache never rewrites the cache itself
        skip_json=bool(from_cache) or output_format not in ("all", "json"),
    )

    elapsed = time.monotonic() - started
    elapsed_str = f"{int(elapsed // 60)}m {int(elapsed % 60)}s" if elapsed >= 60 else f"{elapsed:.1f}s"
    console.print(
        Panel(
            "\n".join(
                [
                    "[bold green]Report complete![/bold green]",
                    "",
                    f"[bold]CSV: [/bold] {outputs.get('csv') or '—'}",
                    f"[bold]JSON:[/bold] {outputs.get('json') or '—'}",
                    "",
                    f"[dim]Devices: {len(rows)} · Completed in {elapsed_str}[/dim]",
                ]
            ),
            border_style="cyan",
        )
    )

    if json_output:
        summary = {
            "tenant": tenant_name,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "total_devices": len(rows),
            "compliance_status": status_counts(rows),
            "co_managed": sum(1 for r in rows if r.is_comanaged),
            "outputs": {k: str(v) if v else None for k, v in outputs.items()},
        }
        click.echo(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
