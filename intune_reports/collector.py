"""
Report assembly for the non-compliant device report.

Fetches the device list once, then enriches and normalizes each device in
fetch order. Enrichment failures degrade a row but never drop it.
"""

import json
import re
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from . import __version__
from .enricher import DEFAULT_ACTIVE_DAYS, enrich_device
from .graph import GraphClient
from .models import DeviceRecord, ReportRow
from .normalizer import TERMINATED_RE, normalize

console = Console()


def build_report(
    client: GraphClient,
    terminated_pattern: re.Pattern = TERMINATED_RE,
    active_days: int = DEFAULT_ACTIVE_DAYS,
    now: datetime | None = None,
    quiet: bool = False,
) -> list[ReportRow]:
    """
    Return one ReportRow per non-compliant device, in fetch order.

    Errors from the device query propagate; no partial report is returned.
    With ``quiet`` the spinner, progress bar and counts are not shown;
    enrichment warnings still are.
    """
    if quiet:
        items = client.get_noncompliant_devices()
    else:
        with console.status("[cyan]Fetching non-compliant Windows devices..."):
            items = client.get_noncompliant_devices()
    devices = [DeviceRecord.from_graph(item) for item in items]
    if not quiet:
        console.print(f"[green]Devices found:[/green] {len(devices):,}")

    rows: list[ReportRow] = []
    if not devices:
        return rows

    unenriched = 0
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        disable=quiet,
    ) as progress:
        task = progress.add_task("Enriching device data...", total=len(devices))

        for record in devices:
            enrichment = enrich_device(client, record, now=now, active_days=active_days)
            if not enrichment.available:
                unenriched += 1
            rows.append(normalize(record, enrichment, terminated_pattern))
            progress.advance(task)

    if unenriched:
        console.print(f"[yellow]{unenriched} device(s) reported without directory data.[/yellow]")
    return rows


def tenant_slug(name: str) -> str:
    return re.sub(r"[^\w\-]", "_", name).lower()


def file_date() -> str:
    """Local date used in every output filename."""
    return datetime.now().strftime("%Y-%m-%d")


def save_cache(
    rows: list[ReportRow],
    output_dir: Path,
    tenant_name: str = "tenant",
    date_slug: str | None = None,
) -> Path:
    """Write assembled rows to report_<tenant>_<date>.json for later re-export."""
    output_dir.mkdir(parents=True, exist_ok=True)
    date_slug = date_slug or file_date()
    cache_file = output_dir / f"report_{tenant_slug(tenant_name)}_{date_slug}.json"
    payload = {
        "schema_version": __version__,
        "tenant": tenant_name,
        "collected_at": datetime.now(timezone.utc).isoformat(),
        "rows": [r.as_dict() for r in rows],
    }
    cache_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    console.print(f"[dim]Report data cached to {cache_file}[/dim]")
    return cache_file


def load_cache(cache_path: Path) -> tuple[list[ReportRow], dict]:
    """
    Load rows written by save_cache.

    Raises ValueError when the file is not a report cache.
    """
    data = json.loads(cache_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict) or "rows" not in data:
        raise ValueError("missing 'rows' key; pass a report_<tenant>_<date>.json file")
    try:
        rows = [ReportRow.from_dict(r) for r in data["rows"]]
    except (KeyError, TypeError) as exc:
        raise ValueError(f"malformed row in cache: {exc}") from exc
    return rows, data
