"""
Report export for the non-compliant device report.

Produces:
  - CSV export (one row per device, fixed column order)
  - JSON export (the same rows, reloadable with --from-cache)
"""

from __future__ import annotations

import csv
from collections import Counter
from pathlib import Path

from rich.console import Console

from .collector import file_date, save_cache, tenant_slug
from .models import REPORT_COLUMNS, ReportRow

console = Console()

# Columns holding directory or device free text
_FREE_TEXT_COLUMNS = {
    "DeviceName",
    "UserMail",
    "UserAlias",
    "UserJobTitle",
    "UserDepartment",
    "OtherActiveDevices",
}


def _csv_safe(value: str) -> str:
    """Prefix formula-triggering characters so spreadsheets treat them as literals."""
    if value and value[0] in ("=", "+", "-", "@", "\t", "\r"):
        return "'" + value
    return value


def status_counts(rows: list[ReportRow]) -> dict[str, int]:
    """Return compliance status → count, most common first."""
    return dict(Counter(r.compliance_status for r in rows).most_common())


def generate_csv(rows: list[ReportRow], output_path: Path) -> Path:
    """Write a flat CSV with one row per device."""
    with output_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(REPORT_COLUMNS))
        writer.writeheader()
        for row in rows:
            writer.writerow(
                {
                    col: _csv_safe(value) if col in _FREE_TEXT_COLUMNS else value
                    for col, value in row.as_dict().items()
                }
            )
    return output_path


# ── Orchestrator ───────────────────────────────────────────────────────────────


def generate_all(
    rows: list[ReportRow],
    output_dir: Path,
    tenant_name: str = "tenant",
    skip_csv: bool = False,
    skip_json: bool = False,
) -> dict[str, Path | None]:
    """Generate CSV and JSON exports. Returns dict of format → output path."""
    output_dir.mkdir(parents=True, exist_ok=True)

    date_slug = file_date()
    csv_path = output_dir / f"noncompliant_devices_{tenant_slug(tenant_name)}_{date_slug}.csv"

    if skip_csv:
        csv_out = None
    else:
        console.print("[cyan]Generating CSV export...[/cyan]")
        csv_out = generate_csv(rows, csv_path)
        console.print(f"[green]CSV: [/green] {csv_out}")

    json_out = None if skip_json else save_cache(rows, output_dir, tenant_name, date_slug=date_slug)

    return {"csv": csv_out, "json": json_out}
