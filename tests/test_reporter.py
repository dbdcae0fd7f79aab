"""
Unit tests for intune_reports/reporter.py.

Covers the CSV formula guard, CSV generation, status counts and the
generate_all orchestrator. No network calls.
"""

import csv
import json

from intune_reports import reporter
from intune_reports.models import NA, REPORT_COLUMNS, ReportRow
from intune_reports.reporter import _csv_safe, generate_all, generate_csv, status_counts


def _make_row(
    *,
    device_name: str = "LT-JDOE-01",
    user_mail: str = "jane.doe@contoso.com",
    user_alias: str = "JDOE",
    user_job_title: str = "Engineer",
    user_department: str = "IT",
    os_version: str = "10.0.22631.3447",
    intune_last_checkin: str = "2024-06-14T08:00:00Z",
    memcm_last_checkin: str = NA,
    compliance_status: str = "noncompliant",
    is_comanaged: bool = False,
    compliance_workload_enabled: bool | str = NA,
    other_active_devices: str = NA,
) -> ReportRow:
    return ReportRow(
        device_name=device_name,
        user_mail=user_mail,
        user_alias=user_alias,
        user_job_title=user_job_title,
        user_department=user_department,
        os_version=os_version,
        intune_last_checkin=intune_last_checkin,
        memcm_last_checkin=memcm_last_checkin,
        compliance_status=compliance_status,
        is_comanaged=is_comanaged,
        compliance_workload_enabled=compliance_workload_enabled,
        other_active_devices=other_active_devices,
    )


# ── _csv_safe ──────────────────────────────────────────────────────────────────


class TestCsvSafe:
    def test_normal_value_unchanged(self):
        assert _csv_safe("Hello World") == "Hello World"

    def test_empty_string_unchanged(self):
        assert _csv_safe("") == ""

    def test_equals_sign_prefixed(self):
        assert _csv_safe("=SUM(A1)") == "'=SUM(A1)"

    def test_at_sign_prefixed(self):
        assert _csv_safe("@user") == "'@user"

    def test_mid_string_formula_not_prefixed(self):
        assert _csv_safe("safe=still") == "safe=still"


# ── status_counts ──────────────────────────────────────────────────────────────


class TestStatusCounts:
    def test_empty(self):
        assert status_counts([]) == {}

    def test_most_common_first(self):
        rows = [
            _make_row(compliance_status="inGracePeriod"),
            _make_row(compliance_status="noncompliant"),
            _make_row(compliance_status="noncompliant"),
        ]
        assert list(status_counts(rows).items()) == [("noncompliant", 2), ("inGracePeriod", 1)]


# ── generate_csv ───────────────────────────────────────────────────────────────


class TestGenerateCsv:
    def test_header_matches_columns(self, tmp_path):
        path = generate_csv([_make_row()], tmp_path / "out.csv")
        with path.open(encoding="utf-8") as f:
            header = next(csv.reader(f))
        assert tuple(header) == REPORT_COLUMNS

    def test_one_line_per_row(self, tmp_path):
        rows = [_make_row(device_name=f"DEV-{i}") for i in range(3)]
        path = generate_csv(rows, tmp_path / "out.csv")
        with path.open(encoding="utf-8") as f:
            records = list(csv.DictReader(f))
        assert [r["DeviceName"] for r in records] == ["DEV-0", "DEV-1", "DEV-2"]

    def test_boolean_and_sentinels(self, tmp_path):
        path = generate_csv(
            [_make_row(is_comanaged=True, compliance_workload_enabled=False)], tmp_path / "out.csv"
        )
        with path.open(encoding="utf-8") as f:
            record = next(csv.DictReader(f))
        assert record["IsCoManaged"] == "True"
        assert record["ComplianceWorkloadEnabled"] == "False"
        assert record["MeMCMLastCheckin"] == NA

    def test_formula_in_free_text_guarded(self, tmp_path):
        path = generate_csv([_make_row(user_department="=HYPERLINK(x)")], tmp_path / "out.csv")
        with path.open(encoding="utf-8") as f:
            record = next(csv.DictReader(f))
        assert record["UserDepartment"] == "'=HYPERLINK(x)"

    def test_semicolon_summary_kept_in_one_cell(self, tmp_path):
        summary = "DT-1 (Compliant, 2024-06-14T10:00:00Z); DT-2 (NotCompliant, 2024-06-13T10:00:00Z)"
        path = generate_csv([_make_row(other_active_devices=summary)], tmp_path / "out.csv")
        with path.open(encoding="utf-8") as f:
            record = next(csv.DictReader(f))
        assert record["OtherActiveDevices"] == summary


# ── generate_all ───────────────────────────────────────────────────────────────


class TestGenerateAll:
    def test_writes_csv_and_json(self, tmp_path):
        outputs = generate_all([_make_row()], tmp_path / "reports", tenant_name="Contoso Ltd")
        assert outputs["csv"].exists()
        assert outputs["json"].exists()
        assert "contoso_ltd" in outputs["csv"].name
        data = json.loads(outputs["json"].read_text(encoding="utf-8"))
        assert data["rows"][0]["DeviceName"] == "LT-JDOE-01"

    def test_skip_csv(self, tmp_path):
        outputs = generate_all([_make_row()], tmp_path, skip_csv=True)
        assert outputs["csv"] is None
        assert outputs["json"] is not None

    def test_skip_json(self, tmp_path):
        outputs = generate_all([_make_row()], tmp_path, skip_json=True)
        assert outputs["json"] is None
        assert list(tmp_path.glob("*.json")) == []

    def test_empty_report_still_has_header(self, tmp_path):
        outputs = generate_all([], tmp_path, skip_json=True)
        lines = outputs["csv"].read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1

    def test_csv_and_json_share_file_date(self, tmp_path, monkeypatch):
        monkeypatch.setattr(reporter, "file_date", lambda: "2024-06-15")
        outputs = generate_all([_make_row()], tmp_path, tenant_name="Contoso")
        assert outputs["csv"].name == "noncompliant_devices_contoso_2024-06-15.csv"
        assert outputs["json"].name == "report_contoso_2024-06-15.json"
