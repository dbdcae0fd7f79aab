"""
Record types for the non-compliant device report.

Raw Graph payloads are converted into these frozen dataclasses at the edges;
everything downstream works on typed records rather than dicts.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

NA = "N/A"
TERMINATED = "Terminated"

# Output column order consumed by the exporters
REPORT_COLUMNS = (
    "DeviceName",
    "UserMail",
    "UserAlias",
    "UserJobTitle",
    "UserDepartment",
    "OSVersion",
    "IntuneLastCheckIn",
    "MeMCMLastCheckin",
    "ComplianceStatus",
    "IsCoManaged",
    "ComplianceWorkloadEnabled",
    "OtherActiveDevices",
)


def parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        # Graph returns ISO 8601 with trailing Z or +00:00
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class DeviceRecord:
    """One managed device returned by the non-compliant device query."""

    id: str
    device_name: str | None
    os_version: str | None
    user_email: str | None
    last_sync: str | None
    compliance_state: str | None
    enrollment_type: str | None
    comanagement_last_checkin: str | None = None
    compliance_workload: bool | None = None

    @classmethod
    def from_graph(cls, item: dict) -> DeviceRecord:
        health = item.get("configurationManagerClientHealthState") or {}
        features = item.get("configurationManagerClientEnabledFeatures") or {}
        return cls(
            id=item.get("id", ""),
            device_name=item.get("deviceName"),
            os_version=item.get("osVersion"),
            user_email=item.get("emailAddress"),
            last_sync=item.get("lastSyncDateTime"),
            compliance_state=item.get("complianceState"),
            enrollment_type=item.get("deviceEnrollmentType"),
            comanagement_last_checkin=health.get("lastSyncDateTime"),
            compliance_workload=features.get("compliancePolicy"),
        )


@dataclass(frozen=True)
class UserProfile:
    on_prem_alias: str | None = None
    job_title: str | None = None
    department: str | None = None

    @classmethod
    def from_graph(cls, body: dict) -> UserProfile:
        return cls(
            on_prem_alias=body.get("onPremisesSamAccountName") or None,
            job_title=body.get("jobTitle") or None,
            department=body.get("department") or None,
        )


@dataclass(frozen=True)
class SiblingDevice:
    """Another device owned by the same user."""

    display_name: str
    operating_system: str | None
    is_compliant: bool | None
    account_enabled: bool | None
    last_sign_in: str | None

    @property
    def compliance_label(self) -> str:
        if self.is_compliant is None:
            return "Unknown"
        return "Compliant" if self.is_compliant else "NotCompliant"

    def summary(self) -> str:
        return f"{self.display_name} ({self.compliance_label}, {self.last_sign_in or NA})"


@dataclass(frozen=True)
class Enrichment:
    """
    Directory data joined onto one device by a single batch call.

    ``available`` is False when the batch call could not be made or failed;
    in that case profile and siblings are always empty.
    """

    profile: UserProfile | None = None
    siblings: tuple[SiblingDevice, ...] = field(default_factory=tuple)
    available: bool = True

    @classmethod
    def unavailable(cls) -> Enrichment:
        return cls(profile=None, siblings=(), available=False)

    @property
    def other_devices_summary(self) -> str:
        return "; ".join(s.summary() for s in self.siblings)


@dataclass(frozen=True)
class ReportRow:
    device_name: str
    user_mail: str
    user_alias: str
    user_job_title: str
    user_department: str
    os_version: str
    intune_last_checkin: str
    memcm_last_checkin: str
    compliance_status: str
    is_comanaged: bool
    compliance_workload_enabled: bool | str
    other_active_devices: str

    def as_dict(self) -> dict:
        """Row keyed by the exported column names, in column order."""
        return dict(zip(REPORT_COLUMNS, asdict(self).values()))

    @classmethod
    def from_dict(cls, data: dict) -> ReportRow:
        return cls(*(data[col] for col in REPORT_COLUMNS))
