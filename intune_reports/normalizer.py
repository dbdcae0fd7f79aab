"""
Field resolution for report rows.

``normalize`` is a pure function: the same DeviceRecord and Enrichment always
produce the same ReportRow, and every column is populated with either a real
value or a sentinel.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from .models import NA, TERMINATED, DeviceRecord, Enrichment, ReportRow, parse_dt

COMANAGEMENT_ENROLLMENT = "windowsCoMnagement"
CONFIG_MANAGER_STATE = "configManager"

# Owner mailboxes renamed on offboarding, e.g. term.jane.doe@contoso.com
DEFAULT_TERMINATED_PATTERN = r"^(?:term|terminated)[._-]"

# Last dot-separated segment of the mailbox local part
_ALIAS_RE = re.compile(r"(?:^|\.)(?P<alias>[^.@\s]+)@")

_ZERO_DATES = (
    datetime(1, 1, 1, tzinfo=timezone.utc),
    datetime(1970, 1, 1, tzinfo=timezone.utc),
)


def compile_terminated_pattern(pattern: str | None = None) -> re.Pattern:
    """Compile a terminated-user pattern. Raises re.error when invalid."""
    return re.compile(pattern or DEFAULT_TERMINATED_PATTERN, re.IGNORECASE)


TERMINATED_RE = compile_terminated_pattern()


def alias_from_email(email: str | None) -> str | None:
    """Upper-cased final dot segment of the email local part, if any."""
    if not email:
        return None
    match = _ALIAS_RE.search(email)
    return match.group("alias").upper() if match else None


def _checkin(value: str | None) -> str:
    dt = parse_dt(value)
    if dt is None or dt in _ZERO_DATES:
        return NA
    return value


def _compliance_status(state: str | None) -> str:
    if not state or state == CONFIG_MANAGER_STATE:
        return NA
    return state


def normalize(
    record: DeviceRecord,
    enrichment: Enrichment,
    terminated_pattern: re.Pattern = TERMINATED_RE,
) -> ReportRow:
    """Resolve one device and its enrichment into a fully populated ReportRow."""
    email = record.user_email or None
    profile = enrichment.profile

    if email and terminated_pattern.search(email):
        mail, alias, title, department = TERMINATED, NA, NA, NA
    elif not email:
        mail, alias, title, department = NA, NA, NA, NA
    else:
        mail = email
        alias = (profile.on_prem_alias if profile else None) or alias_from_email(email) or NA
        title = (profile.job_title if profile else None) or NA
        department = (profile.department if profile else None) or NA

    workload = record.compliance_workload
    return ReportRow(
        device_name=record.device_name or NA,
        user_mail=mail,
        user_alias=alias,
        user_job_title=title,
        user_department=department,
        os_version=record.os_version or NA,
        intune_last_checkin=record.last_sync or NA,
        memcm_last_checkin=_checkin(record.comanagement_last_checkin),
        compliance_status=_compliance_status(record.compliance_state),
        is_comanaged=record.enrollment_type == COMANAGEMENT_ENROLLMENT,
        compliance_workload_enabled=workload if workload is not None else NA,
        other_active_devices=enrichment.other_devices_summary or NA,
    )
