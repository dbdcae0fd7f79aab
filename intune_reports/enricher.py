"""
Per-device directory enrichment over a single Graph $batch call.

For each device, the owning user's profile and their other owned devices are
fetched together. A failed batch never aborts the report: the device gets an
unavailable Enrichment and its row falls back to sentinel values.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import requests
from rich.console import Console

from .graph import WINDOWS_OS, GraphClient, user_batch_requests
from .models import DeviceRecord, Enrichment, SiblingDevice, UserProfile, parse_dt

console = Console()

DEFAULT_ACTIVE_DAYS = 7

PROFILE_REQUEST_ID = "1"
DEVICES_REQUEST_ID = "2"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _body(response: dict | None) -> dict | None:
    """Body of a successful sub-response, or None."""
    if not isinstance(response, dict):
        return None
    status = response.get("status", 0)
    if not isinstance(status, int) or not 200 <= status < 300:
        return None
    body = response.get("body")
    return body if isinstance(body, dict) else None


def active_siblings(
    owned_devices: list[dict],
    device_name: str | None,
    now: datetime | None = None,
    active_days: int = DEFAULT_ACTIVE_DAYS,
) -> tuple[SiblingDevice, ...]:
    """
    Select the owner's other Windows devices signed in within ``active_days``.

    The current device (matched by display name) and disabled device accounts
    are excluded. Response order is preserved.
    """
    cutoff = (now or _utcnow()) - timedelta(days=active_days)
    siblings = []
    for dev in owned_devices:
        if not isinstance(dev, dict):
            continue
        name = dev.get("displayName")
        if dev.get("operatingSystem") != WINDOWS_OS:
            continue
        if not name or name == device_name:
            continue
        if dev.get("accountEnabled") is not True:
            continue
        last_sign_in = parse_dt(dev.get("approximateLastSignInDateTime"))
        if last_sign_in is None or last_sign_in < cutoff:
            continue
        siblings.append(
            SiblingDevice(
                display_name=name,
                operating_system=dev.get("operatingSystem"),
                is_compliant=dev.get("isCompliant"),
                account_enabled=dev.get("accountEnabled"),
                last_sign_in=dev.get("approximateLastSignInDateTime"),
            )
        )
    return tuple(siblings)


def parse_batch_responses(
    responses: dict[str, dict],
    record: DeviceRecord,
    now: datetime | None = None,
    active_days: int = DEFAULT_ACTIVE_DAYS,
) -> Enrichment:
    """Build an Enrichment from batch sub-responses keyed by request id."""
    profile_body = _body(responses.get(PROFILE_REQUEST_ID))
    devices_body = _body(responses.get(DEVICES_REQUEST_ID))

    profile = UserProfile.from_graph(profile_body) if profile_body is not None else None
    owned = devices_body.get("value") if devices_body is not None else None
    if not isinstance(owned, list):
        owned = []
    return Enrichment(
        profile=profile,
        siblings=active_siblings(owned, record.device_name, now=now, active_days=active_days),
    )


def enrich_device(
    client: GraphClient,
    record: DeviceRecord,
    now: datetime | None = None,
    active_days: int = DEFAULT_ACTIVE_DAYS,
) -> Enrichment:
    """
    Fetch owner profile and owned devices for one device in one batch call.

    Never raises for Graph or transport failures; those yield
    ``Enrichment.unavailable()``.
    """
    if not record.user_email:
        return Enrichment.unavailable()

    try:
        responses = client.post_batch(user_batch_requests(record.user_email))
    except (PermissionError, RuntimeError, requests.RequestException) as exc:
        console.print(
            f"[yellow]Warning: enrichment failed for {record.device_name or record.id} ({exc}). "
            "Directory fields will be N/A.[/yellow]"
        )
        return Enrichment.unavailable()

    return parse_batch_responses(responses, record, now=now, active_days=active_days)
