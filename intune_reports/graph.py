"""
Microsoft Graph API client with pagination and JSON batching.

Collection reads follow @odata.nextLink until the last page and return the
whole collection or raise; there is no retry. The only POST made is to the
$batch endpoint, which bundles read-only GET sub-requests.
"""

from urllib.parse import quote

import requests
from rich.console import Console

console = Console()

GRAPH_BASE = "https://graph.microsoft.com/v1.0"
GRAPH_BETA = "https://graph.microsoft.com/beta"
BATCH_URL = f"{GRAPH_BASE}/$batch"
REQUEST_TIMEOUT = 30  # seconds

WINDOWS_OS = "Windows"

# Compliance states reported by the non-compliant device query
NONCOMPLIANT_STATES = ("noncompliant", "inGracePeriod", "configManager")

DEVICE_SELECT = (
    "id,deviceName,osVersion,emailAddress,lastSyncDateTime,complianceState,"
    "deviceEnrollmentType,configurationManagerClientHealthState,"
    "configurationManagerClientEnabledFeatures"
)
PROFILE_SELECT = "onPremisesSamAccountName,jobTitle,department"
OWNED_DEVICE_SELECT = (
    "displayName,operatingSystem,isCompliant,accountEnabled,approximateLastSignInDateTime"
)


def noncompliant_filter() -> str:
    """OData filter for Windows devices in any of NONCOMPLIANT_STATES."""
    states = " or ".join(f"complianceState eq '{s}'" for s in NONCOMPLIANT_STATES)
    return f"operatingSystem eq '{WINDOWS_OS}' and ({states})"


def _error_message(resp: requests.Response) -> str:
    try:
        return resp.json().get("error", {}).get("message", resp.text)
    except (ValueError, AttributeError):
        return resp.text


def _raise_for_status(resp: requests.Response) -> None:
    if resp.status_code in (401, 403):
        raise PermissionError(f"Graph API access denied ({resp.status_code}): {_error_message(resp)}")
    if not 200 <= resp.status_code < 300:
        raise RuntimeError(f"Graph API error {resp.status_code}: {_error_message(resp)}")


class GraphClient:
    """Thin wrapper around the Microsoft Graph REST API."""

    def __init__(self, access_token: str) -> None:
        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            }
        )

    def _get(self, url: str, params: dict | None = None) -> dict:
        """Single GET request. Transport errors propagate unchanged."""
        resp = self._session.get(url, params=params, timeout=REQUEST_TIMEOUT)
        _raise_for_status(resp)
        return resp.json()

    def get_all(self, path: str, params: dict | None = None, base: str = GRAPH_BASE) -> list[dict]:
        """
        Return every item of a paged Graph API collection, in server order.

        Follows @odata.nextLink until a page arrives without one. A failure on
        any page raises and the pages already read are discarded.
        """
        url = path if path.startswith("https://") else f"{base}{path}"
        query = params
        items: list[dict] = []

        while url:
            data = self._get(url, params=query)
            # On nextLink pages, params are already encoded in the URL
            query = None
            items.extend(data.get("value", []))
            url = data.get("@odata.nextLink")
        return items

    def post_batch(self, requests_: list[dict]) -> dict[str, dict]:
        """
        Send a JSON batch and return the sub-responses keyed by request id.

        Raises when the batch call itself fails. Individual sub-responses keep
        their own status and are returned as-is.
        """
        resp = self._session.post(BATCH_URL, json={"requests": requests_}, timeout=REQUEST_TIMEOUT)
        _raise_for_status(resp)
        try:
            data = resp.json()
        except ValueError as exc:
            raise RuntimeError(f"Graph batch returned a malformed body: {exc}") from exc

        responses = data.get("responses") if isinstance(data, dict) else None
        if not isinstance(responses, list) or not all(isinstance(r, dict) for r in responses):
            raise RuntimeError("Graph batch returned a malformed body: expected a list of responses")
        return {str(r.get("id")): r for r in responses}

    # ── Convenience methods ──────────────────────────────────────────────────

    def get_noncompliant_devices(self) -> list[dict]:
        """
        Return Windows managed devices that are non-compliant, in their grace
        period, or report compliance through Configuration Manager.

        The co-management health and feature fields are beta-only.
        """
        return self.get_all(
            "/deviceManagement/managedDevices",
            params={"$filter": noncompliant_filter(), "$select": DEVICE_SELECT},
            base=GRAPH_BETA,
        )


def user_batch_requests(email: str) -> list[dict]:
    """Batch sub-requests for a user's profile ("1") and owned devices ("2")."""
    user = quote(email, safe="@")
    return [
        {"id": "1", "method": "GET", "url": f"/users/{user}?$select={PROFILE_SELECT}"},
        {"id": "2", "method": "GET", "url": f"/users/{user}/ownedDevices?$select={OWNED_DEVICE_SELECT}"},
    ]
