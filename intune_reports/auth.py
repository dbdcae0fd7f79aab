"""
MSAL device code flow authentication for the Intune compliance report.

Reads client_id and tenant_id from intune_reports_config.json or accepts
them as explicit arguments. The access token is held only in memory and
never written to disk.
"""

import json
import sys
from pathlib import Path

import msal
from rich.console import Console
from rich.panel import Panel

console = Console()

GRAPH_SCOPES = [
    "https://graph.microsoft.com/DeviceManagementManagedDevices.Read.All",
    "https://graph.microsoft.com/User.Read.All",
    "https://graph.microsoft.com/Device.Read.All",
]

DEFAULT_CONFIG_FILE = Path(__file__).parent.parent / "intune_reports_config.json"
DEVICE_LOGIN_URL = "https://microsoft.com/devicelogin"


def _permission_lines(indent: str = "  ") -> str:
    return "\n".join(f"{indent}[cyan]{scope.rsplit('/', 1)[-1]}[/cyan]" for scope in GRAPH_SCOPES)


def load_config(config_path: Path | None = None) -> dict:
    """Load tenant_id, client_id and optional report settings from the JSON config."""
    path = config_path or DEFAULT_CONFIG_FILE
    if not path.exists():
        console.print(
            Panel(
                f"[bold red]No tenant configured for the compliance report.[/bold red]\n\n"
                f"Create [cyan]{path.name}[/cyan] next to the package:\n\n"
                '  [dim]{"tenant_id": "...", "client_id": "...", "tenant_name": "Contoso"}[/dim]\n\n'
                "or run with [cyan]--tenant[/cyan] and [cyan]--client-id[/cyan].\n"
                "The app registration needs delegated Graph permissions:\n"
                f"{_permission_lines()}",
                title="[red]Intune Report Not Configured[/red]",
                border_style="red",
            )
        )
        sys.exit(1)
    try:
        config = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        console.print(f"[red]Cannot parse report config {path.name} (line {exc.lineno}): {exc.msg}[/red]")
        sys.exit(1)
    if not isinstance(config, dict):
        console.print(f"[red]Report config {path.name} must be a JSON object with tenant_id and client_id.[/red]")
        sys.exit(1)
    return config


def resolve_config(tenant_id: str | None, client_id: str | None, config_path: Path | None = None) -> dict:
    """
    Merge CLI overrides onto the config file.

    When both tenant_id and client_id are given, the config file is only read
    if it exists (for optional settings such as terminated_pattern).
    """
    path = config_path or DEFAULT_CONFIG_FILE
    if tenant_id and client_id:
        config = load_config(path) if path.exists() else {}
        config.setdefault("tenant_name", tenant_id)
    else:
        config = load_config(path)
    if tenant_id:
        config["tenant_id"] = tenant_id
    if client_id:
        config["client_id"] = client_id
    return config


def _sign_in_panel(flow: dict, tenant_id: str) -> Panel:
    minutes = flow.get("expires_in", 900) // 60
    return Panel(
        f"The report reads Intune device compliance and owner profiles for [bold]{tenant_id}[/bold].\n"
        "Sign in with an account granted:\n"
        f"{_permission_lines()}\n\n"
        f"Visit [cyan underline]{flow.get('verification_uri', DEVICE_LOGIN_URL)}[/cyan underline] "
        "and enter:\n\n"
        f"  [bold white on blue]  {flow['user_code']}  [/bold white on blue]\n\n"
        f"[dim]Code valid for {minutes} minutes. Nothing is changed in the tenant.[/dim]",
        title="[bold cyan]Intune Report Sign-in[/bold cyan]",
        border_style="cyan",
    )


def acquire_token(tenant_id: str, client_id: str) -> str:
    """Sign in through the device code flow and return a Graph access token."""
    app = msal.PublicClientApplication(
        client_id=client_id,
        authority=f"https://login.microsoftonline.com/{tenant_id}",
    )

    flow = app.initiate_device_flow(scopes=GRAPH_SCOPES)
    if "user_code" not in flow:
        reason = flow.get("error_description") or flow.get("error") or "no device code returned"
        console.print(f"[red]Could not start sign-in for tenant {tenant_id}: {reason}[/red]")
        sys.exit(1)

    console.print(_sign_in_panel(flow, tenant_id))
    result = app.acquire_token_by_device_flow(flow)

    if "access_token" not in result:
        reason = result.get("error_description") or result.get("error") or "no token returned"
        console.print(
            f"[red]Sign-in did not grant Graph access for the report: {reason}[/red]\n"
            "[dim]Check that the app registration has admin consent for the permissions above.[/dim]"
        )
        sys.exit(1)

    console.print("[green]Signed in. Reading Intune devices.[/green]")
    return result["access_token"]


def get_token(tenant_id: str | None, client_id: str | None, config_path: Path | None = None) -> tuple[str, dict]:
    """Resolve configuration and return (access_token, config_dict)."""
    config = resolve_config(tenant_id, client_id, config_path)
    missing = [k for k in ("tenant_id", "client_id") if not config.get(k)]
    if missing:
        console.print(f"[red]Report config is missing: {', '.join(missing)}[/red]")
        sys.exit(1)

    token = acquire_token(config["tenant_id"], config["client_id"])
    return token, config
