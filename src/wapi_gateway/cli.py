"""
W-API Gateway CLI

Command-line interface for gateway administration.

Commands:
- serve: Run the HTTP gateway
- list-tenants: List tenants with stored credentials
- purge-tenant: Erase a tenant's stored credentials
- status: Ask a running gateway for an instance's status
- send-test: Send a test message through a running gateway
"""

from typing import Optional

import httpx
import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from wa_sessions.errors import GatewayError
from wa_sessions.validation import validate_tenant_id

app = typer.Typer(
    name="wapi-gateway",
    help="W-API Gateway CLI",
)

console = Console()

DEFAULT_URL = "http://localhost:3000"


def get_credential_store():
    """Get the configured credential store."""
    from wacore.settings import get_settings
    from wapi_gateway.main import build_credential_store

    return build_credential_store(get_settings())


def _checked_tenant_id(tenant_id: str) -> str:
    try:
        return validate_tenant_id(tenant_id)
    except GatewayError as e:
        rprint(f"[red]{e.message}: {tenant_id}[/red]")
        raise typer.Exit(1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default: HOST)"),
    port: Optional[int] = typer.Option(None, help="HTTP port (default: PORT)"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the HTTP gateway."""
    import uvicorn

    from wacore.logging import setup_logging
    from wacore.settings import get_settings

    settings = get_settings()
    setup_logging()

    uvicorn.run(
        "wapi_gateway.main:create_app",
        factory=True,
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=reload,
        log_config=None,
    )


@app.command()
def list_tenants():
    """List tenants with stored credentials."""
    store = get_credential_store()

    try:
        tenants = store.list_tenants()
    except GatewayError as e:
        rprint(f"[red]Failed to list tenants: {e.message}[/red]")
        raise typer.Exit(1)

    if not tenants:
        rprint("[yellow]No tenants with stored credentials[/yellow]")
        return

    table = Table(title="Stored Tenants")
    table.add_column("Instance ID", style="cyan")
    table.add_column("Paired", style="green")

    for tenant_id in tenants:
        credentials = store.load(tenant_id) or {}
        paired = bool(credentials.get("me") or credentials.get("owner_jid"))
        table.add_row(tenant_id, "yes" if paired else "no")

    console.print(table)


@app.command()
def purge_tenant(
    tenant_id: str = typer.Argument(..., help="Instance ID"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """
    Erase a tenant's stored credentials.

    The tenant has to pair again on its next session. Run it while the
    gateway is stopped, or use POST /v1/instance/reset on a running one.
    """
    tenant_id = _checked_tenant_id(tenant_id)

    if not force:
        confirm = typer.confirm(f"Erase stored credentials for {tenant_id}?")
        if not confirm:
            rprint("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    try:
        erased = get_credential_store().erase(tenant_id)
    except GatewayError as e:
        rprint(f"[red]Failed to erase credentials: {e.message}[/red]")
        raise typer.Exit(1)

    if erased:
        rprint(f"[green]Credentials erased for {tenant_id}[/green]")
    else:
        rprint(f"[yellow]No stored credentials for {tenant_id}[/yellow]")


@app.command()
def status(
    tenant_id: str = typer.Argument(..., help="Instance ID"),
    url: str = typer.Option(DEFAULT_URL, help="Gateway base URL"),
):
    """Show an instance's connection status from a running gateway."""
    tenant_id = _checked_tenant_id(tenant_id)

    try:
        response = httpx.get(
            f"{url.rstrip('/')}/v1/instance/status-instance",
            params={"instanceId": tenant_id},
            timeout=10.0,
        )
    except httpx.HTTPError as e:
        rprint(f"[red]Gateway unreachable: {e}[/red]")
        raise typer.Exit(1)

    data = response.json()
    if response.status_code >= 400:
        rprint(f"[red]{data.get('message', response.text)}[/red]")
        raise typer.Exit(1)

    if data.get("connected"):
        rprint(f"[green]{tenant_id}: connected[/green]")
    else:
        rprint(f"[yellow]{tenant_id}: not connected[/yellow]")


@app.command()
def send_test(
    tenant_id: str = typer.Argument(..., help="Instance ID"),
    phone: str = typer.Argument(..., help="Recipient phone number"),
    message: str = typer.Argument("Test message from W-API Gateway", help="Message text"),
    url: str = typer.Option(DEFAULT_URL, help="Gateway base URL"),
):
    """Send a test message through a running gateway."""
    tenant_id = _checked_tenant_id(tenant_id)

    try:
        response = httpx.post(
            f"{url.rstrip('/')}/v1/message/send-text",
            params={"instanceId": tenant_id},
            json={"phone": phone, "message": message},
            timeout=30.0,
        )
    except httpx.HTTPError as e:
        rprint(f"[red]Gateway unreachable: {e}[/red]")
        raise typer.Exit(1)

    data = response.json()
    if response.status_code >= 400 or data.get("error"):
        rprint(f"[red]Failed to send message ({response.status_code}): {data.get('message')}[/red]")
        raise typer.Exit(1)

    rprint(f"[green]Message sent successfully![/green]")
    rprint(f"  Message ID: {data.get('messageId')}")
    rprint(f"  Inserted ID: {data.get('insertedId')}")


if __name__ == "__main__":
    app()
