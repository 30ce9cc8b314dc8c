# manage.py

from dotenv import load_dotenv
load_dotenv()

import asyncio
import json
from typing import Optional

import typer
import uvicorn
from typing_extensions import Annotated

# NOTE: File ini berfungsi seperti manage.py di Flask, tapi untuk project FastAPI.
# Scheduler eksternal (cron, systemd timer) memanggil command sync/poll/track di sini.

cli = typer.Typer(
    help="Manajemen CLI untuk OmniCRM sync core."
)

def _echo_result(result):
    typer.echo(json.dumps(result, indent=2, default=str))

def _run_with_services(handler):
    """Open a session and a client pool, build the registry, run `handler(services)`."""
    from omnicrm.config import settings, configure_logging
    from omnicrm.database import AsyncSessionLocal
    from omnicrm.services import ClientPool, create_service_registry
    from omnicrm.services.exceptions import CRMException

    configure_logging()

    async def runner():
        pool = ClientPool(settings)
        try:
            async with AsyncSessionLocal() as session:
                services = create_service_registry(session, pool, settings, current_user='cli')
                return await handler(services)
        finally:
            await pool.aclose()

    try:
        return asyncio.run(runner())
    except CRMException as e:
        typer.secho(f"Gagal: {e.error_code} - {e.message}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

# --- Database Commands ---

@cli.command()
def init_db():
    """
    Inisialisasi database dan membuat semua tabel.
    """
    from omnicrm.database import create_all

    typer.echo("Membuat semua tabel sesuai models...")
    asyncio.run(create_all())
    typer.secho("Database berhasil diinisialisasi.", fg=typer.colors.GREEN)

# --- Tenant Commands ---

@cli.command()
def create_workspace(
    name: Annotated[str, typer.Argument(help="Nama workspace baru.")]
):
    """Membuat workspace (tenant) baru."""
    async def handler(services):
        return await services.credential_service.create_workspace(name)

    workspace = _run_with_services(handler)
    typer.secho(f"Workspace {workspace.id} '{workspace.name}' dibuat.", fg=typer.colors.GREEN)

@cli.command()
def set_credential(
    workspace_id: Annotated[int, typer.Argument(help="ID workspace.")],
    provider: Annotated[str, typer.Argument(help="erp | automation | evolution")],
    secret: Annotated[str, typer.Argument(help="API key / token provider.")],
    scope: Annotated[Optional[str], typer.Option(help="JSON object, mis. '{\"inventory_id\": \"307\"}'")] = None,
    disabled: Annotated[bool, typer.Option("--disabled", help="Simpan tapi nonaktifkan.")] = False,
):
    """Menyimpan credential provider untuk sebuah workspace."""
    try:
        scope_data = json.loads(scope) if scope else {}
    except json.JSONDecodeError as e:
        typer.secho(f"Scope bukan JSON valid: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    async def handler(services):
        return await services.credential_service.set_credential(
            workspace_id, provider, secret, scope=scope_data, enabled=not disabled
        )

    credential = _run_with_services(handler)
    typer.secho(f"Credential {provider} disimpan ({credential.secret_prefix}).", fg=typer.colors.GREEN)

# --- Sync Commands ---

@cli.command()
def sync(
    workspace_id: Annotated[int, typer.Argument(help="ID workspace.")],
    kind: Annotated[Optional[str], typer.Option(help="orders | customers | inventory (default: semua)")] = None,
):
    """Menjalankan reconciliation dengan ERP."""
    async def handler(services):
        if kind:
            return await services.reconciliation_service.sync(workspace_id, kind)
        return await services.reconciliation_service.sync_all(workspace_id)

    _echo_result(_run_with_services(handler))

@cli.command()
def poll_journal(
    workspace_id: Annotated[int, typer.Argument(help="ID workspace.")]
):
    """Menarik journal ERP ke event queue."""
    async def handler(services):
        return await services.journal_poller.poll(workspace_id)

    _echo_result(_run_with_services(handler))

@cli.command()
def process_events(
    workspace_id: Annotated[Optional[int], typer.Option(help="Batasi ke satu workspace.")] = None,
    limit: Annotated[int, typer.Option(help="Jumlah event maksimum.")] = 50,
):
    """Memproses event pending di queue."""
    async def handler(services):
        return await services.event_queue_service.process_pending(workspace_id, limit=limit)

    _echo_result(_run_with_services(handler))

@cli.command()
def retry_event(
    workspace_id: Annotated[int, typer.Argument(help="ID workspace.")],
    event_id: Annotated[int, typer.Argument(help="ID event yang failed.")],
):
    """Mengembalikan event failed ke pending."""
    async def handler(services):
        event = await services.event_queue_service.retry(workspace_id, event_id)
        return {'event_id': event.id, 'status': event.status}

    _echo_result(_run_with_services(handler))

@cli.command()
def track(
    workspace_id: Annotated[Optional[int], typer.Option(help="Batasi ke satu workspace.")] = None,
):
    """Update tracking semua shipment yang sudah stale."""
    async def handler(services):
        return await services.tracking_service.run_batch(workspace_id)

    _echo_result(_run_with_services(handler))

# --- Server Commands ---

@cli.command()
def run(
    host: str = "127.0.0.1",
    port: int = 8000,
    reload: bool = True
):
    """
    Menjalankan development server Uvicorn.
    """
    typer.echo(f"Menjalankan server di http://{host}:{port}")
    uvicorn.run("main:app", host=host, port=port, reload=reload, factory=True)


if __name__ == "__main__":
    cli()
