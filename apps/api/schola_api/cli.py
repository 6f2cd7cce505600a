"""CLI commands for SCHOLA API."""

import sys

import click
import uvicorn

from schola_api.db.seed import seed_all
from schola_api.db.session import SessionLocal
from schola_api.settings import get_settings
from schola_api.sheets.errors import SheetError
from schola_api.sheets.kinds import KINDS
from schola_api.sheets.service import SheetService


@click.group()
def cli():
    """SCHOLA API CLI."""
    pass


@cli.command()
def seed():
    """Seed initial data."""
    click.echo("Seeding initial data...")
    db = SessionLocal()
    try:
        seed_all(db)
        click.echo("✓ Seed data created.")
    except Exception as e:
        click.echo(f"✗ Error seeding data: {e}", err=True)
        db.rollback()
        sys.exit(1)
    finally:
        db.close()


@cli.command()
@click.option("--reload", is_flag=True, help="Restart on code changes")
def serve(reload: bool):
    """Run the API server."""
    settings = get_settings()
    uvicorn.run("schola_api.main:app", host=settings.api_host, port=settings.api_port, reload=reload)


@cli.command("verify-audit")
@click.option("--kind", type=click.Choice(sorted(KINDS)), required=True, help="Sheet kind")
@click.option("--tenant-id", type=int, required=True, help="Owning tenant")
@click.option("--sheet-id", type=int, required=True, help="Sheet to verify")
def verify_audit(kind: str, tenant_id: int, sheet_id: int):
    """Recompute a sheet's audit hash chain."""
    db = SessionLocal()
    try:
        service = SheetService(db, kind)
        entries = service.list_audit(tenant_id, sheet_id)
        valid, error = service.verify_audit(tenant_id, sheet_id)
    except SheetError as e:
        click.echo(f"✗ {e.message}", err=True)
        sys.exit(1)
    finally:
        db.close()

    if not valid:
        click.echo(f"✗ Audit chain broken: {error}", err=True)
        sys.exit(1)
    click.echo(f"✓ Audit chain intact ({len(entries)} entries).")


if __name__ == "__main__":
    cli()
