"""CLI commands for ServiceVault API."""

import json
import sys
from typing import Optional

import click

from servicevault_api.db import session as db_session
from servicevault_api.db.base import Base
from servicevault_api.db.seed import seed_all
from servicevault_api.ledger.audit import audit_chains
from servicevault_api.ledger.errors import AssetNotFoundError
from servicevault_api.ledger.hashchain import ChainValidation, validate_hash_chain
from servicevault_api.ledger.service import EventLedgerService


def _echo_validation(label: str, validation: ChainValidation) -> None:
    if validation.is_valid:
        click.echo(f"✓ {label}: chain valid ({validation.event_count} events)")
        return
    click.echo(
        f"✗ {label}: chain broken at event {validation.first_broken_index} "
        f"({validation.event_count} events)",
        err=True,
    )
    for error in validation.errors:
        click.echo(f"  {error}", err=True)


@click.group()
def cli():
    """ServiceVault API CLI."""
    pass


@cli.command("init-db")
def init_db():
    """Create all tables (development only; use alembic elsewhere)."""
    Base.metadata.create_all(bind=db_session.engine)
    click.echo("✓ Tables created.")


@cli.command()
def seed():
    """Seed initial data."""
    click.echo("Seeding initial data...")
    db = db_session.SessionLocal()
    try:
        seed_all(db)
        click.echo("✓ Seed data created.")
    except Exception as e:
        db.rollback()
        click.echo(f"✗ Error seeding data: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()


@cli.command("verify-chain")
@click.argument("asset_id")
def verify_chain(asset_id: str):
    """Validate one asset's stored chain."""
    db = db_session.SessionLocal()
    try:
        validation = EventLedgerService(db).verify_chain(asset_id)
    except AssetNotFoundError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(2)
    finally:
        db.close()

    _echo_validation(asset_id, validation)
    if not validation.is_valid:
        sys.exit(1)


@cli.command()
@click.option("--tenant-id", type=int, default=None, help="Audit one tenant only.")
def audit(tenant_id: Optional[int]):
    """Validate every asset chain and report the broken ones."""
    db = db_session.SessionLocal()
    try:
        report = audit_chains(db, tenant_id=tenant_id)
    finally:
        db.close()

    click.echo(json.dumps(report.to_dict(), indent=2))
    if report.broken:
        sys.exit(1)


@cli.command("verify-file")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def verify_file(path: str):
    """Validate an exported chain (JSON array of events) offline."""
    with open(path, encoding="utf-8") as f:
        try:
            events = json.load(f)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"{path} is not valid JSON: {e}") from e

    if not isinstance(events, list):
        raise click.ClickException(f"{path} must contain a JSON array of events")

    validation = validate_hash_chain(events)
    _echo_validation(path, validation)
    if not validation.is_valid:
        sys.exit(1)


if __name__ == "__main__":
    cli()
