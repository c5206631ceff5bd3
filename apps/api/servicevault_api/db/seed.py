"""Seed data for development and testing."""

from sqlalchemy.orm import Session

from servicevault_api.auth.api_key import issue_api_key
from servicevault_api.auth.scopes import DEFAULT_SCOPES
from servicevault_api.ledger.service import EventLedgerService
from servicevault_api.models import Asset, Tenant

DEMO_TENANTS = [
    ("demo", "demo-api-key-12345"),
    ("test", "test-api-key-67890"),
]

DEMO_ASSET_EVENTS = [
    ("INSPECTION", {"note": "Annual inspection, no leaks"}),
    ("SERVICE", {"note": "Flushed sediment", "cost": 120}),
    ("REPAIR", {"note": "Replaced anode rod", "parts": ["anode rod"]}),
]


def seed_tenants(db: Session):
    """Seed demo tenants with their API keys."""
    for label, raw_key in DEMO_TENANTS:
        tenant = db.query(Tenant).filter(Tenant.label == label).first()
        if tenant:
            print(f"✓ Tenant already exists: {label}")
            continue

        tenant = Tenant(label=label, status="active")
        db.add(tenant)
        db.flush()
        issue_api_key(db, tenant, raw_key, DEFAULT_SCOPES, label="Default API Key")
        db.commit()
        print(f"✓ Created tenant: {label} (ID: {tenant.id})")
        print(f"  API Key: {raw_key}")


def seed_assets(db: Session):
    """Seed a demo asset with a short event chain."""
    demo_tenant = db.query(Tenant).filter(Tenant.label == "demo").first()
    if not demo_tenant:
        return

    existing = (
        db.query(Asset)
        .filter(Asset.tenant_id == demo_tenant.id, Asset.serial == "WH-DEMO-0001")
        .first()
    )
    if existing:
        print(f"✓ Demo asset already exists: {existing.id}")
        return

    asset = Asset(
        tenant_id=demo_tenant.id,
        name="Basement water heater",
        category="PLUMBING",
        brand="Rheem",
        model="XE50T10H45U0",
        serial="WH-DEMO-0001",
        notes="Installed by seed data",
        status="ACTIVE",
    )
    db.add(asset)
    db.flush()

    service = EventLedgerService(db, tenant_id=demo_tenant.id)
    service.append_event(asset.id, "INSTALL", data={"note": asset.notes}, created_by="seed")
    for event_type, data in DEMO_ASSET_EVENTS:
        service.append_event(asset.id, event_type, data=data, created_by="seed")

    print(f"✓ Created demo asset: {asset.id} ({len(DEMO_ASSET_EVENTS) + 1} events)")


def seed_all(db: Session):
    """Seed all data."""
    print("Seeding database...")
    seed_tenants(db)
    seed_assets(db)
    print("✓ Seeding complete!")
