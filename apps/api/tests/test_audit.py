"""Tests for multi-asset integrity audits."""

from servicevault_api.ledger.audit import audit_chains
from servicevault_api.ledger.locks import LocalAssetLockProvider
from servicevault_api.ledger.service import EventLedgerService
from servicevault_api.models import Asset, AssetEvent

events_table = AssetEvent.__table__


def _asset_with_events(db, tenant, name, count=2):
    asset = Asset(tenant_id=tenant.id, name=name, category="HVAC")
    db.add(asset)
    db.commit()
    service = EventLedgerService(db, tenant_id=tenant.id, locks=LocalAssetLockProvider())
    events = [service.append_event(asset.id, "INSTALL")]
    for _ in range(count - 1):
        events.append(service.append_event(asset.id, "INSPECTION"))
    return asset, events


def test_clean_audit(db, tenant):
    _asset_with_events(db, tenant, "Furnace")
    _asset_with_events(db, tenant, "Heat pump")

    report = audit_chains(db, locks=LocalAssetLockProvider())
    assert report.to_dict() == {"assets_checked": 2, "broken_count": 0, "broken": []}


def test_broken_chain_reported_and_audit_continues(db, tenant, other_tenant):
    broken_asset, events = _asset_with_events(db, tenant, "Furnace", count=3)
    _asset_with_events(db, other_tenant, "Boiler")

    db.execute(events_table.update().where(events_table.c.id == events[2].id).values(created_by="intruder"))
    db.commit()

    report = audit_chains(db, locks=LocalAssetLockProvider()).to_dict()
    assert report["assets_checked"] == 2
    assert report["broken_count"] == 1
    broken = report["broken"][0]
    assert broken["asset_id"] == broken_asset.id
    assert broken["tenant_id"] == tenant.id
    assert broken["event_count"] == 3
    assert broken["errors"][0].startswith("Event 2: Hash mismatch.")


def test_audit_scoped_to_tenant(db, tenant, other_tenant):
    _asset_with_events(db, tenant, "Furnace")
    _asset_with_events(db, other_tenant, "Boiler")
    _asset_with_events(db, other_tenant, "Chiller")

    report = audit_chains(db, tenant_id=other_tenant.id, locks=LocalAssetLockProvider())
    assert len(report.results) == 2
    assert {result.tenant_id for result in report.results} == {other_tenant.id}


def test_unencodable_payload_reported_and_audit_continues(db, tenant):
    broken_asset, events = _asset_with_events(db, tenant, "Furnace")
    _asset_with_events(db, tenant, "Boiler")

    db.execute(events_table.update().where(events_table.c.id == events[1].id).values(data={"note": "\ud800"}))
    db.commit()

    report = audit_chains(db, locks=LocalAssetLockProvider()).to_dict()
    assert report["assets_checked"] == 2
    assert [broken["asset_id"] for broken in report["broken"]] == [broken_asset.id]
    assert report["broken"][0]["errors"][0].startswith("Event 1: Hash mismatch. Could not recompute digest (")
