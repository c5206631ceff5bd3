"""Reject UPDATE and DELETE on asset_events at the storage layer.

Revision ID: 002
Revises: 001
Create Date: 2024-01-01
"""
from alembic import op


# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Triggers are PostgreSQL-only; other backends rely on the ORM guards
    if op.get_bind().dialect.name != 'postgresql':
        return

    op.execute(
        """
        CREATE OR REPLACE FUNCTION asset_events_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'asset_events is append-only: % rejected for event %', TG_OP, OLD.id
                USING ERRCODE = 'restrict_violation';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_asset_events_append_only
        BEFORE UPDATE OR DELETE ON asset_events
        FOR EACH ROW EXECUTE FUNCTION asset_events_append_only();
        """
    )


def downgrade() -> None:
    if op.get_bind().dialect.name != 'postgresql':
        return

    op.execute("DROP TRIGGER IF EXISTS trg_asset_events_append_only ON asset_events")
    op.execute("DROP FUNCTION IF EXISTS asset_events_append_only()")
