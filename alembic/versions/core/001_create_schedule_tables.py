"""create_schedule_tables

Revision ID: core_001
Revises:
Create Date: 2026-09-14 00:00:00.000000

"""

from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "core_001"
down_revision = None
branch_labels = ("core",)
depends_on = None


def upgrade() -> None:
    # Naive local wall-clock timestamps throughout.
    op.execute("""
        CREATE TABLE IF NOT EXISTS event_instances (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            owner_id TEXT NOT NULL,
            start_at TIMESTAMP NOT NULL,
            end_at TIMESTAMP NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT true,
            attendance_required BOOLEAN NOT NULL DEFAULT false,
            title TEXT NOT NULL,
            location TEXT,
            category TEXT NOT NULL DEFAULT 'LESSON',
            generated_from UUID,
            created_at TIMESTAMP NOT NULL DEFAULT LOCALTIMESTAMP,
            CONSTRAINT event_instances_window_ck CHECK (start_at < end_at)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_event_instances_owner_start
        ON event_instances (owner_id, start_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_event_instances_generated_from
        ON event_instances (generated_from)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS status_fields (
            entity_id TEXT NOT NULL,
            field_key TEXT NOT NULL,
            value TEXT NOT NULL,
            updated_at TIMESTAMP NOT NULL DEFAULT LOCALTIMESTAMP,
            PRIMARY KEY (entity_id, field_key)
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS status_fields")
    op.execute("DROP INDEX IF EXISTS idx_event_instances_generated_from")
    op.execute("DROP INDEX IF EXISTS idx_event_instances_owner_start")
    op.execute("DROP TABLE IF EXISTS event_instances")
