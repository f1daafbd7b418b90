"""Deficit engine: key-value documents and audit trail

Revision ID: 20261019_deficit_engine
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_deficit_engine"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("kv_entries"):
        op.create_table(
            "kv_entries",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("key", sa.String(length=128), nullable=False),
            sa.Column("value", sa.LargeBinary(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.PrimaryKeyConstraint("id"),
            sqlite_autoincrement=True,
        )
        with op.batch_alter_table("kv_entries", schema=None) as batch_op:
            batch_op.create_index(batch_op.f("ix_kv_entries_key"), ["key"], unique=True)

    if not inspector.has_table("deficit_events"):
        op.create_table(
            "deficit_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event_type", sa.String(length=64), nullable=False),
            sa.Column("record_id", sa.Integer(), nullable=True),
            sa.Column("actor", sa.String(length=128), nullable=True),
            sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("note", sa.String(length=255), nullable=True),
            sa.Column("payload", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sqlite_autoincrement=True,
        )
        with op.batch_alter_table("deficit_events", schema=None) as batch_op:
            batch_op.create_index(batch_op.f("ix_deficit_events_event_type"), ["event_type"], unique=False)
            batch_op.create_index(batch_op.f("ix_deficit_events_record_id"), ["record_id"], unique=False)
            batch_op.create_index(batch_op.f("ix_deficit_events_occurred_at"), ["occurred_at"], unique=False)
            batch_op.create_index("ix_deficit_events_record_occurred", ["record_id", "occurred_at"], unique=False)


def downgrade():
    with op.batch_alter_table("deficit_events", schema=None) as batch_op:
        batch_op.drop_index("ix_deficit_events_record_occurred")
        batch_op.drop_index(batch_op.f("ix_deficit_events_occurred_at"))
        batch_op.drop_index(batch_op.f("ix_deficit_events_record_id"))
        batch_op.drop_index(batch_op.f("ix_deficit_events_event_type"))
    op.drop_table("deficit_events")

    with op.batch_alter_table("kv_entries", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_kv_entries_key"))
    op.drop_table("kv_entries")
