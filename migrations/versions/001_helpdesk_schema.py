"""Helpdesk ingestion schema (SQL-only).

Revision ID: 001_helpdesk_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "001_helpdesk_schema"
down_revision = None
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "001_helpdesk_schema.sql"

# Children first
_TABLES = (
    "lead_database_entries",
    "lead_databases",
    "conversation_messages",
    "conversations",
    "contacts",
    "inboxes",
    "instances",
)


def upgrade() -> None:
    op.get_bind().exec_driver_sql(_SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    for table in _TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table}")
