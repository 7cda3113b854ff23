"""Partial unique index: one open/pending conversation per inbox and contact.

Lets conversation creation use ON CONFLICT DO NOTHING plus a re-select, so
two concurrent first messages from the same contact converge on one row.

Revision ID: 002_open_conversation_unique
Revises: 001_helpdesk_schema
Create Date: 2026-10-19
"""
from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "002_open_conversation_unique"
down_revision = "001_helpdesk_schema"
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parent.parent / "sql" / "002_open_conversation_unique.sql"


def upgrade() -> None:
    op.execute(_SQL_FILE.read_text())


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS uq_conversations_current")
