"""session_fragments table (encrypted session credential fragments).

Revision ID: 001_session_fragments
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op


revision = "001_session_fragments"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(
        """
        CREATE TABLE session_fragments (
            session_key text NOT NULL,
            file_name   text NOT NULL,
            content     text NOT NULL,
            updated_at  timestamptz NOT NULL DEFAULT now(),
            PRIMARY KEY (session_key, file_name)
        );
        """
    )


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql("DROP TABLE session_fragments;")
