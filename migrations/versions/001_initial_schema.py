"""Initial schema: options, transients, admin sessions.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS options (
            name        TEXT PRIMARY KEY,
            value       TEXT NOT NULL,
            updated_at  INTEGER NOT NULL
        )
    """)
    # expires_at is REAL: bucket TTLs are computed from time.time()
    op.execute("""
        CREATE TABLE IF NOT EXISTS transients (
            key         TEXT PRIMARY KEY,
            value       TEXT NOT NULL,
            expires_at  REAL NOT NULL
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS admin_sessions (
            id          TEXT PRIMARY KEY,
            created_at  INTEGER NOT NULL,
            expires_at  INTEGER NOT NULL
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_transients_expires_at ON transients(expires_at)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_admin_sessions_expires_at ON admin_sessions(expires_at)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS admin_sessions")
    op.execute("DROP TABLE IF EXISTS transients")
    op.execute("DROP TABLE IF EXISTS options")
