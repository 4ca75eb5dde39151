"""enable row level security on tenant tables

Revision ID: 004_enable_row_level_security
Revises: 003_create_planning
Create Date: 2026-10-01 00:03:00.000000
"""

from typing import Sequence, Union

from alembic import op

revision: str = "004_enable_row_level_security"
down_revision: Union[str, None] = "003_create_planning"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_TENANT_TABLES = (
    "portfolios",
    "wallets",
    "daily_snapshots",
    "monthly_snapshots",
    "goals",
    "journal_entries",
    "market_events",
)


def upgrade() -> None:
    # Cada tenant solo ve y escribe sus filas: la API remota reenvía el JWT del usuario
    for table in _TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;")
        op.execute(
            f"CREATE POLICY {table}_tenant_isolation ON {table} "
            "FOR ALL "
            "USING (auth.uid()::text = user_id) "
            "WITH CHECK (auth.uid()::text = user_id);"
        )


def downgrade() -> None:
    for table in _TENANT_TABLES:
        op.execute(f"DROP POLICY IF EXISTS {table}_tenant_isolation ON {table};")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY;")
