"""003: create accounts table

Revision ID: 003
Revises: 002
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE accounts (
            id                  BIGSERIAL       PRIMARY KEY,
            user_id             BIGINT          NOT NULL REFERENCES users (id),
            total_credits       NUMERIC(20, 2)  NOT NULL DEFAULT 0,
            spendable_credits   NUMERIC(20, 2)  NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_accounts_user_id              UNIQUE (user_id),
            CONSTRAINT ck_accounts_total_gte_0          CHECK (total_credits >= 0),
            CONSTRAINT ck_accounts_spendable_gte_0      CHECK (spendable_credits >= 0),
            CONSTRAINT ck_accounts_spendable_lte_total  CHECK (spendable_credits <= total_credits)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_accounts_updated_at
            BEFORE UPDATE ON accounts
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE accounts IS 'Dual-tier credit balances, one row per user, never deleted';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS accounts CASCADE;")
