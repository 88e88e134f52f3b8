"""004: create transactions table

Revision ID: 004
Revises: 003
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE transactions (
            id                  BIGSERIAL       PRIMARY KEY,
            txn_type            VARCHAR(30)     NOT NULL,
            status              VARCHAR(20)     NOT NULL,
            amount              NUMERIC(20, 2)  NOT NULL,
            from_account_id     BIGINT          REFERENCES accounts (id),
            to_account_id       BIGINT          REFERENCES accounts (id),
            initiating_user_id  BIGINT          REFERENCES users (id),
            admin_comment       VARCHAR(500),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_txn_type CHECK (
                txn_type IN ('transfer_request', 'admin_credit', 'admin_adjustment')
            ),
            CONSTRAINT ck_txn_status CHECK (status IN ('pending', 'completed', 'rejected')),
            CONSTRAINT ck_txn_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_txn_transfer_accounts CHECK (
                txn_type <> 'transfer_request'
                OR (from_account_id IS NOT NULL AND to_account_id IS NOT NULL)
            ),
            CONSTRAINT ck_txn_admin_created_completed CHECK (
                txn_type = 'transfer_request' OR status = 'completed'
            )
        );
    """)
    op.execute("CREATE INDEX idx_txn_from ON transactions (from_account_id, created_at DESC);")
    op.execute("CREATE INDEX idx_txn_to ON transactions (to_account_id, created_at DESC);")
    op.execute("CREATE INDEX idx_txn_initiator ON transactions (initiating_user_id, created_at DESC);")
    op.execute("""
        CREATE INDEX idx_txn_pending
        ON transactions (created_at)
        WHERE status = 'pending';
    """)

    # Only status/updated_at may change, once, out of 'pending'. No deletes.
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_guard_transaction_update()
        RETURNS TRIGGER AS $$
        BEGIN
            IF TG_OP = 'DELETE' THEN
                RAISE EXCEPTION 'transactions are append-only (id=%)', OLD.id;
            END IF;
            IF OLD.status <> 'pending' THEN
                RAISE EXCEPTION 'transaction % is % and immutable', OLD.id, OLD.status;
            END IF;
            IF NEW.txn_type IS DISTINCT FROM OLD.txn_type
               OR NEW.amount IS DISTINCT FROM OLD.amount
               OR NEW.from_account_id IS DISTINCT FROM OLD.from_account_id
               OR NEW.to_account_id IS DISTINCT FROM OLD.to_account_id
               OR NEW.initiating_user_id IS DISTINCT FROM OLD.initiating_user_id
               OR NEW.admin_comment IS DISTINCT FROM OLD.admin_comment
               OR NEW.created_at IS DISTINCT FROM OLD.created_at THEN
                RAISE EXCEPTION 'transaction % may only change status', OLD.id;
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER trg_transactions_guard
            BEFORE UPDATE OR DELETE ON transactions
            FOR EACH ROW EXECUTE FUNCTION fn_guard_transaction_update();
    """)
    op.execute("""
        CREATE TRIGGER trg_transactions_updated_at
            BEFORE UPDATE ON transactions
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE transactions IS 'Ledger events: append-only, status changes at most once';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS transactions CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_guard_transaction_update();")
