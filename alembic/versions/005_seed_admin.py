"""005: seed the initial administrator

Revision ID: 005
Revises: 004
Create Date: 2026-10-18
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from config.settings import settings

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    email = settings.ADMIN_EMAIL.strip().lower()
    op.execute(
        sa.text("INSERT INTO users (email, is_admin) VALUES (:email, TRUE)").bindparams(
            email=email
        )
    )
    op.execute(
        sa.text(
            "INSERT INTO accounts (user_id) SELECT id FROM users WHERE email = :email"
        ).bindparams(email=email)
    )


def downgrade() -> None:
    email = settings.ADMIN_EMAIL.strip().lower()
    op.execute(
        sa.text(
            "DELETE FROM accounts WHERE user_id IN (SELECT id FROM users WHERE email = :email)"
        ).bindparams(email=email)
    )
    op.execute(sa.text("DELETE FROM users WHERE email = :email").bindparams(email=email))
