"""Add wizard_sessions table for resumable OAuth wizard state.

Revision ID: 001
Revises:
Create Date: 2025-03-02

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    if "wizard_sessions" in insp.get_table_names():
        return  # Already applied (e.g. from create_all)

    op.create_table(
        "wizard_sessions",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("step", sa.String(20), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("oauth_state", sa.String(128), nullable=True),
        sa.Column("app_id", sa.String(255), nullable=True),
        sa.Column("app_secret", sa.Text(), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("ad_accounts", sa.JSON(), nullable=True),
        sa.Column("processed_code", sa.Text(), nullable=True),
        sa.Column("selected_account_id", sa.String(64), nullable=True),
        sa.Column("date_preset", sa.String(20), nullable=True),
        sa.Column("campaign_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_wizard_sessions_updated_at", "wizard_sessions", ["updated_at"], unique=False)


def downgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    if "wizard_sessions" not in insp.get_table_names():
        return

    op.drop_index("ix_wizard_sessions_updated_at", table_name="wizard_sessions")
    op.drop_table("wizard_sessions")
