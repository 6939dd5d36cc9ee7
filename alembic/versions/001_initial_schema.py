"""Initial schema with delayed_jobs table

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "delayed_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "handler",
            sa.JSON().with_variant(postgresql.JSONB, "postgresql"),
            nullable=False,
        ),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("run_at", sa.DateTime, nullable=False),
        sa.Column("locked_at", sa.DateTime, nullable=True),
        sa.Column("locked_by", sa.String(255), nullable=True),
        sa.Column("failed_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    # Candidate selection orders by priority desc, run_at asc
    op.create_index(
        "ix_delayed_jobs_priority_run_at",
        "delayed_jobs",
        ["priority", "run_at"],
    )
    op.create_index("ix_delayed_jobs_failed_at", "delayed_jobs", ["failed_at"])
    # clear_locks and lock renewal filter on locked_by
    op.create_index("ix_delayed_jobs_locked_by", "delayed_jobs", ["locked_by"])


def downgrade() -> None:
    op.drop_index("ix_delayed_jobs_locked_by", table_name="delayed_jobs")
    op.drop_index("ix_delayed_jobs_failed_at", table_name="delayed_jobs")
    op.drop_index("ix_delayed_jobs_priority_run_at", table_name="delayed_jobs")
    op.drop_table("delayed_jobs")
