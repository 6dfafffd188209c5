"""create executions table

Revision ID: 3e1f0c7a9b24
Revises:
Create Date: 2026-10-19 10:00:00.000000

One row per pipeline execution:
- current_stage / current_actions: sequencing progress
- pending_messages: backlog of deferred events
- applied_events: narrated event marks, for redelivery detection
- locked: conditional-update mutual exclusion flag
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "3e1f0c7a9b24"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "executions",
        sa.Column("project_name", sa.String(length=128), nullable=False),
        sa.Column("execution_id", sa.String(length=64), nullable=False),
        sa.Column("pipeline_name", sa.String(length=256), nullable=False, server_default=""),
        sa.Column("current_stage", sa.String(length=128), nullable=True),
        sa.Column("current_actions", postgresql.JSONB(), nullable=True),
        sa.Column(
            "pending_messages",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "applied_events",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("thread_handle", sa.BigInteger(), nullable=True),
        sa.Column("original_message", postgresql.JSONB(), nullable=True),
        sa.Column("topology", postgresql.JSONB(), nullable=True),
        sa.Column("commit", postgresql.JSONB(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("project_name", "execution_id"),
        schema="pipewatch",
    )


def downgrade() -> None:
    op.drop_table("executions", schema="pipewatch")
