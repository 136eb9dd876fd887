"""Card pipeline schema - cards, card_workflow_runs, card_workflow_steps

Revision ID: 0001
Revises:
Create Date: 2026-10-19

cards holds the user content plus every field the enrichment pipeline
writes. card_workflow_runs persists each run's step cursor; the unique
active_card_id allows one in-flight run per card. card_workflow_steps keys
each step outcome by "{workflow_id}:{step}".
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ==========================================================================
    # cards table
    # ==========================================================================
    op.create_table(
        "cards",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("type", sa.Text(), server_default="text", nullable=False),
        sa.Column("content", sa.Text(), server_default="", nullable=False),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("file_path", sa.Text(), nullable=True),
        sa.Column("thumbnail_path", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tags", postgresql.JSONB(), nullable=True),
        sa.Column("colors", postgresql.JSONB(), nullable=True),
        sa.Column("is_favorited", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("ai_tags", postgresql.JSONB(), nullable=True),
        sa.Column("ai_summary", sa.Text(), nullable=True),
        sa.Column("ai_transcript", sa.Text(), nullable=True),
        sa.Column("ai_model_meta", postgresql.JSONB(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("metadata_status", sa.Text(), nullable=True),
        sa.Column("metadata_title", sa.Text(), nullable=True),
        sa.Column("metadata_description", sa.Text(), nullable=True),
        sa.Column("processing_status", postgresql.JSONB(), nullable=True),
        sa.Column("workflow_id", sa.UUID(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "type IN ('text', 'link', 'image', 'video', 'audio', 'document', "
            "'palette', 'quote')",
            name="ck_cards_type",
        ),
        sa.CheckConstraint(
            "metadata_status IS NULL OR metadata_status IN ('pending', 'completed', 'failed')",
            name="ck_cards_metadata_status",
        ),
    )
    op.create_index("ix_cards_user_id", "cards", ["user_id"])
    op.create_index("ix_cards_deleted", "cards", ["is_deleted", "deleted_at"])
    op.create_index("ix_cards_created_at", "cards", ["created_at"])

    # ==========================================================================
    # card_workflow_runs table
    # ==========================================================================
    op.create_table(
        "card_workflow_runs",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("card_id", sa.UUID(), nullable=False),
        sa.Column("active_card_id", sa.UUID(), nullable=True),
        sa.Column("status", sa.Text(), server_default="running", nullable=False),
        sa.Column("cursor", sa.Integer(), server_default="0", nullable=False),
        sa.Column("context", postgresql.JSONB(), nullable=True),
        sa.Column("result", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.Column("finished_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["card_id"], ["cards.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("active_card_id", name="uq_card_workflow_runs_active_card"),
        sa.CheckConstraint(
            "status IN ('running', 'completed', 'aborted', 'superseded')",
            name="ck_card_workflow_runs_status",
        ),
        sa.CheckConstraint("cursor >= 0", name="ck_card_workflow_runs_cursor"),
    )
    op.create_index("ix_card_workflow_runs_card_id", "card_workflow_runs", ["card_id"])

    # ==========================================================================
    # card_workflow_steps table
    # ==========================================================================
    op.create_table(
        "card_workflow_steps",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("workflow_id", sa.UUID(), nullable=False),
        sa.Column("step", sa.Text(), nullable=False),
        sa.Column("idempotency_key", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("result", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workflow_id"], ["card_workflow_runs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("idempotency_key", name="uq_card_workflow_steps_idempotency_key"),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'skipped')",
            name="ck_card_workflow_steps_status",
        ),
    )
    op.create_index(
        "ix_card_workflow_steps_workflow_id", "card_workflow_steps", ["workflow_id"]
    )


def downgrade() -> None:
    op.drop_table("card_workflow_steps")
    op.drop_table("card_workflow_runs")
    op.drop_index("ix_cards_created_at", table_name="cards")
    op.drop_index("ix_cards_deleted", table_name="cards")
    op.drop_index("ix_cards_user_id", table_name="cards")
    op.drop_table("cards")
