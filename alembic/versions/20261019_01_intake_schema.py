"""Entries, pending transfers and processing jobs."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_JOB_PREDICATE = "status IN ('queued', 'running')"


def upgrade() -> None:
    op.create_table(
        "entry",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("owner", sa.String(length=50), nullable=False),
        sa.Column("permlink", sa.String(length=8), nullable=False, unique=True),
        sa.Column("title", sa.String(length=250), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("tags", sa.Text(), nullable=False, server_default=""),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("duration_seconds", sa.Float(), nullable=False),
        sa.Column("original_filename", sa.String(length=255), nullable=False),
        sa.Column("thumbnail", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("community", sa.String(length=50)),
        sa.Column("hive", sa.String(length=32)),
        sa.Column("language", sa.String(length=5), nullable=False, server_default="en"),
        sa.Column("category", sa.String(length=32), nullable=False, server_default="general"),
        sa.Column(
            "decline_rewards", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")
        ),
        sa.Column(
            "reward_powerup", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")
        ),
        sa.Column("vote_percent", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("beneficiaries", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("state", sa.String(length=32), nullable=False, server_default="created"),
        sa.Column("failure_reason", sa.String(length=255)),
        sa.Column("failed_from", sa.String(length=32)),
        sa.Column("content_id", sa.String(length=128)),
        sa.Column("origin", sa.String(length=16)),
        sa.Column("local_file", sa.String(length=1024)),
        sa.Column("job_id", sa.String(length=64)),
        sa.Column(
            "eviction_eligible", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")
        ),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_entry_state", "entry", ["state"])
    op.create_index("ix_entry_job_id", "entry", ["job_id"])
    op.create_index("ix_entry_owner_created", "entry", ["owner", "created_at"])
    op.create_index("ix_entry_eviction", "entry", ["origin", "state", "eviction_eligible"])

    op.create_table(
        "pending_transfer",
        sa.Column("transfer_token", sa.String(length=64), primary_key=True),
        sa.Column("owner", sa.String(length=50), nullable=False),
        sa.Column("original_filename", sa.String(length=255), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("duration_seconds", sa.Float(), nullable=False),
        sa.Column(
            "transfer_complete", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")
        ),
        sa.Column("local_file", sa.String(length=1024)),
        sa.Column("finalized", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        sa.Column("entry_id", sa.String(length=32)),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_pending_transfer_entry_id", "pending_transfer", ["entry_id"])
    op.create_index("ix_pending_transfer_expires_at", "pending_transfer", ["expires_at"])
    op.create_index(
        "ix_pending_transfer_owner_created", "pending_transfer", ["owner", "created_at"]
    )
    op.create_index(
        "ix_pending_transfer_state", "pending_transfer", ["transfer_complete", "finalized"]
    )

    op.create_table(
        "processing_job",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("owner", sa.String(length=50), nullable=False),
        sa.Column("permlink", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="queued"),
        sa.Column("input_uri", sa.String(length=1024), nullable=False),
        sa.Column("input_size", sa.BigInteger(), nullable=False),
        sa.Column("storage_key", sa.String(length=128), nullable=False),
        sa.Column("download_pct", sa.Float(), nullable=False, server_default="0"),
        sa.Column("pct", sa.Float(), nullable=False, server_default="0"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("error_message", sa.Text()),
        sa.Column("assigned_to", sa.String(length=128)),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("completed_at", sa.DateTime()),
    )
    op.create_index("ix_processing_job_status", "processing_job", ["status"])
    op.create_index("ix_processing_job_key", "processing_job", ["owner", "permlink"])
    op.create_index(
        "uq_processing_job_active_key",
        "processing_job",
        ["owner", "permlink"],
        unique=True,
        sqlite_where=sa.text(ACTIVE_JOB_PREDICATE),
        postgresql_where=sa.text(ACTIVE_JOB_PREDICATE),
    )


def downgrade() -> None:
    op.drop_index("uq_processing_job_active_key", table_name="processing_job")
    op.drop_index("ix_processing_job_key", table_name="processing_job")
    op.drop_index("ix_processing_job_status", table_name="processing_job")
    op.drop_table("processing_job")
    op.drop_index("ix_pending_transfer_state", table_name="pending_transfer")
    op.drop_index("ix_pending_transfer_owner_created", table_name="pending_transfer")
    op.drop_index("ix_pending_transfer_expires_at", table_name="pending_transfer")
    op.drop_index("ix_pending_transfer_entry_id", table_name="pending_transfer")
    op.drop_table("pending_transfer")
    op.drop_index("ix_entry_eviction", table_name="entry")
    op.drop_index("ix_entry_owner_created", table_name="entry")
    op.drop_index("ix_entry_job_id", table_name="entry")
    op.drop_index("ix_entry_state", table_name="entry")
    op.drop_table("entry")
