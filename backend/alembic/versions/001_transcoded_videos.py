"""Transcoded videos migration.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the transcoded_videos table holding one row per stored output.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "transcoded_videos",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("job_id", sa.String(64), nullable=False),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("filename", sa.String(1024), nullable=False),
        sa.Column("resolution", sa.String(32), nullable=False),
        sa.Column("artifact_locator", sa.String(2048), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_transcoded_videos_job_id"),
        "transcoded_videos",
        ["job_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_transcoded_videos_username"),
        "transcoded_videos",
        ["username"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_transcoded_videos_username"), table_name="transcoded_videos")
    op.drop_index(op.f("ix_transcoded_videos_job_id"), table_name="transcoded_videos")
    op.drop_table("transcoded_videos")
