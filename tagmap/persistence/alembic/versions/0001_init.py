"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-19 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tags",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("location_name", sa.String(), nullable=False),
        sa.Column("accessibility", sa.Float(), nullable=True),
        sa.Column("mission_name", sa.String(), nullable=False),
        sa.Column("sub_type_name", sa.String(), nullable=True),
        sa.Column("target_name", sa.String(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("floor", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("street_view_json", postgresql.JSONB(), nullable=True),
        sa.Column(
            "image_urls_json",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        # Avoid index=True here because we create explicit indexes below.
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_tags_created_by", "tags", ["created_by"])
    # Keyset pagination walks (created_at, id) newest first.
    op.create_index("ix_tags_created_at_id", "tags", ["created_at", "id"])

    op.create_table(
        "tag_status_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tag_id", sa.String(), sa.ForeignKey("tags.id"), nullable=False),
        sa.Column("status_name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("number_of_up_vote", sa.Integer(), nullable=True),
        sa.Column("has_up_vote", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_tag_status_records_tag_id", "tag_status_records", ["tag_id"])
    op.create_index("ix_tag_status_records_created_by", "tag_status_records", ["created_by"])
    # Latest-record lookups per tag scan this index backwards.
    op.create_index(
        "ix_tag_status_records_tag_created",
        "tag_status_records",
        ["tag_id", "created_at", "id"],
    )
    # History is append-only; reject edits that bypass the application.
    op.execute(
        """
        CREATE OR REPLACE FUNCTION tag_status_records_immutable() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'tag_status_records is append-only';
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        """
        CREATE TRIGGER tag_status_records_no_update_delete
        BEFORE UPDATE OR DELETE ON tag_status_records
        FOR EACH ROW EXECUTE FUNCTION tag_status_records_immutable()
        """
    )

    op.create_table(
        "tag_up_votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tag_id", sa.String(), sa.ForeignKey("tags.id"), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tag_id", "user_id", name="uq_tag_up_votes_tag_user"),
    )
    op.create_index("ix_tag_up_votes_tag_id", "tag_up_votes", ["tag_id"])

    op.create_table(
        "user_profiles",
        sa.Column("uid", sa.String(), primary_key=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("has_read_guide", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("user_profiles")
    op.drop_index("ix_tag_up_votes_tag_id", table_name="tag_up_votes")
    op.drop_table("tag_up_votes")
    op.execute("DROP TRIGGER IF EXISTS tag_status_records_no_update_delete ON tag_status_records")
    op.execute("DROP FUNCTION IF EXISTS tag_status_records_immutable()")
    op.drop_index("ix_tag_status_records_tag_created", table_name="tag_status_records")
    op.drop_index("ix_tag_status_records_created_by", table_name="tag_status_records")
    op.drop_index("ix_tag_status_records_tag_id", table_name="tag_status_records")
    op.drop_table("tag_status_records")
    op.drop_index("ix_tags_created_at_id", table_name="tags")
    op.drop_index("ix_tags_created_by", table_name="tags")
    op.drop_table("tags")
