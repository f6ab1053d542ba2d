"""wecarry initial schema: users, requests, history and message threads

Revision ID: 20261019_wecarry_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_wecarry_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("uuid", sa.String(length=36), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("nickname", sa.String(length=255), nullable=False, unique=True),
        sa.Column("first_name", sa.String(length=255)),
        sa.Column("last_name", sa.String(length=255)),
        sa.Column("phone_number", sa.String(length=64)),
        sa.Column("contact_preference", sa.String(length=16), nullable=False, server_default="email"),
        sa.Column("language", sa.String(length=8), nullable=False, server_default="en"),
        sa.Column("auth_provider", sa.String(length=32)),
        sa.Column("auth_id", sa.String(length=255)),
        sa.Column("photo_url", sa.String(length=1024)),
        sa.Column("notify_on_new_requests", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_user_email", "user", ["email"])

    op.create_table(
        "location",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("country", sa.String(length=2)),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
    )

    op.create_table(
        "request",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("uuid", sa.String(length=36), nullable=False, unique=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("user.id")),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("origin_id", sa.Integer(), sa.ForeignKey("location.id")),
        sa.Column("destination_id", sa.Integer(), sa.ForeignKey("location.id"), nullable=False),
        sa.Column("size", sa.String(length=16), nullable=False, server_default="small"),
        sa.Column("kind", sa.String(length=16), nullable=False, server_default="request"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="open"),
        sa.Column("visibility", sa.String(length=16), nullable=False, server_default="all"),
        sa.Column("needed_after", sa.DateTime()),
        sa.Column("needed_before", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index("ix_request_created_by_id", "request", ["created_by_id"])
    op.create_index("ix_request_provider_id", "request", ["provider_id"])
    op.create_index("ix_request_status_created_at", "request", ["status", "created_at"])

    op.create_table(
        "request_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("request_id", sa.Integer(), sa.ForeignKey("request.id"), nullable=False),
        sa.Column("old_status", sa.String(length=16), nullable=False),
        sa.Column("new_status", sa.String(length=16), nullable=False),
        sa.Column("old_provider_id", sa.Integer(), sa.ForeignKey("user.id")),
        sa.Column("new_provider_id", sa.Integer(), sa.ForeignKey("user.id")),
        sa.Column("actor_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_request_history_request_id", "request_history", ["request_id"])
    op.create_index("ix_request_history_created_at", "request_history", ["created_at"])

    op.create_table(
        "thread",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("uuid", sa.String(length=36), nullable=False, unique=True),
        sa.Column("request_id", sa.Integer(), sa.ForeignKey("request.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_thread_request_id", "thread", ["request_id"])

    op.create_table(
        "thread_participant",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("thread_id", sa.Integer(), sa.ForeignKey("thread.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("last_viewed_at", sa.DateTime()),
        sa.Column("last_emailed_at", sa.DateTime()),
        sa.Column("last_texted_at", sa.DateTime()),
        *_timestamps(),
        sa.UniqueConstraint("thread_id", "user_id", name="uq_thread_participant_user"),
    )
    op.create_index("ix_thread_participant_thread_id", "thread_participant", ["thread_id"])
    op.create_index("ix_thread_participant_user_id", "thread_participant", ["user_id"])

    op.create_table(
        "message",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("uuid", sa.String(length=36), nullable=False, unique=True),
        sa.Column("thread_id", sa.Integer(), sa.ForeignKey("thread.id"), nullable=False),
        sa.Column("sent_by_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("sent_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_message_thread_id", "message", ["thread_id"])
    op.create_index("ix_message_sent_at", "message", ["sent_at"])


def downgrade():
    op.drop_index("ix_message_sent_at", table_name="message")
    op.drop_index("ix_message_thread_id", table_name="message")
    op.drop_table("message")
    op.drop_index("ix_thread_participant_user_id", table_name="thread_participant")
    op.drop_index("ix_thread_participant_thread_id", table_name="thread_participant")
    op.drop_table("thread_participant")
    op.drop_index("ix_thread_request_id", table_name="thread")
    op.drop_table("thread")
    op.drop_index("ix_request_history_created_at", table_name="request_history")
    op.drop_index("ix_request_history_request_id", table_name="request_history")
    op.drop_table("request_history")
    op.drop_index("ix_request_status_created_at", table_name="request")
    op.drop_index("ix_request_provider_id", table_name="request")
    op.drop_index("ix_request_created_by_id", table_name="request")
    op.drop_table("request")
    op.drop_table("location")
    op.drop_index("ix_user_email", table_name="user")
    op.drop_table("user")
