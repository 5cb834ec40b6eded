"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates all tables for LeadHunter:
- tenants
- reddit_connections
- hunting_sessions
- hunting_runs
- leads
- conversations
- conversation_messages
- notifications
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tenants table
    op.create_table(
        "tenants",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("external_user_id", sa.String(128), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("subscription_tier", sa.String(32), nullable=False, server_default="free"),
        sa.Column("business_description", sa.Text, nullable=True),
        sa.Column("target_customer", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # Reddit connections (one per tenant, tokens encrypted)
    op.create_table(
        "reddit_connections",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.BigInteger, sa.ForeignKey("tenants.id"), nullable=False, unique=True),
        sa.Column("reddit_username", sa.String(128), nullable=True),
        sa.Column("access_token_encrypted", sa.Text, nullable=False),
        sa.Column("refresh_token_encrypted", sa.Text, nullable=False),
        sa.Column("token_expires_at", sa.DateTime, nullable=True),
        sa.Column("connected", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # Hunting sessions (one per tenant)
    op.create_table(
        "hunting_sessions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.BigInteger, sa.ForeignKey("tenants.id"), nullable=False, unique=True),
        sa.Column(
            "status",
            sa.Enum(
                "idle", "monitoring", "searching", "scoring", "waiting_approval", "paused",
                name="hunting_status_enum",
            ),
            nullable=False,
            server_default="idle",
        ),
        sa.Column("subreddits", sa.JSON, nullable=False),
        sa.Column("keywords", sa.JSON, nullable=False),
        sa.Column("min_relevance_score", sa.Integer, nullable=False, server_default="7"),
        sa.Column("max_post_age_hours", sa.Integer, nullable=False, server_default="24"),
        sa.Column("comment_style", sa.String(32), nullable=False, server_default="friendly"),
        sa.Column("require_approval", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("posts_scanned", sa.Integer, nullable=False, server_default="0"),
        sa.Column("leads_found", sa.Integer, nullable=False, server_default="0"),
        sa.Column("dms_started", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_run_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_session_status", "hunting_sessions", ["status"])

    # Hunting runs (history and daily budget accounting)
    op.create_table(
        "hunting_runs",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.BigInteger, sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("session_id", sa.BigInteger, sa.ForeignKey("hunting_sessions.id"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("running", "completed", "skipped", "failed", name="hunting_run_status_enum"),
            nullable=False,
            server_default="running",
        ),
        sa.Column("started_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime, nullable=True),
        sa.Column("posts_scanned", sa.Integer, nullable=False, server_default="0"),
        sa.Column("posts_scored", sa.Integer, nullable=False, server_default="0"),
        sa.Column("leads_created", sa.Integer, nullable=False, server_default="0"),
        sa.Column("subreddits_searched", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skip_reason", sa.String(64), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
    )
    op.create_index("idx_run_tenant_started", "hunting_runs", ["tenant_id", "started_at"])

    # Leads
    op.create_table(
        "leads",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.BigInteger, sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("post_id", sa.String(32), nullable=False),
        sa.Column("post_title", sa.String(512), nullable=False),
        sa.Column("post_body", sa.Text, nullable=True),
        sa.Column("subreddit", sa.String(128), nullable=False),
        sa.Column("author", sa.String(128), nullable=False),
        sa.Column("post_url", sa.String(1024), nullable=False),
        sa.Column("post_created_at", sa.DateTime, nullable=True),
        sa.Column("matched_keywords", sa.JSON, nullable=False),
        sa.Column("relevance_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("intent", sa.String(16), nullable=False, server_default="none"),
        sa.Column("reasoning", sa.Text, nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "approved", "rejected", "dm_ready", "dm_sent", "contacted", "responded",
                name="lead_status_enum",
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("dm_message", sa.Text, nullable=True),
        sa.Column("comment_message", sa.Text, nullable=True),
        sa.Column("comment_id", sa.String(32), nullable=True),
        sa.Column("outreach_note", sa.Text, nullable=True),
        sa.Column("approved_at", sa.DateTime, nullable=True),
        sa.Column("rejected_at", sa.DateTime, nullable=True),
        sa.Column("dm_ready_at", sa.DateTime, nullable=True),
        sa.Column("dm_sent_at", sa.DateTime, nullable=True),
        sa.Column("contacted_at", sa.DateTime, nullable=True),
        sa.Column("responded_at", sa.DateTime, nullable=True),
        sa.Column("last_response_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "post_id", name="uq_lead_tenant_post"),
    )
    op.create_index("idx_lead_tenant_status", "leads", ["tenant_id", "status"])
    op.create_index("idx_lead_comment", "leads", ["comment_id"])

    # Conversations
    op.create_table(
        "conversations",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.BigInteger, sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("lead_id", sa.BigInteger, sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("recipient_username", sa.String(128), nullable=False),
        sa.Column("has_unread", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_message_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "lead_id", name="uq_conv_tenant_lead"),
    )
    op.create_index("idx_conv_recipient", "conversations", ["tenant_id", "recipient_username"])

    # Conversation messages
    op.create_table(
        "conversation_messages",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("conversation_id", sa.BigInteger, sa.ForeignKey("conversations.id"), nullable=False),
        sa.Column("external_message_id", sa.String(64), nullable=True),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("is_from_user", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("sent_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column(
            "delivery_state",
            sa.Enum("confirmed", "pending", "failed", name="delivery_state_enum"),
            nullable=False,
            server_default="confirmed",
        ),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("conversation_id", "external_message_id", name="uq_conv_msg_ext"),
    )
    op.create_index("idx_conv_msg_time", "conversation_messages", ["conversation_id", "sent_at"])

    # Notifications
    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.BigInteger, sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("data", sa.JSON, nullable=True),
        sa.Column("lead_id", sa.BigInteger, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("read_at", sa.DateTime, nullable=True),
    )
    op.create_index("idx_notif_tenant_created", "notifications", ["tenant_id", "created_at"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("conversation_messages")
    op.drop_table("conversations")
    op.drop_table("leads")
    op.drop_table("hunting_runs")
    op.drop_table("hunting_sessions")
    op.drop_table("reddit_connections")
    op.drop_table("tenants")
