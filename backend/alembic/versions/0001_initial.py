"""initial

Revision ID: 0001
Revises: 
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "contacts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.String(length=255)),
        sa.Column("phone", sa.String(length=64)),
        sa.Column("phone_normalized", sa.String(length=32)),
        sa.Column("source", sa.String(length=32)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_contacts_phone_normalized", "contacts", ["phone_normalized"])

    op.create_table(
        "call_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider_call_id", sa.String(length=64), nullable=False),
        sa.Column("direction", sa.String(length=10), nullable=False),
        sa.Column("from_number", sa.String(length=64)),
        sa.Column("to_number", sa.String(length=64)),
        sa.Column("status", sa.String(length=20)),
        sa.Column("disposition", sa.String(length=20)),
        sa.Column("duration", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True)),
        sa.Column("contact_id", sa.Integer()),
        sa.Column("caller_name", sa.String(length=255)),
        sa.Column("caller_city", sa.String(length=120)),
        sa.Column("caller_state", sa.String(length=64)),
        sa.Column("source", sa.String(length=20)),
        sa.Column("raw_payload", sa.JSON()),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("provider_call_id", name="uq_call_records_provider_call_id"),
    )
    op.create_index("ix_call_records_from_number", "call_records", ["from_number"])
    op.create_index("ix_call_records_started_at", "call_records", ["started_at"])

    op.create_table(
        "call_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider_call_id", sa.String(length=64)),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("digit", sa.String(length=8)),
        sa.Column("menu", sa.String(length=64)),
        sa.Column("action", sa.String(length=64)),
        sa.Column("payload", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_call_events_provider_call_id", "call_events", ["provider_call_id"])

    op.create_table(
        "voicemails",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider_recording_id", sa.String(length=64), nullable=False),
        sa.Column("call_id", sa.Integer(), sa.ForeignKey("call_records.id")),
        sa.Column("provider_call_id", sa.String(length=64)),
        sa.Column("from_number", sa.String(length=64)),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mailbox", sa.String(length=64)),
        sa.Column("recording_url", sa.String(length=512)),
        sa.Column("playback_token", sa.String(length=64), nullable=False),
        sa.Column("transcription_text", sa.Text()),
        sa.Column("transcription_status", sa.String(length=20)),
        sa.Column("match_strategy", sa.String(length=32)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("provider_recording_id", name="uq_voicemails_provider_recording_id"),
        sa.UniqueConstraint("playback_token", name="uq_voicemails_playback_token"),
    )

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("phone_normalized", sa.String(length=32), nullable=False),
        sa.Column("display_phone", sa.String(length=64)),
        sa.Column("contact_id", sa.Integer(), sa.ForeignKey("contacts.id")),
        sa.Column("last_message_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("phone_normalized", name="uq_conversations_phone_normalized"),
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("conversation_id", sa.Integer(), sa.ForeignKey("conversations.id"), nullable=False),
        sa.Column("direction", sa.String(length=10), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("from_number", sa.String(length=64)),
        sa.Column("to_number", sa.String(length=64)),
        sa.Column("provider_message_id", sa.String(length=64)),
        sa.Column("status", sa.String(length=20)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"])


def downgrade() -> None:
    op.drop_index("ix_messages_conversation_id", table_name="messages")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("voicemails")
    op.drop_index("ix_call_events_provider_call_id", table_name="call_events")
    op.drop_table("call_events")
    op.drop_index("ix_call_records_started_at", table_name="call_records")
    op.drop_index("ix_call_records_from_number", table_name="call_records")
    op.drop_table("call_records")
    op.drop_index("ix_contacts_phone_normalized", table_name="contacts")
    op.drop_table("contacts")
