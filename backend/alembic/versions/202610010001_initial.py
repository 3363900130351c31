"""initial audit schema

Revision ID: 202610010001
Revises:
Create Date: 2026-10-01 00:00:01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "202610010001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("event", sa.String(length=255), nullable=False),
        sa.Column("message_data", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("payload", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("diff", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("checksum", sa.String(length=128), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_events_event", "audit_events", ["event"])
    op.create_index("ix_audit_events_reference_id", "audit_events", ["reference_id"])
    op.create_index("idx_audit_event_time", "audit_events", ["event", "created_at"])
    op.create_index("idx_audit_actor_time", "audit_events", ["actor_id", "created_at"])
    op.create_index("idx_audit_events_created_at", "audit_events", ["created_at"])

    op.create_table(
        "audit_subjects",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("audit_event_id", sa.String(length=36), nullable=False),
        sa.Column("subject_type", sa.String(length=255), nullable=False),
        sa.Column("subject_id", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="primary"),
        sa.ForeignKeyConstraint(["audit_event_id"], ["audit_events.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "audit_event_id", "subject_type", "subject_id", "role", name="uq_subject_per_event"
        ),
    )
    op.create_index(
        "idx_subject_lookup", "audit_subjects", ["subject_type", "subject_id", "audit_event_id"]
    )

    op.create_table(
        "audit_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("route_name", sa.String(length=255), nullable=True),
        sa.Column("route_action", sa.String(length=255), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("duration_ms", sa.Float(), nullable=True),
        sa.Column("ip", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("session_id", sa.String(length=255), nullable=True),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=False),
        sa.Column("request_headers", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("request_query", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("request_body", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("response_body", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_requests_reference_id", "audit_requests", ["reference_id"])
    op.create_index("idx_audit_requests_created_at", "audit_requests", ["created_at"])
    op.create_index("idx_request_actor_time", "audit_requests", ["actor_id", "created_at"])

    op.create_table(
        "audit_outgoing_requests",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("duration_ms", sa.Float(), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("request_headers", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("request_body", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("response_body", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_outgoing_requests_reference_id", "audit_outgoing_requests", ["reference_id"])
    op.create_index("idx_audit_outgoing_created_at", "audit_outgoing_requests", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_audit_outgoing_created_at", table_name="audit_outgoing_requests")
    op.drop_index("ix_audit_outgoing_requests_reference_id", table_name="audit_outgoing_requests")
    op.drop_table("audit_outgoing_requests")

    op.drop_index("idx_request_actor_time", table_name="audit_requests")
    op.drop_index("idx_audit_requests_created_at", table_name="audit_requests")
    op.drop_index("ix_audit_requests_reference_id", table_name="audit_requests")
    op.drop_table("audit_requests")

    op.drop_index("idx_subject_lookup", table_name="audit_subjects")
    op.drop_table("audit_subjects")

    op.drop_index("idx_audit_events_created_at", table_name="audit_events")
    op.drop_index("idx_audit_actor_time", table_name="audit_events")
    op.drop_index("idx_audit_event_time", table_name="audit_events")
    op.drop_index("ix_audit_events_reference_id", table_name="audit_events")
    op.drop_index("ix_audit_events_event", table_name="audit_events")
    op.drop_table("audit_events")
