"""initial

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "announcements",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("author_email", sa.String(255), nullable=False),
        sa.Column("author_role", sa.String(32), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("rich_content", sa.JSON, nullable=True),
        sa.Column(
            "display_type",
            sa.Enum("banner", "modal", "email", name="announcementdisplaytype"),
            nullable=False,
            server_default="banner",
        ),
        sa.Column(
            "priority",
            sa.Enum("normal", "high", "critical", name="announcementpriority"),
            nullable=False,
            server_default="normal",
        ),
        sa.Column("context_type", sa.String(64), nullable=True),
        sa.Column("context_id", sa.String(64), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            sa.Enum("draft", "scheduled", "published", "cancelled", "expired", name="announcementstatus"),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recurrence_rule", sa.String(64), nullable=True),
        sa.Column("recurrence_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_announcements_author_status", "announcements", ["author_email", "status"], unique=False)
    op.create_index("ix_announcements_context", "announcements", ["context_type", "context_id"], unique=False)
    op.create_index("ix_announcements_window", "announcements", ["status", "starts_at", "ends_at"], unique=False)

    op.create_table(
        "announcement_audience",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "announcement_id",
            sa.String(36),
            sa.ForeignKey("announcements.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("audience_type", sa.String(64), nullable=False),
        sa.Column("audience_id", sa.String(64), nullable=True),
        sa.Column("audience_value", sa.String(255), nullable=True),
    )
    op.create_index("ix_announcement_audience_announcement", "announcement_audience", ["announcement_id"], unique=False)

    op.create_table(
        "announcement_reads",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "announcement_id",
            sa.String(36),
            sa.ForeignKey("announcements.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_email", sa.String(255), nullable=False),
        sa.Column("kind", sa.Enum("acknowledged", "dismissed", name="announcementinteraction"), nullable=False),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dismissed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("announcement_id", "user_email", name="uq_announcement_reads_user"),
    )

    op.create_table(
        "announcement_audit_logs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("announcement_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("performed_by", sa.String(255), nullable=False),
        sa.Column("metadata", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_announcement_audit_logs_announcement", "announcement_audit_logs", ["announcement_id"], unique=False)

    op.create_table(
        "course_memberships",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_email", sa.String(255), nullable=False),
        sa.Column("context_type", sa.String(64), nullable=False, server_default="course"),
        sa.Column("context_id", sa.String(64), nullable=False),
        sa.Column("relation", sa.String(32), nullable=False, server_default="enrolled"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("user_email", "context_type", "context_id", "relation", name="uq_course_memberships_key"),
    )
    op.create_index("ix_course_memberships_user", "course_memberships", ["user_email"], unique=False)


def downgrade():
    op.drop_index("ix_course_memberships_user", table_name="course_memberships")
    op.drop_table("course_memberships")
    op.drop_index("ix_announcement_audit_logs_announcement", table_name="announcement_audit_logs")
    op.drop_table("announcement_audit_logs")
    op.drop_table("announcement_reads")
    op.drop_index("ix_announcement_audience_announcement", table_name="announcement_audience")
    op.drop_table("announcement_audience")
    op.drop_index("ix_announcements_window", table_name="announcements")
    op.drop_index("ix_announcements_context", table_name="announcements")
    op.drop_index("ix_announcements_author_status", table_name="announcements")
    op.drop_table("announcements")
    op.execute("DROP TYPE IF EXISTS announcementinteraction")
    op.execute("DROP TYPE IF EXISTS announcementstatus")
    op.execute("DROP TYPE IF EXISTS announcementpriority")
    op.execute("DROP TYPE IF EXISTS announcementdisplaytype")
