"""Initial CertSys schema

Revision ID: 20261019_initial_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    # Tables may already exist when the Supabase project was set up from the dashboard
    if not inspector.has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("email", sa.String(length=255), nullable=False, unique=True),
            sa.Column("full_name", sa.String(length=255), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=True),
            sa.Column("middle_name", sa.String(length=100), nullable=True),
            sa.Column("last_name", sa.String(length=100), nullable=True),
            sa.Column("suffix", sa.String(length=20), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="resident"),
            sa.Column("purok", sa.String(length=50), nullable=True),
            sa.Column("purok_chairman_id", sa.String(length=36),
                      sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("phone_number", sa.String(length=20), nullable=True),
            sa.Column("address", sa.String(length=255), nullable=True),
            sa.Column("date_of_birth", sa.Date(), nullable=True),
            sa.Column("place_of_birth", sa.String(length=255), nullable=True),
            sa.Column("gender", sa.String(length=10), nullable=True),
            sa.Column("civil_status", sa.String(length=20), nullable=True),
            sa.Column("photo_url", sa.String(length=500), nullable=True),
            sa.Column("push_token", sa.String(length=255), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_users_role", "users", ["role"])
        op.create_index("idx_users_purok_chairman", "users", ["purok_chairman_id"])

    if not inspector.has_table("certificate_requests"):
        op.create_table(
            "certificate_requests",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("certificate_type", sa.String(length=100), nullable=False),
            sa.Column("purpose", sa.String(length=255), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("urgency", sa.String(length=20), nullable=False, server_default="regular"),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("amount", sa.Numeric(10, 2), nullable=True),
            sa.Column("processed_by", sa.String(length=36),
                      sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("certificate_number", sa.String(length=20), nullable=True, unique=True),
            sa.Column("pdf_url", sa.String(length=500), nullable=True),
            sa.Column("pdf_generated_at", sa.DateTime(), nullable=True),
            sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="unpaid"),
            sa.Column("payment_method", sa.String(length=30), nullable=True),
            sa.Column("payment_reference", sa.String(length=100), nullable=True),
            sa.Column("payment_amount", sa.Numeric(10, 2), nullable=True),
            sa.Column("payment_date", sa.DateTime(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_cert_requests_user", "certificate_requests", ["user_id"])
        op.create_index("idx_cert_requests_status", "certificate_requests", ["status"])
        op.create_index("idx_cert_requests_created", "certificate_requests", ["created_at"])

    if not inspector.has_table("certificates"):
        op.create_table(
            "certificates",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("certificate_type", sa.String(length=100), nullable=False),
            sa.Column("purpose", sa.String(length=255), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("requested_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("approved_by", sa.String(length=36),
                      sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )

    if not inspector.has_table("notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("type", sa.String(length=40), nullable=False, server_default="system"),
            sa.Column("related_certificate_id", sa.String(length=36),
                      sa.ForeignKey("certificate_requests.id", ondelete="SET NULL"), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("metadata", sa.JSON(), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])
        op.create_index("ix_notifications_user_unread", "notifications", ["user_id", "is_read"])

    if not inspector.has_table("pending_registrations"):
        op.create_table(
            "pending_registrations",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("first_name", sa.String(length=100), nullable=False),
            sa.Column("middle_name", sa.String(length=100), nullable=True),
            sa.Column("last_name", sa.String(length=100), nullable=False),
            sa.Column("suffix", sa.String(length=20), nullable=True),
            sa.Column("date_of_birth", sa.Date(), nullable=False),
            sa.Column("place_of_birth", sa.String(length=255), nullable=True),
            sa.Column("gender", sa.String(length=10), nullable=True),
            sa.Column("civil_status", sa.String(length=20), nullable=True),
            sa.Column("age", sa.Integer(), nullable=True),
            sa.Column("purok", sa.String(length=50), nullable=True),
            sa.Column("house_number", sa.String(length=50), nullable=True),
            sa.Column("street", sa.String(length=255), nullable=True),
            sa.Column("address", sa.String(length=255), nullable=True),
            sa.Column("phone_number", sa.String(length=20), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("purok_chairman_id", sa.String(length=36),
                      sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("reviewed_by", sa.String(length=36),
                      sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(), nullable=True),
            sa.Column("approved_user_id", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        )
        op.create_index("idx_pending_reg_chairman_status", "pending_registrations", ["purok_chairman_id", "status"])
        op.create_index("idx_pending_reg_email", "pending_registrations", ["email"])


def downgrade():
    op.execute("DROP TABLE IF EXISTS pending_registrations")
    op.execute("DROP TABLE IF EXISTS notifications")
    op.execute("DROP TABLE IF EXISTS certificates")
    op.execute("DROP TABLE IF EXISTS certificate_requests")
    op.execute("DROP TABLE IF EXISTS users")
