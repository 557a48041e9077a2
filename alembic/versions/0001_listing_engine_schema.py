from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_listing_engine_schema"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),
    ]


JSONB = postgresql.JSONB(astext_type=sa.Text())
EMPTY_JSON = sa.text("'{}'::jsonb")


def upgrade():
    op.create_table(
        "sellers",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("seller_type", sa.String(length=30), nullable=False, server_default="individual"),
        sa.Column("verification_status", sa.String(length=30), nullable=False, server_default="pending"),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
    )

    op.create_table(
        "packages",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("listing_limit", sa.Integer(), nullable=False),
        sa.Column("featured_limit", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("seller_type", sa.String(length=30), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
        sa.CheckConstraint("duration_days > 0", name="ck_packages_duration_positive"),
        sa.CheckConstraint("listing_limit >= 0", name="ck_packages_listing_limit"),
        sa.CheckConstraint("featured_limit >= 0", name="ck_packages_featured_limit"),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("seller_id", sa.String(), sa.ForeignKey("sellers.id"), nullable=False),
        sa.Column("package_id", sa.String(), sa.ForeignKey("packages.id"), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("listing_limit", sa.Integer(), nullable=False),
        sa.Column("featured_limit", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("listings_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("featured_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deactivation_reason", sa.String(length=30), nullable=True),
        sa.Column("expiry_notice_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_reference", sa.String(length=200), nullable=True),
        *_audit_columns(),
        sa.CheckConstraint("listings_used >= 0 AND listings_used <= listing_limit", name="ck_subscriptions_listings_used"),
        sa.CheckConstraint("featured_used >= 0 AND featured_used <= featured_limit", name="ck_subscriptions_featured_used"),
    )
    op.create_index("ix_subscriptions_seller_id", "subscriptions", ["seller_id"])
    op.create_index(
        "uq_subscriptions_one_active_per_seller",
        "subscriptions",
        ["seller_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )
    op.create_index("ix_subscriptions_active_end_date", "subscriptions", ["is_active", "end_date"])

    op.create_table(
        "listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("seller_id", sa.String(), sa.ForeignKey("sellers.id"), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False, server_default="property"),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("details", JSONB, nullable=False, server_default=EMPTY_JSON),
        sa.Column("workflow_status", sa.String(length=30), nullable=False, server_default="draft"),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("quota_consumed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("subscription_id", sa.String(), sa.ForeignKey("subscriptions.id"), nullable=True),
        sa.Column("pending_changes", JSONB, nullable=True),
        sa.Column("review_request_type", sa.String(length=10), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transacted_at", sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
    )
    op.create_index("ix_listings_seller_status", "listings", ["seller_id", "workflow_status"])
    op.create_index("ix_listings_status_expires_at", "listings", ["workflow_status", "expires_at"])

    op.create_table(
        "approval_decisions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("request_type", sa.String(length=10), nullable=False),
        sa.Column("decided_by", sa.String(), nullable=False),
        sa.Column("decision", sa.String(length=20), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_approval_decisions_listing_id", "approval_decisions", ["listing_id"])

    op.create_table(
        "outbox",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("aggregate_type", sa.String(length=100), nullable=False),
        sa.Column("aggregate_id", sa.String(length=100), nullable=False),
        sa.Column("event_type", sa.String(length=200), nullable=False),
        sa.Column("payload", JSONB, nullable=False, server_default=EMPTY_JSON),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("lease_id", sa.String(length=64), nullable=True),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_outbox_status_created_at", "outbox", ["status", "created_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(length=120), nullable=False),
        sa.Column("target_type", sa.String(length=120), nullable=True),
        sa.Column("target_id", sa.String(length=200), nullable=True),
        sa.Column("detail", JSONB, nullable=False, server_default=EMPTY_JSON),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_logs_target", "audit_logs", ["target_type", "target_id"])

    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("actor_id", sa.String(), nullable=False),
        sa.Column("key", sa.String(length=200), nullable=False),
        sa.Column("request_hash", sa.String(length=80), nullable=False),
        sa.Column("response", JSONB, nullable=False, server_default=EMPTY_JSON),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("actor_id", "key", name="uq_idempotency_actor_key"),
    )


def downgrade():
    op.drop_table("idempotency_keys")
    op.drop_index("ix_audit_logs_target", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_outbox_status_created_at", table_name="outbox")
    op.drop_table("outbox")
    op.drop_index("ix_approval_decisions_listing_id", table_name="approval_decisions")
    op.drop_table("approval_decisions")
    op.drop_index("ix_listings_status_expires_at", table_name="listings")
    op.drop_index("ix_listings_seller_status", table_name="listings")
    op.drop_table("listings")
    op.drop_index("ix_subscriptions_active_end_date", table_name="subscriptions")
    op.drop_index("uq_subscriptions_one_active_per_seller", table_name="subscriptions")
    op.drop_index("ix_subscriptions_seller_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("packages")
    op.drop_table("sellers")
