from datetime import datetime

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id

from app.models.base import Base, AuditMixin, UTCDateTime


class Listing(AuditMixin, Base):
    __tablename__ = "listings"
    __table_args__ = (
        Index("ix_listings_seller_status", "seller_id", "workflow_status"),
        Index("ix_listings_status_expires_at", "workflow_status", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("lst"))

    seller_id: Mapped[str] = mapped_column(String, ForeignKey("sellers.id"), nullable=False)

    # "property" | "project"; both follow the same moderation workflow
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="property")

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    # Listing content (price, address, amenities, ...) as submitted by the seller
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # see app.services.listing_state.WorkflowStatus
    workflow_status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")

    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Whether this listing currently holds one unit of subscription.listings_used
    quota_consumed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subscription_id: Mapped[str | None] = mapped_column(String, ForeignKey("subscriptions.id"), nullable=True)

    # Edits to a published listing wait here until an admin re-approves
    pending_changes: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # "new" | "edit", set on submission
    review_request_type: Mapped[str | None] = mapped_column(String(10), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    transacted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
