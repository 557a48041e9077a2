from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id
from app.models.base import Base, AuditMixin, UTCDateTime


class Subscription(AuditMixin, Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint("listings_used >= 0 AND listings_used <= listing_limit", name="ck_subscriptions_listings_used"),
        CheckConstraint("featured_used >= 0 AND featured_used <= featured_limit", name="ck_subscriptions_featured_used"),
        # backstop only; SubscriptionManager deactivates the previous row first
        Index(
            "uq_subscriptions_one_active_per_seller",
            "seller_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("sub"))

    seller_id: Mapped[str] = mapped_column(String, ForeignKey("sellers.id"), nullable=False, index=True)
    package_id: Mapped[str] = mapped_column(String, ForeignKey("packages.id"), nullable=False)

    start_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Snapshot of the package terms at purchase time
    listing_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    featured_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    listings_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    featured_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    deactivation_reason: Mapped[str | None] = mapped_column(String(30), nullable=True)  # superseded/expired

    expiry_notice_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Reference from the (external) payment gateway, informational only
    payment_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def is_current(self, now: datetime) -> bool:
        return self.is_active and self.start_date <= now <= self.end_date
