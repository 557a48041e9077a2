from datetime import datetime

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id
from app.models.base import Base, AuditMixin, UTCDateTime


SELLER_TYPES = ("individual", "broker", "builder")
VERIFICATION_STATUSES = ("pending", "verified", "rejected")


class SellerAccount(AuditMixin, Base):
    __tablename__ = "sellers"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("slr"))

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)

    # "individual" | "broker" | "builder"
    seller_type: Mapped[str] = mapped_column(String(30), nullable=False, default="individual")

    # "pending" | "verified" | "rejected"; only admins change it
    verification_status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String, nullable=True)

    # never deleted, only deactivated
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
