from datetime import datetime

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id
from app.models.base import Base, UTCDateTime


class ApprovalDecision(Base):
    """Append-only moderation audit trail. Rows are never updated or deleted."""

    __tablename__ = "approval_decisions"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("apd"))

    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id"), nullable=False, index=True)
    request_type: Mapped[str] = mapped_column(String(10), nullable=False)  # new/edit
    decided_by: Mapped[str] = mapped_column(String, nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)  # approved/rejected
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
