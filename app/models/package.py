from sqlalchemy import Boolean, CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id
from app.models.base import Base, AuditMixin


class Package(AuditMixin, Base):
    __tablename__ = "packages"
    __table_args__ = (
        CheckConstraint("duration_days > 0", name="ck_packages_duration_positive"),
        CheckConstraint("listing_limit >= 0", name="ck_packages_listing_limit"),
        CheckConstraint("featured_limit >= 0", name="ck_packages_featured_limit"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("pkg"))

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Commercial terms: fixed once the package exists
    price: Mapped[int] = mapped_column(Integer, nullable=False)  # minor units
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    listing_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    featured_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # None = available to every seller type
    seller_type: Mapped[str | None] = mapped_column(String(30), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
