from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionPurchase(BaseModel):
    package_id: str
    payment_reference: str | None = Field(default=None, max_length=200)


class SubscriptionRenew(BaseModel):
    payment_reference: str | None = Field(default=None, max_length=200)


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    seller_id: str
    package_id: str
    start_date: datetime
    end_date: datetime
    listing_limit: int
    featured_limit: int
    listings_used: int
    featured_used: int
    is_active: bool
    deactivated_at: datetime | None
    deactivation_reason: str | None


class CanCreateListingOut(BaseModel):
    can_create: bool
    remaining: int
    reason: str | None = None
