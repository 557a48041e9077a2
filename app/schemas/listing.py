from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ListingCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    kind: Literal["property", "project"] = "property"
    details: dict = Field(default_factory=dict)


class ListingEdit(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=300)
    details: dict = Field(default_factory=dict)

    def changes(self) -> dict:
        out = dict(self.details)
        if self.title is not None:
            out["title"] = self.title
        return out


class ListingTransaction(BaseModel):
    outcome: Literal["sold", "rented", "leased"]


class ListingFeatured(BaseModel):
    featured: bool


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    seller_id: str
    kind: str
    title: str
    details: dict
    workflow_status: str
    is_featured: bool
    quota_consumed: bool
    subscription_id: str | None
    pending_changes: dict | None
    review_request_type: str | None
    submitted_at: datetime | None
    rejection_reason: str | None
    approved_at: datetime | None
    expires_at: datetime | None
    transacted_at: datetime | None
