from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class SellerRegister(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    seller_type: Literal["individual", "broker", "builder"] = "individual"


class SellerVerification(BaseModel):
    status: Literal["pending", "verified", "rejected"]


class SellerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    seller_type: str
    verification_status: str
    verified_at: datetime | None
    is_active: bool
