from pydantic import BaseModel, ConfigDict, Field


class PackageCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    price: int = Field(ge=0)  # minor units
    duration_days: int = Field(gt=0)
    listing_limit: int = Field(ge=0)
    featured_limit: int = Field(default=0, ge=0)
    seller_type: str | None = None


class PackageUpdate(BaseModel):
    # commercial terms are fixed once sold; only presentation and availability change
    name: str | None = None
    description: str | None = None
    is_active: bool | None = None


class PackageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None
    price: int
    duration_days: int
    listing_limit: int
    featured_limit: int
    seller_type: str | None
    is_active: bool
