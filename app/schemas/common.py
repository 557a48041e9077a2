from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict = Field(default_factory=dict)


class DispatchOut(BaseModel):
    dispatched: int


class SweepSummaryOut(BaseModel):
    subscriptions_expired: int
    listings_expired: int
    slots_released: int
    expiry_notices: int
    transitions: int


class AuditEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    actor_id: str | None
    action: str
    target_type: str | None
    target_id: str | None
    detail: dict
