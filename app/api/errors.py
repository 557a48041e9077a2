from fastapi import HTTPException

from app.schemas.common import ErrorResponse
from app.services.results import (
    AlreadyDecided,
    EngineError,
    InvalidTransition,
    ListingNotFound,
    NoActiveSubscription,
    Outcome,
    PackageUnavailable,
    QuotaExhausted,
    ReasonRequired,
    SellerInactive,
    SellerNotFound,
    SubscriptionNotFound,
)

STATUS_BY_ERROR: dict[type[EngineError], int] = {
    QuotaExhausted: 403,
    NoActiveSubscription: 403,
    SellerInactive: 403,
    InvalidTransition: 409,
    AlreadyDecided: 409,
    PackageUnavailable: 409,
    ListingNotFound: 404,
    SellerNotFound: 404,
    SubscriptionNotFound: 404,
    ReasonRequired: 422,
}


def error_response(err: EngineError) -> ErrorResponse:
    return ErrorResponse(code=err.code, message=err.message, details=err.details())


def raise_for_error(err: EngineError) -> None:
    status = STATUS_BY_ERROR.get(type(err), 400)
    if isinstance(err, PackageUnavailable) and err.reason == "not found":
        status = 404
    raise HTTPException(status_code=status, detail=error_response(err).model_dump())


def unwrap(res: Outcome):
    """Value of a successful outcome; otherwise the mapped HTTPException."""
    if not res.ok:
        raise_for_error(res.error)
    return res.value
