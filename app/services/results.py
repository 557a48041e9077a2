"""
Typed outcomes for the listing/quota engine.

Expected, user-facing conditions (quota exhausted, stale client, admin
double-submission, missing subscription) come back as an ``Outcome`` carrying
an ``EngineError``; they are never raised. Storage failures are not wrapped
here and propagate to the caller unmodified.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class EngineError:
    code: ClassVar[str] = "engine_error"

    @property
    def message(self) -> str:
        return self.code

    def details(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class QuotaExhausted(EngineError):
    code: ClassVar[str] = "quota_exhausted"

    kind: str  # "listing" | "featured"
    limit: int
    used: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def message(self) -> str:
        return f"{self.kind} quota exhausted ({self.used}/{self.limit}); upgrade or renew the package"

    def details(self) -> dict[str, Any]:
        return {"kind": self.kind, "limit": self.limit, "used": self.used, "remaining": self.remaining}


@dataclass(frozen=True)
class InvalidTransition(EngineError):
    code: ClassVar[str] = "invalid_transition"

    listing_id: str
    current: str
    event: str

    @property
    def message(self) -> str:
        return f"cannot {self.event} a listing in status {self.current}"

    def details(self) -> dict[str, Any]:
        return {"listing_id": self.listing_id, "current": self.current, "event": self.event}


@dataclass(frozen=True)
class AlreadyDecided(EngineError):
    code: ClassVar[str] = "already_decided"

    listing_id: str
    decision: dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return f"listing {self.listing_id} was already {self.decision.get('decision', 'decided')}"

    def details(self) -> dict[str, Any]:
        return {"listing_id": self.listing_id, "decision": self.decision}


@dataclass(frozen=True)
class SubscriptionNotFound(EngineError):
    code: ClassVar[str] = "subscription_not_found"

    subscription_id: str

    @property
    def message(self) -> str:
        return f"subscription {self.subscription_id} not found"

    def details(self) -> dict[str, Any]:
        return {"subscription_id": self.subscription_id}


@dataclass(frozen=True)
class NoActiveSubscription(EngineError):
    code: ClassVar[str] = "no_active_subscription"

    seller_id: str

    @property
    def message(self) -> str:
        return "no active subscription; purchase a package to list properties"

    def details(self) -> dict[str, Any]:
        return {"seller_id": self.seller_id}


@dataclass(frozen=True)
class ListingNotFound(EngineError):
    code: ClassVar[str] = "listing_not_found"

    listing_id: str

    @property
    def message(self) -> str:
        return f"listing {self.listing_id} not found"

    def details(self) -> dict[str, Any]:
        return {"listing_id": self.listing_id}


@dataclass(frozen=True)
class SellerNotFound(EngineError):
    code: ClassVar[str] = "seller_not_found"

    seller_id: str

    @property
    def message(self) -> str:
        return f"seller {self.seller_id} not found"

    def details(self) -> dict[str, Any]:
        return {"seller_id": self.seller_id}


@dataclass(frozen=True)
class SellerInactive(EngineError):
    code: ClassVar[str] = "seller_inactive"

    seller_id: str

    @property
    def message(self) -> str:
        return f"seller {self.seller_id} is deactivated"

    def details(self) -> dict[str, Any]:
        return {"seller_id": self.seller_id}


@dataclass(frozen=True)
class PackageUnavailable(EngineError):
    code: ClassVar[str] = "package_unavailable"

    package_id: str
    reason: str

    @property
    def message(self) -> str:
        return f"package {self.package_id} unavailable: {self.reason}"

    def details(self) -> dict[str, Any]:
        return {"package_id": self.package_id, "reason": self.reason}


@dataclass(frozen=True)
class ReasonRequired(EngineError):
    code: ClassVar[str] = "reason_required"

    @property
    def message(self) -> str:
        return "a rejection reason is required"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def success(value: T | None = None) -> Outcome[T]:
    return Outcome(value=value)


def failure(error: EngineError) -> Outcome[Any]:
    return Outcome(error=error)
