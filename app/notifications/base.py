from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class NotifyResult:
    ok: bool
    retryable: bool = False
    error_code: str | None = None
    error_message: str | None = None
    detail: dict[str, Any] | None = None


@runtime_checkable
class Notifier(Protocol):
    """
    Hands a notification request to the messaging system (email/SMS/in-app).
    The engine only produces the request; rendering and delivery live elsewhere.
    """

    channel: str

    async def send(self, *, event_type: str, payload: dict[str, Any]) -> NotifyResult:
        ...
