"""
Replay protection for seller purchases and admin decisions.

A client retrying a purchase or a moderation click sends the same
Idempotency-Key; the first request records its response and every retry from
the same actor gets that response back instead of buying a second
subscription or deciding twice. Keys are scoped per actor, so two sellers
(or two admins) never collide.
"""
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Header, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.idempotency import IdempotencyKey
from app.schemas.common import ErrorResponse
from app.services.auth import Actor


log = logging.getLogger(__name__)

MAX_KEY_LENGTH = 200


@dataclass
class ReplayGuard:
    actor_id: str
    key: str
    fingerprint: str
    # response recorded by an earlier identical request; empty while that one is still running
    recorded: dict | None = None


def _reject(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=ErrorResponse(code=code, message=message).model_dump())


def request_fingerprint(path: str, body: dict) -> str:
    raw = json.dumps({"path": path, "body": body}, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
    return "sha256:" + hashlib.sha256(raw).hexdigest()


def _check_length(idempotency_key: str) -> None:
    if len(idempotency_key) > MAX_KEY_LENGTH:
        raise _reject(400, "idempotency_key_too_long", f"Idempotency-Key longer than {MAX_KEY_LENGTH} characters")


async def require_idempotency_key(idempotency_key: str | None = Header(default=None)) -> str:
    if not idempotency_key:
        raise _reject(400, "idempotency_key_required", "Missing Idempotency-Key header")
    _check_length(idempotency_key)
    return idempotency_key


async def optional_idempotency_key(idempotency_key: str | None = Header(default=None)) -> str | None:
    if idempotency_key is not None:
        _check_length(idempotency_key)
    return idempotency_key


async def _find(db: AsyncSession, actor_id: str, idempotency_key: str) -> IdempotencyKey | None:
    stmt = select(IdempotencyKey).where(
        IdempotencyKey.actor_id == actor_id,
        IdempotencyKey.key == idempotency_key,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def reserve(db: AsyncSession, *, actor: Actor, idempotency_key: str, path: str, body: dict) -> ReplayGuard:
    """
    Claim the key for this request, or pick up what an earlier identical
    request recorded. The same key with a different request is a 409.
    """
    guard = ReplayGuard(actor_id=actor.actor_id, key=idempotency_key, fingerprint=request_fingerprint(path, body))

    existing = await _find(db, guard.actor_id, idempotency_key)
    if existing is not None:
        if existing.request_hash != guard.fingerprint:
            raise _reject(409, "idempotency_conflict", "Idempotency-Key reused with a different request")
        guard.recorded = existing.response or None
        return guard

    db.add(IdempotencyKey(actor_id=guard.actor_id, key=idempotency_key, request_hash=guard.fingerprint, response={}))
    # unique (actor_id, key) makes a concurrent duplicate fail here
    await db.flush()
    return guard


async def record(db: AsyncSession, guard: ReplayGuard, response: dict) -> None:
    row = await _find(db, guard.actor_id, guard.key)
    row.response = response
    await db.flush()


async def run_once(
    db: AsyncSession,
    *,
    actor: Actor,
    idempotency_key: str | None,
    path: str,
    body: dict,
    produce: Callable[[], Awaitable[dict]],
) -> dict:
    """Run ``produce`` at most once per actor and key. Without a key it simply runs."""
    if idempotency_key is None:
        return await produce()

    guard = await reserve(db, actor=actor, idempotency_key=idempotency_key, path=path, body=body)
    if guard.recorded:
        log.info("idempotency: replay actor=%s key=%s", guard.actor_id, guard.key)
        return guard.recorded

    response = await produce()
    await record(db, guard, response)
    return response
