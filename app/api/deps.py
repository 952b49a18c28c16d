"""
Request identity.

Admins authenticate with the X-Admin-Key header. Sellers and buyers carry a
bearer token issued by the auth service; the session it points to is read
from Redis (`session:<token>` -> {"actor_id", "role"}).
"""

import hmac
import json
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from redis.asyncio.client import Redis
from redis.exceptions import RedisError

from app.config import settings
from app.fsm.commands import Actor
from app.fsm.states import ActorRole
from app.redis import get_redis

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"


async def _actor_from_session(token: str, redis: Redis) -> Optional[Actor]:
    try:
        raw = await redis.get(f"{SESSION_KEY_PREFIX}{token}")
    except (RedisError, OSError) as e:
        logger.error(f"Session lookup failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session store unavailable",
        )
    if not raw:
        return None

    try:
        session = json.loads(raw)
        role = ActorRole(session["role"])
        actor_id = str(session["actor_id"])
    except (ValueError, KeyError, TypeError):
        logger.warning("Malformed session payload")
        return None

    if role == ActorRole.SYSTEM:
        # The system identity is reserved for verified webhooks
        return None
    return Actor(actor_id=actor_id, role=role)


async def get_optional_actor(
    authorization: Optional[str] = Header(None),
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
    redis: Redis = Depends(get_redis),
) -> Optional[Actor]:
    """Resolve the caller, or None when no credentials were sent."""
    if x_admin_key:
        valid_key = settings.admin_api_key
        if not valid_key or not hmac.compare_digest(x_admin_key, valid_key):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid Admin Key",
            )
        return Actor(actor_id="admin", role=ActorRole.ADMIN)

    if not authorization:
        return None

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
        )

    actor = await _actor_from_session(token.strip(), redis)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired or invalid",
        )
    return actor


async def get_current_actor(actor: Optional[Actor] = Depends(get_optional_actor)) -> Actor:
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return actor


async def get_seller_or_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role not in (ActorRole.SELLER, ActorRole.ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Seller role required",
        )
    return actor


async def get_seller(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != ActorRole.SELLER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Seller role required",
        )
    return actor


async def get_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return actor
