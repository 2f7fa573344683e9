"""
FastAPI dependencies shared by the routers.

Identity and location come from collaborators: the actor id arrives in the
X-Actor-Id header (set by the auth gateway), the location in each request.
"""
from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException

from zoneclash.config import get_settings
from zoneclash.core.game import GameCore


@lru_cache()
def get_core() -> GameCore:
    return GameCore(get_settings())


def get_actor_id(x_actor_id: Optional[str] = Header(None)) -> str:
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id header")
    return x_actor_id.strip()


def get_optional_actor_id(x_actor_id: Optional[str] = Header(None)) -> Optional[str]:
    if not x_actor_id or not x_actor_id.strip():
        return None
    return x_actor_id.strip()


def get_idempotency_key(idempotency_key: Optional[str] = Header(None)) -> Optional[str]:
    if idempotency_key is None:
        return None
    key = idempotency_key.strip()
    if not key:
        return None
    if len(key) > 128:
        raise HTTPException(status_code=422, detail="Idempotency-Key longer than 128 characters")
    return key
