from __future__ import annotations

from typing import Generator

from fastapi import Header, HTTPException

from backend.app.db.session import SessionLocal
from backend.services.cache import CacheBackend, InMemoryCache
from backend.services.capabilities import ActorCapabilities

# un seul cache par process
_cache = InMemoryCache()


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_cache() -> CacheBackend:
    return _cache


def get_actor(
    actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
    role: str | None = Header(default=None, alias="X-Actor-Role"),
) -> ActorCapabilities:
    """Identité déjà authentifiée en amont (gateway) : on ne lit que les en-têtes."""
    if not actor_id or not actor_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id header")
    return ActorCapabilities.for_role(actor_id.strip(), (role or "").strip())
