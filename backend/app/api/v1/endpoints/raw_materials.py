from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_cache, get_db
from backend.app.db.models.core_types import MaterialType
from backend.app.schemas.raw_material import RawMaterialCreate, RawMaterialRead, RawMaterialUpdate
from backend.services import inventory
from backend.services.cache import CacheBackend
from backend.services.capabilities import ActorCapabilities

router = APIRouter(prefix="/raw-materials")


@router.get("", response_model=list[RawMaterialRead])
def list_materials(
    material_type: MaterialType | None = None,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return inventory.list_materials(db, actor=actor, material_type=material_type, cache=cache)


@router.post("", response_model=RawMaterialRead, status_code=201)
def create_material(
    payload: RawMaterialCreate,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return inventory.create_material(db, payload, actor=actor, cache=cache)


@router.get("/low-stock", response_model=list[RawMaterialRead])
def low_stock(
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    """
    Matières actives sous leur seuil minimum (READ ONLY)
    - quantity <= min_quantity
    """
    return inventory.list_low_stock_materials(db, actor=actor, cache=cache)


@router.get("/{material_id}", response_model=RawMaterialRead)
def get_material(
    material_id: int,
    db: Session = Depends(get_db),
    actor: ActorCapabilities = Depends(get_actor),
):
    return inventory.get_material(db, material_id, actor=actor)


@router.put("/{material_id}", response_model=RawMaterialRead)
def update_material(
    material_id: int,
    payload: RawMaterialUpdate,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return inventory.update_material(db, material_id, payload, actor=actor, cache=cache)
