from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_cache, get_db
from backend.app.schemas.raw_material import RawMaterialRead, StockAdjustment, StockMovementRead
from backend.services import inventory
from backend.services.cache import CacheBackend
from backend.services.capabilities import ActorCapabilities

router = APIRouter(prefix="/stock-movements")


class AdjustmentResult(BaseModel):
    material: RawMaterialRead
    movement: StockMovementRead


@router.post("", response_model=AdjustmentResult, status_code=201)
def adjust_stock(
    payload: StockAdjustment,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    material, movement = inventory.adjust_stock(db, payload, actor=actor, cache=cache)
    return AdjustmentResult(material=material, movement=movement)


@router.get("", response_model=list[StockMovementRead])
def list_movements(
    material_id: int | None = None,
    db: Session = Depends(get_db),
    actor: ActorCapabilities = Depends(get_actor),
):
    """Historique append-only, du plus récent au plus ancien."""
    return inventory.list_movements(db, actor=actor, material_id=material_id)
