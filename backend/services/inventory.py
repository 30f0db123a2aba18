from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.config import settings
from backend.app.db.models.models_v1 import RawMaterial, StockMovement
from backend.app.db.models.core_types import MaterialType, MovementDirection
from backend.app.schemas.raw_material import (
    RawMaterialCreate,
    RawMaterialRead,
    RawMaterialUpdate,
    StockAdjustment,
    StockMovementRead,
)
from backend.services import cache as cache_keys
from backend.services.cache import CacheBackend, cached_get, cached_set, invalidate_quietly, make_key
from backend.services.capabilities import ActorCapabilities, Capability
from backend.services.errors import InsufficientStock, InvalidInput, InvalidQuantity, NotFound
from backend.services.unit_of_work import atomic

logger = logging.getLogger(__name__)

MATERIAL_REQUIRED_FIELDS = ("name", "unit", "min_quantity", "material_type", "active")


def get_material_or_404(db: Session, material_id: int) -> RawMaterial:
    mat = db.get(RawMaterial, material_id)
    if mat is None:
        raise NotFound(f"Raw material {material_id} not found")
    return mat


def lock_materials(db: Session, material_ids: Iterable[int]) -> dict[int, RawMaterial]:
    """
    Verrouille (FOR UPDATE) les matières, toujours dans l'ordre des id.

    Deux exécutions concurrentes sur les mêmes matières prennent les
    verrous dans le même ordre.
    """
    ids = sorted({int(mid) for mid in material_ids if mid is not None})
    if not ids:
        return {}

    rows = (
        db.execute(
            select(RawMaterial)
            .where(RawMaterial.id.in_(ids))
            .order_by(RawMaterial.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    found = {int(m.id): m for m in rows}
    missing = [mid for mid in ids if mid not in found]
    if missing:
        raise NotFound(f"Raw material(s) not found: {missing}")
    return found


# ---------- Master data ----------
def create_material(
    db: Session,
    payload: RawMaterialCreate,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> RawMaterialRead:
    actor.require(Capability.manage_master_data)

    with atomic(db):
        exists = db.execute(select(RawMaterial).where(RawMaterial.name == payload.name)).scalar_one_or_none()
        if exists:
            raise InvalidInput("Raw material already exists")

        mat = RawMaterial(**payload.model_dump())
        db.add(mat)
        db.flush()
        result = RawMaterialRead.model_validate(mat)

    invalidate_quietly(cache, [cache_keys.RAW_MATERIALS])
    logger.info("Raw material %s created by %s", mat.id, actor.actor_id)
    return result


def list_materials(
    db: Session,
    *,
    actor: ActorCapabilities,
    material_type: MaterialType | None = None,
    cache: CacheBackend | None = None,
) -> list[RawMaterialRead]:
    actor.require(Capability.view)

    key = make_key(cache_keys.RAW_MATERIALS, "list", material_type.value if material_type else None)
    hit = cached_get(cache, key)
    if hit is not None:
        return [RawMaterialRead.model_validate(r) for r in hit]

    stmt = select(RawMaterial).order_by(RawMaterial.name)
    if material_type is not None:
        stmt = stmt.where(RawMaterial.material_type == material_type)
    result = [RawMaterialRead.model_validate(m) for m in db.execute(stmt).scalars().all()]

    cached_set(cache, key, [r.model_dump(mode="json") for r in result], settings.ORDER_LIST_CACHE_TTL)
    return result


def get_material(db: Session, material_id: int, *, actor: ActorCapabilities) -> RawMaterialRead:
    actor.require(Capability.view)
    return RawMaterialRead.model_validate(get_material_or_404(db, material_id))


def update_material(
    db: Session,
    material_id: int,
    payload: RawMaterialUpdate,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> RawMaterialRead:
    """
    Fiche matière (libellé, unité, seuils, type, emplacement, activation).

    quantity et unit_cost ne passent jamais par ici : seuls les mouvements
    de stock et la valorisation les écrivent.
    """
    actor.require(Capability.manage_master_data)
    changes = payload.model_dump(exclude_unset=True)
    for name in MATERIAL_REQUIRED_FIELDS:
        if name in changes and changes[name] is None:
            raise InvalidInput(f"{name} cannot be null")

    with atomic(db):
        mat = lock_materials(db, [material_id])[material_id]

        new_name = changes.get("name")
        if new_name is not None and new_name != mat.name:
            clash = db.execute(
                select(RawMaterial.id).where(RawMaterial.name == new_name, RawMaterial.id != material_id)
            ).first()
            if clash is not None:
                raise InvalidInput("Raw material already exists")

        for name, value in changes.items():
            setattr(mat, name, value)
        db.flush()
        result = RawMaterialRead.model_validate(mat)

    # low-stock est sous le préfixe raw-materials, les PO affichent le nom des matières
    invalidate_quietly(cache, [cache_keys.RAW_MATERIALS, cache_keys.PURCHASE_ORDERS])
    logger.info("Raw material %s updated by %s (%s)", material_id, actor.actor_id, ", ".join(sorted(changes)))
    return result


def list_low_stock_materials(
    db: Session,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> list[RawMaterialRead]:
    """Matières actives avec quantity <= min_quantity."""
    actor.require(Capability.view)

    key = make_key(cache_keys.LOW_STOCK_MATERIALS)
    hit = cached_get(cache, key)
    if hit is not None:
        return [RawMaterialRead.model_validate(r) for r in hit]

    rows = (
        db.execute(
            select(RawMaterial)
            .where(RawMaterial.active.is_(True))
            .where(RawMaterial.quantity <= RawMaterial.min_quantity)
            .order_by(RawMaterial.quantity.asc(), RawMaterial.name)
        )
        .scalars()
        .all()
    )
    result = [RawMaterialRead.model_validate(m) for m in rows]

    cached_set(cache, key, [r.model_dump(mode="json") for r in result], settings.ORDER_LIST_CACHE_TTL)
    return result


# ---------- Mouvements ----------
def adjust_stock(
    db: Session,
    payload: StockAdjustment,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> tuple[RawMaterialRead, StockMovementRead]:
    """
    Ajustement manuel IN / OUT.

    Le coût moyen n'est pas modifié : seule une réception de PO le recalcule.
    """
    actor.require(Capability.adjust_stock)

    if payload.quantity is None or payload.quantity <= 0:
        raise InvalidQuantity("Quantity must be greater than 0")
    if not payload.reason or not payload.reason.strip():
        raise InvalidInput("A reason is required for a stock adjustment")

    with atomic(db):
        mat = lock_materials(db, [payload.material_id])[payload.material_id]
        on_hand = Decimal(mat.quantity or 0)

        if payload.direction == MovementDirection.outbound:
            if on_hand < payload.quantity:
                raise InsufficientStock(f"Insufficient stock (on_hand={on_hand})")
            mat.quantity = on_hand - payload.quantity
        else:
            mat.quantity = on_hand + payload.quantity

        mv = StockMovement(
            material_id=mat.id,
            direction=payload.direction,
            quantity=payload.quantity,
            reason=payload.reason.strip(),
            notes=payload.notes,
            actor_id=actor.actor_id,
        )
        db.add(mv)
        db.flush()
        result = (RawMaterialRead.model_validate(mat), StockMovementRead.model_validate(mv))

    invalidate_quietly(cache, [cache_keys.RAW_MATERIALS])
    logger.info(
        "Stock %s %s on material %s by %s",
        payload.direction.value,
        payload.quantity,
        payload.material_id,
        actor.actor_id,
    )
    return result


def list_movements(
    db: Session,
    *,
    actor: ActorCapabilities,
    material_id: int | None = None,
) -> list[StockMovementRead]:
    actor.require(Capability.view)

    stmt = select(StockMovement).order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    if material_id is not None:
        get_material_or_404(db, material_id)
        stmt = stmt.where(StockMovement.material_id == material_id)
    return [StockMovementRead.model_validate(m) for m in db.execute(stmt).scalars().all()]
