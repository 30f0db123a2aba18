from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.config import settings
from backend.app.db.models.core_types import POStatus
from backend.app.db.models.models_v1 import PurchaseOrder, Supplier
from backend.app.schemas.supplier import SupplierCreate, SupplierRead, SupplierUpdate
from backend.services import cache as cache_keys
from backend.services.cache import CacheBackend, cached_get, cached_set, invalidate_quietly, make_key
from backend.services.capabilities import ActorCapabilities, Capability
from backend.services.errors import InactiveSupplier, InvalidInput, NotFound
from backend.services.unit_of_work import atomic

logger = logging.getLogger(__name__)

# colonnes NOT NULL : un null explicite est refusé
REQUIRED_FIELDS = ("name", "active")


def get_supplier_or_404(db: Session, supplier_id: int) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFound(f"Supplier {supplier_id} not found")
    return supplier


def get_active_supplier(db: Session, supplier_id: int) -> Supplier:
    supplier = get_supplier_or_404(db, supplier_id)
    if not supplier.active:
        raise InactiveSupplier(f"Supplier {supplier.name} is inactive")
    return supplier


def add_to_balance(db: Session, supplier_id: int, amount: Decimal) -> Supplier:
    supplier = (
        db.execute(select(Supplier).where(Supplier.id == supplier_id).with_for_update())
        .scalar_one_or_none()
    )
    if supplier is None:
        raise NotFound(f"Supplier {supplier_id} not found")
    supplier.balance = (supplier.balance or Decimal("0")) + amount
    return supplier


def rebuild_total_purchases(db: Session, supplier_id: int) -> Decimal:
    """
    Rebuild total_purchases à partir des PO.

    Règle métier :
        total_purchases = SUM(total_amount des PO EXECUTED)

    Propriétés :
    - déterministe
    - idempotent
    - transaction-safe
    - verrouillage SQL (FOR UPDATE)

    Les modifications en attente doivent être flushées avant l'appel
    (session en autoflush=False).
    """
    supplier = (
        db.execute(select(Supplier).where(Supplier.id == supplier_id).with_for_update())
        .scalar_one_or_none()
    )
    if supplier is None:
        raise NotFound(f"Supplier {supplier_id} not found")

    total = db.execute(
        select(func.coalesce(func.sum(PurchaseOrder.total_amount), 0))
        .where(PurchaseOrder.supplier_id == supplier_id)
        .where(PurchaseOrder.status == POStatus.executed)
    ).scalar_one()

    supplier.total_purchases = Decimal(str(total))
    return supplier.total_purchases


def create_supplier(
    db: Session,
    payload: SupplierCreate,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> SupplierRead:
    actor.require(Capability.manage_master_data)

    with atomic(db):
        exists = db.execute(select(Supplier).where(Supplier.name == payload.name)).scalar_one_or_none()
        if exists:
            raise InvalidInput("Supplier already exists")

        s = Supplier(
            name=payload.name,
            contact_person=payload.contact_person,
            phone=payload.phone,
            email=payload.email,
            address=payload.address,
            credit_limit=payload.credit_limit,
            active=payload.active,
            balance=Decimal("0"),
            total_purchases=Decimal("0"),
        )
        db.add(s)
        db.flush()
        result = SupplierRead.model_validate(s)

    invalidate_quietly(cache, [cache_keys.SUPPLIERS])
    logger.info("Supplier %s created (id=%s) by %s", result.name, result.id, actor.actor_id)
    return result


def list_suppliers(
    db: Session,
    *,
    actor: ActorCapabilities,
    active_only: bool = False,
    cache: CacheBackend | None = None,
) -> list[SupplierRead]:
    actor.require(Capability.view)

    key = make_key(cache_keys.SUPPLIERS, "list", "active" if active_only else "all")
    hit = cached_get(cache, key)
    if hit is not None:
        return [SupplierRead.model_validate(r) for r in hit]

    stmt = select(Supplier).order_by(Supplier.name)
    if active_only:
        stmt = stmt.where(Supplier.active.is_(True))
    result = [SupplierRead.model_validate(s) for s in db.execute(stmt).scalars().all()]

    cached_set(cache, key, [r.model_dump(mode="json") for r in result], settings.ORDER_LIST_CACHE_TTL)
    return result


def get_supplier(db: Session, supplier_id: int, *, actor: ActorCapabilities) -> SupplierRead:
    actor.require(Capability.view)
    return SupplierRead.model_validate(get_supplier_or_404(db, supplier_id))


def update_supplier(
    db: Session,
    supplier_id: int,
    payload: SupplierUpdate,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> SupplierRead:
    """
    Fiche fournisseur : coordonnées, plafond de crédit, activation.

    balance et total_purchases restent hors de portée (écrits par l'exécution).
    Les PO embarquent le résumé fournisseur : leur cache est aussi invalidé.
    """
    actor.require(Capability.manage_master_data)
    changes = payload.model_dump(exclude_unset=True)
    for name in REQUIRED_FIELDS:
        if name in changes and changes[name] is None:
            raise InvalidInput(f"{name} cannot be null")

    with atomic(db):
        supplier = (
            db.execute(select(Supplier).where(Supplier.id == supplier_id).with_for_update())
            .scalar_one_or_none()
        )
        if supplier is None:
            raise NotFound(f"Supplier {supplier_id} not found")

        new_name = changes.get("name")
        if new_name is not None and new_name != supplier.name:
            clash = db.execute(
                select(Supplier.id).where(Supplier.name == new_name, Supplier.id != supplier_id)
            ).first()
            if clash is not None:
                raise InvalidInput("Supplier already exists")

        for name, value in changes.items():
            setattr(supplier, name, value)
        db.flush()
        result = SupplierRead.model_validate(supplier)

    invalidate_quietly(cache, [cache_keys.SUPPLIERS, cache_keys.PURCHASE_ORDERS])
    logger.info("Supplier %s updated by %s (%s)", supplier_id, actor.actor_id, ", ".join(sorted(changes)))
    return result
