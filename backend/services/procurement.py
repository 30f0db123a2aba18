"""
Procurement service.

Ce module orchestre le cycle de vie des PO :

    DRAFT -> PENDING -> APPROVED -> EXECUTED
      ^         |          |
      +---------+----------+   (reject)
    DRAFT | PENDING | APPROVED -> CANCELLED -> (restore) APPROVED | DRAFT

Chaque opération = une transaction (unit_of_work.atomic), chaque transition
= une ligne purchase_order_events. Les invalidations de cache sont faites
après commit, en best-effort.

Toute la logique stock est centralisée dans :
    backend.services.inventory / backend.services.valuation
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from backend.app.config import settings
from backend.app.db.base import utcnow
from backend.app.db.models.core_types import (
    POStatus,
    DuplicateItemPolicy,
    EDITABLE_STATUSES,
    SUBMITTABLE_STATUSES,
    APPROVABLE_STATUSES,
    REJECTABLE_STATUSES,
    EXECUTABLE_STATUSES,
    CANCELLABLE_STATUSES,
    RESTORABLE_STATUSES,
    DELETABLE_STATUSES,
)
from backend.app.db.models.models_v1 import PurchaseOrder
from backend.app.schemas.purchase_order import (
    ApproveRequest,
    CancelRequest,
    DuplicatedFrom,
    DuplicateRequest,
    DuplicateResult,
    ExecuteRequest,
    ExecutionResult,
    ExecutionSummary,
    OrderFilters,
    OrderNumberPreview,
    Pagination,
    POCreate,
    POPage,
    PORead,
    POSummary,
    POUpdate,
    RejectRequest,
    RestoreRequest,
    SubmitRequest,
)
from backend.app.schemas.raw_material import RawMaterialRead, StockMovementRead
from backend.services import cache as cache_keys
from backend.services import orders as repo
from backend.services.cache import CacheBackend, cached_get, cached_set, invalidate_quietly, make_key
from backend.services.capabilities import ActorCapabilities, Capability
from backend.services.errors import (
    EmptySource,
    InactiveSupplier,
    InvalidInput,
    InvalidQuantity,
    InvalidState,
    SelfApproval,
)
from backend.services.suppliers import add_to_balance, get_active_supplier, rebuild_total_purchases
from backend.services.unit_of_work import atomic
from backend.services.valuation import apply_receipt

logger = logging.getLogger(__name__)

ORDER_PREFIXES = (cache_keys.PURCHASE_ORDERS,)
SUPPLIER_TOTALS_PREFIXES = (cache_keys.PURCHASE_ORDERS, cache_keys.SUPPLIERS)
EXECUTION_PREFIXES = (cache_keys.PURCHASE_ORDERS, cache_keys.SUPPLIERS, cache_keys.RAW_MATERIALS)


# ---------- Helpers ----------
def _require_state(order: PurchaseOrder, allowed: frozenset[POStatus], action: str) -> None:
    if order.status not in allowed:
        raise InvalidState(f"Cannot {action} purchase order {order.order_number} in status {order.status.value}")


def _require_reason(reason: str | None, action: str) -> str:
    if not reason or not reason.strip():
        raise InvalidInput(f"A reason is required to {action} a purchase order")
    return reason.strip()


def _check_tax(tax_amount: Decimal | None) -> Decimal:
    tax = Decimal("0") if tax_amount is None else Decimal(tax_amount)
    if tax < 0:
        raise InvalidInput("Tax amount cannot be negative")
    return tax


def _read(db: Session, order_id: int) -> PORead:
    return PORead.model_validate(repo.get_order_or_404(db, order_id))


def _done(db: Session, order_id: int, cache: CacheBackend | None, prefixes: Iterable[str]) -> PORead:
    invalidate_quietly(cache, prefixes)
    return _read(db, order_id)


def _log_transition(order: PurchaseOrder, from_status: POStatus | None, actor: ActorCapabilities) -> None:
    logger.info(
        "PO %s: %s -> %s by %s",
        order.order_number,
        from_status.value if from_status else None,
        order.status.value,
        actor.actor_id,
    )


# ---------- Lecture ----------
def get_order(db: Session, order_id: int, *, actor: ActorCapabilities) -> PORead:
    actor.require(Capability.view)
    return _read(db, order_id)


def list_orders(
    db: Session,
    filters: OrderFilters,
    *,
    actor: ActorCapabilities,
    page: int = 1,
    limit: int | None = None,
    cache: CacheBackend | None = None,
) -> POPage:
    actor.require(Capability.view)

    page = max(int(page), 1)
    limit = limit or settings.DEFAULT_PAGE_SIZE
    limit = min(max(int(limit), 1), settings.MAX_PAGE_SIZE)

    key = make_key(
        cache_keys.PURCHASE_ORDER_LIST,
        page,
        limit,
        filters.search,
        filters.status.value if filters.status else None,
        filters.supplier_id,
    )
    hit = cached_get(cache, key)
    if hit is not None:
        return POPage.model_validate(hit)

    total = repo.count_orders(db, filters)
    rows = repo.page_orders(db, filters, page=page, limit=limit)
    result = POPage(
        purchase_orders=[POSummary.model_validate(o) for o in rows],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
        filters=filters,
    )

    cached_set(cache, key, result.model_dump(mode="json"), settings.ORDER_LIST_CACHE_TTL)
    return result


def generate_order_number(
    db: Session,
    *,
    actor: ActorCapabilities,
    now: datetime | None = None,
) -> OrderNumberPreview:
    """Aperçu du prochain numéro (non réservé)."""
    actor.require(Capability.create)
    return OrderNumberPreview(order_number=repo.next_order_number(db, now))


# ---------- Création / édition ----------
def create_order(
    db: Session,
    payload: POCreate,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
    now: datetime | None = None,
) -> PORead:
    actor.require(Capability.create)
    now = now or utcnow()

    with atomic(db):
        supplier = get_active_supplier(db, payload.supplier_id)
        items = repo.build_items(db, payload.items)
        tax = _check_tax(payload.tax_amount)

        order = PurchaseOrder(
            order_number=repo.next_order_number(db, now),
            supplier_id=supplier.id,
            status=POStatus.draft,
            priority=payload.priority,
            payment_terms=payload.payment_terms,
            delivery_address=payload.delivery_address,
            order_date=payload.order_date or now.date(),
            expected_delivery_date=payload.expected_delivery_date,
            notes=payload.notes,
            created_by=actor.actor_id,
        )
        order.items = items
        repo.apply_totals(order, items, tax)
        repo.record_event(order, from_status=None, to_status=POStatus.draft, actor_id=actor.actor_id)
        db.add(order)
        db.flush()
        order_id = order.id

    _log_transition(order, None, actor)
    return _done(db, order_id, cache, ORDER_PREFIXES)


def update_order(
    db: Session,
    order_id: int,
    payload: POUpdate,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> PORead:
    """
    Edition d'un PO DRAFT / PENDING.

    Seuls les champs fournis changent ; `items` (si fourni) remplace
    toutes les lignes.
    """
    actor.require(Capability.edit)
    fields = payload.model_fields_set

    with atomic(db):
        order = repo.get_order_for_update(db, order_id)
        _require_state(order, EDITABLE_STATUSES, "edit")

        if "supplier_id" in fields and payload.supplier_id is not None:
            order.supplier_id = get_active_supplier(db, payload.supplier_id).id

        for name in ("priority", "payment_terms", "delivery_address", "order_date", "expected_delivery_date", "notes"):
            if name in fields:
                value = getattr(payload, name)
                if name == "priority" and value is None:
                    continue
                setattr(order, name, value)

        tax = _check_tax(payload.tax_amount) if "tax_amount" in fields else Decimal(order.tax_amount or 0)

        if payload.items is not None:
            items = repo.build_items(db, payload.items)
            order.tax_amount = tax
            repo.replace_items(order, items)
        else:
            repo.apply_totals(order, order.items, tax)

        order.updated_at = utcnow()

    logger.info("PO %s edited by %s", order_id, actor.actor_id)
    return _done(db, order_id, cache, ORDER_PREFIXES)


def delete_order(
    db: Session,
    order_id: int,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> None:
    actor.require(Capability.delete)

    with atomic(db):
        order = repo.get_order_for_update(db, order_id)
        _require_state(order, DELETABLE_STATUSES, "delete")
        number = order.order_number
        # lignes et journal partent avant le parent (cascade delete-orphan)
        db.delete(order)

    invalidate_quietly(cache, ORDER_PREFIXES)
    logger.info("PO %s deleted by %s", number, actor.actor_id)


# ---------- Transitions ----------
def submit_order(
    db: Session,
    order_id: int,
    payload: SubmitRequest | None = None,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> PORead:
    actor.require(Capability.submit)
    notes = payload.notes if payload else None

    with atomic(db):
        order = repo.get_order_for_update(db, order_id)
        _require_state(order, SUBMITTABLE_STATUSES, "submit")

        previous = order.status
        order.status = POStatus.pending
        repo.append_note(order, "Submitted", notes)
        repo.record_event(order, from_status=previous, to_status=order.status, actor_id=actor.actor_id)

    _log_transition(order, previous, actor)
    return _done(db, order_id, cache, ORDER_PREFIXES)


def approve_order(
    db: Session,
    order_id: int,
    payload: ApproveRequest | None = None,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> PORead:
    actor.require(Capability.approve)
    notes = payload.notes if payload else None

    with atomic(db):
        order = repo.get_order_for_update(db, order_id)
        _require_state(order, APPROVABLE_STATUSES, "approve")

        if not order.supplier.active:
            raise InactiveSupplier(f"Supplier {order.supplier.name} is inactive")
        if actor.actor_id == order.created_by:
            raise SelfApproval("An order cannot be approved by its creator")

        previous = order.status
        order.status = POStatus.approved
        order.approved_by = actor.actor_id
        order.approved_at = utcnow()
        repo.append_note(order, "Approval", notes)
        repo.record_event(order, from_status=previous, to_status=order.status, actor_id=actor.actor_id)

    _log_transition(order, previous, actor)
    return _done(db, order_id, cache, ORDER_PREFIXES)


def reject_order(
    db: Session,
    order_id: int,
    payload: RejectRequest,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> PORead:
    """PENDING | APPROVED -> DRAFT, approbation effacée."""
    actor.require(Capability.approve)
    reason = _require_reason(payload.reason, "reject")

    with atomic(db):
        order = repo.get_order_for_update(db, order_id)
        _require_state(order, REJECTABLE_STATUSES, "reject")

        previous = order.status
        order.status = POStatus.draft
        order.approved_by = None
        order.approved_at = None
        repo.append_note(order, "Rejected", reason)
        repo.record_event(
            order,
            from_status=previous,
            to_status=order.status,
            actor_id=actor.actor_id,
            reason=reason,
        )

    _log_transition(order, previous, actor)
    return _done(db, order_id, cache, ORDER_PREFIXES)


def execute_order(
    db: Session,
    order_id: int,
    payload: ExecuteRequest,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> ExecutionResult:
    """
    APPROVED -> EXECUTED, en UNE transaction :
    statut + réception stock (coût moyen pondéré) + solde fournisseur
    + recalcul total_purchases.
    """
    actor.require(Capability.execute)
    if payload.actual_delivery_date is None:
        raise InvalidInput("actual_delivery_date is required to execute a purchase order")

    with atomic(db):
        order = repo.get_order_for_update(db, order_id)
        _require_state(order, EXECUTABLE_STATUSES, "execute")

        # ---------- QUANTITÉS REÇUES ----------
        received = {int(it.id): Decimal(it.quantity) for it in order.items}
        for ri in payload.received_items or []:
            if ri.item_id not in received:
                raise InvalidInput(f"Item {ri.item_id} does not belong to purchase order {order.order_number}")
            if ri.received_quantity is None or ri.received_quantity < 0:
                raise InvalidQuantity(f"Received quantity for item {ri.item_id} cannot be negative")
            received[ri.item_id] = Decimal(ri.received_quantity)

        # ---------- STOCK ----------
        outcome = apply_receipt(db, order, received, actor_id=actor.actor_id)

        # ---------- PO ----------
        previous = order.status
        order.status = POStatus.executed
        order.executed_by = actor.actor_id
        order.executed_at = utcnow()
        order.actual_delivery_date = payload.actual_delivery_date
        repo.append_note(order, "Execution", payload.notes)
        repo.record_event(order, from_status=previous, to_status=order.status, actor_id=actor.actor_id)

        # ---------- FOURNISSEUR ----------
        add_to_balance(db, order.supplier_id, order.total_amount)
        db.flush()
        rebuild_total_purchases(db, order.supplier_id)
        db.flush()

        movements = [StockMovementRead.model_validate(mv) for mv in outcome.movements]
        materials = [RawMaterialRead.model_validate(m) for m in outcome.materials]
        summary = ExecutionSummary(
            total_items_received=outcome.items_received,
            total_quantity_received=outcome.quantity_received,
            total_value=order.total_amount,
        )

    _log_transition(order, previous, actor)
    return ExecutionResult(
        order=_done(db, order_id, cache, EXECUTION_PREFIXES),
        stock_movements=movements,
        updated_materials=materials,
        summary=summary,
    )


def cancel_order(
    db: Session,
    order_id: int,
    payload: CancelRequest,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> PORead:
    actor.require(Capability.cancel)
    reason = _require_reason(payload.reason, "cancel")

    with atomic(db):
        order = repo.get_order_for_update(db, order_id)
        _require_state(order, CANCELLABLE_STATUSES, "cancel")

        previous = order.status
        order.status_before_cancel = previous
        order.status = POStatus.cancelled
        order.cancelled_at = utcnow()
        order.cancelled_by = actor.actor_id
        order.cancel_reason = reason
        repo.append_note(order, "Cancelled", reason)
        repo.append_note(order, "Note", payload.notes)
        repo.record_event(
            order,
            from_status=previous,
            to_status=order.status,
            actor_id=actor.actor_id,
            reason=reason,
        )

        db.flush()
        rebuild_total_purchases(db, order.supplier_id)

    _log_transition(order, previous, actor)
    return _done(db, order_id, cache, SUPPLIER_TOTALS_PREFIXES)


def restore_order(
    db: Session,
    order_id: int,
    payload: RestoreRequest | None = None,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
) -> PORead:
    """CANCELLED -> APPROVED si le PO était approuvé avant annulation, DRAFT sinon."""
    actor.require(Capability.restore)
    notes = payload.notes if payload else None

    with atomic(db):
        order = repo.get_order_for_update(db, order_id)
        _require_state(order, RESTORABLE_STATUSES, "restore")

        previous = order.status
        order.status = POStatus.approved if order.status_before_cancel == POStatus.approved else POStatus.draft
        order.status_before_cancel = None
        order.cancelled_at = None
        order.cancelled_by = None
        order.cancel_reason = None
        repo.append_note(order, "Restored", notes)
        repo.record_event(order, from_status=previous, to_status=order.status, actor_id=actor.actor_id)

        db.flush()
        rebuild_total_purchases(db, order.supplier_id)

    _log_transition(order, previous, actor)
    return _done(db, order_id, cache, SUPPLIER_TOTALS_PREFIXES)


def duplicate_order(
    db: Session,
    order_id: int,
    payload: DuplicateRequest,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
    now: datetime | None = None,
) -> DuplicateResult:
    """Copie n'importe quel PO en un nouveau DRAFT (nouveau numéro, nouvelles lignes)."""
    actor.require(Capability.create)
    now = now or utcnow()
    policy = payload.item_policy or DuplicateItemPolicy(settings.DUPLICATE_ITEM_POLICY)

    with atomic(db):
        source = repo.get_order_or_404(db, order_id)
        if not source.supplier.active:
            raise InactiveSupplier(f"Supplier {source.supplier.name} is inactive")

        source_items = list(source.items)
        if not payload.include_items:
            kept = []
        elif policy == DuplicateItemPolicy.active_materials:
            kept = [it for it in source_items if it.material.active]
        else:
            kept = source_items

        if payload.include_items and not kept:
            raise EmptySource(f"Purchase order {source.order_number} has no items to copy")

        label = f"Duplicated from {source.order_number}"
        copy = PurchaseOrder(
            order_number=repo.next_order_number(db, now),
            supplier_id=source.supplier_id,
            status=POStatus.draft,
            priority=source.priority,
            payment_terms=source.payment_terms,
            delivery_address=source.delivery_address,
            order_date=now.date(),
            expected_delivery_date=payload.new_expected_delivery_date or source.expected_delivery_date,
            notes=f"{label}\n\n{payload.notes}" if payload.notes else label,
            created_by=actor.actor_id,
        )
        items = repo.copy_items(kept)
        copy.items = items
        repo.apply_totals(copy, items, Decimal("0"))
        repo.record_event(
            copy,
            from_status=None,
            to_status=POStatus.draft,
            actor_id=actor.actor_id,
            reason=label,
        )
        db.add(copy)
        db.flush()
        copy_id = copy.id

        duplicated_from = DuplicatedFrom(
            id=source.id,
            order_number=source.order_number,
            items_included=payload.include_items,
            item_policy=policy,
            copied_items_count=len(items),
            original_items_count=len(source_items),
        )

    _log_transition(copy, None, actor)
    return DuplicateResult(order=_done(db, copy_id, cache, ORDER_PREFIXES), duplicated_from=duplicated_from)
