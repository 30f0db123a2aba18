"""
Order repository.

Accès aux PO et à leurs lignes : lecture (avec ou sans verrou),
numérotation mensuelle, construction / remplacement des lignes,
totaux, journal des transitions.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session, selectinload

from backend.app.db.base import utcnow
from backend.app.db.models.core_types import POStatus
from backend.app.db.models.models_v1 import (
    PurchaseOrder,
    PurchaseOrderEvent,
    PurchaseOrderItem,
    RawMaterial,
    Supplier,
)
from backend.app.schemas.purchase_order import OrderFilters, POItemIn
from backend.services.errors import InvalidInput, NotFound

CENT = Decimal("0.01")
# quantité (3 décimales) x prix (4 décimales) : exact à 7 décimales
LINE_QUANTUM = Decimal("0.0000001")
ORDER_NUMBER_PREFIX = "PO"


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return (Decimal(quantity) * Decimal(unit_price)).quantize(LINE_QUANTUM, rounding=ROUND_HALF_UP)


def _with_details(stmt: Select) -> Select:
    return stmt.options(
        selectinload(PurchaseOrder.supplier),
        selectinload(PurchaseOrder.items).selectinload(PurchaseOrderItem.material),
    )


def get_order_or_404(db: Session, order_id: int) -> PurchaseOrder:
    order = db.execute(_with_details(select(PurchaseOrder).where(PurchaseOrder.id == order_id))).scalar_one_or_none()
    if order is None:
        raise NotFound(f"Purchase order {order_id} not found")
    return order


def get_order_for_update(db: Session, order_id: int) -> PurchaseOrder:
    """
    Relit le PO verrouillé (FOR UPDATE) et écrase l'état en session.

    Le statut vu ici est celui de la base, pas celui d'une lecture antérieure.
    """
    order = (
        db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .first()
    )
    if order is None:
        raise NotFound(f"Purchase order {order_id} not found")
    return order


def format_order_number(year: int, month: int, seq: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}-{year:04d}-{month:02d}-{seq:04d}"


def next_order_number(db: Session, now: datetime | None = None) -> str:
    """
    PO-YYYY-MM-NNNN : nombre de PO du mois + 1.

    Si le numéro existe déjà (suppression, collision), on avance jusqu'au
    premier libre. La contrainte UNIQUE reste le garde-fou final.
    """
    now = now or utcnow()
    month_prefix = f"{ORDER_NUMBER_PREFIX}-{now.year:04d}-{now.month:02d}-"

    count = db.execute(
        select(func.count(PurchaseOrder.id)).where(PurchaseOrder.order_number.like(month_prefix + "%"))
    ).scalar_one()

    seq = int(count) + 1
    while True:
        candidate = format_order_number(now.year, now.month, seq)
        taken = db.execute(
            select(PurchaseOrder.id).where(PurchaseOrder.order_number == candidate)
        ).first()
        if taken is None:
            return candidate
        seq += 1


def build_items(db: Session, items: Iterable[POItemIn]) -> list[PurchaseOrderItem]:
    """Valide les lignes puis construit les PurchaseOrderItem (sans les ajouter)."""
    items = list(items)
    if not items:
        raise InvalidInput("At least one item is required")

    material_ids = {int(it.material_id) for it in items}
    found = set(
        db.execute(select(RawMaterial.id).where(RawMaterial.id.in_(material_ids))).scalars().all()
    )

    built: list[PurchaseOrderItem] = []
    for idx, it in enumerate(items, start=1):
        if it.quantity is None or it.quantity <= 0:
            raise InvalidInput(f"Item {idx}: quantity must be greater than 0")
        if it.unit_price is None or it.unit_price <= 0:
            raise InvalidInput(f"Item {idx}: unit price must be greater than 0")
        if it.material_id not in found:
            raise InvalidInput(f"Item {idx}: raw material {it.material_id} does not exist")

        built.append(
            PurchaseOrderItem(
                material_id=it.material_id,
                quantity=it.quantity,
                unit_price=it.unit_price,
                total_price=line_total(it.quantity, it.unit_price),
            )
        )
    return built


def copy_items(items: Iterable[PurchaseOrderItem]) -> list[PurchaseOrderItem]:
    return [
        PurchaseOrderItem(
            material_id=it.material_id,
            quantity=it.quantity,
            unit_price=it.unit_price,
            total_price=line_total(it.quantity, it.unit_price),
        )
        for it in items
    ]


def apply_totals(order: PurchaseOrder, items: Iterable[PurchaseOrderItem], tax_amount: Decimal) -> None:
    # subtotal = somme exacte des lignes, seul le total est arrondi au centime
    subtotal = sum((line_total(it.quantity, it.unit_price) for it in items), Decimal("0"))
    order.subtotal_amount = subtotal
    order.tax_amount = money(tax_amount)
    order.total_amount = money(subtotal + order.tax_amount)


def replace_items(order: PurchaseOrder, items: list[PurchaseOrderItem]) -> None:
    """Remplacement complet : les anciennes lignes partent en delete-orphan."""
    order.items = items
    apply_totals(order, items, order.tax_amount or Decimal("0"))


def record_event(
    order: PurchaseOrder,
    *,
    from_status: POStatus | None,
    to_status: POStatus,
    actor_id: str,
    reason: str | None = None,
) -> PurchaseOrderEvent:
    ev = PurchaseOrderEvent(
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        reason=reason,
    )
    order.events.append(ev)
    return ev


def append_note(order: PurchaseOrder, label: str, text: str | None) -> None:
    if not text:
        return
    line = f"{label}: {text}"
    order.notes = f"{order.notes}\n{line}" if order.notes else line


def filtered_query(filters: OrderFilters) -> Select:
    stmt = select(PurchaseOrder)
    if filters.search:
        pattern = f"%{filters.search.lower()}%"
        stmt = stmt.join(Supplier, Supplier.id == PurchaseOrder.supplier_id).where(
            or_(
                func.lower(PurchaseOrder.order_number).like(pattern),
                func.lower(Supplier.name).like(pattern),
            )
        )
    if filters.status is not None:
        stmt = stmt.where(PurchaseOrder.status == filters.status)
    if filters.supplier_id is not None:
        stmt = stmt.where(PurchaseOrder.supplier_id == filters.supplier_id)
    return stmt


def count_orders(db: Session, filters: OrderFilters) -> int:
    sub = filtered_query(filters).with_only_columns(PurchaseOrder.id).subquery()
    return int(db.execute(select(func.count()).select_from(sub)).scalar_one())


def page_orders(db: Session, filters: OrderFilters, *, page: int, limit: int) -> list[PurchaseOrder]:
    stmt = (
        _with_details(filtered_query(filters))
        .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())
