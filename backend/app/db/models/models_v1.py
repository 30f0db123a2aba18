from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    Index,
    CheckConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.db.base import Base, BigIntPK, utcnow
from backend.app.db.models.core_types import (
    POStatus,
    POPriority,
    MaterialType,
    MovementDirection,
)


def _enum(enum_cls, name: str) -> Enum:
    # stocke les valeurs ("DRAFT"), pas les noms python
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


po_status_enum = _enum(POStatus, "po_status")


# ---------- MASTER DATA ----------
class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    contact_person: Mapped[str | None] = mapped_column(String(200))
    phone: Mapped[str | None] = mapped_column(String(64))
    email: Mapped[str | None] = mapped_column(String(255))
    address: Mapped[str | None] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # montant dû au fournisseur
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    credit_limit: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    # agrégat dérivé : SUM(total_amount) des PO EXECUTED, recalculé, jamais incrémenté
    total_purchases: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("total_purchases >= 0", name="ck_supplier_total_purchases_nonneg"),
    )


class RawMaterial(Base):
    __tablename__ = "raw_materials"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    unit: Mapped[str] = mapped_column(String(32), default="kg", nullable=False)

    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), default=0, nullable=False)
    min_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), default=0, nullable=False)
    max_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))
    reorder_point: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))
    # coût moyen pondéré
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0, nullable=False)

    material_type: Mapped[MaterialType] = mapped_column(
        _enum(MaterialType, "material_type"),
        default=MaterialType.production,
        nullable=False,
    )
    location: Mapped[str | None] = mapped_column(String(128))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_raw_material_qty_nonneg"),
        CheckConstraint("unit_cost >= 0", name="ck_raw_material_cost_nonneg"),
        CheckConstraint("min_quantity >= 0", name="ck_raw_material_min_nonneg"),
    )


# ---------- PROCUREMENT ----------
class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False)
    status: Mapped[POStatus] = mapped_column(po_status_enum, default=POStatus.draft, nullable=False)

    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(21, 7), default=0, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)

    priority: Mapped[POPriority] = mapped_column(
        _enum(POPriority, "po_priority"),
        default=POPriority.normal,
        nullable=False,
    )
    payment_terms: Mapped[str | None] = mapped_column(String(128))
    delivery_address: Mapped[str | None] = mapped_column(Text)
    order_date: Mapped[date | None] = mapped_column(Date)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date)
    actual_delivery_date: Mapped[date | None] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(Text)

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
    approved_by: Mapped[str | None] = mapped_column(String(64))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    executed_by: Mapped[str | None] = mapped_column(String(64))
    executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_by: Mapped[str | None] = mapped_column(String(64))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancel_reason: Mapped[str | None] = mapped_column(Text)
    # statut au moment de l'annulation, utilisé par restore
    status_before_cancel: Mapped[POStatus | None] = mapped_column(po_status_enum)

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    supplier: Mapped[Supplier] = relationship()
    items: Mapped[list["PurchaseOrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )
    events: Mapped[list["PurchaseOrderEvent"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderEvent.id",
    )

    @property
    def items_count(self) -> int:
        return len(self.items)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("subtotal_amount >= 0", name="ck_po_subtotal_nonneg"),
        CheckConstraint("tax_amount >= 0", name="ck_po_tax_nonneg"),
        CheckConstraint("total_amount >= 0", name="ck_po_total_nonneg"),
        Index("ix_purchase_orders_status", "status"),
        Index("ix_purchase_orders_supplier_created", "supplier_id", "created_at"),
        Index("ix_purchase_orders_created_at", "created_at"),
    )


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    material_id: Mapped[int] = mapped_column(ForeignKey("raw_materials.id", ondelete="RESTRICT"), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(21, 7), nullable=False)
    # renseigné à l'exécution uniquement
    received_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))

    order: Mapped[PurchaseOrder] = relationship(back_populates="items")
    material: Mapped[RawMaterial] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_po_item_qty_pos"),
        CheckConstraint("unit_price > 0", name="ck_po_item_unit_price_pos"),
        CheckConstraint("received_quantity IS NULL OR received_quantity >= 0", name="ck_po_item_received_nonneg"),
    )


class PurchaseOrderEvent(Base):
    """Historique append-only des transitions de statut d'un PO."""

    __tablename__ = "purchase_order_events"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status: Mapped[POStatus | None] = mapped_column(po_status_enum)
    to_status: Mapped[POStatus] = mapped_column(po_status_enum, nullable=False)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    order: Mapped[PurchaseOrder] = relationship(back_populates="events")


# ---------- INVENTORY ----------
class StockMovement(Base):
    __tablename__ = "stock_movements"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    material_id: Mapped[int] = mapped_column(
        ForeignKey("raw_materials.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    direction: Mapped[MovementDirection] = mapped_column(
        _enum(MovementDirection, "movement_direction"),
        nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    purchase_order_id: Mapped[int | None] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        index=True,
    )
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
        Index("ix_stock_movements_material_time", "material_id", "created_at"),
    )


@event.listens_for(StockMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise RuntimeError(f"stock movement {target.id} is immutable")


@event.listens_for(StockMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise RuntimeError(f"stock movement {target.id} is immutable")
