"""procurement core schema

Revision ID: 0001_procurement_core
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_procurement_core"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PO_STATUS = ("DRAFT", "PENDING", "APPROVED", "EXECUTED", "CANCELLED", "REJECTED")
PO_PRIORITY = ("LOW", "NORMAL", "HIGH", "URGENT")
MATERIAL_TYPE = ("PRODUCTION", "PACKAGING")
MOVEMENT_DIRECTION = ("IN", "OUT")


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    po_status = sa.Enum(*PO_STATUS, name="po_status")
    # type déjà créé avec purchase_orders
    po_status_ref = postgresql.ENUM(*PO_STATUS, name="po_status", create_type=False)

    op.create_table(
        "suppliers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("contact_person", sa.String(200)),
        sa.Column("phone", sa.String(64)),
        sa.Column("email", sa.String(255)),
        sa.Column("address", sa.Text()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("balance", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("credit_limit", sa.Numeric(14, 2)),
        sa.Column("total_purchases", sa.Numeric(14, 2), nullable=False, server_default="0"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("total_purchases >= 0", name="ck_supplier_total_purchases_nonneg"),
    )

    op.create_table(
        "raw_materials",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("unit", sa.String(32), nullable=False, server_default="kg"),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("min_quantity", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("max_quantity", sa.Numeric(14, 3)),
        sa.Column("reorder_point", sa.Numeric(14, 3)),
        sa.Column("unit_cost", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column(
            "material_type",
            sa.Enum(*MATERIAL_TYPE, name="material_type"),
            nullable=False,
            server_default="PRODUCTION",
        ),
        sa.Column("location", sa.String(128)),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("quantity >= 0", name="ck_raw_material_qty_nonneg"),
        sa.CheckConstraint("unit_cost >= 0", name="ck_raw_material_cost_nonneg"),
        sa.CheckConstraint("min_quantity >= 0", name="ck_raw_material_min_nonneg"),
    )

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("order_number", sa.String(64), nullable=False, unique=True),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", po_status, nullable=False, server_default="DRAFT"),
        sa.Column("subtotal_amount", sa.Numeric(21, 7), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column(
            "priority",
            sa.Enum(*PO_PRIORITY, name="po_priority"),
            nullable=False,
            server_default="NORMAL",
        ),
        sa.Column("payment_terms", sa.String(128)),
        sa.Column("delivery_address", sa.Text()),
        sa.Column("order_date", sa.Date()),
        sa.Column("expected_delivery_date", sa.Date()),
        sa.Column("actual_delivery_date", sa.Date()),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(64), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.Column("approved_by", sa.String(64)),
        _ts("approved_at", nullable=True),
        sa.Column("executed_by", sa.String(64)),
        _ts("executed_at", nullable=True),
        sa.Column("cancelled_by", sa.String(64)),
        _ts("cancelled_at", nullable=True),
        sa.Column("cancel_reason", sa.Text()),
        sa.Column("status_before_cancel", po_status),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("subtotal_amount >= 0", name="ck_po_subtotal_nonneg"),
        sa.CheckConstraint("tax_amount >= 0", name="ck_po_tax_nonneg"),
        sa.CheckConstraint("total_amount >= 0", name="ck_po_total_nonneg"),
    )
    op.create_index("ix_purchase_orders_status", "purchase_orders", ["status"])
    op.create_index("ix_purchase_orders_supplier_created", "purchase_orders", ["supplier_id", "created_at"])
    op.create_index("ix_purchase_orders_created_at", "purchase_orders", ["created_at"])

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "purchase_order_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("material_id", sa.BigInteger(), sa.ForeignKey("raw_materials.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 4), nullable=False),
        sa.Column("total_price", sa.Numeric(21, 7), nullable=False),
        sa.Column("received_quantity", sa.Numeric(14, 3)),
        sa.CheckConstraint("quantity > 0", name="ck_po_item_qty_pos"),
        sa.CheckConstraint("unit_price > 0", name="ck_po_item_unit_price_pos"),
        sa.CheckConstraint(
            "received_quantity IS NULL OR received_quantity >= 0",
            name="ck_po_item_received_nonneg",
        ),
    )
    op.create_index("ix_purchase_order_items_purchase_order_id", "purchase_order_items", ["purchase_order_id"])

    op.create_table(
        "purchase_order_events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "purchase_order_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("from_status", po_status_ref),
        sa.Column("to_status", po_status_ref, nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("reason", sa.Text()),
        _ts("created_at"),
    )
    op.create_index("ix_purchase_order_events_purchase_order_id", "purchase_order_events", ["purchase_order_id"])

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("material_id", sa.BigInteger(), sa.ForeignKey("raw_materials.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "direction",
            sa.Enum(*MOVEMENT_DIRECTION, name="movement_direction"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "purchase_order_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        ),
        sa.Column("actor_id", sa.String(64), nullable=False),
        _ts("created_at"),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
    )
    op.create_index("ix_stock_movements_material_id", "stock_movements", ["material_id"])
    op.create_index("ix_stock_movements_purchase_order_id", "stock_movements", ["purchase_order_id"])
    op.create_index("ix_stock_movements_material_time", "stock_movements", ["material_id", "created_at"])


def downgrade() -> None:
    op.drop_table("stock_movements")
    op.drop_table("purchase_order_events")
    op.drop_table("purchase_order_items")
    op.drop_table("purchase_orders")
    op.drop_table("raw_materials")
    op.drop_table("suppliers")

    bind = op.get_bind()
    for enum_name in ("movement_direction", "po_priority", "po_status", "material_type"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
