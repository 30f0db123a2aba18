"""
Valorisation au coût moyen pondéré.

    total_qty = qty_en_stock + qty_reçue
    nouveau_coût = (qty_en_stock * coût + qty_reçue * prix_unitaire) / total_qty
                   (prix_unitaire si total_qty == 0)

Aucun commit ici : l'appelant (procurement.execute_order) porte la
transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.orm import Session

from backend.app.db.models.core_types import MovementDirection
from backend.app.db.models.models_v1 import PurchaseOrder, RawMaterial, StockMovement
from backend.services.inventory import lock_materials

logger = logging.getLogger(__name__)

COST_QUANTUM = Decimal("0.000001")
PURCHASE_ORDER_REASON = "purchase order"


def weighted_average_cost(
    on_hand: Decimal,
    current_cost: Decimal,
    received: Decimal,
    unit_price: Decimal,
) -> Decimal:
    total_qty = on_hand + received
    if total_qty > 0:
        cost = (on_hand * current_cost + received * unit_price) / total_qty
    else:
        cost = unit_price
    return Decimal(cost).quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass
class ReceiptOutcome:
    movements: list[StockMovement] = field(default_factory=list)
    materials: list[RawMaterial] = field(default_factory=list)
    items_received: int = 0
    quantity_received: Decimal = Decimal("0")


def apply_receipt(
    db: Session,
    order: PurchaseOrder,
    received: dict[int, Decimal],
    *,
    actor_id: str,
) -> ReceiptOutcome:
    """
    Entre en stock les quantités reçues d'un PO.

    `received` : item_id -> quantité effectivement reçue (déjà validée, >= 0).
    Les lignes à 0 ne produisent aucun mouvement et laissent le coût intact.
    """
    outcome = ReceiptOutcome()

    material_ids = [it.material_id for it in order.items if received.get(it.id, Decimal("0")) > 0]
    materials = lock_materials(db, material_ids)

    for item in order.items:
        qty = received.get(item.id, Decimal("0"))
        item.received_quantity = qty
        if qty <= 0:
            continue

        mat = materials[item.material_id]
        on_hand = Decimal(mat.quantity or 0)
        mat.unit_cost = weighted_average_cost(on_hand, Decimal(mat.unit_cost or 0), qty, Decimal(item.unit_price))
        mat.quantity = on_hand + qty

        mv = StockMovement(
            material_id=mat.id,
            direction=MovementDirection.inbound,
            quantity=qty,
            reason=PURCHASE_ORDER_REASON,
            notes=f"Receipt for purchase order {order.order_number}",
            purchase_order_id=order.id,
            actor_id=actor_id,
        )
        db.add(mv)
        outcome.movements.append(mv)
        outcome.items_received += 1
        outcome.quantity_received += qty

        logger.debug(
            "Material %s: qty %s -> %s, unit_cost -> %s",
            mat.id,
            on_hand,
            mat.quantity,
            mat.unit_cost,
        )

    outcome.materials = [materials[mid] for mid in sorted(materials)]
    return outcome
