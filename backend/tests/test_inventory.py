from decimal import Decimal

import pytest
from sqlalchemy import select

from backend.app.db.models.core_types import MaterialType, MovementDirection
from backend.app.db.models.models_v1 import RawMaterial, StockMovement
from backend.app.schemas.raw_material import RawMaterialCreate, StockAdjustment
from backend.services import inventory
from backend.services.capabilities import ActorCapabilities
from backend.services.errors import InsufficientStock, InvalidInput, InvalidQuantity, NotFound, PermissionDenied


@pytest.fixture
def storekeeper() -> ActorCapabilities:
    return ActorCapabilities.for_role("sam", "storekeeper")


def _adjust(direction, quantity, material_id, reason="inventaire"):
    return StockAdjustment(
        material_id=material_id,
        direction=direction,
        quantity=Decimal(quantity),
        reason=reason,
    )


def test_adjust_in_and_out_keep_cost(db_session, storekeeper, flour):
    mat, mv = inventory.adjust_stock(db_session, _adjust(MovementDirection.inbound, "5", flour.id), actor=storekeeper)
    assert mat.quantity == Decimal("105")
    assert mat.unit_cost == Decimal("10")
    assert mv.direction == MovementDirection.inbound
    assert mv.actor_id == "sam"
    assert mv.purchase_order_id is None

    mat, _ = inventory.adjust_stock(db_session, _adjust(MovementDirection.outbound, "105", flour.id), actor=storekeeper)
    assert mat.quantity == Decimal("0")
    assert mat.unit_cost == Decimal("10")


def test_adjust_out_beyond_stock_is_refused(db_session, storekeeper, sugar):
    with pytest.raises(InsufficientStock) as exc:
        inventory.adjust_stock(db_session, _adjust(MovementDirection.outbound, "21", sugar.id), actor=storekeeper)

    assert isinstance(exc.value, InvalidQuantity)
    assert db_session.get(RawMaterial, sugar.id).quantity == Decimal("20")
    assert db_session.execute(select(StockMovement)).first() is None


@pytest.mark.parametrize("quantity", ["0", "-3"])
def test_adjust_requires_positive_quantity(db_session, storekeeper, sugar, quantity):
    with pytest.raises(InvalidQuantity):
        inventory.adjust_stock(db_session, _adjust(MovementDirection.inbound, quantity, sugar.id), actor=storekeeper)


def test_adjust_requires_reason_and_known_material(db_session, storekeeper, sugar):
    with pytest.raises(InvalidInput):
        inventory.adjust_stock(
            db_session, _adjust(MovementDirection.inbound, "1", sugar.id, reason=" "), actor=storekeeper
        )
    with pytest.raises(NotFound):
        inventory.adjust_stock(db_session, _adjust(MovementDirection.inbound, "1", 123_456), actor=storekeeper)


def test_adjust_requires_capability(db_session, viewer, sugar):
    with pytest.raises(PermissionDenied):
        inventory.adjust_stock(db_session, _adjust(MovementDirection.inbound, "1", sugar.id), actor=viewer)


def test_stock_movements_are_immutable(db_session, storekeeper, sugar):
    _, created = inventory.adjust_stock(db_session, _adjust(MovementDirection.inbound, "1", sugar.id), actor=storekeeper)
    mv = db_session.get(StockMovement, created.id)

    mv.notes = "réécrit"
    with pytest.raises(RuntimeError):
        db_session.flush()
    db_session.rollback()

    mv = db_session.get(StockMovement, created.id)
    db_session.delete(mv)
    with pytest.raises(RuntimeError):
        db_session.flush()
    db_session.rollback()

    assert db_session.get(StockMovement, created.id).notes is None


def test_low_stock_lists_active_materials_under_threshold(db_session, alice, make_material):
    make_material("Beurre", quantity="5", min_quantity="10")
    make_material("Oeufs", quantity="10", min_quantity="10")
    make_material("Lait", quantity="50", min_quantity="10")
    make_material("Ancien", quantity="0", min_quantity="10", active=False)

    low = inventory.list_low_stock_materials(db_session, actor=alice)

    assert [m.name for m in low] == ["Beurre", "Oeufs"]
    assert all(m.is_low_stock for m in low)


def test_list_movements_newest_first(db_session, storekeeper, flour, sugar):
    inventory.adjust_stock(db_session, _adjust(MovementDirection.inbound, "1", flour.id), actor=storekeeper)
    inventory.adjust_stock(db_session, _adjust(MovementDirection.inbound, "2", sugar.id), actor=storekeeper)
    inventory.adjust_stock(db_session, _adjust(MovementDirection.outbound, "3", flour.id), actor=storekeeper)

    flour_moves = inventory.list_movements(db_session, actor=storekeeper, material_id=flour.id)
    assert [m.quantity for m in flour_moves] == [Decimal("3"), Decimal("1")]
    assert len(inventory.list_movements(db_session, actor=storekeeper)) == 3

    with pytest.raises(NotFound):
        inventory.list_movements(db_session, actor=storekeeper, material_id=999)


def test_create_material_and_list_by_type(db_session, alice):
    created = inventory.create_material(
        db_session,
        RawMaterialCreate(name="Film étirable", unit="roll", material_type=MaterialType.packaging),
        actor=alice,
    )
    assert created.id is not None
    assert created.total_value == Decimal("0.00")

    with pytest.raises(InvalidInput):
        inventory.create_material(db_session, RawMaterialCreate(name="Film étirable"), actor=alice)

    packaging = inventory.list_materials(db_session, actor=alice, material_type=MaterialType.packaging)
    assert [m.name for m in packaging] == ["Film étirable"]
