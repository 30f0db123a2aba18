from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from backend.app.config import settings
from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import Base, RawMaterial, Supplier
from backend.app.db.models.core_types import MaterialType
from backend.app.schemas.purchase_order import POCreate, POItemIn
from backend.services import procurement
from backend.services.cache import InMemoryCache
from backend.services.capabilities import ActorCapabilities


def _sqlite_engine():
    return create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Session DB isolée par test.

    - par défaut : SQLite en mémoire, schéma recréé à chaque test
    - TEST_DATABASE_URL (Postgres) : transaction englobante + SAVEPOINT,
      TOUT est rollback à la fin du test, même après commit().
    """
    if settings.TEST_DATABASE_URL:
        engine = create_engine(settings.TEST_DATABASE_URL, pool_pre_ping=True)
        Base.metadata.create_all(bind=engine)

        connection = engine.connect()
        transaction = connection.begin()
        session = SessionLocal(bind=connection, join_transaction_mode="create_savepoint")
        try:
            yield session
        finally:
            session.close()
            transaction.rollback()
            connection.close()
            engine.dispose()
        return

    engine = _sqlite_engine()
    Base.metadata.create_all(bind=engine)
    session = SessionLocal(bind=engine)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


# ---------- Acteurs ----------
@pytest.fixture
def alice() -> ActorCapabilities:
    return ActorCapabilities.for_role("alice", "admin")


@pytest.fixture
def bob() -> ActorCapabilities:
    return ActorCapabilities.for_role("bob", "admin")


@pytest.fixture
def viewer() -> ActorCapabilities:
    return ActorCapabilities.for_role("victor", "viewer")


# ---------- Master data ----------
@pytest.fixture
def make_supplier(db_session):
    def _make(name: str = "ACME Farine", active: bool = True) -> Supplier:
        s = Supplier(name=name, active=active, balance=Decimal("0"), total_purchases=Decimal("0"))
        db_session.add(s)
        db_session.commit()
        return s

    return _make


@pytest.fixture
def make_material(db_session):
    def _make(
        name: str,
        quantity: str = "0",
        unit_cost: str = "0",
        min_quantity: str = "0",
        active: bool = True,
    ) -> RawMaterial:
        m = RawMaterial(
            name=name,
            unit="kg",
            quantity=Decimal(quantity),
            unit_cost=Decimal(unit_cost),
            min_quantity=Decimal(min_quantity),
            material_type=MaterialType.production,
            active=active,
        )
        db_session.add(m)
        db_session.commit()
        return m

    return _make


@pytest.fixture
def supplier(make_supplier) -> Supplier:
    return make_supplier()


@pytest.fixture
def flour(make_material) -> RawMaterial:
    return make_material("Farine", quantity="100", unit_cost="10")


@pytest.fixture
def sugar(make_material) -> RawMaterial:
    return make_material("Sucre", quantity="20", unit_cost="2")


@pytest.fixture
def make_order(db_session, alice, supplier):
    """Crée un PO DRAFT ; lignes = [(material, quantity, unit_price), ...]."""

    def _make(lines, *, actor=None, supplier_id=None, tax="0", **kwargs):
        payload = POCreate(
            supplier_id=supplier_id or supplier.id,
            items=[
                POItemIn(material_id=m.id, quantity=Decimal(q), unit_price=Decimal(p))
                for m, q, p in lines
            ],
            tax_amount=Decimal(tax),
            **kwargs,
        )
        return procurement.create_order(db_session, payload, actor=actor or alice)

    return _make
