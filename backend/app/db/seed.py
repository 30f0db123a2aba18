from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import RawMaterial, Supplier
from backend.app.db.models.core_types import MaterialType


DEMO_MATERIALS = [
    ("Farine T55", "kg", MaterialType.production, Decimal("500"), Decimal("100"), Decimal("0.85")),
    ("Sucre blanc", "kg", MaterialType.production, Decimal("200"), Decimal("50"), Decimal("1.10")),
    ("Carton 30x20", "unit", MaterialType.packaging, Decimal("1000"), Decimal("250"), Decimal("0.32")),
]


def run_seed():
    db = SessionLocal()
    try:
        # 1) Fournisseur de démo
        supplier = db.scalar(select(Supplier).where(Supplier.name == "Fournisseur Demo"))
        if not supplier:
            supplier = Supplier(
                name="Fournisseur Demo",
                contact_person="Service achats",
                phone="+689 40 00 00 00",
                active=True,
                balance=Decimal("0"),
                total_purchases=Decimal("0"),
            )
            db.add(supplier)
            db.commit()

        # 2) Matières premières
        for name, unit, mtype, qty, min_qty, cost in DEMO_MATERIALS:
            if db.scalar(select(RawMaterial).where(RawMaterial.name == name)):
                continue
            db.add(
                RawMaterial(
                    name=name,
                    unit=unit,
                    material_type=mtype,
                    quantity=qty,
                    min_quantity=min_qty,
                    unit_cost=cost,
                    active=True,
                )
            )
        db.commit()

        print(f"SEED OK: supplier={supplier.name}, materials={len(DEMO_MATERIALS)}")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
