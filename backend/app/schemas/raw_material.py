from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, computed_field

from backend.app.db.models.core_types import MaterialType, MovementDirection


class RawMaterialCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    unit: str = Field(default="kg", min_length=1, max_length=32)
    quantity: Decimal = Field(default=Decimal("0"), ge=0)
    unit_cost: Decimal = Field(default=Decimal("0"), ge=0)
    min_quantity: Decimal = Field(default=Decimal("0"), ge=0)
    max_quantity: Decimal | None = Field(default=None, ge=0)
    reorder_point: Decimal | None = Field(default=None, ge=0)
    material_type: MaterialType = MaterialType.production
    location: str | None = Field(default=None, max_length=128)
    active: bool = True


class RawMaterialUpdate(BaseModel):
    # quantity / unit_cost absents : ils ne bougent que par mouvement de stock
    name: str | None = Field(default=None, min_length=1, max_length=255)
    unit: str | None = Field(default=None, min_length=1, max_length=32)
    min_quantity: Decimal | None = Field(default=None, ge=0)
    max_quantity: Decimal | None = Field(default=None, ge=0)
    reorder_point: Decimal | None = Field(default=None, ge=0)
    material_type: MaterialType | None = None
    location: str | None = Field(default=None, max_length=128)
    active: bool | None = None


class RawMaterialRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    unit: str
    quantity: Decimal
    min_quantity: Decimal
    max_quantity: Decimal | None = None
    reorder_point: Decimal | None = None
    unit_cost: Decimal  # READ ONLY : coût moyen pondéré, écrit par la valorisation
    material_type: MaterialType
    location: str | None = None
    active: bool

    @computed_field
    @property
    def total_value(self) -> Decimal:
        return (self.quantity * self.unit_cost).quantize(Decimal("0.01"))

    @computed_field
    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_quantity


class StockAdjustment(BaseModel):
    material_id: int
    direction: MovementDirection
    quantity: Decimal
    reason: str = ""
    notes: str | None = None


class StockMovementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    material_id: int
    direction: MovementDirection
    quantity: Decimal
    reason: str
    notes: str | None = None
    purchase_order_id: int | None = None
    actor_id: str
    created_at: datetime
