from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, computed_field

from backend.app.db.models.core_types import (
    POStatus,
    POPriority,
    DuplicateItemPolicy,
    EDITABLE_STATUSES,
    SUBMITTABLE_STATUSES,
    APPROVABLE_STATUSES,
    EXECUTABLE_STATUSES,
    CANCELLABLE_STATUSES,
    RESTORABLE_STATUSES,
    DELETABLE_STATUSES,
    OPEN_STATUSES,
)
from backend.app.schemas.raw_material import RawMaterialRead, StockMovementRead


# ---------- Payloads (entrée) ----------
# Pas de contraintes gt/ge ici : les règles métier (quantité > 0, prix > 0...)
# sont vérifiées par le moteur pour remonter une erreur typée.
class POItemIn(BaseModel):
    material_id: int
    quantity: Decimal
    unit_price: Decimal


class POCreate(BaseModel):
    supplier_id: int
    items: list[POItemIn] = Field(default_factory=list)
    tax_amount: Decimal = Decimal("0")
    priority: POPriority = POPriority.normal
    payment_terms: str | None = None
    delivery_address: str | None = None
    order_date: date | None = None
    expected_delivery_date: date | None = None
    notes: str | None = None


class POUpdate(BaseModel):
    """Seuls les champs explicitement fournis sont modifiés (model_fields_set)."""

    supplier_id: int | None = None
    tax_amount: Decimal | None = None
    priority: POPriority | None = None
    payment_terms: str | None = None
    delivery_address: str | None = None
    order_date: date | None = None
    expected_delivery_date: date | None = None
    notes: str | None = None
    # None = lignes inchangées ; liste = remplacement complet
    items: list[POItemIn] | None = None


class ApproveRequest(BaseModel):
    notes: str | None = None


class SubmitRequest(BaseModel):
    notes: str | None = None


class RejectRequest(BaseModel):
    reason: str = ""


class ReceivedItem(BaseModel):
    item_id: int
    received_quantity: Decimal


class ExecuteRequest(BaseModel):
    actual_delivery_date: date | None = None
    notes: str | None = None
    received_items: list[ReceivedItem] | None = None


class CancelRequest(BaseModel):
    reason: str = ""
    notes: str | None = None


class RestoreRequest(BaseModel):
    notes: str | None = None


class DuplicateRequest(BaseModel):
    include_items: bool = True
    new_expected_delivery_date: date | None = None
    notes: str | None = None
    # None = politique de la configuration
    item_policy: DuplicateItemPolicy | None = None


class OrderFilters(BaseModel):
    search: str | None = None
    status: POStatus | None = None
    supplier_id: int | None = None


# ---------- Read models (sortie) ----------
class SupplierRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    contact_person: str | None = None
    phone: str | None = None
    active: bool


class MaterialRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    unit: str


class POItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    material_id: int
    material: MaterialRef
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    received_quantity: Decimal | None = None


def _days_since(created_at: datetime) -> int:
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return (datetime.now(timezone.utc) - created_at).days


class _StatusFlags(BaseModel):
    """Drapeaux dérivés uniquement du statut courant."""

    status: POStatus

    @computed_field
    @property
    def can_edit(self) -> bool:
        return self.status in EDITABLE_STATUSES

    @computed_field
    @property
    def can_submit(self) -> bool:
        return self.status in SUBMITTABLE_STATUSES

    @computed_field
    @property
    def can_approve(self) -> bool:
        return self.status in APPROVABLE_STATUSES

    @computed_field
    @property
    def can_execute(self) -> bool:
        return self.status in EXECUTABLE_STATUSES

    @computed_field
    @property
    def can_cancel(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    @computed_field
    @property
    def can_restore(self) -> bool:
        return self.status in RESTORABLE_STATUSES

    @computed_field
    @property
    def can_delete(self) -> bool:
        return self.status in DELETABLE_STATUSES


class POSummary(_StatusFlags):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    supplier: SupplierRef
    total_amount: Decimal
    priority: POPriority
    expected_delivery_date: date | None = None
    actual_delivery_date: date | None = None
    notes: str | None = None
    created_by: str
    approved_by: str | None = None
    created_at: datetime
    updated_at: datetime
    items_count: int = 0

    @computed_field
    @property
    def is_overdue(self) -> bool:
        return (
            self.expected_delivery_date is not None
            and self.status in OPEN_STATUSES
            and self.expected_delivery_date < date.today()
        )

    @computed_field
    @property
    def days_since_created(self) -> int:
        return _days_since(self.created_at)


class PORead(POSummary):
    supplier_id: int
    subtotal_amount: Decimal
    tax_amount: Decimal
    payment_terms: str | None = None
    delivery_address: str | None = None
    order_date: date | None = None
    approved_at: datetime | None = None
    executed_by: str | None = None
    executed_at: datetime | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    items: list[POItemRead] = Field(default_factory=list)

    @computed_field
    @property
    def total_items(self) -> int:
        return len(self.items)

    @computed_field
    @property
    def total_quantity(self) -> Decimal:
        return sum((i.quantity for i in self.items), Decimal("0"))


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class POPage(BaseModel):
    purchase_orders: list[POSummary]
    pagination: Pagination
    filters: OrderFilters


class DuplicatedFrom(BaseModel):
    id: int
    order_number: str
    items_included: bool
    item_policy: DuplicateItemPolicy
    copied_items_count: int
    original_items_count: int


class DuplicateResult(BaseModel):
    order: PORead
    duplicated_from: DuplicatedFrom


class ExecutionSummary(BaseModel):
    total_items_received: int
    total_quantity_received: Decimal
    total_value: Decimal


class ExecutionResult(BaseModel):
    order: PORead
    stock_movements: list[StockMovementRead]
    updated_materials: list[RawMaterialRead]
    summary: ExecutionSummary


class OrderNumberPreview(BaseModel):
    order_number: str
