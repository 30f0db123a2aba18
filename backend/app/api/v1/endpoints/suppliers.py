from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_cache, get_db
from backend.app.db.models.core_types import POStatus
from backend.app.schemas.purchase_order import OrderFilters, POPage
from backend.app.schemas.supplier import SupplierCreate, SupplierRead, SupplierUpdate
from backend.services import procurement, suppliers
from backend.services.cache import CacheBackend
from backend.services.capabilities import ActorCapabilities

router = APIRouter(prefix="/suppliers")


@router.get("", response_model=list[SupplierRead])
def list_suppliers(
    active_only: bool = False,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return suppliers.list_suppliers(db, actor=actor, active_only=active_only, cache=cache)


@router.post("", response_model=SupplierRead, status_code=201)
def create_supplier(
    payload: SupplierCreate,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return suppliers.create_supplier(db, payload, actor=actor, cache=cache)


@router.get("/{supplier_id}", response_model=SupplierRead)
def get_supplier(
    supplier_id: int,
    db: Session = Depends(get_db),
    actor: ActorCapabilities = Depends(get_actor),
):
    return suppliers.get_supplier(db, supplier_id, actor=actor)


@router.put("/{supplier_id}", response_model=SupplierRead)
def update_supplier(
    supplier_id: int,
    payload: SupplierUpdate,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    """Désactiver un fournisseur : {"active": false}"""
    return suppliers.update_supplier(db, supplier_id, payload, actor=actor, cache=cache)


@router.get("/{supplier_id}/purchase-orders", response_model=POPage)
def list_supplier_pos(
    supplier_id: int,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    status: POStatus | None = None,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    suppliers.get_supplier_or_404(db, supplier_id)
    filters = OrderFilters(status=status, supplier_id=supplier_id)
    return procurement.list_orders(db, filters, actor=actor, page=page, limit=limit, cache=cache)
