from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_cache, get_db
from backend.app.db.models.core_types import POStatus, StatsPeriod
from backend.app.schemas.purchase_order import (
    ApproveRequest,
    CancelRequest,
    DuplicateRequest,
    DuplicateResult,
    ExecuteRequest,
    ExecutionResult,
    OrderFilters,
    OrderNumberPreview,
    POCreate,
    POPage,
    PORead,
    POUpdate,
    RejectRequest,
    RestoreRequest,
    SubmitRequest,
)
from backend.app.schemas.statistics import OrderStatistics
from backend.services import procurement, statistics
from backend.services.cache import CacheBackend
from backend.services.capabilities import ActorCapabilities

router = APIRouter(prefix="/purchase-orders")


@router.get("", response_model=POPage)
def list_pos(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    search: str | None = None,
    status: POStatus | None = None,
    supplier_id: int | None = None,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    filters = OrderFilters(search=search or None, status=status, supplier_id=supplier_id)
    return procurement.list_orders(db, filters, actor=actor, page=page, limit=limit, cache=cache)


@router.post("", response_model=PORead, status_code=201)
def create_po(
    payload: POCreate,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return procurement.create_order(db, payload, actor=actor, cache=cache)


@router.get("/generate-number", response_model=OrderNumberPreview)
def generate_number(
    db: Session = Depends(get_db),
    actor: ActorCapabilities = Depends(get_actor),
):
    return procurement.generate_order_number(db, actor=actor)


@router.get("/stats", response_model=OrderStatistics)
def get_stats(
    period: StatsPeriod = StatsPeriod.month,
    supplier_id: int | None = None,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return statistics.get_statistics(db, period, supplier_id, actor=actor, cache=cache)


@router.get("/{order_id}", response_model=PORead)
def get_po(
    order_id: int,
    db: Session = Depends(get_db),
    actor: ActorCapabilities = Depends(get_actor),
):
    return procurement.get_order(db, order_id, actor=actor)


@router.put("/{order_id}", response_model=PORead)
def update_po(
    order_id: int,
    payload: POUpdate,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return procurement.update_order(db, order_id, payload, actor=actor, cache=cache)


@router.delete("/{order_id}", status_code=204)
def delete_po(
    order_id: int,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    procurement.delete_order(db, order_id, actor=actor, cache=cache)
    return Response(status_code=204)


# ---------- Transitions ----------
@router.post("/{order_id}/submit", response_model=PORead)
def submit_po(
    order_id: int,
    payload: SubmitRequest | None = None,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return procurement.submit_order(db, order_id, payload, actor=actor, cache=cache)


@router.post("/{order_id}/approve", response_model=PORead)
def approve_po(
    order_id: int,
    payload: ApproveRequest | None = None,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return procurement.approve_order(db, order_id, payload, actor=actor, cache=cache)


@router.post("/{order_id}/reject", response_model=PORead)
def reject_po(
    order_id: int,
    payload: RejectRequest,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return procurement.reject_order(db, order_id, payload, actor=actor, cache=cache)


@router.post("/{order_id}/execute", response_model=ExecutionResult)
def execute_po(
    order_id: int,
    payload: ExecuteRequest,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return procurement.execute_order(db, order_id, payload, actor=actor, cache=cache)


@router.post("/{order_id}/cancel", response_model=PORead)
def cancel_po(
    order_id: int,
    payload: CancelRequest,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return procurement.cancel_order(db, order_id, payload, actor=actor, cache=cache)


@router.post("/{order_id}/restore", response_model=PORead)
def restore_po(
    order_id: int,
    payload: RestoreRequest | None = None,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return procurement.restore_order(db, order_id, payload, actor=actor, cache=cache)


@router.post("/{order_id}/duplicate", response_model=DuplicateResult, status_code=201)
def duplicate_po(
    order_id: int,
    payload: DuplicateRequest | None = None,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    actor: ActorCapabilities = Depends(get_actor),
):
    return procurement.duplicate_order(db, order_id, payload or DuplicateRequest(), actor=actor, cache=cache)
