"""
Statistiques d'achat (lecture seule).

Chaque agrégat est une requête SQL sur purchase_orders / purchase_order_items ;
la tendance mensuelle interroge chaque mois séparément. Résultat mis en cache
sous purchase-orders:stats.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.config import settings
from backend.app.db.base import utcnow
from backend.app.db.models.core_types import OPEN_STATUSES, POStatus, StatsPeriod
from backend.app.db.models.models_v1 import PurchaseOrder, PurchaseOrderItem, RawMaterial, Supplier
from backend.app.schemas.statistics import (
    DateRange,
    Insights,
    MonthlyTrend,
    OrderStatistics,
    StatsSummary,
    StatusBreakdown,
    TopMaterial,
    TopSupplier,
)
from backend.services import cache as cache_keys
from backend.services.cache import CacheBackend, cached_get, cached_set, make_key
from backend.services.capabilities import ActorCapabilities, Capability
from backend.services.orders import money

logger = logging.getLogger(__name__)

TREND_MONTHS = 12
ZERO = Decimal("0")


def _dec(value) -> Decimal:
    return ZERO if value is None else Decimal(str(value))


def _pct(part, whole) -> float:
    whole = _dec(whole)
    if whole == 0:
        return 0.0
    return float(_dec(part) / whole * 100)


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    idx = year * 12 + (month - 1) + delta
    return idx // 12, idx % 12 + 1


def _month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1, tzinfo=timezone.utc)


def period_start(period: StatsPeriod, now: datetime) -> datetime | None:
    if period == StatsPeriod.month:
        return _month_start(now.year, now.month)
    if period == StatsPeriod.quarter:
        return _month_start(now.year, 3 * ((now.month - 1) // 3) + 1)
    if period == StatsPeriod.year:
        return _month_start(now.year, 1)
    return None


def _scoped(stmt, *, start: datetime | None, end: datetime | None, supplier_id: int | None):
    if start is not None:
        stmt = stmt.where(PurchaseOrder.created_at >= start)
    if end is not None:
        stmt = stmt.where(PurchaseOrder.created_at < end)
    if supplier_id is not None:
        stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)
    return stmt


def _count_and_value(db: Session, **scope) -> tuple[int, Decimal]:
    row = db.execute(
        _scoped(
            select(func.count(PurchaseOrder.id), func.coalesce(func.sum(PurchaseOrder.total_amount), 0)),
            **scope,
        )
    ).one()
    return int(row[0]), money(_dec(row[1]))


def monthly_trends(db: Session, *, now: datetime, supplier_id: int | None) -> list[MonthlyTrend]:
    """12 mois glissants, du plus ancien au mois courant."""
    trends: list[MonthlyTrend] = []
    for back in range(TREND_MONTHS - 1, -1, -1):
        year, month = _shift_month(now.year, now.month, -back)
        next_year, next_month = _shift_month(year, month, 1)
        count, value = _count_and_value(
            db,
            start=_month_start(year, month),
            end=_month_start(next_year, next_month),
            supplier_id=supplier_id,
        )
        trends.append(
            MonthlyTrend(
                month_key=f"{year:04d}-{month:02d}",
                order_count=count,
                total_value=value,
                avg_order_value=money(value / count) if count else ZERO,
            )
        )
    return trends


def growth_rate(trends: list[MonthlyTrend]) -> float:
    # fraction (0.25 = +25 %), 0 si le mois précédent est à 0
    if len(trends) < 2:
        return 0.0
    current, previous = trends[-1], trends[-2]
    if previous.total_value == 0:
        return 0.0
    return float((current.total_value - previous.total_value) / previous.total_value)


def compute_statistics(
    db: Session,
    period: StatsPeriod,
    supplier_id: int | None = None,
    *,
    now: datetime | None = None,
) -> OrderStatistics:
    now = now or utcnow()
    start = period_start(period, now)
    scope = {"start": start, "end": None, "supplier_id": supplier_id}
    top_n = settings.STATS_TOP_N

    # ---------- RÉSUMÉ ----------
    total_orders, total_value = _count_and_value(db, **scope)

    overdue = db.execute(
        _scoped(
            select(func.count(PurchaseOrder.id))
            .where(PurchaseOrder.status.in_(OPEN_STATUSES))
            .where(PurchaseOrder.expected_delivery_date < now.date()),
            **scope,
        )
    ).scalar_one()

    pending = db.execute(
        _scoped(
            select(func.count(PurchaseOrder.id)).where(PurchaseOrder.status == POStatus.pending),
            **scope,
        )
    ).scalar_one()

    # ---------- PAR STATUT ----------
    status_rows = db.execute(
        _scoped(
            select(
                PurchaseOrder.status,
                func.count(PurchaseOrder.id),
                func.coalesce(func.sum(PurchaseOrder.total_amount), 0),
            ),
            **scope,
        ).group_by(PurchaseOrder.status)
    ).all()
    status_breakdown = [
        StatusBreakdown(
            status=status,
            count=int(count),
            value=money(_dec(value)),
            percentage=_pct(count, total_orders),
        )
        for status, count, value in sorted(status_rows, key=lambda r: r[1], reverse=True)
    ]

    # ---------- TOP FOURNISSEURS ----------
    supplier_value = func.coalesce(func.sum(PurchaseOrder.total_amount), 0)
    supplier_rows = db.execute(
        _scoped(
            select(Supplier.id, Supplier.name, func.count(PurchaseOrder.id), supplier_value)
            .select_from(PurchaseOrder)
            .join(Supplier, Supplier.id == PurchaseOrder.supplier_id),
            **scope,
        )
        .group_by(Supplier.id, Supplier.name)
        .order_by(supplier_value.desc(), Supplier.id)
        .limit(top_n)
    ).all()
    top_suppliers = [
        TopSupplier(
            supplier_id=int(sid),
            supplier_name=name,
            order_count=int(count),
            total_value=money(_dec(value)),
            percentage=_pct(value, total_value),
        )
        for sid, name, count, value in supplier_rows
    ]

    # ---------- TOP MATIÈRES ----------
    material_value = func.coalesce(func.sum(PurchaseOrderItem.total_price), 0)
    material_rows = db.execute(
        _scoped(
            select(
                RawMaterial.id,
                RawMaterial.name,
                RawMaterial.unit,
                func.coalesce(func.sum(PurchaseOrderItem.quantity), 0),
                material_value,
                func.count(func.distinct(PurchaseOrder.id)),
            )
            .select_from(PurchaseOrderItem)
            .join(PurchaseOrder, PurchaseOrder.id == PurchaseOrderItem.purchase_order_id)
            .join(RawMaterial, RawMaterial.id == PurchaseOrderItem.material_id),
            **scope,
        )
        .group_by(RawMaterial.id, RawMaterial.name, RawMaterial.unit)
        .order_by(material_value.desc(), RawMaterial.id)
        .limit(top_n)
    ).all()
    top_materials = [
        TopMaterial(
            material_id=int(mid),
            material_name=name,
            unit=unit,
            total_quantity=_dec(qty),
            total_value=money(_dec(value)),
            order_count=int(count),
        )
        for mid, name, unit, qty, value, count in material_rows
    ]

    # ---------- TENDANCE ----------
    trends = monthly_trends(db, now=now, supplier_id=supplier_id)
    insights = Insights(
        most_active_month=max(trends, key=lambda t: t.order_count) if trends else None,
        highest_value_month=max(trends, key=lambda t: t.total_value) if trends else None,
        growth_rate=growth_rate(trends),
    )

    return OrderStatistics(
        summary=StatsSummary(
            total_orders=total_orders,
            total_value=total_value,
            avg_order_value=money(total_value / total_orders) if total_orders else ZERO,
            overdue_orders=int(overdue),
            pending_approvals=int(pending),
            period=period,
            supplier_id=supplier_id,
            date_range=DateRange(start=start, end=now),
        ),
        status_breakdown=status_breakdown,
        top_suppliers=top_suppliers,
        top_materials=top_materials,
        monthly_trends=trends,
        insights=insights,
    )


def get_statistics(
    db: Session,
    period: StatsPeriod = StatsPeriod.month,
    supplier_id: int | None = None,
    *,
    actor: ActorCapabilities,
    cache: CacheBackend | None = None,
    now: datetime | None = None,
) -> OrderStatistics:
    actor.require(Capability.view_stats)

    key = make_key(cache_keys.PURCHASE_ORDER_STATS, period.value, supplier_id)
    hit = cached_get(cache, key)
    if hit is not None:
        return OrderStatistics.model_validate(hit)

    stats = compute_statistics(db, period, supplier_id, now=now)
    cached_set(cache, key, stats.model_dump(mode="json"), settings.STATS_CACHE_TTL)
    logger.debug("Statistics computed for period=%s supplier=%s", period.value, supplier_id)
    return stats
