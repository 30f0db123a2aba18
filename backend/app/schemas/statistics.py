from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from backend.app.db.models.core_types import POStatus, StatsPeriod


class DateRange(BaseModel):
    start: datetime | None = None
    end: datetime


class StatsSummary(BaseModel):
    total_orders: int
    total_value: Decimal
    avg_order_value: Decimal
    overdue_orders: int
    pending_approvals: int
    period: StatsPeriod
    supplier_id: int | None = None
    date_range: DateRange


class StatusBreakdown(BaseModel):
    status: POStatus
    count: int
    value: Decimal
    percentage: float


class TopSupplier(BaseModel):
    supplier_id: int
    supplier_name: str
    order_count: int
    total_value: Decimal
    percentage: float


class TopMaterial(BaseModel):
    material_id: int
    material_name: str
    unit: str
    total_quantity: Decimal
    total_value: Decimal
    order_count: int


class MonthlyTrend(BaseModel):
    month_key: str  # YYYY-MM
    order_count: int
    total_value: Decimal
    avg_order_value: Decimal


class Insights(BaseModel):
    most_active_month: MonthlyTrend | None = None
    highest_value_month: MonthlyTrend | None = None
    growth_rate: float


class OrderStatistics(BaseModel):
    summary: StatsSummary
    status_breakdown: list[StatusBreakdown]
    top_suppliers: list[TopSupplier]
    top_materials: list[TopMaterial]
    monthly_trends: list[MonthlyTrend]
    insights: Insights
