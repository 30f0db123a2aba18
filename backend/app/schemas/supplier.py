from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    contact_person: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=64)
    email: str | None = Field(default=None, max_length=255)
    address: str | None = None
    credit_limit: Decimal | None = Field(default=None, ge=0)
    active: bool = True


class SupplierRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    contact_person: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    active: bool
    balance: Decimal
    credit_limit: Decimal | None = None
    total_purchases: Decimal  # dérivé, recalculé depuis les PO EXECUTED
    created_at: datetime


class SupplierUpdate(BaseModel):
    """PATCH-like : seuls les champs envoyés sont modifiés."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    contact_person: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=64)
    email: str | None = Field(default=None, max_length=255)
    address: str | None = None
    credit_limit: Decimal | None = Field(default=None, ge=0)
    active: bool | None = None
