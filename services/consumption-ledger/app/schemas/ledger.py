"""
Consumption Ledger — Pydantic schemas
"""
from datetime import date, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from app.models.consumption import Period

T = TypeVar("T")


# ─── Requests ─────────────────────────────────────────────────────────────────

class TakeRequest(BaseModel):
    item_id: str = Field(..., min_length=1, max_length=36)
    quantity: int = Field(..., ge=1, examples=[1])
    photo: str = Field(..., min_length=1, max_length=1024, description="Proof photo reference")
    notes: str | None = Field(None, max_length=500)


class AdjustmentRequest(BaseModel):
    item_id: str = Field(..., min_length=1, max_length=36)
    change: int = Field(..., examples=[-5])
    reason: str | None = Field(None, max_length=500)


class ConsumptionTypeRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    limit: int = Field(..., ge=1)
    period: Period


class ConsumptionItemRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    purchase_date: date
    photo: str | None = Field(None, max_length=1024)
    consumption_type_id: str = Field(..., min_length=1, max_length=36)
    stock: int = Field(0, ge=0)


# ─── Responses ────────────────────────────────────────────────────────────────

class ConsumptionTypeResponse(BaseModel):
    id: str
    name: str
    description: str | None
    limit: int
    period: Period

    model_config = {"from_attributes": True}


class ConsumptionTypeListEntry(ConsumptionTypeResponse):
    item_count: int = 0


class ConsumptionItemResponse(BaseModel):
    id: str
    name: str
    description: str | None
    purchase_date: date
    photo: str | None
    stock: int
    consumption_type_id: str
    consumption_type: ConsumptionTypeResponse

    model_config = {"from_attributes": True}


class RecordResponse(BaseModel):
    id: str
    user_id: str
    item_id: str
    quantity: int
    photo: str
    notes: str | None
    taken_at: datetime
    item: ConsumptionItemResponse

    model_config = {"from_attributes": True}


class AdjustmentResponse(BaseModel):
    id: str
    item_id: str
    change: int
    reason: str
    user_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class UsageResponse(BaseModel):
    user_id: str
    item_id: str
    period: Period
    window_start: datetime
    limit: int
    total_taken: int
    remaining: int


class StockBalanceResponse(BaseModel):
    item_id: str
    stock: int
    adjusted: int
    taken: int
    expected: int
    balanced: bool


class UserRecordsResponse(BaseModel):
    user_id: str
    has_records: bool


class Pagination(BaseModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next: bool
    has_prev: bool


class Page(BaseModel, Generic[T]):
    data: list[T]
    pagination: Pagination
