"""
Consumption Ledger — Consumption type and item routes
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, PageParams, current_user, get_clock, page_params, require_admin
from app.core.clock import Clock
from app.core.redis_client import cache_stock, evict_stock
from app.db import catalog_ops
from app.db.database import get_db
from app.db.stock_ops import stock_balance
from app.schemas.ledger import (
    ConsumptionItemRequest,
    ConsumptionItemResponse,
    ConsumptionTypeListEntry,
    ConsumptionTypeRequest,
    ConsumptionTypeResponse,
    Page,
    StockBalanceResponse,
)

types_router = APIRouter(prefix="/consumption-types", tags=["consumption-types"])
items_router = APIRouter(prefix="/consumption-items", tags=["consumption-items"])


# ─── Types ────────────────────────────────────────────────────────────────────

@types_router.get("", response_model=Page[ConsumptionTypeListEntry])
async def get_types(
    search: str | None = Query(None),
    paging: PageParams = Depends(page_params),
    user: CurrentUser = Depends(current_user),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await catalog_ops.list_types(db, paging.offset, paging.limit, search=search)
    data = [
        {**ConsumptionTypeResponse.model_validate(ctype).model_dump(), "item_count": count}
        for ctype, count in rows
    ]
    return paging.envelope(data, total)


@types_router.post("", response_model=ConsumptionTypeResponse, status_code=status.HTTP_201_CREATED)
async def post_type(
    payload: ConsumptionTypeRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await catalog_ops.create_type(
        db, payload.name, payload.limit, payload.period, description=payload.description
    )


@types_router.put("/{type_id}", response_model=ConsumptionTypeResponse)
async def put_type(
    type_id: str,
    payload: ConsumptionTypeRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await catalog_ops.update_type(
        db, type_id, payload.name, payload.limit, payload.period, description=payload.description
    )


@types_router.delete("/{type_id}")
async def remove_type(
    type_id: str,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await catalog_ops.delete_type(db, type_id)
    return {"message": "Consumption type deleted."}


# ─── Items ────────────────────────────────────────────────────────────────────

@items_router.get("", response_model=Page[ConsumptionItemResponse])
async def get_items(
    search: str | None = Query(None),
    consumption_type_id: str | None = Query(None),
    paging: PageParams = Depends(page_params),
    user: CurrentUser = Depends(current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await catalog_ops.list_items(
        db, paging.offset, paging.limit, search=search, consumption_type_id=consumption_type_id
    )
    return paging.envelope(items, total)


@items_router.get("/{item_id}", response_model=ConsumptionItemResponse)
async def get_item(
    item_id: str,
    user: CurrentUser = Depends(current_user),
    db: AsyncSession = Depends(get_db),
):
    """Item lookup behind the QR scan. Also warms the stock cache."""
    item = await catalog_ops.get_item(db, item_id)
    await cache_stock(item.id, item.stock)
    return item


@items_router.get("/{item_id}/balance", response_model=StockBalanceResponse)
async def get_item_balance(
    item_id: str,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Reconcile current stock against adjustments minus takes."""
    balance = await stock_balance(db, item_id)
    return StockBalanceResponse(
        item_id=item_id, balanced=balance["stock"] == balance["expected"], **balance
    )


@items_router.post("", response_model=ConsumptionItemResponse, status_code=status.HTTP_201_CREATED)
async def post_item(
    payload: ConsumptionItemRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    item = await catalog_ops.create_item(
        db,
        user_id=admin.id,
        name=payload.name,
        consumption_type_id=payload.consumption_type_id,
        purchase_date=payload.purchase_date,
        stock=payload.stock,
        description=payload.description,
        photo=payload.photo,
        clock=clock,
    )
    await cache_stock(item.id, item.stock)
    return item


@items_router.put("/{item_id}", response_model=ConsumptionItemResponse)
async def put_item(
    item_id: str,
    payload: ConsumptionItemRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    item = await catalog_ops.update_item(
        db,
        item_id=item_id,
        user_id=admin.id,
        name=payload.name,
        consumption_type_id=payload.consumption_type_id,
        purchase_date=payload.purchase_date,
        stock=payload.stock,
        description=payload.description,
        photo=payload.photo,
        clock=clock,
    )
    await cache_stock(item.id, item.stock)
    return item


@items_router.delete("/{item_id}")
async def remove_item(
    item_id: str,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await catalog_ops.delete_item(db, item_id)
    await evict_stock(item_id)
    return {"message": "Consumption item deleted."}
