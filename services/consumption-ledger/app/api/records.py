"""
Consumption Ledger — Take item & record routes
"""
import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, PageParams, current_user, get_clock, page_params
from app.core.clock import Clock
from app.core.redis_client import cache_stock
from app.db.database import get_db
from app.db.take_ops import list_records, quota_usage, take_item
from app.schemas.ledger import Page, RecordResponse, TakeRequest, UsageResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/records", tags=["records"])


def _scoped_user_id(user: CurrentUser, requested: str | None) -> str | None:
    """Non-admins only ever see their own records."""
    if requested and not user.is_admin and requested != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied.")
    if not user.is_admin:
        return user.id
    return requested


@router.post("", response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
async def create_record(
    payload: TakeRequest,
    user: CurrentUser = Depends(current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Take units of an item (QR scan flow).
    Stock and quota are checked and the record + stock decrement commit atomically.
    """
    record = await take_item(
        db,
        user_id=user.id,
        item_id=payload.item_id,
        quantity=payload.quantity,
        photo=payload.photo,
        notes=payload.notes,
        clock=clock,
    )
    await cache_stock(record.item_id, record.item.stock)
    return record


@router.get("", response_model=Page[RecordResponse])
async def get_records(
    user_id: str | None = Query(None),
    search: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    paging: PageParams = Depends(page_params),
    user: CurrentUser = Depends(current_user),
    db: AsyncSession = Depends(get_db),
):
    records, total = await list_records(
        db,
        offset=paging.offset,
        limit=paging.limit,
        user_id=_scoped_user_id(user, user_id),
        search=search,
        start_date=start_date,
        end_date=end_date,
    )
    return paging.envelope(records, total)


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    item_id: str = Query(...),
    user_id: str | None = Query(None),
    user: CurrentUser = Depends(current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """How much of the current period's quota the user has used for an item."""
    target = _scoped_user_id(user, user_id) or user.id
    return await quota_usage(db, target, item_id, clock=clock)
