"""
Consumption Ledger — Stock adjustment routes (admin only)
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, PageParams, get_clock, page_params, require_admin
from app.core.clock import Clock
from app.core.redis_client import cache_stock
from app.db.database import get_db
from app.db.stock_ops import create_adjustment, list_adjustments
from app.schemas.ledger import AdjustmentRequest, AdjustmentResponse, Page

router = APIRouter(prefix="/stock-adjustments", tags=["stock-adjustments"])


@router.post("", response_model=AdjustmentResponse, status_code=status.HTTP_201_CREATED)
async def post_adjustment(
    payload: AdjustmentRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Apply a signed stock correction and append it to the item's audit trail."""
    adjustment = await create_adjustment(
        db,
        item_id=payload.item_id,
        change=payload.change,
        user_id=admin.id,
        reason=payload.reason,
        clock=clock,
    )
    await cache_stock(adjustment.item_id, adjustment.item.stock)
    return adjustment


@router.get("/{item_id}", response_model=Page[AdjustmentResponse])
async def get_adjustments(
    item_id: str,
    paging: PageParams = Depends(page_params),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    adjustments, total = await list_adjustments(db, item_id, paging.offset, paging.limit)
    return paging.envelope(adjustments, total)
