"""
Consumption Ledger — Stock writes and the stock adjustment ledger

Every change to consumption_items.stock goes through apply_stock_change():

  - READ:  the caller holds an item snapshot (stock + version_id)
  - WRITE: UPDATE ... SET stock = stock + :change, version_id = version_id + 1
           WHERE id = :id AND version_id = <snapshot_version> AND stock + :change >= 0
  - If another transaction committed first → rollback + StaleDataError → retry

Takes (app.db.take_ops) and adjustments (this module) share this single
write path, so stock writes on an item are linearizable.
"""
import logging
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from app.core.clock import Clock, SystemClock
from app.core.exceptions import NegativeStockError, NotFoundError, ValidationError
from app.core.optimistic_lock import StaleDataError, with_optimistic_retry
from app.models.consumption import ConsumptionItem, ConsumptionRecord, StockAdjustment

logger = logging.getLogger(__name__)

INITIAL_STOCK_REASON = "Initial stock"
MANUAL_ADJUSTMENT_REASON = "Manual adjustment by admin"


def require_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer.", field=field)
    return value


async def load_item(db: AsyncSession, item_id: str, with_type: bool = False) -> ConsumptionItem:
    """Fetch a fresh item snapshot (never the identity-map copy) or raise NotFoundError."""
    query = (
        select(ConsumptionItem)
        .where(ConsumptionItem.id == item_id)
        .execution_options(populate_existing=True)
    )
    if with_type:
        query = query.options(selectinload(ConsumptionItem.consumption_type))
    item = (await db.execute(query)).scalar_one_or_none()
    if item is None:
        raise NotFoundError("item", item_id)
    return item


async def apply_stock_change(db: AsyncSession, item: ConsumptionItem, change: int) -> int:
    """
    Conditionally apply ``change`` to the item's stock inside the current
    transaction. Does not commit. Returns the new stock.
    """
    expected_version = item.version_id
    result = await db.execute(
        update(ConsumptionItem)
        .where(
            ConsumptionItem.id == item.id,
            ConsumptionItem.version_id == expected_version,
            ConsumptionItem.stock + change >= 0,
        )
        .values(
            stock=ConsumptionItem.stock + change,
            version_id=ConsumptionItem.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        # Another transaction won the race → trigger retry
        await db.rollback()
        raise StaleDataError("Optimistic lock conflict: item version changed concurrently.")

    new_stock = item.stock + change
    set_committed_value(item, "stock", new_stock)
    set_committed_value(item, "version_id", expected_version + 1)
    return new_stock


async def record_adjustment(
    db: AsyncSession,
    item: ConsumptionItem,
    change: int,
    reason: str,
    user_id: str,
    now: datetime,
) -> StockAdjustment:
    """
    Ledger entry point shared by explicit adjustments and the item
    create/edit flows. Applies the delta and appends the audit row in the
    caller's transaction; the caller commits.
    """
    if change == 0:
        raise ValidationError("Adjustment change must be non-zero.", field="change")
    if item.stock + change < 0:
        raise NegativeStockError(item.id, item.stock, change)

    await apply_stock_change(db, item, change)
    adjustment = StockAdjustment(
        item_id=item.id,
        change=change,
        reason=reason,
        user_id=user_id,
        created_at=now,
    )
    db.add(adjustment)
    return adjustment


@with_optimistic_retry()
async def create_adjustment(
    db: AsyncSession,
    item_id: str,
    change: int,
    user_id: str,
    reason: str | None = None,
    clock: Clock | None = None,
) -> StockAdjustment:
    """
    Admin stock correction: atomically shift the item's stock by ``change``
    and append a StockAdjustment explaining it.
    """
    change = require_int(change, "change")
    if change == 0:
        raise ValidationError("Adjustment change must be non-zero.", field="change")

    clock = clock or SystemClock()
    item = await load_item(db, item_id)
    adjustment = await record_adjustment(
        db,
        item,
        change,
        reason if reason is not None else MANUAL_ADJUSTMENT_REASON,
        user_id,
        clock.now(),
    )
    await db.commit()

    logger.info(
        "Stock adjusted: item=%s change=%+d stock=%d by=%s",
        item.id, change, item.stock, user_id,
    )
    set_committed_value(adjustment, "item", item)
    return adjustment


async def list_adjustments(
    db: AsyncSession, item_id: str, offset: int, limit: int
) -> tuple[list[StockAdjustment], int]:
    """Adjustments for one item, newest first, with the total count."""
    await load_item(db, item_id)
    where = StockAdjustment.item_id == item_id
    total = (await db.execute(select(func.count()).select_from(StockAdjustment).where(where))).scalar_one()
    rows = await db.execute(
        select(StockAdjustment)
        .where(where)
        .order_by(StockAdjustment.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(rows.scalars().all()), total


async def stock_balance(db: AsyncSession, item_id: str) -> dict[str, int]:
    """
    Reconcile an item's stock against its history:
    stock == Σ adjustments.change − Σ records.quantity.
    """
    item = await load_item(db, item_id)
    adjusted = (await db.execute(
        select(func.coalesce(func.sum(StockAdjustment.change), 0))
        .where(StockAdjustment.item_id == item_id)
    )).scalar_one()
    taken = (await db.execute(
        select(func.coalesce(func.sum(ConsumptionRecord.quantity), 0))
        .where(ConsumptionRecord.item_id == item_id)
    )).scalar_one()
    return {
        "stock": item.stock,
        "adjusted": int(adjusted),
        "taken": int(taken),
        "expected": int(adjusted) - int(taken),
    }
