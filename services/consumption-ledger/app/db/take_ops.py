"""
Consumption Ledger — Take an item (stock & quota transaction)

Checks, in order, each short-circuiting:
  1. item exists                         → NotFoundError
  2. item.stock >= quantity              → InsufficientStockError
  3. windowed total + quantity <= limit  → QuotaExceededError

On success the record insert and the stock decrement commit together.
The decrement is the versioned conditional update from stock_ops, so a
concurrent take or adjustment on the same item forces a full re-check.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from app.core.clock import Clock, SystemClock
from app.core.exceptions import InsufficientStockError, QuotaExceededError, ValidationError
from app.core.optimistic_lock import with_optimistic_retry
from app.core.quota import window_start
from app.db.stock_ops import apply_stock_change, load_item, require_int
from app.models.consumption import ConsumptionItem, ConsumptionRecord

logger = logging.getLogger(__name__)


async def usage_in_window(
    db: AsyncSession, user_id: str, item_id: str, since: datetime
) -> int:
    """Sum of quantities this user took of this item with taken_at >= since."""
    total = await db.execute(
        select(func.coalesce(func.sum(ConsumptionRecord.quantity), 0)).where(
            ConsumptionRecord.user_id == user_id,
            ConsumptionRecord.item_id == item_id,
            ConsumptionRecord.taken_at >= since.astimezone(timezone.utc),
        )
    )
    return int(total.scalar_one())


async def quota_usage(
    db: AsyncSession, user_id: str, item_id: str, clock: Clock | None = None
) -> dict:
    """Current window, total taken and remaining headroom for (user, item)."""
    clock = clock or SystemClock()
    item = await load_item(db, item_id, with_type=True)
    ctype = item.consumption_type
    start = window_start(ctype.period, clock.now())
    total = await usage_in_window(db, user_id, item_id, start)
    return {
        "user_id": user_id,
        "item_id": item_id,
        "period": ctype.period,
        "window_start": start,
        "limit": ctype.limit,
        "total_taken": total,
        "remaining": max(ctype.limit - total, 0),
    }


@with_optimistic_retry()
async def take_item(
    db: AsyncSession,
    user_id: str,
    item_id: str,
    quantity: int,
    photo: str | None,
    notes: str | None = None,
    clock: Clock | None = None,
) -> ConsumptionRecord:
    """
    Validate and atomically commit a user's request to take ``quantity``
    units of ``item_id``. Returns the record with its item and type loaded.
    """
    quantity = require_int(quantity, "quantity")
    if quantity <= 0:
        raise ValidationError("Quantity must be a positive integer.", field="quantity")
    if not photo:
        raise ValidationError("A proof photo is required.", field="photo")

    clock = clock or SystemClock()
    now = clock.now()

    item = await load_item(db, item_id, with_type=True)

    if item.stock < quantity:
        raise InsufficientStockError(item.id, quantity, item.stock)

    ctype = item.consumption_type
    total_taken = await usage_in_window(db, user_id, item.id, window_start(ctype.period, now))
    if total_taken + quantity > ctype.limit:
        raise QuotaExceededError(ctype.limit, ctype.period.value, total_taken, quantity)

    await apply_stock_change(db, item, -quantity)
    record = ConsumptionRecord(
        user_id=user_id,
        item_id=item.id,
        quantity=quantity,
        photo=photo,
        notes=notes,
        taken_at=now,
    )
    db.add(record)
    await db.commit()

    logger.info(
        "Item taken: item=%s user=%s quantity=%d stock=%d window_total=%d/%d",
        item.id, user_id, quantity, item.stock, total_taken + quantity, ctype.limit,
    )
    set_committed_value(record, "item", item)
    return record


async def user_has_records(db: AsyncSession, user_id: str) -> bool:
    """Guard for external user management: users with records must not be deleted."""
    result = await db.execute(select(exists().where(ConsumptionRecord.user_id == user_id)))
    return bool(result.scalar())


async def list_records(
    db: AsyncSession,
    offset: int,
    limit: int,
    user_id: str | None = None,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> tuple[list[ConsumptionRecord], int]:
    """Records newest first with item and type loaded, plus the total count."""
    filters = []
    if user_id:
        filters.append(ConsumptionRecord.user_id == user_id)
    if search:
        pattern = f"%{search.lower()}%"
        filters.append(or_(
            func.lower(ConsumptionItem.name).like(pattern),
            func.lower(ConsumptionRecord.notes).like(pattern),
        ))
    if start_date:
        filters.append(ConsumptionRecord.taken_at >= datetime.combine(start_date, time.min, timezone.utc))
    if end_date:
        # end date is inclusive: everything before the next midnight
        filters.append(
            ConsumptionRecord.taken_at
            < datetime.combine(end_date + timedelta(days=1), time.min, timezone.utc)
        )

    base = select(ConsumptionRecord).join(ConsumptionItem).where(*filters)
    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    rows = await db.execute(
        base.options(
            selectinload(ConsumptionRecord.item).selectinload(ConsumptionItem.consumption_type)
        )
        .order_by(ConsumptionRecord.taken_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(rows.scalars().all()), total
