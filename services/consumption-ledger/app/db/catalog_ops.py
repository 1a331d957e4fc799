"""
Consumption Ledger — Consumption type and item maintenance

Item stock is never assigned here: initial stock and edited stock are
funnelled through stock_ops.record_adjustment in the same transaction as
the item write.
"""
import logging
from datetime import date

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from app.core.clock import Clock, SystemClock
from app.core.exceptions import (
    ConsumptionTypeInUseError,
    DuplicateNameError,
    NotFoundError,
    ValidationError,
)
from app.core.optimistic_lock import with_optimistic_retry
from app.db.stock_ops import (
    INITIAL_STOCK_REASON,
    MANUAL_ADJUSTMENT_REASON,
    load_item,
    record_adjustment,
    require_int,
)
from app.models.consumption import (
    ConsumptionItem,
    ConsumptionRecord,
    ConsumptionType,
    Period,
    StockAdjustment,
)

logger = logging.getLogger(__name__)


# ─── Consumption types ────────────────────────────────────────────────────────

def _validate_type_fields(name: str, limit: int, period: Period | str) -> Period:
    if not name or not name.strip():
        raise ValidationError("Name is required.", field="name")
    if require_int(limit, "limit") <= 0:
        raise ValidationError("Limit must be a positive integer.", field="limit")
    try:
        return Period(period)
    except ValueError:
        raise ValidationError(f"Unknown period '{period}'.", field="period")


async def get_type(db: AsyncSession, type_id: str) -> ConsumptionType:
    result = await db.execute(select(ConsumptionType).where(ConsumptionType.id == type_id))
    ctype = result.scalar_one_or_none()
    if ctype is None:
        raise NotFoundError("consumption_type", type_id)
    return ctype


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: str | None = None):
    query = select(ConsumptionType.id).where(ConsumptionType.name == name)
    if exclude_id:
        query = query.where(ConsumptionType.id != exclude_id)
    if (await db.execute(query)).first() is not None:
        raise DuplicateNameError(name)


async def create_type(
    db: AsyncSession, name: str, limit: int, period: Period | str, description: str | None = None
) -> ConsumptionType:
    period = _validate_type_fields(name, limit, period)
    await _ensure_unique_name(db, name)
    ctype = ConsumptionType(name=name, description=description, limit=limit, period=period)
    db.add(ctype)
    await db.commit()
    logger.info("Consumption type created: %s (%d per %s)", name, limit, period.value)
    return ctype


async def update_type(
    db: AsyncSession,
    type_id: str,
    name: str,
    limit: int,
    period: Period | str,
    description: str | None = None,
) -> ConsumptionType:
    period = _validate_type_fields(name, limit, period)
    ctype = await get_type(db, type_id)
    await _ensure_unique_name(db, name, exclude_id=type_id)
    ctype.name = name
    ctype.description = description
    ctype.limit = limit
    ctype.period = period
    await db.commit()
    return ctype


async def delete_type(db: AsyncSession, type_id: str) -> None:
    """Refused while any item still belongs to the type."""
    await get_type(db, type_id)
    item_count = (await db.execute(
        select(func.count()).select_from(ConsumptionItem)
        .where(ConsumptionItem.consumption_type_id == type_id)
    )).scalar_one()
    if item_count:
        raise ConsumptionTypeInUseError(type_id, item_count)
    await db.execute(delete(ConsumptionType).where(ConsumptionType.id == type_id))
    await db.commit()
    logger.info("Consumption type deleted: %s", type_id)


async def list_types(
    db: AsyncSession, offset: int, limit: int, search: str | None = None
) -> tuple[list[tuple[ConsumptionType, int]], int]:
    """Types newest first, each paired with its item count."""
    filters = []
    if search:
        pattern = f"%{search.lower()}%"
        filters.append(or_(
            func.lower(ConsumptionType.name).like(pattern),
            func.lower(ConsumptionType.description).like(pattern),
        ))
    total = (await db.execute(
        select(func.count()).select_from(ConsumptionType).where(*filters)
    )).scalar_one()

    item_count = (
        select(func.count(ConsumptionItem.id))
        .where(ConsumptionItem.consumption_type_id == ConsumptionType.id)
        .correlate(ConsumptionType)
        .scalar_subquery()
    )
    rows = await db.execute(
        select(ConsumptionType, item_count)
        .where(*filters)
        .order_by(ConsumptionType.created_at.desc(), ConsumptionType.name)
        .offset(offset)
        .limit(limit)
    )
    return [(ctype, count) for ctype, count in rows.all()], total


# ─── Consumption items ────────────────────────────────────────────────────────

def _validate_item_fields(name: str, stock: int) -> None:
    if not name or not name.strip():
        raise ValidationError("Name is required.", field="name")
    if require_int(stock, "stock") < 0:
        raise ValidationError("Stock cannot be negative.", field="stock")


async def get_item(db: AsyncSession, item_id: str) -> ConsumptionItem:
    """Item with its type loaded, as used by the QR scan lookup."""
    return await load_item(db, item_id, with_type=True)


async def create_item(
    db: AsyncSession,
    user_id: str,
    name: str,
    consumption_type_id: str,
    purchase_date: date,
    stock: int = 0,
    description: str | None = None,
    photo: str | None = None,
    clock: Clock | None = None,
) -> ConsumptionItem:
    """
    Insert the item with zero stock, then book the initial stock as a
    ledger adjustment in the same transaction.
    """
    _validate_item_fields(name, stock)
    clock = clock or SystemClock()
    ctype = await get_type(db, consumption_type_id)

    item = ConsumptionItem(
        name=name,
        description=description,
        purchase_date=purchase_date,
        photo=photo,
        consumption_type_id=ctype.id,
        stock=0,
        version_id=1,
    )
    db.add(item)
    await db.flush()

    if stock > 0:
        await record_adjustment(db, item, stock, INITIAL_STOCK_REASON, user_id, clock.now())
    await db.commit()

    set_committed_value(item, "consumption_type", ctype)
    logger.info("Item created: %s (%s) initial stock=%d", item.id, name, stock)
    return item


@with_optimistic_retry()
async def update_item(
    db: AsyncSession,
    item_id: str,
    user_id: str,
    name: str,
    consumption_type_id: str,
    purchase_date: date,
    stock: int,
    description: str | None = None,
    photo: str | None = None,
    clock: Clock | None = None,
) -> ConsumptionItem:
    """
    Edit an item. A stock value differing from the stored one is booked as
    a "Manual adjustment by admin" delta rather than written directly.
    """
    _validate_item_fields(name, stock)
    clock = clock or SystemClock()
    item = await load_item(db, item_id)
    ctype = await get_type(db, consumption_type_id)

    delta = stock - item.stock
    if delta:
        await record_adjustment(db, item, delta, MANUAL_ADJUSTMENT_REASON, user_id, clock.now())

    item.name = name
    item.description = description
    item.purchase_date = purchase_date
    item.photo = photo
    item.consumption_type_id = ctype.id
    await db.commit()

    set_committed_value(item, "consumption_type", ctype)
    return item


async def delete_item(db: AsyncSession, item_id: str) -> None:
    """Remove an item together with its records and adjustments."""
    await load_item(db, item_id)
    await db.execute(delete(ConsumptionRecord).where(ConsumptionRecord.item_id == item_id))
    await db.execute(delete(StockAdjustment).where(StockAdjustment.item_id == item_id))
    await db.execute(delete(ConsumptionItem).where(ConsumptionItem.id == item_id))
    await db.commit()
    logger.info("Item deleted: %s", item_id)


async def list_items(
    db: AsyncSession,
    offset: int,
    limit: int,
    search: str | None = None,
    consumption_type_id: str | None = None,
) -> tuple[list[ConsumptionItem], int]:
    filters = []
    if search:
        pattern = f"%{search.lower()}%"
        filters.append(or_(
            func.lower(ConsumptionItem.name).like(pattern),
            func.lower(ConsumptionItem.description).like(pattern),
        ))
    if consumption_type_id:
        filters.append(ConsumptionItem.consumption_type_id == consumption_type_id)

    total = (await db.execute(
        select(func.count()).select_from(ConsumptionItem).where(*filters)
    )).scalar_one()
    rows = await db.execute(
        select(ConsumptionItem)
        .where(*filters)
        .options(selectinload(ConsumptionItem.consumption_type))
        .order_by(ConsumptionItem.created_at.desc(), ConsumptionItem.name)
        .offset(offset)
        .limit(limit)
    )
    return list(rows.scalars().all()), total
