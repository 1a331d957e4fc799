"""
Stock adjustment ledger: admin corrections and the implicit adjustments
booked by item creation and item edits.
"""
import asyncio
from datetime import date

import pytest
from sqlalchemy import select

from app.core.exceptions import NegativeStockError, NotFoundError, ValidationError
from app.db import catalog_ops
from app.db.database import SessionLocal
from app.db.stock_ops import (
    INITIAL_STOCK_REASON,
    MANUAL_ADJUSTMENT_REASON,
    create_adjustment,
    list_adjustments,
    load_item,
    stock_balance,
)
from app.models.consumption import StockAdjustment

from conftest import ADMIN_ID, NOW


async def _adjustments(session, item_id):
    rows = await session.execute(
        select(StockAdjustment).where(StockAdjustment.item_id == item_id).order_by(StockAdjustment.created_at)
    )
    return list(rows.scalars().all())


@pytest.mark.asyncio
async def test_item_creation_books_initial_stock(session, make_type, make_item):
    item = await make_item(await make_type(), stock=20)

    assert item.stock == 20
    [initial] = await _adjustments(session, item.id)
    assert initial.change == 20
    assert initial.reason == INITIAL_STOCK_REASON
    assert initial.user_id == ADMIN_ID


@pytest.mark.asyncio
async def test_item_created_without_stock_has_no_adjustment(session, make_type, make_item):
    item = await make_item(await make_type(), stock=0)
    assert item.stock == 0
    assert await _adjustments(session, item.id) == []


@pytest.mark.asyncio
async def test_negative_adjustment_then_overdraw_is_rejected(session, clock, make_type, make_item):
    item = await make_item(await make_type(), stock=10)

    adjustment = await create_adjustment(
        session, item.id, -5, ADMIN_ID, reason="damaged goods", clock=clock
    )
    assert adjustment.change == -5
    assert adjustment.reason == "damaged goods"
    assert adjustment.item.stock == 5

    with pytest.raises(NegativeStockError) as exc_info:
        await create_adjustment(session, item.id, -10, ADMIN_ID, reason="recount", clock=clock)
    assert exc_info.value.attempted == -5
    assert exc_info.value.current == 5

    assert (await load_item(session, item.id)).stock == 5
    assert len(await _adjustments(session, item.id)) == 2


@pytest.mark.asyncio
async def test_adjustment_to_exactly_zero_is_allowed(session, clock, make_type, make_item):
    item = await make_item(await make_type(), stock=4)
    await create_adjustment(session, item.id, -4, ADMIN_ID, reason="expired", clock=clock)
    assert (await load_item(session, item.id)).stock == 0


@pytest.mark.asyncio
async def test_reason_defaults_to_manual_adjustment(session, clock, make_type, make_item):
    item = await make_item(await make_type(), stock=1)
    adjustment = await create_adjustment(session, item.id, 6, ADMIN_ID, clock=clock)
    assert adjustment.reason == MANUAL_ADJUSTMENT_REASON
    assert adjustment.created_at == NOW


@pytest.mark.asyncio
@pytest.mark.parametrize("change", [0, "5", 2.5, None])
async def test_invalid_change_is_rejected(session, clock, make_type, make_item, change):
    item = await make_item(await make_type(), stock=3)
    with pytest.raises(ValidationError) as exc_info:
        await create_adjustment(session, item.id, change, ADMIN_ID, clock=clock)
    assert exc_info.value.field == "change"
    assert (await load_item(session, item.id)).stock == 3


@pytest.mark.asyncio
async def test_adjusting_unknown_item_is_not_found(session, clock, db_schema):
    with pytest.raises(NotFoundError):
        await create_adjustment(session, "missing", 3, ADMIN_ID, clock=clock)


@pytest.mark.asyncio
async def test_item_edit_books_stock_delta(session, clock, make_type, make_item):
    ctype = await make_type()
    item = await make_item(ctype, stock=10)

    updated = await catalog_ops.update_item(
        session,
        item_id=item.id,
        user_id=ADMIN_ID,
        name="Arabica capsules (large)",
        consumption_type_id=ctype.id,
        purchase_date=date(2025, 2, 1),
        stock=7,
        clock=clock,
    )

    assert updated.stock == 7
    assert updated.name == "Arabica capsules (large)"
    initial, manual = await _adjustments(session, item.id)
    assert initial.change == 10
    assert manual.change == -3
    assert manual.reason == MANUAL_ADJUSTMENT_REASON


@pytest.mark.asyncio
async def test_item_edit_without_stock_change_books_nothing(session, clock, make_type, make_item):
    ctype = await make_type()
    item = await make_item(ctype, stock=10)
    await catalog_ops.update_item(
        session,
        item_id=item.id,
        user_id=ADMIN_ID,
        name="Renamed",
        consumption_type_id=ctype.id,
        purchase_date=date(2025, 1, 10),
        stock=10,
        clock=clock,
    )
    assert len(await _adjustments(session, item.id)) == 1


@pytest.mark.asyncio
async def test_concurrent_adjustments_serialize(session, clock, make_type, make_item):
    item = await make_item(await make_type(), stock=6)

    async def withdraw():
        async with SessionLocal() as s:
            return await create_adjustment(s, item.id, -4, ADMIN_ID, reason="loss", clock=clock)

    results = await asyncio.gather(withdraw(), withdraw(), return_exceptions=True)

    assert sum(isinstance(r, StockAdjustment) for r in results) == 1
    assert sum(isinstance(r, NegativeStockError) for r in results) == 1
    assert (await load_item(session, item.id)).stock == 2


@pytest.mark.asyncio
async def test_history_lists_newest_first(session, clock, make_type, make_item):
    item = await make_item(await make_type(), stock=10)
    for change in (1, 2, 3):
        clock.advance(minutes=1)
        await create_adjustment(session, item.id, change, ADMIN_ID, clock=clock)

    page, total = await list_adjustments(session, item.id, offset=0, limit=2)
    assert total == 4
    assert [a.change for a in page] == [3, 2]


@pytest.mark.asyncio
async def test_adjustments_reconcile_with_stock(session, clock, make_type, make_item):
    item = await make_item(await make_type(), stock=10)
    await create_adjustment(session, item.id, 5, ADMIN_ID, clock=clock)
    await create_adjustment(session, item.id, -8, ADMIN_ID, clock=clock)

    balance = await stock_balance(session, item.id)
    assert balance["stock"] == balance["expected"] == 7
