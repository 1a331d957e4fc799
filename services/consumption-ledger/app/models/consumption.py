"""
Consumption Ledger — Database models

[CONFIG DATA]        consumption_types, consumption_items (descriptive fields)
[TRANSACTIONAL DATA] consumption_items.stock, consumption_records, stock_adjustments

consumption_records and stock_adjustments are append-only: the ledger only
ever inserts them. consumption_items.stock is written exclusively through
the conditional update in app.db.stock_ops.
"""
import uuid
from datetime import date, datetime
from enum import Enum as PyEnum
from sqlalchemy import (
    CheckConstraint, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Text, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Period(str, PyEnum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class ConsumptionType(Base):
    """
    [CONFIG DATA] — a category of consumable with a per-period quota.
    """
    __tablename__ = "consumption_types"
    __table_args__ = (CheckConstraint("quota_limit > 0", name="ck_type_limit_positive"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    limit: Mapped[int] = mapped_column("quota_limit", Integer, nullable=False)
    period: Mapped[Period] = mapped_column(Enum(Period, name="consumption_period"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items: Mapped[list["ConsumptionItem"]] = relationship(back_populates="consumption_type")


class ConsumptionItem(Base):
    """
    Physical stock of one consumption type.
    version_id is the optimistic locking column — incremented on every stock write.
    """
    __tablename__ = "consumption_items"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_item_stock_non_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    photo: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # optimistic lock
    consumption_type_id: Mapped[str] = mapped_column(
        ForeignKey("consumption_types.id"), index=True, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    consumption_type: Mapped[ConsumptionType] = relationship(back_populates="items")
    records: Mapped[list["ConsumptionRecord"]] = relationship(back_populates="item")
    adjustments: Mapped[list["StockAdjustment"]] = relationship(back_populates="item")


class ConsumptionRecord(Base):
    """
    [TRANSACTIONAL DATA] — a user taking units of an item. Append-only.
    user_id references the identity provider's user; no local FK.
    """
    __tablename__ = "consumption_records"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_record_quantity_positive"),
        Index("ix_records_user_item_taken", "user_id", "item_id", "taken_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    item_id: Mapped[str] = mapped_column(
        ForeignKey("consumption_items.id", ondelete="CASCADE"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    photo: Mapped[str] = mapped_column(String(1024), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    taken_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)

    item: Mapped[ConsumptionItem] = relationship(back_populates="records")


class StockAdjustment(Base):
    """
    [TRANSACTIONAL DATA] — audited signed stock delta. Append-only.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (CheckConstraint("change <> 0", name="ck_adjustment_change_nonzero"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    item_id: Mapped[str] = mapped_column(
        ForeignKey("consumption_items.id", ondelete="CASCADE"), index=True, nullable=False
    )
    change: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)

    item: Mapped[ConsumptionItem] = relationship(back_populates="adjustments")
