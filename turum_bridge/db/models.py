from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    DateTime,
    Enum,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class OrderStatus(str, enum.Enum):
    new = "new"
    reserved = "reserved"
    fulfilled = "fulfilled"
    cancelled = "cancelled"
    failed = "failed"


OPEN_STATUSES = (OrderStatus.new, OrderStatus.reserved)


class IntegrationOrder(Base):
    __tablename__ = "integration_orders"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shopify_order_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    turum_reservation_id: Mapped[str | None] = mapped_column(String(128), index=True)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="integration_order_status", native_enum=False),
        default=OrderStatus.new,
        nullable=False,
    )
    supplier_status: Mapped[str | None] = mapped_column(String(64))
    tracking_number: Mapped[str | None] = mapped_column(String(128))
    tracking_url: Mapped[str | None] = mapped_column(Text)
    carrier: Mapped[str | None] = mapped_column(String(128))
    payload: Mapped[dict | None] = mapped_column(JSON)
    error_message: Mapped[str | None] = mapped_column(Text)
    attempts: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shopify_order_id": self.shopify_order_id,
            "turum_reservation_id": self.turum_reservation_id,
            "status": self.status.value if self.status else None,
            "supplier_status": self.supplier_status,
            "tracking_number": self.tracking_number,
            "tracking_url": self.tracking_url,
            "carrier": self.carrier,
            "error_message": self.error_message,
            "attempts": self.attempts,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ProductVariantMap(Base):
    __tablename__ = "product_variant_maps"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shopify_sku: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    shopify_size: Mapped[str | None] = mapped_column(String(64))
    turum_variant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    turum_sku: Mapped[str | None] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    __table_args__ = (UniqueConstraint("shopify_sku", "shopify_size", name="uq_variant_map_sku_size"),)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shopify_sku": self.shopify_sku,
            "shopify_size": self.shopify_size,
            "turum_variant_id": self.turum_variant_id,
            "turum_sku": self.turum_sku,
        }
