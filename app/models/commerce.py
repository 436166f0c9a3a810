"""
Unified Commerce Data Models

Normalised orders, order items and catalogue products written by the
per-marketplace sync adapters. One schema for every marketplace; amounts are
in the tenant's store currency and are never converted.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Index
from sqlalchemy.orm import relationship
from datetime import datetime

from app.models.base import Base


class UnifiedOrder(Base):
    """
    Marketplace order, normalised.

    status: PENDING, CONFIRMED, SHIPPED, DELIVERED, CANCELLED, RETURNED
    """
    __tablename__ = "unified_orders"

    id = Column(String, primary_key=True)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    marketplace = Column(String, nullable=False, index=True)
    external_order_id = Column(String, nullable=False)

    status = Column(String, nullable=False, default="PENDING", index=True)
    currency = Column(String, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)

    ordered_at = Column(DateTime, nullable=False, index=True)
    fulfilled_at = Column(DateTime, nullable=True)
    synced_at = Column(DateTime, default=datetime.utcnow)

    items = relationship("UnifiedOrderItem", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_unified_orders_tenant_ordered_at", "tenant_id", "ordered_at"),
    )


class UnifiedOrderItem(Base):
    """Line item of a unified order."""
    __tablename__ = "unified_order_items"

    id = Column(String, primary_key=True)
    order_id = Column(String, ForeignKey("unified_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String, ForeignKey("unified_products.id", ondelete="SET NULL"), nullable=True, index=True)

    title = Column(String, nullable=True)
    sku = Column(String, nullable=True, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String, nullable=False)

    order = relationship("UnifiedOrder", back_populates="items")


class UnifiedProduct(Base):
    """
    Catalogue listing on one marketplace, with current stock.

    status: ACTIVE, INACTIVE, OUT_OF_STOCK
    """
    __tablename__ = "unified_products"

    id = Column(String, primary_key=True)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    marketplace = Column(String, nullable=False)
    external_id = Column(String, nullable=True)

    title = Column(String, nullable=False)
    sku = Column(String, nullable=True, index=True)
    category = Column(String, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String, nullable=False)
    inventory = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="ACTIVE")

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_unified_products_tenant_status", "tenant_id", "status"),
    )
