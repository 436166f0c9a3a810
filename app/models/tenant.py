"""
Tenant and marketplace connection models

Owned by the account/OAuth layer; the channel-fit engine only reads them.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from datetime import datetime

from app.models.base import Base


class Tenant(Base):
    """A seller account. The row count drives the engine's operating phase."""
    __tablename__ = "tenants"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class MarketplaceConnection(Base):
    """
    A tenant's link to one marketplace account.

    status: PENDING, CONNECTED, DISCONNECTED, ERROR
    """
    __tablename__ = "marketplace_connections"

    id = Column(String, primary_key=True)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    marketplace = Column(String, nullable=False)  # SHOPIFY, EBAY, ETSY, ...
    status = Column(String, nullable=False, default="PENDING")
    connected_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_marketplace_connections_tenant_status", "tenant_id", "status"),
    )
