"""Database models read by the channel-fit engine"""

from app.models.tenant import Tenant, MarketplaceConnection

from app.models.commerce import (
    UnifiedOrder,
    UnifiedOrderItem,
    UnifiedProduct,
)

__all__ = [
    "Tenant",
    "MarketplaceConnection",
    "UnifiedOrder",
    "UnifiedOrderItem",
    "UnifiedProduct",
]
