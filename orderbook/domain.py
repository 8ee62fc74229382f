"""Domain types for marketplace orders.

This module contains the order lifecycle enum, the ``Order`` dataclass
handed between the repository and the HTTP layer, and the repository port
the lifecycle controller depends on.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle states of an order.

    ``ACTIVE`` orders are listed for sale; ``SOLD`` is terminal.
    """

    ACTIVE = "active"
    SOLD = "sold"


# ---- Entities ----
@dataclass
class Order:
    """A stored sell listing.

    Attributes:
        id: Server-generated identifier, immutable.
        token_id: Identifier of the underlying token.
        price: Asking price; zero is valid.
        nft_contract: NFT collection contract for this deployment.
        marketplace_contract: Marketplace (Seaport) contract for this deployment.
        seller_address: Lower-cased seller wallet.
        seaport_order: Signed order payload. Structured data when the stored
            text decodes as JSON, otherwise the raw stored text.
        status: Current ``OrderStatus``.
        order_hash: Natural dedup key, or None.
        buyer_address: Lower-cased buyer wallet, set on purchase.
        on_chain: True once the purchase is recorded.
        image: Optional display image URL.
        created_at: Creation timestamp, set once.
        updated_at: Timestamp of the latest mutation.
    """

    id: str
    token_id: str
    price: Decimal
    nft_contract: str
    marketplace_contract: str
    seller_address: str
    seaport_order: Any
    status: OrderStatus = OrderStatus.ACTIVE
    order_hash: str | None = None
    buyer_address: str | None = None
    on_chain: bool = False
    image: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---- Ports ----
class OrderRepositoryPort(Protocol):
    """Persistence operations used by the lifecycle controller."""

    def upsert_order(self, order) -> Order:
        raise NotImplementedError()

    def list_active_orders(self, limit: int | None = None) -> list[Order]:
        raise NotImplementedError()

    def mark_sold(self, order_hash: str, buyer_address: str) -> Order:
        raise NotImplementedError()
