"""Order lifecycle controller.

Translates boundary payloads into repository calls and shapes the success
envelopes returned to clients. Errors raised here or by the repository are
``OrderbookError`` subclasses; the HTTP layer renders them.

State machine per order::

    active --record_purchase--> sold
    active --submit (same hash)--> active   (payload refresh)
"""

from .domain import OrderRepositoryPort
from .schemas import OrderOut, OrderSummary, parse_purchase, parse_submission


class OrderLifecycle:
    """Controller orchestrating order submission, listing and purchase.

    Args:
        repository: Persistence port, usually ``repo.OrderRepository``.
    """

    def __init__(self, repository: OrderRepositoryPort):
        self.repository = repository

    def submit(self, payload) -> dict:
        """Create or refresh an order.

        Validation happens before any store access.

        Returns:
            dict: ``{"success": True, "order": {id, tokenId, price, seller, createdAt}}``.
        """
        submission = parse_submission(payload)
        order = self.repository.upsert_order(submission)
        return {"success": True, "order": OrderSummary.dump(order)}

    def list_active(self, limit: int | None = None) -> dict:
        orders = self.repository.list_active_orders(limit)
        return {"success": True, "orders": [OrderOut.dump(o) for o in orders]}

    def record_purchase(self, payload) -> dict:
        """Mark the order identified by ``orderHash`` as sold to ``buyerAddress``.

        Raises:
            ValidationError: When orderHash or buyerAddress is missing.
            NotFoundError: When no order has the given hash.
        """
        purchase = parse_purchase(payload)
        order = self.repository.mark_sold(purchase.order_hash, purchase.buyer_address)
        return {"success": True, "order": OrderOut.dump(order)}
