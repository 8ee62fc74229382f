"""Error taxonomy for the order-intake service.

Each error carries a client-safe ``message`` and the HTTP ``status_code``
the boundary answers with. Internal details (SQL, driver messages) travel
only through exception chaining and logs, never through ``message``.
"""


class OrderbookError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    message = "Server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(OrderbookError):
    """A required field is missing or malformed."""

    status_code = 400
    message = "Missing parameters"


class NotFoundError(OrderbookError):
    """The referenced orderHash does not exist."""

    status_code = 404
    message = "Order not found"


class OrderSoldError(OrderbookError):
    """An order was resubmitted after it had already been sold."""

    status_code = 409
    message = "Order already sold"


class StoreError(OrderbookError):
    """Any failure talking to or executing against the database."""

    status_code = 500
    message = "Server error"


class SerializationError(Exception):
    """A stored payload could not be parsed back into structured data."""
