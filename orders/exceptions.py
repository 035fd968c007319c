"""
ORDERS App - Exceptions
"""


class OrderNotFoundError(LookupError):
    """Raised when an order key does not match any stored order."""

    def __init__(self, order_key: str):
        self.order_key = order_key
        super().__init__(f"Order {order_key} not found")
