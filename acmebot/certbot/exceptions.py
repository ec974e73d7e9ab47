import typing

import acme.messages

from acmebot.client.exceptions import AcmeClientException


class OrderFailed(AcmeClientException):
    """Exception that is raised once the server marked an order as *invalid*."""

    def __init__(self, order: acme.messages.Order, order_url: str):
        super().__init__(order, order_url)
        self.order = order
        self.order_url = order_url

    @property
    def error(self) -> typing.Optional[acme.messages.Error]:
        """The problem document the server attached to the order, if any."""
        return self.order.error

    def __str__(self):
        return f"Order {self.order_url} is invalid: {self.error}"
