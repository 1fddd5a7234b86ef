from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from .events import Subscription
from .models import Order
from .order_client import OrderSink, OrderSinkError, start_of_day

logger = logging.getLogger(__name__)


class OrderHistory:
    """Today's orders, newest first, reloaded on order change notifications."""

    def __init__(self, sink: OrderSink, *, since: Callable[[], datetime] = start_of_day):
        self._sink = sink
        self._since = since
        self._orders: List[Order] = []
        self._subscription: Optional[Subscription] = None

    def attach(self) -> None:
        if self._subscription is None:
            self._subscription = self._sink.subscribe(self.load)
        self.load()

    def detach(self) -> None:
        if self._subscription is not None:
            self._sink.unsubscribe(self._subscription)
            self._subscription = None

    def load(self) -> None:
        try:
            orders = self._sink.list_orders(self._since())
        except OrderSinkError as exc:
            logger.warning("Could not load order history: %s", exc)
            orders = []
        self._orders = sorted(orders, key=lambda order: order.created_at, reverse=True)

    def orders(self) -> List[Order]:
        return list(self._orders)

    def find(self, order_number: str) -> Optional[Order]:
        for order in self._orders:
            if order.order_number == order_number:
                return order
        return None
