"""
Order payment reminders.

An order needs a reminder when it is still ORDERED or AWAITING_PAYMENT,
was placed more than `order_reminder_days` ago and has not had one yet.
Each order is reminded at most once.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from lifeflow.config import Settings
from lifeflow.core.logging import get_logger
from lifeflow.core.models import Order, as_utc, utcnow
from lifeflow.core.storage import Storage

log = get_logger(__name__)


@dataclass
class OrderReminder:
    order: Order
    days_since_order: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.order.id,
            "shopName": self.order.shop_name,
            "orderNumber": self.order.order_number,
            "productName": self.order.product_name,
            "status": self.order.status.value,
            "orderDate": self.order.order_date.isoformat(),
            "daysSinceOrder": self.days_since_order,
        }


def check_order_reminders(
    storage: Storage, settings: Settings, owner_id: str, now: datetime | None = None
) -> list[OrderReminder]:
    """Find orders that need a reminder and mark them as reminded."""
    now = now or utcnow()
    cutoff = now - timedelta(days=settings.order_reminder_days)
    orders = storage.list_orders_needing_reminder(owner_id, cutoff)

    reminders = [
        OrderReminder(order=order, days_since_order=(now - as_utc(order.order_date)).days)
        for order in orders
    ]

    if reminders:
        storage.mark_reminders_sent([order.id for order in orders])
        for order in orders:
            order.reminder_sent = True

    log.info("order_reminders_checked", owner_id=owner_id, count=len(reminders))
    return reminders
