"""
Package and order tracking handlers.

Both resolve an existing record by its natural key before writing:
packages by tracking number, orders by (shop name, order number). A
second message about the same parcel or order updates the record it
resolved to instead of creating another one. Order status changes are
plain overwrites; a later message may move an order back out of
DELIVERED or CANCELLED.
"""

import re
from typing import Any

from lifeflow.classifiers.domains import carrier_for, shop_name_from_domain
from lifeflow.core.logging import get_logger
from lifeflow.core.models import (
    Order,
    OrderStatus,
    Package,
    PackageStatus,
    RecordKind,
    RecordReference,
)
from lifeflow.handlers.base import ActionContext, ActionOutcome, BaseActionHandler, parse_date
from lifeflow.handlers.registry import register_handler
from lifeflow.rules.models import ActionKind, TrackOrderParams, TrackPackageParams

log = get_logger(__name__)

UNKNOWN_CARRIER = "Unknown"


def _phrases(*phrases: str) -> re.Pattern:
    return re.compile(
        "|".join(r"(?<!\w)" + re.escape(p) + r"(?!\w)" for p in phrases),
        re.IGNORECASE,
    )


# Checked in order; the first match wins
PACKAGE_STATUS_PATTERNS: list[tuple[PackageStatus, re.Pattern]] = [
    (PackageStatus.OUT_FOR_DELIVERY, _phrases(
        "out for delivery", "wordt vandaag bezorgd", "bezorger is onderweg", "arriving today",
    )),
    (PackageStatus.DELIVERED, _phrases(
        "has been delivered", "was delivered", "is delivered", "is bezorgd", "is afgeleverd",
        "afgeleverd", "bezorgd bij",
    )),
    (PackageStatus.IN_TRANSIT, _phrases(
        "shipped", "verzonden", "onderweg", "in transit", "on its way", "track & trace",
        "tracking number", "zending",
    )),
]

ORDER_STATUS_PATTERNS: list[tuple[OrderStatus, re.Pattern]] = [
    (OrderStatus.CANCELLED, _phrases("cancelled", "canceled", "geannuleerd", "annulering")),
    (OrderStatus.RETURNED, _phrases("returned", "retour ontvangen", "retourzending", "refund", "terugbetaling")),
    (OrderStatus.DELIVERED, _phrases(
        "has been delivered", "was delivered", "is delivered", "is bezorgd", "is afgeleverd",
    )),
    # Must precede SHIPPED: confirmations say "once your order has shipped"
    (OrderStatus.ORDERED, _phrases(
        "order confirmation", "order confirmed", "orderbevestiging", "bestelbevestiging",
        "thank you for your order", "bedankt voor je bestelling", "bedankt voor uw bestelling",
    )),
    (OrderStatus.SHIPPED, _phrases(
        "shipped", "verzonden", "onderweg", "on its way", "out for delivery",
    )),
    (OrderStatus.PROCESSING, _phrases(
        "being processed", "being prepared", "in behandeling", "wordt verwerkt", "wordt klaargemaakt",
    )),
    (OrderStatus.AWAITING_PAYMENT, _phrases(
        "awaiting payment", "wacht op betaling", "complete your payment", "betaal nu", "pay now",
    )),
    (OrderStatus.PAID, _phrases(
        "payment received", "payment confirmed", "betaling ontvangen", "betaling bevestigd",
    )),
]

PAYMENT_RE = _phrases(
    "payment received", "payment confirmed", "betaling ontvangen", "betaling bevestigd",
    "betaald", "paid",
)


def derive_package_status(text: str) -> PackageStatus:
    for status, pattern in PACKAGE_STATUS_PATTERNS:
        if pattern.search(text):
            return status
    return PackageStatus.PENDING


def detect_order_status(text: str) -> OrderStatus | None:
    """Order status the message implies, or None when it says nothing about it."""
    for status, pattern in ORDER_STATUS_PATTERNS:
        if pattern.search(text):
            return status
    return None


def payment_detected(text: str) -> bool:
    return PAYMENT_RE.search(text) is not None


def resolve_package(
    handler: BaseActionHandler,
    ctx: ActionContext,
    tracking_number: str,
    carrier: str,
    status: PackageStatus,
) -> tuple[str, bool, str]:
    """
    Find the owner's package by tracking number and update it, or create it.

    Returns (package id, created, detail).
    """
    storage = handler.storage
    existing = storage.find_package_by_tracking(ctx.owner_id, tracking_number)

    if existing is not None:
        changes: dict[str, Any] = {}
        if status != PackageStatus.PENDING and status != existing.status:
            changes["status"] = status
        if existing.carrier in ("", UNKNOWN_CARRIER) and carrier != UNKNOWN_CARRIER:
            changes["carrier"] = carrier
        if "status" in changes:
            detail = f"package {existing.status.value} -> {status.value}"
        else:
            detail = "package updated" if changes else "package unchanged"

        if changes:
            storage.update_package(existing.id, changes)
        log.info("package_updated", package_id=existing.id, changed=sorted(changes), detail=detail)
        return existing.id, False, detail

    package_id = storage.create_package(Package(
        owner_id=ctx.owner_id,
        carrier=carrier,
        tracking_number=tracking_number,
        description=f"Package: {ctx.message.subject[:100]}",
        status=status,
        expected_delivery=parse_date(ctx.extracted.expected_delivery),
        source_message_id=ctx.message.id,
    ))
    log.info("package_created", package_id=package_id, carrier=carrier, status=status.value)
    return package_id, True, "package created"


def _carrier(ctx: ActionContext, override: str | None = None) -> str:
    return override or ctx.extracted.carrier or carrier_for(ctx.sender_domain) or UNKNOWN_CARRIER


@register_handler
class TrackPackageHandler(BaseActionHandler):
    """Creates or updates a package by tracking number."""

    kind = ActionKind.TRACK_PACKAGE

    def handle(self, ctx: ActionContext, params: TrackPackageParams) -> ActionOutcome:
        # Placeholder until a real tracking code shows up
        tracking_number = ctx.extracted.tracking_number or f"pending-{ctx.message.id}"
        status = derive_package_status(ctx.message.text)

        package_id, created, detail = resolve_package(
            self, ctx, tracking_number, _carrier(ctx, params.carrier), status
        )
        ref = RecordReference(RecordKind.PACKAGE, package_id)
        return ActionOutcome(
            success=True,
            result=ref,
            created=[ref] if created else [],
            detail=detail,
        )


@register_handler
class TrackOrderHandler(BaseActionHandler):
    """Creates or updates an order by (shop name, order number)."""

    kind = ActionKind.TRACK_ORDER

    def handle(self, ctx: ActionContext, params: TrackOrderParams) -> ActionOutcome:
        extracted = ctx.extracted
        # Orders key on the domain-derived name; extracted names only cover unknown senders
        shop_name = shop_name_from_domain(ctx.sender_domain)
        if shop_name == "Unknown" and extracted.shop_name:
            shop_name = extracted.shop_name
        order_number = extracted.order_number
        text = ctx.message.text
        detected = detect_order_status(text)
        paid = payment_detected(text) or detected == OrderStatus.PAID

        existing = None
        if order_number:
            existing = self.storage.find_order(ctx.owner_id, shop_name, order_number)

        if existing is not None:
            return self._update(ctx, params, existing, detected, paid)
        return self._create(ctx, params, shop_name, order_number, detected, paid)

    def _link_package(
        self, ctx: ActionContext, params: TrackOrderParams, status: PackageStatus
    ) -> tuple[str | None, list[RecordReference]]:
        tracking_number = ctx.extracted.tracking_number
        if not params.create_package or not tracking_number:
            return None, []
        package_id, created, _ = resolve_package(self, ctx, tracking_number, _carrier(ctx), status)
        ref = RecordReference(RecordKind.PACKAGE, package_id)
        return package_id, [ref] if created else []

    def _create(
        self,
        ctx: ActionContext,
        params: TrackOrderParams,
        shop_name: str,
        order_number: str | None,
        detected: OrderStatus | None,
        paid: bool,
    ) -> ActionOutcome:
        extracted = ctx.extracted
        received = ctx.message.received_at
        status = detected or OrderStatus.ORDERED
        order = Order(
            owner_id=ctx.owner_id,
            shop_name=shop_name,
            order_number=order_number,
            status=status,
            order_date=received,
            product_name=ctx.message.subject[:200] or None,
            amount=extracted.amount,
            currency=extracted.currency or self.settings.default_currency,
            is_paid=paid,
            source_message_id=ctx.message.id,
        )

        created: list[RecordReference] = []
        if status == OrderStatus.SHIPPED:
            order.shipped_date = received
            order.tracking_number = extracted.tracking_number
            order.package_id, created = self._link_package(ctx, params, PackageStatus.IN_TRANSIT)
        elif status == OrderStatus.DELIVERED:
            order.delivered_date = received

        order_id = self.storage.create_order(order)
        ref = RecordReference(RecordKind.ORDER, order_id)
        log.info("order_created", order_id=order_id, shop_name=shop_name, status=status.value)
        return ActionOutcome(
            success=True,
            result=ref,
            created=[ref, *created],
            detail=f"order created as {status.value}",
        )

    def _update(
        self,
        ctx: ActionContext,
        params: TrackOrderParams,
        order: Order,
        detected: OrderStatus | None,
        paid: bool,
    ) -> ActionOutcome:
        extracted = ctx.extracted
        received = ctx.message.received_at
        changes: dict[str, Any] = {}
        created: list[RecordReference] = []

        if detected is not None and detected != order.status:
            changes["status"] = detected

        # Shipment details fill gaps even when the status is already SHIPPED
        if detected == OrderStatus.SHIPPED:
            if order.shipped_date is None:
                changes["shipped_date"] = received
            if not order.tracking_number and extracted.tracking_number:
                changes["tracking_number"] = extracted.tracking_number
            if order.package_id is None:
                package_id, created = self._link_package(ctx, params, PackageStatus.IN_TRANSIT)
                if package_id:
                    changes["package_id"] = package_id

        elif "status" in changes and detected == OrderStatus.DELIVERED:
            if order.delivered_date is None:
                changes["delivered_date"] = received
            if order.package_id:
                self.storage.update_package(order.package_id, {"status": PackageStatus.DELIVERED})

        if paid and not order.is_paid:
            changes["is_paid"] = True
        if order.amount is None and extracted.amount is not None:
            changes["amount"] = extracted.amount

        if "status" in changes:
            detail = f"order {order.status.value} -> {detected.value}"
        else:
            detail = "order updated" if changes else "order unchanged"

        if changes:
            self.storage.update_order(order.id, changes)

        log.info("order_updated", order_id=order.id, changed=sorted(changes), detail=detail)
        return ActionOutcome(
            success=True,
            result=RecordReference(RecordKind.ORDER, order.id),
            created=created,
            detail=detail,
        )
