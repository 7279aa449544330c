import asyncio
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from menu_api.errors import (
    BadRequestError,
    InternalServerError,
    NotFoundError,
    ServiceError,
    parse_uuid,
)
from menu_api.gateways.base import PaymentProvider, VerificationStatus
from menu_api.metrics import RECONCILIATION_OUTCOMES
from menu_api.models.menu import Menu
from menu_api.models.order import Order, OrderItem, OrderStatus
from menu_api.models.payment import Payment, PaymentStatus
from menu_api.schemas.order import OrderFromPaymentCreate, OrderLineCreate
from menu_api.services.menu_service import get_menu_with_all_items
from shared.events import OrderConfirmedEvent, OrderItemEvent

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")


@dataclass
class Reconciliation:
    order: Order
    created: bool


class AmountMismatchError(InternalServerError):
    pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _fetch_order(db: AsyncSession, order_id: uuid.UUID) -> Order | None:
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .options(
            selectinload(Order.items).selectinload(OrderItem.menu_item),
            selectinload(Order.menu),
            selectinload(Order.payment),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _find_payment_by_reference(db: AsyncSession, reference: str) -> Payment | None:
    result = await db.execute(select(Payment).where(Payment.reference == reference))
    return result.scalars().first()


async def _existing_reconciliation(db: AsyncSession, payment: Payment) -> Reconciliation:
    order = await _fetch_order(db, payment.order_id)
    if order is None:
        logger.critical(
            "Payment exists but its order is missing",
            extra={"payment_id": str(payment.id), "reference": payment.reference},
        )
        raise InternalServerError(
            f"Order creation failed due to inconsistent payment data for reference "
            f"{payment.reference}. Please contact support."
        )
    return Reconciliation(order=order, created=False)


def price_line_items(menu: Menu, items: list[OrderLineCreate]) -> tuple[list[dict], Decimal]:
    """Price requested lines against the menu's current prices.

    Returns the order item rows to insert and the computed total.
    """
    by_id = {item.id: item for item in menu.items}
    lines: list[dict] = []
    total = Decimal("0.00")
    for requested in items:
        menu_item = by_id.get(requested.menu_item_id)
        if menu_item is None:
            raise BadRequestError(
                f"Menu item {requested.menu_item_id} not found in menu {menu.id}."
            )
        if not menu_item.is_available:
            raise BadRequestError(f"Menu item {menu_item.name} is currently unavailable.")
        if requested.quantity <= 0:
            raise BadRequestError(f"Quantity for {menu_item.name} must be positive.")

        subtotal = menu_item.price * requested.quantity
        total += subtotal
        lines.append(
            {
                "menu_item_id": menu_item.id,
                "quantity": requested.quantity,
                "unit_price": menu_item.price,
                "subtotal": subtotal,
            }
        )
    return lines, total


def _outcome_for(exc: ServiceError) -> str:
    if isinstance(exc, AmountMismatchError):
        return "mismatch"
    return "rejected" if exc.kind.caller_correctable else "error"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_order(db: AsyncSession, order_id: str | uuid.UUID) -> Order:
    order_uuid = parse_uuid(order_id, "order")
    try:
        order = await _fetch_order(db, order_uuid)
    except Exception:
        logger.exception("Failed to retrieve order", extra={"order_id": str(order_uuid)})
        raise InternalServerError("Failed to retrieve order")
    if order is None:
        raise NotFoundError("Order not found")
    return order


async def get_order_by_reference(db: AsyncSession, reference: str) -> Order:
    """Look up the order a payment reference was reconciled into.

    NotFound until the webhook worker (or the client) has created it.
    """
    payment = await _find_payment_by_reference(db, reference)
    if payment is None:
        raise NotFoundError(f"No order found for payment reference {reference}")
    return (await _existing_reconciliation(db, payment)).order


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def update_order_status(db: AsyncSession, order_id: str | uuid.UUID, status: str) -> Order:
    try:
        target = OrderStatus(status)
    except ValueError:
        raise BadRequestError("Invalid status")

    order_uuid = parse_uuid(order_id, "order")
    order = await db.get(Order, order_uuid)
    if order is None:
        raise NotFoundError("Order not found")
    if not order.can_transition_to(target):
        raise BadRequestError(f"Cannot change order status from {order.status.value} to {target.value}")

    previous = order.status
    order.status = target
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Failed to update order status", extra={"order_id": str(order_uuid)})
        raise InternalServerError("Failed to update order status")

    logger.info(
        "Order status updated",
        extra={"order_id": str(order_uuid), "from": previous.value, "to": target.value},
    )
    return await get_order(db, order_uuid)


async def _persist_order(
    db: AsyncSession,
    data: OrderFromPaymentCreate,
    lines: list[dict],
    total: Decimal,
    paid: Decimal,
    provider_name: str,
) -> uuid.UUID:
    order = Order(
        id=uuid.uuid4(),
        menu_id=data.menu_id,
        status=OrderStatus.CONFIRMED,
        total_amount=total,
        items=[OrderItem(**line) for line in lines],
        payment=Payment(
            amount=paid,
            status=PaymentStatus.SUCCESSFUL,
            reference=data.reference,
            provider=provider_name,
        ),
    )
    db.add(order)
    await db.commit()
    return order.id


async def _reconcile(
    db: AsyncSession,
    provider: PaymentProvider,
    data: OrderFromPaymentCreate,
    request_id: str,
    transaction_timeout: float,
) -> Reconciliation:
    reference = data.reference

    # 1. Verify with the gateway; provider errors propagate unchanged
    verification = await provider.verify_transaction(reference)
    if verification.status is not VerificationStatus.SUCCESSFUL:
        raise BadRequestError(
            f"Payment not successful. Status: {verification.status.value}, "
            f"Reason: {verification.gateway_message}"
        )

    # 2. Idempotency guard
    existing = await _find_payment_by_reference(db, reference)
    if existing is not None:
        logger.info(
            "Payment reference already reconciled, returning existing order",
            extra={"reference": reference, "order_id": str(existing.order_id), "request_id": request_id},
        )
        return await _existing_reconciliation(db, existing)

    # 3. Price the lines against the live menu
    menu = await get_menu_with_all_items(db, data.menu_id)
    if menu is None:
        raise NotFoundError(f"Menu with ID {data.menu_id} not found.")
    lines, total = price_line_items(menu, data.items)

    # 4. Compare with what the gateway actually collected
    paid = verification.verified_amount
    if paid is None:
        logger.critical(
            "Verified amount missing from gateway response",
            extra={"reference": reference, "request_id": request_id},
        )
        raise InternalServerError("Could not verify paid amount. Cannot create order.")
    if abs(paid - total) > AMOUNT_TOLERANCE:
        logger.critical(
            "Amount mismatch between payment and order",
            extra={
                "reference": reference,
                "paid": str(paid),
                "calculated": str(total),
                "request_id": request_id,
            },
        )
        raise AmountMismatchError("Payment amount does not match order total. Cannot create order.")

    # 5. Order, items and payment in one transaction
    try:
        order_id = await asyncio.wait_for(
            _persist_order(db, data, lines, total, paid, provider.name),
            timeout=transaction_timeout,
        )
    except IntegrityError:
        await db.rollback()
        existing = await _find_payment_by_reference(db, reference)
        if existing is None:
            raise
        logger.info(
            "Concurrent reconciliation won the race, returning its order",
            extra={"reference": reference, "request_id": request_id},
        )
        return await _existing_reconciliation(db, existing)
    except asyncio.TimeoutError:
        await db.rollback()
        logger.error(
            "Order transaction timed out",
            extra={"reference": reference, "timeout": transaction_timeout, "request_id": request_id},
        )
        raise InternalServerError("Failed to create order from payment")

    order = await _fetch_order(db, order_id)
    if order is None:
        raise InternalServerError("Failed to fetch created order details")
    return Reconciliation(order=order, created=True)


async def create_order_from_payment(
    db: AsyncSession,
    provider: PaymentProvider,
    data: OrderFromPaymentCreate,
    request_id: str = "unknown",
    source: str = "api",
    transaction_timeout: float = 20.0,
) -> Reconciliation:
    """Turn a verified gateway payment into a confirmed order, at most once per reference."""
    if not data.items:
        raise BadRequestError("Order must contain at least one item.")

    logger.info(
        "Reconciling payment",
        extra={
            "reference": data.reference,
            "menu_id": str(data.menu_id),
            "source": source,
            "request_id": request_id,
        },
    )

    with tracer.start_as_current_span("order.reconcile") as span:
        span.set_attribute("payment.reference", data.reference)
        span.set_attribute("payment.provider", provider.name)
        span.set_attribute("reconcile.source", source)
        try:
            result = await _reconcile(db, provider, data, request_id, transaction_timeout)
        except ServiceError as exc:
            RECONCILIATION_OUTCOMES.labels(source=source, outcome=_outcome_for(exc)).inc()
            logger.warning(
                "Reconciliation rejected",
                extra={
                    "reference": data.reference,
                    "kind": exc.kind.value,
                    "error": exc.message,
                    "request_id": request_id,
                },
            )
            raise
        except Exception:
            RECONCILIATION_OUTCOMES.labels(source=source, outcome="error").inc()
            logger.exception(
                "Unexpected error reconciling payment",
                extra={"reference": data.reference, "request_id": request_id},
            )
            raise InternalServerError("Failed to create order from payment")

        outcome = "confirmed" if result.created else "duplicate"
        span.set_attribute("reconcile.outcome", outcome)
        span.set_attribute("order.id", str(result.order.id))

    RECONCILIATION_OUTCOMES.labels(source=source, outcome=outcome).inc()
    logger.info(
        "Payment reconciled",
        extra={
            "reference": data.reference,
            "order_id": str(result.order.id),
            "created": result.created,
            "total": str(result.order.total_amount),
            "request_id": request_id,
        },
    )
    return result


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def build_order_confirmed_event(order: Order, reference: str, correlation_id: str) -> OrderConfirmedEvent:
    return OrderConfirmedEvent(
        correlation_id=correlation_id,
        order_id=order.id,
        menu_id=order.menu_id,
        menu_name=order.menu.name if order.menu else None,
        reference=reference,
        total_amount=order.total_amount,
        items=[
            OrderItemEvent(
                menu_item_id=item.menu_item_id,
                name=item.menu_item.name if item.menu_item else "Unknown",
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=item.subtotal,
            )
            for item in order.items
        ],
    )
