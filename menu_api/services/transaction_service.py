import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from menu_api.errors import BadRequestError, InternalServerError, NotFoundError, parse_uuid
from menu_api.gateways.base import PaymentProvider, TransactionInitialization, to_minor_units
from menu_api.models.payment import Payment, PaymentStatus
from menu_api.schemas.payment import TransactionInit
from menu_api.services.menu_service import get_menu_with_all_items
from menu_api.services.order_service import AMOUNT_TOLERANCE, price_line_items

logger = logging.getLogger(__name__)


async def _check_priced_amount(db: AsyncSession, data: TransactionInit) -> None:
    menu = await get_menu_with_all_items(db, parse_uuid(data.menu_id, "menu"))
    if menu is None:
        raise NotFoundError(f"Menu with ID {data.menu_id} not found.")
    _, total = price_line_items(menu, data.items)
    if abs(total - data.amount) > AMOUNT_TOLERANCE:
        raise BadRequestError(
            f"Payment amount {data.amount} does not match order total {total}."
        )


async def initialize_transaction(
    db: AsyncSession,
    provider: PaymentProvider,
    data: TransactionInit,
) -> TransactionInitialization:
    """Open a gateway transaction for a basket.

    The menu and lines ride along as gateway metadata so the webhook worker
    can rebuild the order without the client.
    """
    if to_minor_units(data.amount) <= 0:
        raise BadRequestError("Payment amount must be positive.")
    if not data.name.strip():
        raise BadRequestError("Name is required for payment initialization.")

    metadata: dict = {}
    if data.menu_id and data.items:
        await _check_priced_amount(db, data)
        metadata = {
            "menuId": data.menu_id,
            "items": [
                {"menuItemId": str(line.menu_item_id), "quantity": line.quantity}
                for line in data.items
            ],
        }

    result = await provider.initialize_transaction(
        amount=data.amount,
        currency=data.currency,
        email=str(data.email),
        name=data.name.strip(),
        metadata=metadata,
    )
    logger.info(
        "Payment transaction initialized",
        extra={
            "reference": result.reference,
            "provider": provider.name,
            "amount": str(data.amount),
            "currency": data.currency,
        },
    )
    return result


async def update_payment_status(
    db: AsyncSession,
    payment_id: str | uuid.UUID,
    status: str,
) -> Payment:
    try:
        target = PaymentStatus(status)
    except ValueError:
        raise BadRequestError("Invalid payment status")

    payment = await db.get(Payment, parse_uuid(payment_id, "payment"))
    if payment is None:
        raise NotFoundError("Payment not found")

    previous = payment.status
    payment.status = target
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Failed to update payment status", extra={"payment_id": str(payment_id)})
        raise InternalServerError("Failed to update payment status")

    logger.info(
        "Payment status updated",
        extra={"payment_id": str(payment.id), "from": previous.value, "to": target.value},
    )
    return payment
