import logging
from decimal import Decimal

import strawberry
from pydantic import BaseModel, ValidationError
from strawberry.types import Info

from menu_api.errors import BadRequestError, InternalServerError, ServiceError
from menu_api.models.admin import SUPER_ADMIN
from menu_api.resolvers.context import GraphQLContext, require_admin
from menu_api.resolvers.types import (
    Admin,
    Commission,
    CreateMenuInput,
    CreateOrderFromPaymentInput,
    Envelope,
    InitializeTransactionInput,
    LoginPayload,
    Menu,
    Order,
    Payment,
    TransactionInitialization,
    failure,
    ok,
)
from menu_api.schemas.menu import MenuCreate
from menu_api.schemas.order import OrderFromPaymentCreate
from menu_api.schemas.payment import TransactionInit
from menu_api.services import admin_service, menu_service, order_service, transaction_service
from shared.events import publish

logger = logging.getLogger(__name__)


def _validated(model: type[BaseModel], data: dict) -> BaseModel:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise BadRequestError(f"Invalid input at {location}: {first['msg']}")


def _provider(ctx: GraphQLContext):
    if ctx.provider is None:
        raise InternalServerError("Payment provider not configured")
    return ctx.provider


async def _announce(ctx: GraphQLContext, result: order_service.Reconciliation, reference: str) -> None:
    if not result.created or ctx.producer is None:
        return
    event = order_service.build_order_confirmed_event(result.order, reference, ctx.request_id)
    try:
        await publish(ctx.producer, ctx.settings.order_confirmed_topic, str(result.order.id), event)
    except Exception as exc:
        # The order is already committed here; only the receipt is lost
        logger.error(
            "Failed to publish order.confirmed",
            extra={"order_id": str(result.order.id), "error": str(exc), "request_id": ctx.request_id},
        )


@strawberry.type
class Mutation:
    @strawberry.mutation
    async def create_menu(self, info: Info, input: CreateMenuInput) -> Envelope[Menu]:
        require_admin(info)
        ctx: GraphQLContext = info.context
        try:
            data = _validated(
                MenuCreate,
                {
                    "name": input.name,
                    "qr_code": input.qr_code,
                    "items": [
                        {
                            "name": item.name,
                            "description": item.description,
                            "price": Decimal(str(item.price)),
                            "is_available": item.is_available,
                        }
                        for item in input.items
                    ],
                },
            )
            menu = await menu_service.create_menu(ctx.db, data, ctx.settings.frontend_url)
        except ServiceError as exc:
            return failure(exc)
        return ok(Menu.from_model(menu), "Menu created successfully", status_code=201)

    @strawberry.mutation
    async def create_order_from_payment(
        self, info: Info, input: CreateOrderFromPaymentInput
    ) -> Envelope[Order]:
        ctx: GraphQLContext = info.context
        try:
            data = _validated(
                OrderFromPaymentCreate,
                {
                    "reference": input.reference,
                    "menuId": input.menu_id,
                    "items": [
                        {"menuItemId": line.menu_item_id, "quantity": line.quantity}
                        for line in input.items
                    ],
                },
            )
            result = await order_service.create_order_from_payment(
                ctx.db,
                _provider(ctx),
                data,
                request_id=ctx.request_id,
                source="api",
                transaction_timeout=ctx.settings.reconcile_transaction_timeout,
            )
        except ServiceError as exc:
            return failure(exc)

        await _announce(ctx, result, data.reference)
        if result.created:
            return ok(Order.from_model(result.order), "Order created successfully", status_code=201)
        return ok(Order.from_model(result.order), "Order already exists for this payment reference")

    @strawberry.mutation
    async def update_order_status(
        self, info: Info, id: strawberry.ID, status: str
    ) -> Envelope[Order]:
        require_admin(info)
        ctx: GraphQLContext = info.context
        try:
            order = await order_service.update_order_status(ctx.db, id, status)
        except ServiceError as exc:
            return failure(exc)
        return ok(Order.from_model(order), "Order status updated successfully")

    @strawberry.mutation
    async def update_payment_status(
        self, info: Info, id: strawberry.ID, status: str
    ) -> Envelope[Payment]:
        require_admin(info)
        ctx: GraphQLContext = info.context
        try:
            payment = await transaction_service.update_payment_status(ctx.db, id, status)
        except ServiceError as exc:
            return failure(exc)
        return ok(Payment.from_model(payment), "Payment status updated successfully")

    @strawberry.mutation
    async def initialize_transaction(
        self, info: Info, input: InitializeTransactionInput
    ) -> Envelope[TransactionInitialization]:
        ctx: GraphQLContext = info.context
        try:
            data = _validated(
                TransactionInit,
                {
                    "amount": Decimal(str(input.amount)),
                    "currency": input.currency or ctx.settings.payment_currency,
                    "email": input.email,
                    "name": input.name,
                    "menu_id": input.menu_id,
                    "items": [
                        {"menuItemId": line.menu_item_id, "quantity": line.quantity}
                        for line in input.items or []
                    ],
                },
            )
            result = await transaction_service.initialize_transaction(ctx.db, _provider(ctx), data)
        except ServiceError as exc:
            return failure(exc)
        return ok(TransactionInitialization.from_result(result), "Transaction initialized successfully")

    @strawberry.mutation
    async def login_admin(self, info: Info, email: str, password: str) -> Envelope[LoginPayload]:
        ctx: GraphQLContext = info.context
        try:
            admin = await admin_service.login(ctx.db, email, password)
        except ServiceError as exc:
            return failure(exc)
        payload = LoginPayload(
            token=admin_service.issue_token(admin, ctx.settings),
            admin=Admin.from_model(admin),
        )
        return ok(payload, "Login successful")

    @strawberry.mutation
    async def update_commission(self, info: Info, percentage: float) -> Envelope[Commission]:
        require_admin(info, SUPER_ADMIN)
        ctx: GraphQLContext = info.context
        try:
            commission = await admin_service.update_commission(ctx.db, percentage)
        except ServiceError as exc:
            return failure(exc)
        return ok(Commission.from_model(commission), "Commission updated successfully")
