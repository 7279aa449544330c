import logging
from typing import Optional

import strawberry
from strawberry.types import Info

from menu_api.errors import BadRequestError, ServiceError
from menu_api.models.admin import SUPER_ADMIN
from menu_api.resolvers.context import GraphQLContext, require_admin
from menu_api.resolvers.types import (
    Commission,
    DashboardMetrics,
    Envelope,
    HealthCheckStatus,
    Menu,
    Order,
    PaymentWithCommission,
    failure,
    ok,
)
from menu_api.services import admin_service, menu_service, order_service
from menu_api.services.qr_code import qr_code_for_text

logger = logging.getLogger(__name__)


@strawberry.type
class Query:
    @strawberry.field
    async def health_check(self, info: Info) -> HealthCheckStatus:
        ctx: GraphQLContext = info.context
        try:
            await ctx.database.ping()
        except Exception as exc:
            logger.error("Health check failed", extra={"error": str(exc)})
            return HealthCheckStatus(status="error")
        return HealthCheckStatus(status="ok")

    @strawberry.field
    async def generate_qr_code(self, text: str) -> Envelope[str]:
        try:
            data_url = qr_code_for_text(text)
        except ServiceError as exc:
            return failure(exc)
        return ok(data_url, "QR Code generated successfully")

    @strawberry.field
    async def menu(
        self,
        info: Info,
        qr_code: Optional[str] = None,
        id: Optional[strawberry.ID] = None,
    ) -> Envelope[Menu]:
        ctx: GraphQLContext = info.context
        try:
            menu = await menu_service.get_menu(ctx.db, qr_code=qr_code, menu_id=id)
        except ServiceError as exc:
            return failure(exc)
        return ok(Menu.from_model(menu), "Menu retrieved successfully")

    @strawberry.field
    async def order(
        self,
        info: Info,
        id: Optional[strawberry.ID] = None,
        reference: Optional[str] = None,
    ) -> Envelope[Order]:
        ctx: GraphQLContext = info.context
        try:
            if (id is None) == (reference is None):
                raise BadRequestError("Provide exactly one of id or reference")
            if id is not None:
                order = await order_service.get_order(ctx.db, id)
            else:
                order = await order_service.get_order_by_reference(ctx.db, reference)
        except ServiceError as exc:
            return failure(exc)
        return ok(Order.from_model(order), "Order retrieved successfully")

    @strawberry.field
    async def commission(self, info: Info) -> Envelope[Commission]:
        require_admin(info, SUPER_ADMIN)
        ctx: GraphQLContext = info.context
        try:
            commission = await admin_service.get_commission(ctx.db)
        except ServiceError as exc:
            return failure(exc)
        return ok(Commission.from_model(commission), "Commission retrieved successfully")

    @strawberry.field
    async def dashboard_metrics(self, info: Info) -> Envelope[DashboardMetrics]:
        require_admin(info, SUPER_ADMIN)
        ctx: GraphQLContext = info.context
        try:
            metrics = await admin_service.get_dashboard_metrics(ctx.db)
        except ServiceError as exc:
            return failure(exc)
        return ok(DashboardMetrics.from_metrics(metrics), "Dashboard metrics retrieved successfully")

    @strawberry.field
    async def payments(
        self,
        info: Info,
        limit: int = 50,
        offset: int = 0,
    ) -> Envelope[list[PaymentWithCommission]]:
        require_admin(info, SUPER_ADMIN)
        ctx: GraphQLContext = info.context
        try:
            rows = await admin_service.list_payments(ctx.db, limit=limit, offset=offset)
        except ServiceError as exc:
            return failure(exc)
        return ok([PaymentWithCommission.from_row(row) for row in rows], "Payments retrieved successfully")
