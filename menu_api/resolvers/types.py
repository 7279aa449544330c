"""
GraphQL object and input types.

Money crosses the wire as Float and timestamps as ISO-8601 strings; field
names are camelCased by Strawberry.
"""

from datetime import datetime
from typing import Generic, Optional, TypeVar

import strawberry

from menu_api import models
from menu_api.errors import ServiceError
from menu_api.gateways.base import TransactionInitialization as GatewayInitialization
from menu_api.services import admin_service

T = TypeVar("T")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


@strawberry.type
class Envelope(Generic[T]):
    status_code: int
    success: bool
    message: str
    data: Optional[T] = None


def ok(data, message: str = "Success", status_code: int = 200) -> Envelope:
    return Envelope(status_code=status_code, success=True, message=message, data=data)


def failure(exc: ServiceError) -> Envelope:
    return Envelope(status_code=exc.status_code, success=False, message=exc.message, data=None)


@strawberry.type
class HealthCheckStatus:
    status: str


# ---------------------------------------------------------------------------
# Menus
# ---------------------------------------------------------------------------


@strawberry.type
class MenuItem:
    id: strawberry.ID
    menu_id: strawberry.ID
    name: str
    description: Optional[str]
    price: float
    is_available: bool

    @classmethod
    def from_model(cls, item: models.MenuItem) -> "MenuItem":
        return cls(
            id=strawberry.ID(str(item.id)),
            menu_id=strawberry.ID(str(item.menu_id)),
            name=item.name,
            description=item.description,
            price=float(item.price),
            is_available=item.is_available,
        )


@strawberry.type
class Menu:
    id: strawberry.ID
    name: str
    qr_code: str
    qr_code_data_url: Optional[str]
    items: list[MenuItem]
    created_at: str
    updated_at: str

    @classmethod
    def from_model(cls, menu: models.Menu) -> "Menu":
        return cls(
            id=strawberry.ID(str(menu.id)),
            name=menu.name,
            qr_code=menu.qr_code,
            qr_code_data_url=menu.qr_code_data_url,
            items=[MenuItem.from_model(item) for item in menu.items],
            created_at=_iso(menu.created_at),
            updated_at=_iso(menu.updated_at),
        )


@strawberry.input
class MenuItemInput:
    name: str
    price: float
    description: Optional[str] = None
    is_available: bool = True


@strawberry.input
class CreateMenuInput:
    name: str
    qr_code: str
    items: list[MenuItemInput] = strawberry.field(default_factory=list)


# ---------------------------------------------------------------------------
# Orders & payments
# ---------------------------------------------------------------------------


@strawberry.type
class Payment:
    id: strawberry.ID
    order_id: strawberry.ID
    amount: float
    status: str
    reference: str
    provider: str
    created_at: str
    updated_at: str

    @classmethod
    def from_model(cls, payment: models.Payment) -> "Payment":
        return cls(
            id=strawberry.ID(str(payment.id)),
            order_id=strawberry.ID(str(payment.order_id)),
            amount=float(payment.amount),
            status=payment.status.value,
            reference=payment.reference,
            provider=payment.provider,
            created_at=_iso(payment.created_at),
            updated_at=_iso(payment.updated_at),
        )


@strawberry.type
class OrderItem:
    id: strawberry.ID
    menu_item_id: strawberry.ID
    name: str
    quantity: int
    unit_price: float
    subtotal: float

    @classmethod
    def from_model(cls, item: models.OrderItem) -> "OrderItem":
        return cls(
            id=strawberry.ID(str(item.id)),
            menu_item_id=strawberry.ID(str(item.menu_item_id)),
            name=item.menu_item.name if item.menu_item else "Unknown",
            quantity=item.quantity,
            unit_price=float(item.unit_price),
            subtotal=float(item.subtotal),
        )


@strawberry.type
class Order:
    id: strawberry.ID
    menu_id: strawberry.ID
    menu_name: Optional[str]
    status: str
    total_amount: float
    items: list[OrderItem]
    payment: Optional[Payment]
    created_at: str
    updated_at: str

    @classmethod
    def from_model(cls, order: models.Order) -> "Order":
        return cls(
            id=strawberry.ID(str(order.id)),
            menu_id=strawberry.ID(str(order.menu_id)),
            menu_name=order.menu.name if order.menu else None,
            status=order.status.value,
            total_amount=float(order.total_amount),
            items=[OrderItem.from_model(item) for item in order.items],
            payment=Payment.from_model(order.payment) if order.payment else None,
            created_at=_iso(order.created_at),
            updated_at=_iso(order.updated_at),
        )


@strawberry.input
class OrderLineInput:
    menu_item_id: strawberry.ID
    quantity: int


@strawberry.input
class CreateOrderFromPaymentInput:
    reference: str
    menu_id: strawberry.ID
    items: list[OrderLineInput]


@strawberry.input
class InitializeTransactionInput:
    amount: float
    email: str
    name: str
    currency: Optional[str] = None
    menu_id: Optional[strawberry.ID] = None
    items: Optional[list[OrderLineInput]] = None


@strawberry.type
class TransactionInitialization:
    reference: str
    access_code: str
    authorization_url: Optional[str]

    @classmethod
    def from_result(cls, result: GatewayInitialization) -> "TransactionInitialization":
        return cls(
            reference=result.reference,
            access_code=result.access_code,
            authorization_url=result.authorization_url,
        )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@strawberry.type
class Commission:
    id: str
    percentage: float
    created_at: str
    updated_at: str

    @classmethod
    def from_model(cls, commission: models.Commission) -> "Commission":
        return cls(
            id=commission.id,
            percentage=float(commission.percentage),
            created_at=_iso(commission.created_at),
            updated_at=_iso(commission.updated_at),
        )


@strawberry.type
class DashboardMetrics:
    total_restaurants: int
    total_menus: int
    total_orders: int
    total_payments: float
    total_commission: float

    @classmethod
    def from_metrics(cls, metrics: admin_service.DashboardMetrics) -> "DashboardMetrics":
        return cls(
            total_restaurants=metrics.total_restaurants,
            total_menus=metrics.total_menus,
            total_orders=metrics.total_orders,
            total_payments=float(metrics.total_payments),
            total_commission=float(metrics.total_commission),
        )


@strawberry.type
class PaymentWithCommission:
    id: strawberry.ID
    order_id: strawberry.ID
    amount: float
    status: str
    reference: str
    provider: str
    commission_amount: float
    net_amount: float
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: admin_service.PaymentWithCommission) -> "PaymentWithCommission":
        return cls(
            id=strawberry.ID(str(row.id)),
            order_id=strawberry.ID(str(row.order_id)),
            amount=float(row.amount),
            status=row.status.value,
            reference=row.reference,
            provider=row.provider,
            commission_amount=float(row.commission_amount),
            net_amount=float(row.net_amount),
            created_at=_iso(row.created_at),
            updated_at=_iso(row.updated_at),
        )


@strawberry.type
class Admin:
    id: strawberry.ID
    email: str
    role: str

    @classmethod
    def from_model(cls, admin: models.Admin) -> "Admin":
        return cls(id=strawberry.ID(str(admin.id)), email=admin.email, role=admin.role)


@strawberry.type
class LoginPayload:
    token: str
    admin: Admin
