# Import all models here so SQLAlchemy registers them with Base.metadata
from menu_api.models.admin import RESTAURANT_ADMIN, SUPER_ADMIN, Admin
from menu_api.models.commission import DEFAULT_COMMISSION_ID, Commission
from menu_api.models.menu import Menu, MenuItem
from menu_api.models.order import ORDER_TRANSITIONS, Order, OrderItem, OrderStatus
from menu_api.models.payment import Payment, PaymentStatus

__all__ = [
    "Admin",
    "Commission",
    "DEFAULT_COMMISSION_ID",
    "Menu",
    "MenuItem",
    "ORDER_TRANSITIONS",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Payment",
    "PaymentStatus",
    "RESTAURANT_ADMIN",
    "SUPER_ADMIN",
]
