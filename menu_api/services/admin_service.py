"""
Platform administration: admin login, the commission setting, and the
dashboard aggregates computed from successful payments.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from menu_api.config import Settings
from menu_api.errors import (
    AuthenticationError,
    BadRequestError,
    InternalServerError,
    NotFoundError,
    ServiceError,
)
from menu_api.models.admin import RESTAURANT_ADMIN, SUPER_ADMIN, Admin
from menu_api.models.commission import DEFAULT_COMMISSION_ID, Commission
from menu_api.models.menu import Menu
from menu_api.models.order import Order
from menu_api.models.payment import Payment, PaymentStatus
from menu_api.security import AdminClaims, create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


@dataclass
class DashboardMetrics:
    total_restaurants: int
    total_menus: int
    total_orders: int
    total_payments: Decimal
    total_commission: Decimal


@dataclass
class PaymentWithCommission:
    id: uuid.UUID
    order_id: uuid.UUID
    amount: Decimal
    status: PaymentStatus
    reference: str
    provider: str
    commission_amount: Decimal
    net_amount: Decimal
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


async def login(db: AsyncSession, email: str, password: str) -> Admin:
    result = await db.execute(select(Admin).where(Admin.email == email.strip().lower()))
    admin = result.scalars().first()
    if admin is None or not verify_password(password, admin.password_hash):
        logger.warning("Failed admin login", extra={"email": email})
        raise AuthenticationError("Invalid email or password")
    logger.info("Admin logged in", extra={"admin_id": str(admin.id), "role": admin.role})
    return admin


def issue_token(admin: Admin, settings: Settings) -> str:
    return create_access_token(
        AdminClaims(id=admin.id, email=admin.email, role=admin.role),
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
    )


# ---------------------------------------------------------------------------
# Commission
# ---------------------------------------------------------------------------


async def _commission_row(db: AsyncSession) -> Commission | None:
    return await db.get(Commission, DEFAULT_COMMISSION_ID, populate_existing=True)


async def get_commission(db: AsyncSession) -> Commission:
    commission = await _commission_row(db)
    if commission is None:
        raise NotFoundError(f"Commission setting '{DEFAULT_COMMISSION_ID}' not found.")
    return commission


async def update_commission(db: AsyncSession, percentage: float | Decimal) -> Commission:
    value = Decimal(str(percentage))
    if value < 0 or value > 1:
        raise BadRequestError(
            "Commission percentage must be between 0 (0%) and 1 (100%). Example: 0.05 for 5%."
        )

    commission = await _commission_row(db)
    if commission is None:
        raise NotFoundError(f"Commission setting '{DEFAULT_COMMISSION_ID}' not found to update.")

    commission.percentage = value
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Failed to update commission")
        raise InternalServerError("Failed to update commission setting.")

    logger.info("Commission updated", extra={"percentage": str(value)})
    return commission


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


async def _count(db: AsyncSession, stmt) -> int:
    return (await db.execute(stmt)).scalar_one()


async def get_dashboard_metrics(db: AsyncSession) -> DashboardMetrics:
    try:
        commission = await _commission_row(db)
        if commission is None:
            logger.warning("Default commission setting not found")
            raise InternalServerError("Commission setting not found. Please seed the database.")

        total_restaurants = await _count(
            db, select(func.count()).select_from(Admin).where(Admin.role == RESTAURANT_ADMIN)
        )
        total_menus = await _count(db, select(func.count()).select_from(Menu))
        total_orders = await _count(db, select(func.count()).select_from(Order))
        paid_sum = (
            await db.execute(
                select(func.coalesce(func.sum(Payment.amount), 0)).where(
                    Payment.status == PaymentStatus.SUCCESSFUL
                )
            )
        ).scalar_one()
    except ServiceError:
        raise
    except Exception:
        logger.exception("Error fetching dashboard metrics")
        raise InternalServerError("Failed to retrieve dashboard metrics")

    total_payments = Decimal(str(paid_sum)).quantize(_CENT)
    return DashboardMetrics(
        total_restaurants=total_restaurants,
        total_menus=total_menus,
        total_orders=total_orders,
        total_payments=total_payments,
        total_commission=(total_payments * commission.percentage).quantize(_CENT),
    )


async def list_payments(db: AsyncSession, limit: int = 50, offset: int = 0) -> list[PaymentWithCommission]:
    if limit <= 0 or offset < 0:
        raise BadRequestError("limit must be positive and offset non-negative")

    try:
        commission = await _commission_row(db)
        if commission is None:
            raise InternalServerError(
                "Commission setting not found. Cannot calculate payment breakdowns."
            )
        result = await db.execute(
            select(Payment)
            .order_by(Payment.created_at.desc(), Payment.id)
            .limit(limit)
            .offset(offset)
        )
        payments = result.scalars().all()
    except ServiceError:
        raise
    except Exception:
        logger.exception("Error fetching payments with commission")
        raise InternalServerError("Failed to retrieve payments.")

    rows = []
    for payment in payments:
        commission_amount = (payment.amount * commission.percentage).quantize(_CENT)
        rows.append(
            PaymentWithCommission(
                id=payment.id,
                order_id=payment.order_id,
                amount=payment.amount,
                status=payment.status,
                reference=payment.reference,
                provider=payment.provider,
                commission_amount=commission_amount,
                net_amount=payment.amount - commission_amount,
                created_at=payment.created_at,
                updated_at=payment.updated_at,
            )
        )
    return rows


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


async def seed_defaults(db: AsyncSession, settings: Settings) -> None:
    """Ensure the commission row exists, plus the bootstrap super admin when configured."""
    if await _commission_row(db) is None:
        db.add(
            Commission(
                id=DEFAULT_COMMISSION_ID,
                percentage=Decimal(str(settings.default_commission_percentage)),
            )
        )
        logger.info(
            "Seeded default commission",
            extra={"percentage": settings.default_commission_percentage},
        )

    email = settings.bootstrap_admin_email.strip().lower()
    if email and settings.bootstrap_admin_password:
        existing = await db.execute(select(Admin.id).where(Admin.email == email))
        if existing.scalars().first() is None:
            db.add(
                Admin(
                    email=email,
                    password_hash=get_password_hash(settings.bootstrap_admin_password),
                    role=SUPER_ADMIN,
                )
            )
            logger.info("Seeded bootstrap admin", extra={"email": email})

    await db.commit()
