import logging
import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from menu_api.errors import BadRequestError, InternalServerError, NotFoundError, ServiceError, parse_uuid
from menu_api.models.menu import Menu, MenuItem
from menu_api.schemas.menu import MenuCreate
from menu_api.services.qr_code import generate_qr_data_url

logger = logging.getLogger(__name__)

DEMO_QR_CODE = "test-qr-123"

_DEMO_ITEMS = [
    {"name": "Burger", "description": "A classic beef burger", "price": Decimal("10.99")},
    {"name": "Fries", "description": "Crispy golden fries", "price": Decimal("3.99")},
    {
        "name": "Soda",
        "description": "Refreshing fizzy drink",
        "price": Decimal("1.99"),
        "is_available": False,
    },
]


async def seed_demo_menu(db: AsyncSession) -> None:
    """Create the demo menu if it does not exist yet. Called once on startup."""
    result = await db.execute(select(Menu.id).where(Menu.qr_code == DEMO_QR_CODE))
    if result.scalars().first() is not None:
        return
    db.add(Menu(name="Test Menu", qr_code=DEMO_QR_CODE, items=[MenuItem(**item) for item in _DEMO_ITEMS]))
    await db.commit()
    logger.info("Seeded demo menu", extra={"qr_code": DEMO_QR_CODE, "item_count": len(_DEMO_ITEMS)})


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def _load_menu(db: AsyncSession, *criteria, available_only: bool) -> Menu | None:
    items = Menu.items.and_(MenuItem.is_available.is_(True)) if available_only else Menu.items
    stmt = select(Menu).where(*criteria).options(selectinload(items))
    # populate_existing so a menu already in the session is reloaded with
    # the requested item filter rather than whatever was loaded before
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalars().first()


async def get_menu(
    db: AsyncSession,
    qr_code: str | None = None,
    menu_id: str | uuid.UUID | None = None,
) -> Menu:
    """Resolve a scan code or id to a menu and its available items."""
    if (qr_code is None) == (menu_id is None):
        raise BadRequestError("Provide exactly one of qrCode or id")

    try:
        if qr_code is not None:
            menu = await _load_menu(db, Menu.qr_code == qr_code, available_only=True)
        else:
            menu = await _load_menu(db, Menu.id == parse_uuid(menu_id, "menu"), available_only=True)
    except ServiceError:
        raise
    except Exception:
        logger.exception("Failed to retrieve menu", extra={"qr_code": qr_code, "menu_id": str(menu_id)})
        raise InternalServerError("Failed to retrieve menu")

    if menu is None:
        raise NotFoundError("Menu not found")
    return menu


async def get_menu_with_all_items(db: AsyncSession, menu_id: uuid.UUID) -> Menu | None:
    return await _load_menu(db, Menu.id == menu_id, available_only=False)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def create_menu(db: AsyncSession, data: MenuCreate, frontend_url: str) -> Menu:
    name = data.name.strip()
    qr_code = data.qr_code.strip()
    if not name or not qr_code:
        raise BadRequestError("Menu name and qrCode are required.")
    if any(item.price < 0 for item in data.items):
        raise BadRequestError("Menu item prices cannot be negative.")

    existing = await db.execute(select(Menu.id).where(Menu.qr_code == qr_code))
    if existing.scalars().first() is not None:
        raise BadRequestError("QR code already exists.")

    menu = Menu(
        id=uuid.uuid4(),
        name=name,
        qr_code=qr_code,
        items=[
            MenuItem(
                name=item.name,
                description=item.description,
                price=item.price,
                is_available=item.is_available,
            )
            for item in data.items
        ],
    )
    menu_url = f"{frontend_url.rstrip('/')}/menu/{menu.id}"
    try:
        menu.qr_code_data_url = generate_qr_data_url(menu_url)
    except Exception:
        logger.exception("Failed to generate QR code", extra={"menu_id": str(menu.id)})
        raise InternalServerError("Failed to generate QR code for menu.")

    db.add(menu)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise BadRequestError("QR code already exists.")

    logger.info("Created menu", extra={"menu_id": str(menu.id), "item_count": len(data.items)})
    created = await get_menu_with_all_items(db, menu.id)
    if created is None:
        raise InternalServerError("Failed to finalize menu creation.")
    return created
