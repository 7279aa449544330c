from decimal import Decimal

from pydantic import BaseModel


class MenuItemCreate(BaseModel):
    name: str
    description: str | None = None
    price: Decimal
    is_available: bool = True


class MenuCreate(BaseModel):
    name: str
    qr_code: str
    items: list[MenuItemCreate] = []
