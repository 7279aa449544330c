from decimal import Decimal

from pydantic import BaseModel, EmailStr

from menu_api.schemas.order import OrderLineCreate


class TransactionInit(BaseModel):
    amount: Decimal
    currency: str
    email: EmailStr
    name: str
    menu_id: str | None = None
    items: list[OrderLineCreate] = []
