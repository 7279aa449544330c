import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OrderLineCreate(BaseModel):
    # Quantity is range-checked by the reconciliation workflow, not here, so a
    # bad quantity surfaces as a BadRequest naming the menu item.
    menu_item_id: uuid.UUID = Field(alias="menuItemId")
    quantity: int

    model_config = ConfigDict(populate_by_name=True)


class OrderFromPaymentCreate(BaseModel):
    reference: str = Field(min_length=1)
    menu_id: uuid.UUID = Field(alias="menuId")
    items: list[OrderLineCreate]

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def from_metadata(cls, reference: str, metadata: dict[str, Any]) -> "OrderFromPaymentCreate":
        """Rebuild the order request a diner attached to the payment at checkout."""
        return cls.model_validate({**metadata, "reference": reference})
