from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from menu_api.database import Base, TimestampMixin

DEFAULT_COMMISSION_ID = "default-commission"


class Commission(TimestampMixin, Base):
    __tablename__ = "commissions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=DEFAULT_COMMISSION_ID)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
