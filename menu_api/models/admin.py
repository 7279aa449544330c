import uuid

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from menu_api.database import Base, TimestampMixin

SUPER_ADMIN = "super_admin"
RESTAURANT_ADMIN = "restaurant_admin"


class Admin(TimestampMixin, Base):
    __tablename__ = "admins"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(200), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(32), default=SUPER_ADMIN, nullable=False)
