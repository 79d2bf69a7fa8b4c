"""Customer addresses — records plus the lookups checkout relies on.

Orders copy the contact e-mail and phone from an address when they are
placed, so editing an address later never rewrites an existing order.
"""

from datetime import datetime

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import Boolean, String, Text, select, update
from sqlalchemy.orm import Mapped, Session, mapped_column

from shared.db import Base, UTCDateTime, new_id, utcnow
from shared.exceptions import ObjectNotFoundError

logger = structlog.get_logger(__name__)


class Address(Base):
    __tablename__ = "addresses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    firstname: Mapped[str] = mapped_column(String(100), nullable=False)
    lastname: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(30), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)


class AddAddress(BaseModel):
    """Add a new address to a customer's address book."""

    firstname: str = Field(min_length=1, max_length=100)
    lastname: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str = Field(min_length=5, max_length=30)
    country: str = Field(min_length=2, max_length=100)
    region: str | None = None
    city: str = Field(min_length=1, max_length=100)
    address: str = Field(min_length=1)
    postal_code: str | None = None
    is_default: bool = False


class AddressBook:
    def __init__(self, session: Session):
        self.session = session

    def add(self, user_id: str, command: AddAddress) -> Address:
        if command.is_default:
            self.session.execute(
                update(Address).where(Address.user_id == user_id).values(is_default=False),
                execution_options={"synchronize_session": False},
            )

        address = Address(user_id=user_id, **command.model_dump())
        self.session.add(address)
        self.session.flush()

        logger.info("Address added", user_id=user_id, address_id=address.id)
        return address

    def get_for_user(self, user_id: str, address_id: str) -> Address:
        """Return the address only if it belongs to ``user_id``."""
        address = self.session.scalar(select(Address).where(Address.id == address_id, Address.user_id == user_id))
        if address is None:
            raise ObjectNotFoundError({"shipping_address_id": ["Address not found"]}, code="AddressNotFound")
        return address
