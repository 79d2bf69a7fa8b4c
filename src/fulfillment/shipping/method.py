"""Shipping methods offered at checkout."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, Session, mapped_column

from shared.db import Base, UTCDateTime, new_id, utcnow
from shared.exceptions import ObjectNotFoundError


class ShippingMethod(Base):
    __tablename__ = "shipping_methods"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_time: Mapped[str | None] = mapped_column(String(100), nullable=True)  # e.g. "3-5 business days"
    delivery_time_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    base_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    cost_per_kg: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    available_countries: Mapped[list[str]] = mapped_column(JSON, default=list)  # empty = everywhere
    min_order_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)  # free shipping threshold
    max_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<ShippingMethod {self.name}>"


def get_shipping_method(session: Session, method_id: str) -> ShippingMethod:
    method = session.get(ShippingMethod, method_id)
    if method is None:
        raise ObjectNotFoundError({"shipping_method_id": ["Shipping method not found"]}, code="ShippingMethodNotFound")
    return method
