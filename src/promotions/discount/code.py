"""Discount codes and their redemption counter."""

from datetime import datetime
from enum import Enum

import structlog
from sqlalchemy import JSON, Boolean, CheckConstraint, Float, Integer, String, Text, or_, select, update
from sqlalchemy.orm import Mapped, Session, mapped_column, validates

from shared.db import Base, UTCDateTime, new_id, utcnow

logger = structlog.get_logger(__name__)


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class DiscountCode(Base):
    __tablename__ = "discount_codes"
    __table_args__ = (
        CheckConstraint(
            "usage_limit IS NULL OR usage_count <= usage_limit",
            name="ck_discount_usage_within_limit",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False, default=DiscountType.PERCENTAGE.value)
    discount_value: Mapped[float] = mapped_column(Float, nullable=False)
    min_order_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    max_discount: Mapped[float | None] = mapped_column(Float, nullable=True)
    valid_from: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    valid_until: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)  # None = unlimited
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    user_limit: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    applicable_category_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    applicable_product_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @validates("code")
    def _normalize_code(self, _key, value):
        return normalize_code(value)

    def __repr__(self):
        return f"<DiscountCode {self.code}>"


def normalize_code(code: str) -> str:
    return code.strip().upper()


def find_by_code(session: Session, code: str) -> DiscountCode | None:
    return session.scalar(select(DiscountCode).where(DiscountCode.code == normalize_code(code)))


def claim_usage(session: Session, discount: DiscountCode) -> bool:
    """Count one redemption, but only while the usage limit still allows it.

    The check and the increment are one conditional UPDATE, so two checkouts
    racing for the last redemption cannot both win. Returns False when the
    limit was already reached.
    """
    result = session.execute(
        update(DiscountCode)
        .where(
            DiscountCode.id == discount.id,
            or_(DiscountCode.usage_limit.is_(None), DiscountCode.usage_count < DiscountCode.usage_limit),
        )
        .values(usage_count=DiscountCode.usage_count + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    session.expire(discount, ["usage_count", "updated_at"])

    if result.rowcount != 1:
        logger.info("Discount usage limit reached", code=discount.code)
        return False

    logger.info("Discount usage claimed", code=discount.code)
    return True
