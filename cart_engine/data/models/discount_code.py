import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String

from cart_engine.data.database import Base


class DiscountType:
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"
    FREE_SHIPPING = "FREE_SHIPPING"


class DiscountCodeModel(Base):
    """Kody rabatowe - silnik koszyka tylko je czyta."""

    __tablename__ = "discount_codes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(100), unique=True, nullable=False, index=True)
    type = Column(String(20), nullable=False)
    value = Column(BigInteger, nullable=False)  # procent albo kwota w groszach
    enabled = Column(Boolean, nullable=False, default=True)

    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)

    min_order_value = Column(BigInteger, nullable=True)
    max_discount = Column(BigInteger, nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
