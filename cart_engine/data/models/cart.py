#cart_engine/data/models/cart.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from cart_engine.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartStatus:
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CONVERTED = "CONVERTED"


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    #wlasciciel koszyka: anonimowa sesja albo zalogowany user
    session_id = Column(String(255), unique=True, nullable=True)
    user_id = Column(String(255), nullable=True, index=True)
    email = Column(String(320), nullable=True)

    status = Column(String(20), nullable=False, default=CartStatus.ACTIVE)
    version = Column(Integer, nullable=False, default=1)

    #kwoty w groszach
    subtotal = Column(BigInteger, nullable=False, default=0)
    discount_total = Column(BigInteger, nullable=False, default=0)
    tax_total = Column(BigInteger, nullable=False, default=0)
    shipping_total = Column(BigInteger, nullable=False, default=0)
    total = Column(BigInteger, nullable=False, default=0)

    discount_code_id = Column(
        String(36), ForeignKey("discount_codes.id", ondelete="SET NULL"), nullable=True
    )
    converted_to_order_id = Column(String(255), nullable=True)

    abandoned_at = Column(DateTime(timezone=True), nullable=True)
    recovery_email_at = Column(DateTime(timezone=True), nullable=True)
    recovered_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.created_at",
    )
    discount_code = relationship("DiscountCodeModel")

    __table_args__ = (
        # jeden aktywny koszyk na usera
        Index(
            "uq_carts_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )
