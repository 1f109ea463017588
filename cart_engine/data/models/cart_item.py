import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from cart_engine.data.database import Base


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(255), nullable=False)
    variant_id = Column(String(255), nullable=True)

    quantity = Column(Integer, nullable=False)

    #snapshot z momentu dodania, nie odswiezamy z katalogu
    title = Column(String(500), nullable=False)
    variant_title = Column(String(500), nullable=True)
    price = Column(BigInteger, nullable=False)
    image_url = Column(String(2048), nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    cart = relationship("CartModel", back_populates="items")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "variant_id", name="uq_cart_product_variant"),
        CheckConstraint("quantity >= 1", name="ck_cart_item_qty"),
    )
