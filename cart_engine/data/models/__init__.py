#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from cart_engine.data.models.cart import CartModel, CartStatus
from cart_engine.data.models.cart_item import CartItemModel
from cart_engine.data.models.discount_code import DiscountCodeModel, DiscountType

__all__ = ["CartModel", "CartStatus", "CartItemModel", "DiscountCodeModel", "DiscountType"]
