# cart_engine/domain/schemas.py
from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class PricingSnapshot(BaseModel):
    """Cena i dane wyswietlania produktu w momencie dodania do koszyka."""

    title: str
    variant_label: str | None = None
    unit_price: int = Field(..., ge=0)
    image_url: str | None = None

    model_config = ConfigDict(frozen=True)


class CartIdentifier(BaseModel):
    """Klucze po ktorych szukamy koszyka (wszystkie opcjonalne)."""

    session_id: str | None = None
    user_id: str | None = None
    cart_id: str | None = None


class DiscountResult(BaseModel):
    discount_amount: int
    free_shipping: bool = False


class DiscountCodeRead(BaseModel):
    id: str
    code: str
    type: str
    value: int

    model_config = ConfigDict(from_attributes=True)


class CartItemRead(BaseModel):
    id: str
    product_id: str
    variant_id: str | None = None
    quantity: int
    title: str
    variant_title: str | None = None
    price: int
    image_url: str | None = None

    model_config = ConfigDict(from_attributes=True)


class CartRead(BaseModel):
    """Koszyk z pozycjami - wynik kazdej operacji silnika."""

    id: str
    session_id: str | None = None
    user_id: str | None = None
    email: str | None = None
    status: str
    subtotal: int
    discount_total: int
    tax_total: int
    shipping_total: int
    total: int
    discount_code_id: str | None = None
    converted_to_order_id: str | None = None
    abandoned_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    items: List[CartItemRead] = []
    discount_code: DiscountCodeRead | None = None

    model_config = ConfigDict(from_attributes=True)


class CartStats(BaseModel):
    active_carts: int
    abandoned_carts: int
    recovered_carts: int
    converted_carts: int
    conversion_rate: float
    average_cart_value: float
