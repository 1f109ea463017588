# cart_engine/services/discount_service.py
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from cart_engine.data.models.discount_code import DiscountCodeModel, DiscountType
from cart_engine.domain.errors import (
    BelowMinimumError,
    CodeDisabledError,
    ExpiredError,
    InvalidCodeError,
    NotYetActiveError,
    UsageLimitReachedError,
)
from cart_engine.domain.schemas import DiscountResult
from cart_engine.repos.discount_repo import DiscountRepo
from cart_engine.utils.helpers import as_utc, now_utc


def calculate_discount(discount: DiscountCodeModel, subtotal: int) -> int:
    """Kwota rabatu w groszach dla danego subtotal (bez walidacji kodu)."""
    if discount.type == DiscountType.PERCENTAGE:
        amount = int(
            (Decimal(subtotal) * Decimal(discount.value) / Decimal(100)).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
        )
        if discount.max_discount is not None:
            amount = min(amount, discount.max_discount)
        return amount

    if discount.type == DiscountType.FIXED:
        #nigdy ponizej zera
        return min(discount.value, subtotal)

    # FREE_SHIPPING - darmowa dostawa obsluguje checkout, subtotal bez zmian
    return 0


class DiscountService:
    """
    Walidacja kodu rabatowego, pierwsza niespelniona regula wygrywa:
      1. kod istnieje
      2. wlaczony
      3. starts_at
      4. expires_at
      5. limit uzyc
      6. minimalna wartosc zamowienia
    """

    def __init__(self, repo: DiscountRepo):
        self.repo = repo

    def find(self, code: str) -> DiscountCodeModel:
        discount = self.repo.find_by_code(code)
        if discount is None:
            raise InvalidCodeError(f"Nieprawidlowy kod rabatowy: {code}")
        return discount

    def validate(self, discount: DiscountCodeModel, now: datetime | None = None) -> None:
        # reguly 2-5
        now = as_utc(now or now_utc())

        if not discount.enabled:
            raise CodeDisabledError(f"Kod {discount.code} jest nieaktywny")

        starts_at = as_utc(discount.starts_at)
        if starts_at is not None and now < starts_at:
            raise NotYetActiveError(f"Kod {discount.code} jeszcze nie obowiazuje")

        expires_at = as_utc(discount.expires_at)
        if expires_at is not None and now > expires_at:
            raise ExpiredError(f"Kod {discount.code} wygasl")

        if discount.usage_limit is not None and (discount.usage_count or 0) >= discount.usage_limit:
            raise UsageLimitReachedError(f"Kod {discount.code} osiagnal limit uzyc")

    def check_minimum(self, discount: DiscountCodeModel, subtotal: int) -> None:
        if discount.min_order_value is not None and subtotal < discount.min_order_value:
            raise BelowMinimumError(discount.min_order_value, subtotal)

    def evaluate(self, code: str, subtotal: int, now: datetime | None = None) -> DiscountResult:
        discount = self.find(code)
        self.validate(discount, now)
        self.check_minimum(discount, subtotal)
        return DiscountResult(
            discount_amount=calculate_discount(discount, subtotal),
            free_shipping=discount.type == DiscountType.FREE_SHIPPING,
        )
