# cart_engine/domain/errors.py
"""
Bledy silnika koszyka.
Kazdy blad ma stabilne `kind`, warstwa HTTP/UI tlumaczy go na komunikat dla klienta.
"""


class CartEngineError(Exception):
    kind = "CART_ENGINE_ERROR"

    def __init__(self, message: str = "Blad silnika koszyka"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(CartEngineError):
    kind = "NOT_FOUND"


class ItemNotFoundError(NotFoundError):
    kind = "ITEM_NOT_FOUND"


class CartNotActiveError(CartEngineError):
    kind = "CART_NOT_ACTIVE"


class InvalidQuantityError(CartEngineError):
    kind = "INVALID_QUANTITY"


class ConcurrencyConflictError(CartEngineError):
    """Lock albo wersja koszyka zajete - wolajacy powinien ponowic na swiezym stanie."""

    kind = "CONCURRENCY_CONFLICT"


# =====================================================
# kody rabatowe
# =====================================================
class DiscountError(CartEngineError):
    kind = "DISCOUNT_ERROR"


class InvalidCodeError(DiscountError):
    kind = "INVALID_CODE"


class CodeDisabledError(DiscountError):
    kind = "CODE_DISABLED"


class NotYetActiveError(DiscountError):
    kind = "NOT_YET_ACTIVE"


class ExpiredError(DiscountError):
    kind = "EXPIRED"


class UsageLimitReachedError(DiscountError):
    kind = "USAGE_LIMIT_REACHED"


class BelowMinimumError(DiscountError):
    kind = "BELOW_MINIMUM"

    def __init__(self, min_order_value: int, subtotal: int):
        self.min_order_value = min_order_value
        self.subtotal = subtotal
        super().__init__(
            f"Minimalna wartosc zamowienia to {min_order_value}, koszyk ma {subtotal}"
        )
