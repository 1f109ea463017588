# cart_engine/services/cart_service.py
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.orm import Session

from cart_engine.data.models.cart import CartModel, CartStatus
from cart_engine.data.models.cart_item import CartItemModel
from cart_engine.domain.errors import (
    BelowMinimumError,
    CartNotActiveError,
    InvalidQuantityError,
    ItemNotFoundError,
)
from cart_engine.domain.schemas import CartIdentifier, CartRead
from cart_engine.repos.cart_repo import CartRepo
from cart_engine.repos.discount_repo import DiscountRepo
from cart_engine.services.discount_service import DiscountService, calculate_discount
from cart_engine.services.lock_service import LockService
from cart_engine.services.product_client import ProductClient
from cart_engine.utils.helpers import now_utc
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


def touch(cart: CartModel, now: datetime | None = None) -> None:
    #kazda zmiana to aktywnosc klienta - koszyk przestaje byc porzucony
    cart.updated_at = now or now_utc()
    cart.abandoned_at = None


def recalculate_totals(cart: CartModel, now: datetime | None = None) -> None:
    """
    Jedyne miejsce ktore liczy subtotal / discount_total / total.
    Podpiety kod nie jest tu ponownie walidowany, liczymy tylko kwote.
    """
    subtotal = sum(item.price * item.quantity for item in cart.items)

    discount_total = 0
    if cart.discount_code is not None:
        discount_total = calculate_discount(cart.discount_code, subtotal)

    cart.subtotal = subtotal
    cart.discount_total = discount_total
    cart.total = max(0, subtotal - discount_total) + (cart.tax_total or 0) + (cart.shipping_total or 0)
    touch(cart, now)


def find_line(cart: CartModel, product_id: str, variant_id: str | None) -> CartItemModel | None:
    return next(
        (
            i
            for i in cart.items
            if i.product_id == product_id and i.variant_id == variant_id
        ),
        None,
    )


def _check_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError("Ilosc musi byc liczba calkowita")


class CartService:
    """
    Silnik koszyka.
    query (get) tylko odczyt, commands zmieniaja stan:
    lock na koszyk -> odczyt -> zmiana -> przeliczenie sum -> zapis z kontrola wersji
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        lock_service: LockService,
    ):
        self.repo = CartRepo(db)
        self.discounts = DiscountService(DiscountRepo(db))
        self.product_client = product_client
        self.lock_service = lock_service

    #query - odczyt
    def get_cart(self, cart_id: str) -> CartRead:
        return CartRead.model_validate(self.repo.load(cart_id))

    def get_or_create_cart(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        cart_id: str | None = None,
    ) -> CartRead:
        identifier = CartIdentifier(session_id=session_id, user_id=user_id, cart_id=cart_id)
        return CartRead.model_validate(self.repo.get_or_create(identifier))

    #commands
    @contextmanager
    def _mutation(self, cart_id: str):
        with self.lock_service.hold(cart_id):
            cart = self.repo.load(cart_id)

            if cart.status != CartStatus.ACTIVE:
                raise CartNotActiveError(f"Koszyk {cart_id} nie moze byc modyfikowany ({cart.status})")

            try:
                yield cart
            except Exception:
                self.repo.rollback()
                raise

    def _save(self, cart: CartModel) -> CartRead:
        self.repo.save(cart, expected_version=cart.version)
        return CartRead.model_validate(self.repo.load(cart.id))

    def add_item(
        self,
        cart_id: str,
        product_id: str,
        variant_id: str | None = None,
        quantity: int = 1,
    ) -> CartRead:
        _check_quantity(quantity)
        if quantity <= 0:
            raise InvalidQuantityError("Ilosc musi byc wieksza niz 0")

        #snapshot ceny przed lockiem, HTTP nie trzyma koszyka
        logger.info(f"Pobieranie danych produktu {product_id} z product-service")
        snapshot = self.product_client.resolve_snapshot(product_id, variant_id)

        with self._mutation(cart_id) as cart:
            existing = find_line(cart, product_id, variant_id)

            if existing:
                logger.info(
                    f"Produkt {product_id} juz jest w koszyku {cart_id}, zwiekszam ilosc "
                    f"z {existing.quantity} do {existing.quantity + quantity}"
                )
                existing.quantity += quantity
            else:
                logger.info(f"Dodaje nowy produkt {product_id} do koszyka {cart_id}")
                cart.items.append(
                    CartItemModel(
                        product_id=product_id,
                        variant_id=variant_id,
                        quantity=quantity,
                        title=snapshot.title,
                        variant_title=snapshot.variant_label,
                        price=snapshot.unit_price,
                        image_url=snapshot.image_url,
                    )
                )

            recalculate_totals(cart)
            return self._save(cart)

    def update_item_quantity(self, cart_id: str, item_id: str, quantity: int) -> CartRead:
        _check_quantity(quantity)
        if quantity <= 0:
            return self.remove_item(cart_id, item_id)

        with self._mutation(cart_id) as cart:
            item = next((i for i in cart.items if i.id == item_id), None)
            if item is None:
                raise ItemNotFoundError(f"Pozycja {item_id} nie nalezy do koszyka {cart_id}")

            logger.info(f"Koszyk {cart_id}: pozycja {item_id} ilosc {item.quantity} -> {quantity}")
            item.quantity = quantity

            recalculate_totals(cart)
            return self._save(cart)

    def remove_item(self, cart_id: str, item_id: str) -> CartRead:
        with self._mutation(cart_id) as cart:
            item = next((i for i in cart.items if i.id == item_id), None)
            if item is None:
                #juz usunieta - nic do zrobienia
                logger.info(f"Pozycja {item_id} nie istnieje w koszyku {cart_id}, pomijam")
                return CartRead.model_validate(cart)

            logger.info(f"Usuwanie pozycji {item_id} ({item.product_id}) z koszyka {cart_id}")
            cart.items.remove(item)

            recalculate_totals(cart)
            return self._save(cart)

    def clear(self, cart_id: str) -> CartRead:
        with self._mutation(cart_id) as cart:
            logger.info(f"Czyszczenie koszyka {cart_id} ({len(cart.items)} pozycji)")
            cart.items.clear()
            #kod rabatowy zostaje podpiety, na pustym koszyku daje 0
            recalculate_totals(cart)
            return self._save(cart)

    def apply_discount(self, cart_id: str, code: str) -> CartRead:
        with self._mutation(cart_id) as cart:
            discount = self.discounts.find(code)
            self.discounts.validate(discount)

            cart.discount_code = discount
            recalculate_totals(cart)

            try:
                self.discounts.check_minimum(discount, cart.subtotal)
            except BelowMinimumError:
                #minimum nie spelnione - odpinamy kod, reszta koszyka bez zmian
                logger.info(
                    f"Kod {discount.code} odrzucony dla koszyka {cart_id}: "
                    f"subtotal {cart.subtotal} < {discount.min_order_value}"
                )
                cart.discount_code = None
                recalculate_totals(cart)
                self.repo.save(cart, expected_version=cart.version)
                raise

            logger.info(
                f"Kod {discount.code} zastosowany w koszyku {cart_id}, rabat {cart.discount_total}"
            )
            return self._save(cart)

    def remove_discount(self, cart_id: str) -> CartRead:
        with self._mutation(cart_id) as cart:
            logger.info(f"Usuwanie kodu rabatowego z koszyka {cart_id}")
            cart.discount_code = None
            recalculate_totals(cart)
            return self._save(cart)

    def set_email(self, cart_id: str, email: str) -> CartRead:
        with self._mutation(cart_id) as cart:
            cart.email = email
            touch(cart)
            return self._save(cart)

    def set_checkout_totals(self, cart_id: str, tax_total: int, shipping_total: int) -> CartRead:
        """Podatek i dostawa licza sie poza silnikiem, tutaj tylko je zapisujemy."""
        if tax_total < 0 or shipping_total < 0:
            raise ValueError("Podatek i koszt dostawy nie moga byc ujemne")

        with self._mutation(cart_id) as cart:
            cart.tax_total = tax_total
            cart.shipping_total = shipping_total
            recalculate_totals(cart)
            return self._save(cart)

    def convert(self, cart_id: str, order_id: str) -> CartRead:
        with self._mutation(cart_id) as cart:
            logger.info(f"Koszyk {cart_id} zamieniony na zamowienie {order_id}")
            cart.status = CartStatus.CONVERTED
            cart.converted_to_order_id = order_id
            cart.updated_at = now_utc()
            return self._save(cart)

    def expire(self, cart_id: str) -> CartRead:
        with self._mutation(cart_id) as cart:
            logger.info(f"Koszyk {cart_id} uniewazniony")
            cart.status = CartStatus.EXPIRED
            #wygasly koszyk nie trzyma pozycji
            cart.items.clear()
            recalculate_totals(cart)
            return self._save(cart)
