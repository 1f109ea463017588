# cart_engine/repos/cart_repo.py
from datetime import datetime
from typing import Iterable, List, Tuple

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload
from sqlalchemy.orm.attributes import set_committed_value

from cart_engine.data.models.cart import CartModel, CartStatus
from cart_engine.data.models.cart_item import CartItemModel
from cart_engine.domain.errors import ConcurrencyConflictError, NotFoundError
from cart_engine.domain.schemas import CartIdentifier
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


class CartRepo:
    """
    Repozytorium koszykow:
    - jeden koszyk na session_id, jeden ACTIVE koszyk na user_id (indeksy unikalne)
    - zapis naglowka z optimistic lockingiem na kolumnie version
    """

    def __init__(self, db: Session):
        self.db = db

    # =====================================================
    # odczyt
    # =====================================================
    def _select_cart(self):
        #zawsze swiezy stan z bazy, nawet jesli obiekt jest juz w sesji
        return (
            select(CartModel)
            .options(selectinload(CartModel.items), joinedload(CartModel.discount_code))
            .execution_options(populate_existing=True)
        )

    def get_cart(self, cart_id: str) -> CartModel | None:
        stmt = self._select_cart().where(CartModel.id == cart_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_active_cart_by_user(self, user_id: str) -> CartModel | None:
        stmt = self._select_cart().where(
            CartModel.user_id == user_id,
            CartModel.status == CartStatus.ACTIVE,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_cart_by_session(self, session_id: str) -> CartModel | None:
        stmt = self._select_cart().where(CartModel.session_id == session_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def load(self, cart_id: str) -> CartModel:
        cart = self.get_cart(cart_id)
        if cart is None:
            raise NotFoundError(f"Koszyk {cart_id} nie istnieje")
        return cart

    def get_or_create(self, identifier: CartIdentifier) -> CartModel:
        """
        kolejnosc: cart_id (jesli ACTIVE) -> aktywny koszyk usera -> koszyk sesji (jesli ACTIVE)
        -> nowy koszyk przypiety do usera, a jak go nie ma to do sesji
        """
        if identifier.cart_id:
            cart = self.get_cart(identifier.cart_id)
            if cart and cart.status == CartStatus.ACTIVE:
                return cart

        if identifier.user_id:
            cart = self.get_active_cart_by_user(identifier.user_id)
            if cart:
                return cart

        if identifier.session_id:
            cart = self.get_cart_by_session(identifier.session_id)
            if cart and cart.status == CartStatus.ACTIVE:
                return cart

        return self._create_cart(identifier)

    def _create_cart(self, identifier: CartIdentifier) -> CartModel:
        user_id = identifier.user_id
        session_id = None if user_id else identifier.session_id

        if session_id:
            #stary (nieaktywny) koszyk tej sesji blokuje unikalny session_id - odpinamy go
            stale = self.get_cart_by_session(session_id)
            if stale is not None:
                logger.info(f"Releasing session key from {stale.status} cart {stale.id}")
                stale.session_id = None
                self.db.flush()

        cart = CartModel(
            user_id=user_id,
            session_id=session_id,
            status=CartStatus.ACTIVE,
            version=1,
        )
        self.db.add(cart)

        try:
            self.db.commit()
        except IntegrityError:
            #ktos inny utworzyl koszyk w tym samym czasie - bierzemy jego
            self.db.rollback()
            logger.warning(
                f"Cart create race for user={user_id} session={session_id}, re-reading"
            )
            if user_id:
                winner = self.get_active_cart_by_user(user_id)
            else:
                winner = self.get_cart_by_session(session_id)
            if winner is None or winner.status != CartStatus.ACTIVE:
                raise ConcurrencyConflictError("Nie udalo sie utworzyc koszyka")
            return winner

        logger.info(f"Created cart {cart.id} for user={user_id} session={session_id}")
        return self.get_cart(cart.id)

    # =====================================================
    # zapis
    # =====================================================
    def update_cart_version(self, cart_id: str, old_version: int, new_data: dict) -> int:
        # update carts set version = v+1 where id = :id and version = :v
        stmt = (
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def save(self, cart: CartModel, expected_version: int) -> None:
        self.save_all([(cart, expected_version)])

    def save_all(self, entries: Iterable[Tuple[CartModel, int]]) -> None:
        """
        Zapisuje naglowki i pozycje kilku koszykow w jednej transakcji.
        Jesli ktorakolwiek wersja sie nie zgadza - rollback calosci.
        """
        entries = list(entries)
        try:
            self.db.flush()

            for cart, expected_version in entries:
                rowcount = self.update_cart_version(
                    cart_id=cart.id,
                    old_version=expected_version,
                    new_data={"version": expected_version + 1},
                )
                if rowcount == 0:
                    raise ConcurrencyConflictError(
                        f"Koszyk {cart.id} zostal zmodyfikowany przez inna operacje"
                    )
                set_committed_value(cart, "version", expected_version + 1)

            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error while saving carts: {e}")
            raise ConcurrencyConflictError("Konflikt zapisu koszyka") from e
        except ConcurrencyConflictError as e:
            self.db.rollback()
            logger.warning(str(e))
            raise

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

    # =====================================================
    # porzucone / wygasle koszyki
    # =====================================================
    def flag_abandoned(self, idle_before: datetime, now: datetime) -> int:
        has_items = exists().where(CartItemModel.cart_id == CartModel.id)
        stmt = (
            update(CartModel)
            .where(
                CartModel.status == CartStatus.ACTIVE,
                CartModel.updated_at < idle_before,
                CartModel.abandoned_at.is_(None),
                has_items,
            )
            .values(abandoned_at=now)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def list_recoverable(self, abandoned_after: datetime, abandoned_before: datetime) -> List[CartModel]:
        stmt = self._select_cart().where(
            CartModel.status == CartStatus.ACTIVE,
            CartModel.abandoned_at >= abandoned_after,
            CartModel.abandoned_at <= abandoned_before,
            CartModel.recovery_email_at.is_(None),
            CartModel.email.is_not(None),
        )
        return list(self.db.execute(stmt).scalars().all())

    def expire_abandoned_before(self, cutoff: datetime, now: datetime) -> int:
        cart_ids = list(
            self.db.scalars(
                select(CartModel.id).where(
                    CartModel.status == CartStatus.ACTIVE,
                    CartModel.abandoned_at < cutoff,
                )
            )
        )
        if not cart_ids:
            return 0

        #pozycje znikaja razem z wygaszeniem, w tej samej transakcji
        self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id.in_(cart_ids))
            .execution_options(synchronize_session=False)
        )
        stmt = (
            update(CartModel)
            .where(
                CartModel.id.in_(cart_ids),
                CartModel.status == CartStatus.ACTIVE,
            )
            .values(
                status=CartStatus.EXPIRED,
                subtotal=0,
                discount_total=0,
                total=CartModel.tax_total + CartModel.shipping_total,
                updated_at=now,
                version=CartModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def delete_expired(self) -> int:
        expired_ids = select(CartModel.id).where(CartModel.status == CartStatus.EXPIRED)
        #pozycje osobno, sqlite bez PRAGMA foreign_keys nie robi kaskady
        self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id.in_(expired_ids))
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(
            delete(CartModel)
            .where(CartModel.status == CartStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def count_by_status(self, status: str) -> int:
        return self.db.scalar(select(func.count(CartModel.id)).where(CartModel.status == status))

    def count_active(self) -> int:
        #porzucone licza sie osobno, zbiory rozlaczne
        return self.db.scalar(
            select(func.count(CartModel.id)).where(
                CartModel.status == CartStatus.ACTIVE,
                CartModel.abandoned_at.is_(None),
            )
        )

    def count_abandoned(self) -> int:
        return self.db.scalar(
            select(func.count(CartModel.id)).where(
                CartModel.status == CartStatus.ACTIVE,
                CartModel.abandoned_at.is_not(None),
            )
        )

    def count_recovered(self) -> int:
        return self.db.scalar(
            select(func.count(CartModel.id)).where(CartModel.recovered_at.is_not(None))
        )

    def average_active_total(self) -> float:
        avg = self.db.scalar(
            select(func.avg(CartModel.total)).where(
                CartModel.status == CartStatus.ACTIVE,
                CartModel.abandoned_at.is_(None),
                CartModel.total > 0,
            )
        )
        return float(avg or 0)
