# cart_engine/services/merge_service.py
from sqlalchemy.orm import Session

from cart_engine.data.models.cart import CartModel, CartStatus
from cart_engine.domain.errors import ConcurrencyConflictError
from cart_engine.domain.schemas import CartRead
from cart_engine.repos.cart_repo import CartRepo
from cart_engine.services.cart_service import find_line, recalculate_totals, touch
from cart_engine.services.lock_service import LockService
from cart_engine.utils.helpers import now_utc
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


class MergeService:
    """
    Laczenie koszyka anonimowego (sesja) z koszykiem usera przy logowaniu.
    Oba koszyki lockowane w stalej kolejnosci, zapis w jednej transakcji.
    """

    def __init__(self, db: Session, lock_service: LockService):
        self.repo = CartRepo(db)
        self.lock_service = lock_service

    def merge_on_login(self, session_id: str, user_id: str) -> CartRead | None:
        session_cart = self.repo.get_cart_by_session(session_id)
        user_cart = self.repo.get_active_cart_by_user(user_id)

        if session_cart is None or session_cart.status != CartStatus.ACTIVE:
            #nie ma czego laczyc
            return CartRead.model_validate(user_cart) if user_cart else None

        cart_ids = [session_cart.id] + ([user_cart.id] if user_cart else [])

        with self.lock_service.hold(*cart_ids):
            try:
                return self._merge_locked(session_id, user_id, cart_ids)
            except Exception:
                self.repo.rollback()
                raise

    def _merge_locked(self, session_id: str, user_id: str, locked_ids: list) -> CartRead | None:
        #swiezy stan po zalozeniu lockow
        session_cart = self.repo.get_cart_by_session(session_id)
        user_cart = self.repo.get_active_cart_by_user(user_id)

        if session_cart is None or session_cart.status != CartStatus.ACTIVE:
            return CartRead.model_validate(user_cart) if user_cart else None

        if user_cart is not None and user_cart.id not in locked_ids:
            raise ConcurrencyConflictError(
                f"Koszyk usera {user_id} powstal w trakcie laczenia, ponow operacje"
            )

        if user_cart is None:
            return self._reanchor(session_cart, user_id)

        return self._merge_items(session_cart, user_cart)

    def _reanchor(self, session_cart: CartModel, user_id: str) -> CartRead:
        #user nie ma koszyka - przepinamy koszyk sesji, pozycje zostaja na miejscu
        logger.info(f"Koszyk {session_cart.id} przypiety do usera {user_id}")
        session_cart.session_id = None
        session_cart.user_id = user_id
        touch(session_cart)

        self.repo.save(session_cart, expected_version=session_cart.version)
        return CartRead.model_validate(self.repo.load(session_cart.id))

    def _merge_items(self, session_cart: CartModel, user_cart: CartModel) -> CartRead:
        now = now_utc()
        summed = moved = 0

        for item in list(session_cart.items):
            existing = find_line(user_cart, item.product_id, item.variant_id)
            session_cart.items.remove(item)

            if existing:
                existing.quantity += item.quantity
                summed += 1
            else:
                user_cart.items.append(item)
                moved += 1

        session_cart.status = CartStatus.EXPIRED
        recalculate_totals(session_cart, now)
        recalculate_totals(user_cart, now)

        self.repo.save_all(
            [
                (user_cart, user_cart.version),
                (session_cart, session_cart.version),
            ]
        )

        logger.info(
            f"Koszyk {session_cart.id} polaczony z {user_cart.id}: "
            f"{summed} pozycji zsumowanych, {moved} przeniesionych"
        )
        return CartRead.model_validate(self.repo.load(user_cart.id))
