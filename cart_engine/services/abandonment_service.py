# cart_engine/services/abandonment_service.py
from datetime import datetime, timedelta
from typing import List

from sqlalchemy.orm import Session

from cart_engine.data.models.cart import CartStatus
from cart_engine.domain.errors import CartNotActiveError
from cart_engine.domain.schemas import CartRead, CartStats
from cart_engine.repos.cart_repo import CartRepo
from cart_engine.utils.helpers import now_utc
from cart_engine.utils.logging import get_logger
from cart_engine.utils.settings import (
    CART_ABANDON_TIMEOUT_MINUTES,
    CART_EXPIRY_DAYS,
    CART_RECOVERY_MAX_AGE_HOURS,
    CART_RECOVERY_MIN_AGE_MINUTES,
)

logger = get_logger(__name__)


class AbandonmentService:
    """
    Sledzenie porzuconych koszykow.
    Status zostaje ACTIVE, porzucenie to tylko znacznik abandoned_at.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)

    def mark_abandoned_carts(
        self,
        timeout_minutes: int = CART_ABANDON_TIMEOUT_MINUTES,
        now: datetime | None = None,
    ) -> int:
        now = now or now_utc()
        count = self.repo.flag_abandoned(idle_before=now - timedelta(minutes=timeout_minutes), now=now)
        self.repo.commit()
        logger.info(f"Marked {count} carts as abandoned")
        return count

    def get_abandoned_carts_for_recovery(
        self,
        min_age_minutes: int = CART_RECOVERY_MIN_AGE_MINUTES,
        max_age_hours: int = CART_RECOVERY_MAX_AGE_HOURS,
        now: datetime | None = None,
    ) -> List[CartRead]:
        now = now or now_utc()
        carts = self.repo.list_recoverable(
            abandoned_after=now - timedelta(hours=max_age_hours),
            abandoned_before=now - timedelta(minutes=min_age_minutes),
        )
        return [CartRead.model_validate(c) for c in carts]

    def mark_recovery_email_sent(self, cart_id: str, now: datetime | None = None) -> None:
        cart = self.repo.load(cart_id)
        cart.recovery_email_at = now or now_utc()
        self.repo.commit()

    def mark_cart_recovered(self, cart_id: str, now: datetime | None = None) -> CartRead:
        cart = self.repo.load(cart_id)
        if cart.status != CartStatus.ACTIVE:
            raise CartNotActiveError(f"Koszyk {cart_id} nie jest aktywny")

        cart.abandoned_at = None
        cart.recovered_at = now or now_utc()
        self.repo.commit()

        logger.info(f"Cart {cart_id} recovered")
        return CartRead.model_validate(self.repo.load(cart_id))

    def cleanup_expired_carts(
        self,
        expiry_days: int = CART_EXPIRY_DAYS,
        now: datetime | None = None,
    ) -> int:
        """Stare porzucone -> EXPIRED, potem kasujemy wszystkie EXPIRED (CONVERTED zostaja)."""
        now = now or now_utc()
        expired = self.repo.expire_abandoned_before(cutoff=now - timedelta(days=expiry_days), now=now)
        deleted = self.repo.delete_expired()
        self.repo.commit()

        logger.info(f"Expired {expired} abandoned carts, deleted {deleted} expired carts")
        return deleted

    def get_cart_stats(self) -> CartStats:
        active = self.repo.count_active()
        converted = self.repo.count_by_status(CartStatus.CONVERTED)
        abandoned = self.repo.count_abandoned()
        recovered = self.repo.count_recovered()

        finished = abandoned + converted + recovered
        conversion_rate = (converted / finished) * 100 if finished > 0 else 0.0

        return CartStats(
            active_carts=active,
            abandoned_carts=abandoned,
            recovered_carts=recovered,
            converted_carts=converted,
            conversion_rate=round(conversion_rate, 2),
            average_cart_value=self.repo.average_active_total(),
        )
