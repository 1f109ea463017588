# cart_engine/services/lock_service.py
import uuid
from contextlib import contextmanager

import redis

from cart_engine.domain.errors import ConcurrencyConflictError
from cart_engine.utils.logging import get_logger
from cart_engine.utils.retry import redis_retry, wait_for_true
from cart_engine.utils.settings import CART_LOCK_TTL_SECONDS, CART_LOCK_WAIT_SECONDS, REDIS_URL

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje atomowo przez lua, skrypt dziala jako jedna nieprzerywalna operacja
#nie mozna wcisnac sie miedzy GET a DEL, wiec tu jest get + porownanie + del wszystko naraz


class LockService:
    """
    -wylacznosc na koszyk (jeden read-modify-write naraz)
    -zwalnianie tylko przez wlasciciela tokenu
    -kilka koszykow zawsze w tej samej kolejnosci (bez deadlocka przy merge)
    """

    def __init__(
        self,
        url: str | None = None,
        ttl: int = CART_LOCK_TTL_SECONDS,
        wait: float = CART_LOCK_WAIT_SECONDS,
        client: redis.Redis | None = None,
    ):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )
        self.ttl = ttl
        self.wait = wait

    @staticmethod
    def _key(cart_id: str) -> str:
        return f"cart:{cart_id}:lock"

    @redis_retry()
    def try_acquire(self, cart_id: str, token: str) -> bool:
        #SET cart:<id>:lock <token> NX EX <ttl>
        return bool(
            self.redis.set(
                name=self._key(cart_id),
                value=token,
                nx=True,
                ex=self.ttl,
            )
        )

    def acquire_cart_lock(self, cart_id: str, token: str) -> bool:
        acquired = wait_for_true(self.wait)(self.try_acquire)(cart_id, token)
        if acquired:
            logger.debug(f"Acquired lock {self._key(cart_id)}")
        return acquired

    @redis_retry()
    def release_cart_lock(self, cart_id: str, token: str) -> bool:
        res = self.redis.eval(_RELEASE_LUA, 1, self._key(cart_id), token)
        logger.debug(f"Released lock {self._key(cart_id)}")
        return bool(res)

    @contextmanager
    def hold(self, *cart_ids: str):
        token = uuid.uuid4().hex
        acquired = []
        try:
            for cart_id in sorted(set(cart_ids)):
                if not self.acquire_cart_lock(cart_id, token):
                    logger.warning(f"Lock timeout for cart {cart_id}")
                    raise ConcurrencyConflictError(
                        f"Koszyk {cart_id} jest modyfikowany przez inna operacje"
                    )
                acquired.append(cart_id)
            yield
        finally:
            for cart_id in reversed(acquired):
                self.release_cart_lock(cart_id, token)
