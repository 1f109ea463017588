from unittest.mock import MagicMock, call

import pytest

from cart_engine.domain.errors import ConcurrencyConflictError
from cart_engine.services.lock_service import LockService


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.set.return_value = True
    client.eval.return_value = 1
    return client


def test_hold_locks_in_sorted_order_and_releases_in_reverse(redis_client):
    locks = LockService(client=redis_client, ttl=7, wait=0.1)

    with locks.hold("b-cart", "a-cart"):
        pass

    keys = [c.kwargs["name"] for c in redis_client.set.call_args_list]
    assert keys == ["cart:a-cart:lock", "cart:b-cart:lock"]
    assert all(c.kwargs["nx"] is True and c.kwargs["ex"] == 7 for c in redis_client.set.call_args_list)

    released = [c.args[2] for c in redis_client.eval.call_args_list]
    assert released == ["cart:b-cart:lock", "cart:a-cart:lock"]


def test_release_uses_owner_token(redis_client):
    locks = LockService(client=redis_client, wait=0.1)

    with locks.hold("c1"):
        token = redis_client.set.call_args.kwargs["value"]

    assert redis_client.eval.call_args == call(
        redis_client.eval.call_args.args[0], 1, "cart:c1:lock", token
    )


def test_contended_lock_times_out_with_conflict(redis_client):
    redis_client.set.return_value = None
    locks = LockService(client=redis_client, wait=0.1)

    with pytest.raises(ConcurrencyConflictError):
        with locks.hold("busy"):
            pytest.fail("body must not run without the lock")

    assert redis_client.set.call_count > 1
    redis_client.eval.assert_not_called()


def test_lock_is_released_when_body_fails(redis_client):
    locks = LockService(client=redis_client, wait=0.1)

    with pytest.raises(RuntimeError):
        with locks.hold("c1"):
            raise RuntimeError("boom")

    redis_client.eval.assert_called_once()


def test_second_lock_timeout_releases_first(redis_client):
    redis_client.set.side_effect = lambda name, **kw: name == "cart:a:lock"
    locks = LockService(client=redis_client, wait=0.1)

    with pytest.raises(ConcurrencyConflictError):
        with locks.hold("a", "b"):
            pass

    released = [c.args[2] for c in redis_client.eval.call_args_list]
    assert released == ["cart:a:lock"]
