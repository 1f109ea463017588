from unittest.mock import patch

import pytest

from cart_engine.data.models import CartItemModel, CartModel, CartStatus
from cart_engine.domain.errors import ConcurrencyConflictError
from cart_engine.repos.cart_repo import CartRepo
from tests.conftest import assert_totals_consistent


def _quantities(cart):
    return {(i.product_id, i.variant_id): i.quantity for i in cart.items}


def test_merge_sums_and_moves_lines(cart_service, merge_service, lock_service, db_session):
    guest = cart_service.get_or_create_cart(session_id="sess-9")
    cart_service.add_item(guest.id, "A", quantity=2)
    cart_service.add_item(guest.id, "B", quantity=1)

    user = cart_service.get_or_create_cart(user_id="user-1")
    cart_service.add_item(user.id, "A", quantity=1)
    cart_service.add_item(user.id, "C", quantity=3)

    merged = merge_service.merge_on_login("sess-9", "user-1")

    assert merged.id == user.id
    assert _quantities(merged) == {("A", None): 3, ("B", None): 1, ("C", None): 3}
    assert merged.subtotal == 3 * 1000 + 500 + 3 * 200
    assert_totals_consistent(merged)

    guest_after = cart_service.get_cart(guest.id)
    assert guest_after.status == CartStatus.EXPIRED
    assert guest_after.items == []
    assert guest_after.subtotal == guest_after.total == 0
    assert db_session.query(CartItemModel).count() == 3

    assert lock_service.acquired[-1] == tuple(sorted([guest.id, user.id]))


def test_merge_keeps_variants_apart(cart_service, merge_service):
    guest = cart_service.get_or_create_cart(session_id="sess-9")
    cart_service.add_item(guest.id, "A", variant_id="A-RED", quantity=1)
    user = cart_service.get_or_create_cart(user_id="user-1")
    cart_service.add_item(user.id, "A", quantity=1)

    merged = merge_service.merge_on_login("sess-9", "user-1")

    assert _quantities(merged) == {("A", None): 1, ("A", "A-RED"): 1}


def test_merge_recomputes_user_discount(cart_service, merge_service, make_discount):
    make_discount(code="SAVE10", value=10)
    guest = cart_service.get_or_create_cart(session_id="sess-9")
    cart_service.add_item(guest.id, "P", quantity=1)
    user = cart_service.get_or_create_cart(user_id="user-1")
    cart_service.add_item(user.id, "P", quantity=1)
    cart_service.apply_discount(user.id, "SAVE10")

    merged = merge_service.merge_on_login("sess-9", "user-1")

    assert merged.subtotal == 3000
    assert merged.discount_total == 300
    assert merged.total == 2700


def test_session_cart_is_reanchored_when_user_has_none(cart_service, merge_service):
    guest = cart_service.get_or_create_cart(session_id="sess-9")
    cart_service.add_item(guest.id, "B", quantity=2)

    merged = merge_service.merge_on_login("sess-9", "user-1")

    assert merged.id == guest.id
    assert merged.user_id == "user-1"
    assert merged.session_id is None
    assert merged.status == CartStatus.ACTIVE
    assert _quantities(merged) == {("B", None): 2}


def test_no_session_cart_returns_user_cart(cart_service, merge_service, lock_service):
    user = cart_service.get_or_create_cart(user_id="user-1")

    assert merge_service.merge_on_login("unknown", "user-1").id == user.id
    assert merge_service.merge_on_login("unknown", "nobody") is None
    assert lock_service.acquired == []


def test_inactive_session_cart_is_not_merged(cart_service, merge_service):
    guest = cart_service.get_or_create_cart(session_id="sess-9")
    cart_service.add_item(guest.id, "B", quantity=1)
    cart_service.convert(guest.id, "order-1")
    user = cart_service.get_or_create_cart(user_id="user-1")

    merged = merge_service.merge_on_login("sess-9", "user-1")

    assert merged.id == user.id
    assert merged.items == []
    assert cart_service.get_cart(guest.id).items[0].quantity == 1


def test_session_gets_fresh_cart_after_merge(cart_service, merge_service, db_session):
    guest = cart_service.get_or_create_cart(session_id="sess-9")
    cart_service.add_item(guest.id, "B", quantity=1)
    cart_service.get_or_create_cart(user_id="user-1")
    merge_service.merge_on_login("sess-9", "user-1")

    fresh = cart_service.get_or_create_cart(session_id="sess-9")

    assert fresh.id != guest.id
    assert fresh.items == []
    assert db_session.get(CartModel, guest.id).session_id is None


def test_failed_merge_leaves_both_carts_untouched(cart_service, merge_service):
    guest = cart_service.get_or_create_cart(session_id="sess-9")
    cart_service.add_item(guest.id, "A", quantity=2)
    cart_service.add_item(guest.id, "B", quantity=1)
    user = cart_service.get_or_create_cart(user_id="user-1")
    cart_service.add_item(user.id, "A", quantity=1)

    real_update = CartRepo.update_cart_version
    calls = []

    def conflict_on_second_cart(repo, cart_id, old_version, new_data):
        calls.append(cart_id)
        if len(calls) == 2:
            return 0
        return real_update(repo, cart_id, old_version, new_data)

    with patch.object(CartRepo, "update_cart_version", autospec=True, side_effect=conflict_on_second_cart):
        with pytest.raises(ConcurrencyConflictError):
            merge_service.merge_on_login("sess-9", "user-1")

    assert calls == [user.id, guest.id]

    guest_after = cart_service.get_cart(guest.id)
    assert guest_after.status == CartStatus.ACTIVE
    assert _quantities(guest_after) == {("A", None): 2, ("B", None): 1}
    assert guest_after.subtotal == 2500

    user_after = cart_service.get_cart(user.id)
    assert _quantities(user_after) == {("A", None): 1}
    assert user_after.subtotal == 1000
