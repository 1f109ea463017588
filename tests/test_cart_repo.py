import pytest
from sqlalchemy import update

from cart_engine.data.models import CartModel, CartStatus
from cart_engine.domain.errors import ConcurrencyConflictError, NotFoundError
from cart_engine.domain.schemas import CartIdentifier
from cart_engine.repos.cart_repo import CartRepo


@pytest.fixture
def repo(db_session):
    return CartRepo(db_session)


def test_get_or_create_reuses_session_cart(repo):
    first = repo.get_or_create(CartIdentifier(session_id="s1"))
    second = repo.get_or_create(CartIdentifier(session_id="s1"))

    assert first.id == second.id
    assert first.session_id == "s1"
    assert first.status == CartStatus.ACTIVE
    assert first.version == 1


def test_new_cart_prefers_user_anchor(repo):
    cart = repo.get_or_create(CartIdentifier(session_id="s1", user_id="u1"))

    assert cart.user_id == "u1"
    assert cart.session_id is None


def test_user_cart_wins_over_session_cart(repo):
    session_cart = repo.get_or_create(CartIdentifier(session_id="s1"))
    user_cart = repo.get_or_create(CartIdentifier(user_id="u1"))

    found = repo.get_or_create(CartIdentifier(session_id="s1", user_id="u1"))

    assert found.id == user_cart.id
    assert found.id != session_cart.id


def test_active_cart_id_is_returned_first(repo):
    by_session = repo.get_or_create(CartIdentifier(session_id="s1"))
    repo.get_or_create(CartIdentifier(user_id="u1"))

    found = repo.get_or_create(CartIdentifier(cart_id=by_session.id, user_id="u1"))

    assert found.id == by_session.id


def test_inactive_cart_id_falls_through_to_new_cart(repo, db_session):
    old = repo.get_or_create(CartIdentifier(session_id="s1"))
    old.status = CartStatus.CONVERTED
    db_session.commit()

    fresh = repo.get_or_create(CartIdentifier(cart_id=old.id, session_id="s1"))

    assert fresh.id != old.id
    assert fresh.session_id == "s1"
    assert fresh.status == CartStatus.ACTIVE
    #stary koszyk zwolnil klucz sesji
    assert repo.load(old.id).session_id is None


def test_create_race_returns_existing_user_cart(repo, db_session):
    winner = CartModel(user_id="u1", status=CartStatus.ACTIVE, version=1)
    db_session.add(winner)
    db_session.commit()

    cart = repo._create_cart(CartIdentifier(user_id="u1"))

    assert cart.id == winner.id
    assert db_session.query(CartModel).count() == 1


def test_load_missing_cart(repo):
    with pytest.raises(NotFoundError):
        repo.load("nope")


def test_save_with_stale_version_conflicts(repo, db_session):
    cart = repo.get_or_create(CartIdentifier(session_id="s1"))
    stale_version = cart.version

    #inny zapis podbil wersje
    db_session.execute(
        update(CartModel).where(CartModel.id == cart.id).values(version=CartModel.version + 1)
    )
    db_session.commit()

    cart.email = "late@example.com"
    with pytest.raises(ConcurrencyConflictError):
        repo.save(cart, expected_version=stale_version)

    reloaded = repo.load(cart.id)
    assert reloaded.email is None
    assert reloaded.version == stale_version + 1


def test_save_bumps_version(repo):
    cart = repo.get_or_create(CartIdentifier(session_id="s1"))
    cart.email = "a@example.com"

    repo.save(cart, expected_version=1)

    reloaded = repo.load(cart.id)
    assert reloaded.version == 2
    assert reloaded.email == "a@example.com"
