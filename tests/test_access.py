import pytest

from sweetshop.access import Action, Principal, Role, authorize, require
from sweetshop.auth import authenticate, create_access_token
from sweetshop.errors import AccessDenied, AuthError

ADMIN = Principal(id=1, role=Role.ADMIN)
CUSTOMER = Principal(id=2, role=Role.CUSTOMER)


@pytest.mark.parametrize("action", [Action.READ, Action.SEARCH, Action.PURCHASE])
def test_any_role_may_browse_and_buy(action):
    assert authorize(ADMIN, action)
    assert authorize(CUSTOMER, action)


@pytest.mark.parametrize("action", [Action.CREATE, Action.UPDATE, Action.DELETE, Action.RESTOCK])
def test_only_admin_may_manage(action):
    assert authorize(ADMIN, action)
    assert not authorize(CUSTOMER, action)
    with pytest.raises(AccessDenied):
        require(CUSTOMER, action)
    assert require(ADMIN, action) is ADMIN


def test_every_action_has_a_rule():
    from sweetshop.access import PERMISSIONS

    assert set(PERMISSIONS) == set(Action)


def test_token_round_trip():
    token = create_access_token(Principal(id=42, role=Role.CUSTOMER, email="kim@sweetshop.io"))
    principal = authenticate(token)
    assert principal.id == 42
    assert principal.role is Role.CUSTOMER
    assert principal.email == "kim@sweetshop.io"


def test_garbage_token_is_rejected():
    with pytest.raises(AuthError):
        authenticate("not-a-token")


def test_expired_token_is_rejected():
    from datetime import timedelta

    token = create_access_token(ADMIN, expires_delta=timedelta(seconds=-10))
    with pytest.raises(AuthError):
        authenticate(token)


def test_unknown_role_is_rejected():
    from jose import jwt
    from sweetshop.config import ALGORITHM, SECRET_KEY

    token = jwt.encode({"sub": "3", "role": "superuser"}, SECRET_KEY, algorithm=ALGORITHM)
    with pytest.raises(AuthError):
        authenticate(token)
