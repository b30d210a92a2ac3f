from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from services.policy import check_role_change, check_status_change, is_admin


def _actor(id=1, is_admin=True, is_owner=False):
    return {"id": id, "is_admin": is_admin, "is_owner": is_owner}


def _target(id=2, is_admin=False, is_owner=False, is_active=True):
    return SimpleNamespace(id=id, is_admin=is_admin, is_owner=is_owner, is_active=is_active)


def _status_code(fn, *args):
    with pytest.raises(HTTPException) as exc:
        fn(*args)
    return exc.value.status_code


def test_is_admin():
    assert is_admin(_actor()) is True
    assert is_admin(_actor(is_admin=False, is_owner=True)) is True
    assert is_admin(_actor(is_admin=False)) is False


def test_grant_admin_allowed():
    check_role_change(_actor(), _target(), True, remaining_admins=1)


def test_cannot_revoke_own_admin():
    assert _status_code(check_role_change, _actor(id=1), _target(id=1, is_admin=True), False, 5) == 400


def test_only_owner_modifies_owner():
    owner = _target(is_admin=True, is_owner=True)
    assert _status_code(check_role_change, _actor(), owner, True, 5) == 403
    check_role_change(_actor(is_owner=True), owner, True, 5)


def test_owner_cannot_be_demoted():
    owner = _target(is_admin=True, is_owner=True)
    assert _status_code(check_role_change, _actor(is_owner=True), owner, False, 5) == 400


def test_cannot_remove_last_admin():
    last = _target(is_admin=True)
    assert _status_code(check_role_change, _actor(is_owner=True), last, False, 1) == 400
    check_role_change(_actor(is_owner=True), last, False, 2)


def test_cannot_deactivate_self():
    assert _status_code(check_status_change, _actor(id=3), _target(id=3), False, 5) == 400


def test_owner_cannot_be_deactivated():
    owner = _target(is_admin=True, is_owner=True)
    assert _status_code(check_status_change, _actor(is_owner=True), owner, False, 5) == 400


def test_cannot_deactivate_last_active_admin():
    last = _target(is_admin=True)
    assert _status_code(check_status_change, _actor(is_owner=True), last, False, 1) == 400
    check_status_change(_actor(is_owner=True), last, False, 2)


def test_deactivate_regular_user_allowed():
    check_status_change(_actor(), _target(), False, 1)
