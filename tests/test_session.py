"""Tests for the login session."""

import pytest

from securenotes.errors import NoActiveKeyError
from securenotes.session import Session


def test_starts_logged_out():
    session = Session()
    assert session.current_user is None
    assert not session.has_active_key()


def test_login_sets_user_and_key():
    session = Session()
    session.login("bob", "pw")
    assert session.current_user == "bob"
    assert session.has_active_key()
    assert session.active_key() == "pw"


def test_relogin_overwrites_key():
    session = Session()
    session.login("bob", "old")
    session.login("bob", "new")
    assert session.active_key() == "new"


def test_switching_user():
    session = Session()
    session.login("bob", "b")
    session.login("carol", "c")
    assert session.current_user == "carol"
    assert session.active_key() == "c"


def test_logout_clears_key():
    session = Session()
    session.login("bob", "pw")
    session.logout()
    assert session.current_user is None
    assert not session.has_active_key()
    with pytest.raises(NoActiveKeyError):
        session.active_key()


def test_logout_is_idempotent():
    session = Session()
    session.login("bob", "pw")
    session.logout()
    assert session.current_user is None
    session.logout()
    assert session.current_user is None


@pytest.mark.parametrize("name", ["", "..", "a/b", "a\\b"])
def test_rejects_unsafe_usernames(name):
    with pytest.raises(ValueError):
        Session().login(name, "pw")
