"""Session lifecycle tests."""

import asyncio

import pytest

from conftest import TEST_PASSWORD
from zkledger.exceptions import SaltNotFoundError


def test_register_opens_session(session_manager):
    session = session_manager.register(1, TEST_PASSWORD)
    assert session.user_id == 1
    assert len(session.key) == 32
    assert session_manager.current(1) is session


def test_key_hidden_from_repr(session):
    assert repr(session.key) not in repr(session)
    assert 'key=' not in repr(session)


def test_login_rebuilds_same_key(session_manager, session):
    again = session_manager.login(1, TEST_PASSWORD)
    assert again.key == session.key
    assert again is not session
    assert session_manager.current(1) is again


def test_login_without_salt(session_manager):
    with pytest.raises(SaltNotFoundError):
        session_manager.login(5, TEST_PASSWORD)


def test_logout_keeps_salt_by_default(session_manager, session):
    session_manager.logout(session)
    assert session_manager.current(1) is None
    assert session_manager.login(1, TEST_PASSWORD).key == session.key


def test_logout_forget_salt(session_manager, session):
    session_manager.logout(session, forget_salt=True)
    with pytest.raises(SaltNotFoundError):
        session_manager.login(1, TEST_PASSWORD)


def test_logout_of_replaced_session_keeps_current(session_manager, session):
    newer = session_manager.login(1, TEST_PASSWORD)
    session_manager.logout(session)
    assert session_manager.current(1) is newer


def test_async_register_and_login(session_manager):
    async def flow():
        first = await session_manager.register_async(3, TEST_PASSWORD)
        second = await session_manager.login_async(3, TEST_PASSWORD)
        return first, second

    first, second = asyncio.run(flow())
    assert first.key == second.key
