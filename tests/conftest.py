import pytest

from studysync.core.session import AuthSession
from studysync.modules.auth.service import clear_auth_cache
from tests.fakes import FakeBackend


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def alice():
    return AuthSession(user_id="user-alice", email="alice@example.com", access_token="token-alice",
                       user_metadata={"name": "Alice"})


@pytest.fixture
def bob():
    return AuthSession(user_id="user-bob", email="bob@example.com", access_token="token-bob",
                       user_metadata={"name": "Bob"})


@pytest.fixture(autouse=True)
def _reset_auth_cache():
    clear_auth_cache()
    yield
    clear_auth_cache()
