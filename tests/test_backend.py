from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from studysync.core.errors import BackendError
from studysync.core.session import AuthSession
from studysync.database.backend import SupabaseBackend


def _shared_client():
    client = MagicMock()
    client.supabase_url = "https://project.supabase.co"
    client.supabase_key = "anon-key"
    client.options.headers = {"X-Client-Info": "supabase-py"}
    client.auth.sign_in_with_password = AsyncMock()
    client.auth.sign_up = AsyncMock()
    client.auth.sign_out = AsyncMock()
    client.auth.admin.sign_out = AsyncMock()
    return client


def _user(user_id="user-dana"):
    return SimpleNamespace(id=user_id, email="dana@studysync.dev", user_metadata={"name": "Dana"}, app_metadata={})


async def test_sign_in_never_touches_the_shared_client():
    shared = _shared_client()
    isolated = MagicMock()
    user = _user()
    isolated.auth.sign_in_with_password = AsyncMock(
        return_value=SimpleNamespace(user=user, session=SimpleNamespace(user=user, access_token="tok-dana"))
    )
    backend = SupabaseBackend(shared, client_factory=AsyncMock(return_value=isolated))

    session = await backend.sign_in("dana@studysync.dev", "pw")

    assert session["access_token"] == "tok-dana"
    assert session["user_id"] == "user-dana"
    shared.auth.sign_in_with_password.assert_not_called()


async def test_sign_up_runs_on_a_fresh_client_each_time():
    shared = _shared_client()
    factory = AsyncMock(side_effect=lambda: MagicMock(
        auth=MagicMock(sign_up=AsyncMock(return_value=SimpleNamespace(user=_user())))
    ))
    backend = SupabaseBackend(shared, client_factory=factory)

    await backend.sign_up("dana@studysync.dev", "pw", {"name": "Dana"})
    await backend.sign_up("erin@studysync.dev", "pw")

    assert factory.await_count == 2
    shared.auth.sign_up.assert_not_called()


async def test_sign_in_without_factory_fails_cleanly():
    with pytest.raises(BackendError) as exc:
        await SupabaseBackend(_shared_client()).sign_in("dana@studysync.dev", "pw")
    assert exc.value.code == "not_configured"


async def test_sign_out_revokes_only_the_given_token():
    shared = _shared_client()

    await SupabaseBackend(shared).sign_out("tok-dana")

    shared.auth.admin.sign_out.assert_awaited_once_with("tok-dana")
    shared.auth.sign_out.assert_not_called()


async def test_for_session_scopes_requests_to_the_callers_token():
    shared = _shared_client()
    backend = SupabaseBackend(shared)

    scoped = backend.for_session(AuthSession(user_id="user-dana", access_token="tok-dana"))
    try:
        assert scoped is not backend
        assert scoped.headers["Authorization"] == "Bearer tok-dana"
        assert scoped.headers["apikey"] == "anon-key"
        assert scoped.headers["X-Client-Info"] == "supabase-py"
        assert scoped.client is shared
        assert backend.headers == {}
    finally:
        await scoped.aclose()


def test_for_session_without_token_keeps_shared_backend():
    backend = SupabaseBackend(_shared_client())
    assert backend.for_session(AuthSession(user_id="user-dana")) is backend
