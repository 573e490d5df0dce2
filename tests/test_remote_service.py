"""
test_remote_service.py

Tests for RemoteDataService on top of a mocked ``supabase.Client``:
query shapes, session conversion and error mapping.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest
from supabase import AuthApiError, PostgrestAPIError

from linkrepo.core.config import BackendConfig
from linkrepo.core.remote_service import (
    SIGNED_IN,
    SIGNED_OUT,
    TOKEN_REFRESHED,
    AuthError,
    ConnectionLostError,
    RemoteDataService,
    RemoteServiceError,
    SessionRequiredError,
)

BASE_URL = "https://abcd.backend.test"


def sdk_session(access_token="access-1"):
    return SimpleNamespace(
        access_token=access_token,
        refresh_token="refresh-1",
        expires_at=1700000000,
        user=SimpleNamespace(id="user-1", email="someone@example.com"),
    )


def auth_api_error(message, status):
    # Built without __init__ so the test does not depend on the SDK's
    # constructor signature, which differs between releases.
    exc = AuthApiError.__new__(AuthApiError)
    Exception.__init__(exc, message)
    exc.message = message
    exc.status = status
    return exc


def postgrest_error(message, code):
    return PostgrestAPIError({"message": message, "code": code, "hint": None, "details": None})


@pytest.fixture
def sdk():
    client = MagicMock()
    client.auth.get_session.return_value = sdk_session()
    return client


@pytest.fixture
def events():
    return []


@pytest.fixture
def service(sdk, events):
    svc = RemoteDataService(BASE_URL + "/", "anon-key", client=sdk)
    svc.on_auth_state_change(lambda event, session: events.append(event))
    return svc


def sdk_emit(sdk, event, session):
    """Deliver an auth event the way the SDK does."""
    callback = sdk.auth.on_auth_state_change.call_args[0][0]
    callback(event, session)


class TestAuth:
    def test_sign_in(self, service, sdk, events):
        def sign_in(credentials):
            sdk_emit(sdk, SIGNED_IN, sdk_session())
            return SimpleNamespace(session=sdk_session(), user=sdk_session().user)

        sdk.auth.sign_in_with_password.side_effect = sign_in

        session = service.sign_in_with_password("someone@example.com", "secret")

        sdk.auth.sign_in_with_password.assert_called_once_with(
            {"email": "someone@example.com", "password": "secret"}
        )
        assert session.access_token == "access-1"
        assert session.user.id == "user-1"
        assert session.expires_at == 1700000000.0
        assert events == [SIGNED_IN]

    def test_rejected_credentials(self, service, sdk, events):
        sdk.auth.sign_in_with_password.side_effect = auth_api_error("Invalid login credentials", 400)

        with pytest.raises(AuthError) as excinfo:
            service.sign_in_with_password("someone@example.com", "wrong")

        assert str(excinfo.value) == "Invalid login credentials"
        assert excinfo.value.status_code == 400
        assert events == []

    def test_sign_in_unreachable(self, service, sdk):
        sdk.auth.sign_in_with_password.side_effect = httpx.ConnectError("down")
        with pytest.raises(ConnectionLostError):
            service.sign_in_with_password("someone@example.com", "secret")

    def test_get_session_converts_sdk_session(self, service):
        session = service.get_session()
        assert session.refresh_token == "refresh-1"
        assert session.user.email == "someone@example.com"

    def test_no_session(self, service, sdk):
        sdk.auth.get_session.return_value = None
        assert service.get_session() is None

    def test_rejected_refresh_signs_out(self, service, sdk, events):
        sdk.auth.get_session.side_effect = auth_api_error("Invalid Refresh Token", 400)

        assert service.get_session() is None
        assert events == [SIGNED_OUT]

    def test_refresh_unreachable(self, service, sdk):
        sdk.auth.get_session.side_effect = httpx.ReadTimeout("slow")
        with pytest.raises(ConnectionLostError):
            service.get_session()

    def test_token_refresh_event_is_forwarded(self, service, sdk, events):
        received = []
        service.on_auth_state_change(lambda event, session: received.append(session))

        sdk_emit(sdk, TOKEN_REFRESHED, sdk_session(access_token="access-2"))

        assert events == [TOKEN_REFRESHED]
        assert received[0].access_token == "access-2"

    def test_get_user(self, service, sdk):
        sdk.auth.get_user.return_value = SimpleNamespace(user=SimpleNamespace(id="user-1", email=None))
        user = service.get_user()
        assert user.id == "user-1"

    def test_get_user_rejected_token_discards_session(self, service, sdk, events):
        sdk.auth.get_user.side_effect = auth_api_error("invalid JWT", 401)

        assert service.get_user() is None
        assert service.get_session() is None
        assert events == [SIGNED_OUT]

    def test_get_user_server_error(self, service, sdk):
        sdk.auth.get_user.side_effect = auth_api_error("boom", 500)
        with pytest.raises(RemoteServiceError) as excinfo:
            service.get_user()
        assert excinfo.value.status_code == 500

    def test_sign_out(self, service, sdk, events):
        sdk.auth.sign_out.side_effect = lambda: sdk_emit(sdk, SIGNED_OUT, None)

        service.sign_out()

        sdk.auth.sign_out.assert_called_once_with()
        assert events == [SIGNED_OUT]

    def test_sign_out_discards_session_even_when_unreachable(self, service, sdk, events):
        sdk.auth.sign_out.side_effect = httpx.ConnectError("down")

        with pytest.raises(ConnectionLostError):
            service.sign_out()

        assert service.get_session() is None
        assert events == [SIGNED_OUT]

    def test_sign_out_without_session_is_noop(self, service, sdk, events):
        sdk.auth.get_session.return_value = None
        service.sign_out()
        sdk.auth.sign_out.assert_not_called()
        assert events == []

    def test_sign_in_after_discard_restores_session(self, service, sdk, events):
        sdk.auth.sign_out.side_effect = httpx.ConnectError("down")
        with pytest.raises(ConnectionLostError):
            service.sign_out()

        sdk.auth.sign_in_with_password.side_effect = lambda credentials: (
            sdk_emit(sdk, SIGNED_IN, sdk_session()) or SimpleNamespace(session=sdk_session())
        )
        service.sign_in_with_password("someone@example.com", "secret")

        assert service.get_session() is not None
        assert events == [SIGNED_OUT, SIGNED_IN]

    def test_unsubscribe(self, service, sdk, events):
        subscription = service.on_auth_state_change(lambda e, s: events.append("second"))
        subscription.unsubscribe()

        sdk_emit(sdk, SIGNED_IN, sdk_session())

        assert events == [SIGNED_IN]


class TestTables:
    def test_select_query(self, service, sdk):
        rows = [{"id": "g1", "name": "Docs"}]
        query = sdk.table.return_value.select.return_value.order.return_value
        query.execute.return_value = SimpleNamespace(data=rows)

        assert service.select("groups") == rows

        sdk.table.assert_called_with("groups")
        sdk.table.return_value.select.assert_called_with("*")
        sdk.table.return_value.select.return_value.order.assert_called_with("created_at", desc=False)

    def test_select_descending(self, service, sdk):
        query = sdk.table.return_value.select.return_value.order.return_value
        query.execute.return_value = SimpleNamespace(data=[])
        service.select("files", ascending=False)
        sdk.table.return_value.select.return_value.order.assert_called_with("created_at", desc=True)

    def test_insert_returns_stored_row(self, service, sdk):
        stored = {"id": "g1", "name": "Docs", "user_id": "user-1", "created_at": "2024-01-01T00:00:00Z"}
        sdk.table.return_value.insert.return_value.execute.return_value = SimpleNamespace(data=[stored])

        row = service.insert("groups", {"name": "Docs", "user_id": "user-1"})

        sdk.table.return_value.insert.assert_called_once_with({"name": "Docs", "user_id": "user-1"})
        assert row == stored

    def test_insert_without_record_fails(self, service, sdk):
        sdk.table.return_value.insert.return_value.execute.return_value = SimpleNamespace(data=[])
        with pytest.raises(RemoteServiceError):
            service.insert("groups", {"name": "Docs"})

    def test_delete_filters_by_id(self, service, sdk):
        service.delete("subgroups", "s1")

        sdk.table.assert_called_with("subgroups")
        sdk.table.return_value.delete.return_value.eq.assert_called_once_with("id", "s1")
        sdk.table.return_value.delete.return_value.eq.return_value.execute.assert_called_once_with()

    def test_rejected_request_raises_with_message(self, service, sdk):
        sdk.table.return_value.insert.return_value.execute.side_effect = postgrest_error(
            "violates foreign key constraint", "23503"
        )

        with pytest.raises(RemoteServiceError) as excinfo:
            service.insert("subgroups", {"name": "2024", "group_id": "missing"})

        assert "foreign key" in str(excinfo.value)
        assert not isinstance(excinfo.value, SessionRequiredError)

    def test_requires_session(self, service, sdk):
        sdk.auth.get_session.return_value = None
        with pytest.raises(SessionRequiredError):
            service.select("groups")
        sdk.table.assert_not_called()

    def test_rejected_token_discards_session(self, service, sdk, events):
        query = sdk.table.return_value.select.return_value.order.return_value
        query.execute.side_effect = postgrest_error("JWT expired", "PGRST301")

        with pytest.raises(SessionRequiredError):
            service.select("groups")

        assert service.get_session() is None
        assert events == [SIGNED_OUT]

    @pytest.mark.parametrize("exc", [httpx.ConnectError("down"), httpx.ReadTimeout("slow")])
    def test_transport_failures_map_to_connection_lost(self, service, sdk, exc):
        sdk.table.return_value.delete.return_value.eq.return_value.execute.side_effect = exc
        with pytest.raises(ConnectionLostError):
            service.delete("files", "f1")
        assert service.get_session() is not None


class TestCheckConnection:
    def connectivity_query(self, sdk):
        return sdk.table.return_value.select.return_value.limit.return_value.execute

    def test_reachable(self, service, sdk):
        assert service.check_connection() is True
        sdk.table.assert_called_with("groups")
        sdk.table.return_value.select.assert_called_with("id")
        sdk.table.return_value.select.return_value.limit.assert_called_with(1)

    def test_client_errors_still_count_as_reachable(self, service, sdk):
        self.connectivity_query(sdk).side_effect = postgrest_error("JWT expired", "PGRST301")
        assert service.check_connection() is True

    def test_server_error(self, service, sdk):
        self.connectivity_query(sdk).side_effect = postgrest_error("Service Unavailable", "503")
        assert service.check_connection() is False

    def test_network_error_does_not_raise(self, service, sdk, events):
        self.connectivity_query(sdk).side_effect = httpx.ConnectError("down")
        assert service.check_connection() is False
        assert service.get_session() is not None
        assert events == []


def test_from_config_builds_sdk_client():
    with patch("linkrepo.core.remote_service.create_client") as create:
        svc = RemoteDataService.from_config(
            BackendConfig(backend_url="https://abcd.backend.test", anon_key="k", request_timeout=12)
        )

    args, kwargs = create.call_args
    assert args == ("https://abcd.backend.test", "k")
    assert kwargs["options"].postgrest_client_timeout == 12
    assert kwargs["options"].auto_refresh_token is False
    assert svc.base_url == "https://abcd.backend.test"


def test_from_incomplete_config():
    with pytest.raises(ValueError):
        RemoteDataService.from_config(BackendConfig(backend_url=None, anon_key="k"))
