"""Tests for the remote store adapter and connectivity checks."""

import socket
from unittest.mock import MagicMock, patch

import httpx
import pytest
from postgrest.exceptions import APIError

from elite_notepad.config import Config
from elite_notepad.sync.connectivity import SocketConnectivity
from elite_notepad.sync.remote import (
    RemoteError,
    RemoteNotFoundError,
    SupabaseRemote,
    UnknownColumnError,
    classify_error,
    create_remote,
)


class TestClassifyError:
    def test_unknown_column(self):
        error = classify_error(APIError({
            "code": "PGRST204",
            "message": "Could not find the 'two_fa' column of 'members' "
                       "in the schema cache",
        }))
        assert isinstance(error, UnknownColumnError)
        assert error.column == "two_fa"
        assert error.code == "PGRST204"

    def test_unknown_column_without_name(self):
        error = classify_error(APIError({"code": "PGRST204", "message": "nope"}))
        assert isinstance(error, UnknownColumnError)
        assert error.column is None

    def test_not_found(self):
        error = classify_error(APIError({"code": "PGRST116", "message": "0 rows"}))
        assert isinstance(error, RemoteNotFoundError)

    def test_other_api_error(self):
        error = classify_error(APIError({"code": "42501", "message": "denied"}))
        assert type(error) is RemoteError
        assert error.code == "42501"

    def test_transport_error(self):
        error = classify_error(httpx.ConnectError("refused"))
        assert type(error) is RemoteError
        assert "refused" in str(error)


@pytest.fixture
def client():
    return MagicMock()


class TestSupabaseRemote:
    def test_upsert(self, client):
        SupabaseRemote(client).upsert("teams", {"id": "t1"})
        client.table.assert_called_with("teams")
        client.table.return_value.upsert.assert_called_once_with({"id": "t1"})
        client.table.return_value.upsert.return_value.execute.assert_called_once()

    def test_update_filters_by_id(self, client):
        SupabaseRemote(client).update("members", "m1", {"email": "e"})
        update = client.table.return_value.update
        update.assert_called_once_with({"email": "e"})
        update.return_value.eq.assert_called_once_with("id", "m1")

    def test_delete_filters_by_id(self, client):
        SupabaseRemote(client).delete("teams", "t1")
        delete = client.table.return_value.delete
        delete.return_value.eq.assert_called_once_with("id", "t1")

    def test_fetch_teams_scoped_and_ordered(self, client):
        query = client.table.return_value.select.return_value.eq.return_value
        query.order.return_value.execute.return_value.data = [{"id": "t1"}]

        assert SupabaseRemote(client).fetch_teams("u1") == [{"id": "t1"}]
        client.table.return_value.select.return_value.eq.assert_called_once_with(
            "user_id", "u1"
        )
        query.order.assert_called_once_with("created_at", desc=True)

    def test_fetch_members_empty(self, client):
        query = client.table.return_value.select.return_value.eq.return_value
        query.execute.return_value.data = None
        assert SupabaseRemote(client).fetch_members("u1") == []

    def test_api_error_is_classified(self, client):
        client.table.return_value.upsert.return_value.execute.side_effect = APIError(
            {"code": "PGRST204", "message": "Could not find the 'logo' column"}
        )
        with pytest.raises(UnknownColumnError) as exc:
            SupabaseRemote(client).upsert("teams", {"id": "t1", "logo": "x"})
        assert exc.value.column == "logo"

    def test_transport_error_is_classified(self, client):
        client.table.return_value.delete.return_value.eq.return_value \
            .execute.side_effect = httpx.ReadTimeout("slow")
        with pytest.raises(RemoteError):
            SupabaseRemote(client).delete("teams", "t1")


class TestCreateRemote:
    def test_requires_credentials(self):
        with patch.object(Config, "SUPABASE_URL", ""), \
             patch.object(Config, "SUPABASE_KEY", ""):
            with pytest.raises(RemoteError):
                create_remote()

    def test_builds_client(self):
        with patch("elite_notepad.sync.remote.create_client") as factory:
            remote = create_remote("https://abc.supabase.co", "key", timeout=9)
        assert isinstance(remote, SupabaseRemote)
        assert remote.client is factory.return_value
        args, kwargs = factory.call_args
        assert args == ("https://abc.supabase.co", "key")
        assert kwargs["options"].postgrest_client_timeout == 9


class TestSocketConnectivity:
    def test_no_host_is_offline(self):
        with patch.object(Config, "SUPABASE_URL", ""):
            assert SocketConnectivity()() is False

    def test_uses_configured_host(self):
        with patch.object(Config, "SUPABASE_URL", "https://abc.supabase.co"):
            check = SocketConnectivity()
        assert (check.host, check.port) == ("abc.supabase.co", 443)

    def test_connect_success(self):
        with patch("elite_notepad.sync.connectivity.socket.create_connection") as conn:
            assert SocketConnectivity("example.test", 443, timeout=1)() is True
        conn.assert_called_once_with(("example.test", 443), timeout=1)

    def test_connect_failure(self):
        with patch("elite_notepad.sync.connectivity.socket.create_connection",
                   side_effect=socket.timeout("slow")):
            assert SocketConnectivity("example.test", 443, timeout=1)() is False
