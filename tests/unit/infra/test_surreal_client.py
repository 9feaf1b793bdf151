"""Unit tests for the SurrealDB client adapter."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from surrealdb import RecordID

from surreal_sessions.infra.surreal.client import DatabaseClient, SurrealClient


@pytest.fixture
def handle() -> AsyncMock:
    """Mock SDK connection handle."""
    handle = AsyncMock()
    handle.connect = AsyncMock()
    handle.signin = AsyncMock(return_value="token")
    handle.authenticate = AsyncMock()
    handle.use = AsyncMock()
    handle.select = AsyncMock()
    handle.upsert = AsyncMock()
    handle.delete = AsyncMock()
    handle.query = AsyncMock()
    handle.close = AsyncMock()
    return handle


@pytest.fixture
def factory(handle: AsyncMock) -> MagicMock:
    return MagicMock(return_value=handle)


@pytest.fixture
async def client(factory: MagicMock) -> SurrealClient:
    client = SurrealClient("ws://localhost:8000/rpc", handle_factory=factory)
    await client.connect()
    return client


class TestSurrealClient:
    """Tests for SurrealClient."""

    def test_satisfies_database_client_protocol(self) -> None:
        assert isinstance(SurrealClient("ws://localhost:8000/rpc"), DatabaseClient)

    @pytest.mark.asyncio
    async def test_connect_builds_handle_from_url(
        self, client: SurrealClient, factory: MagicMock, handle: AsyncMock
    ) -> None:
        factory.assert_called_once_with("ws://localhost:8000/rpc")
        handle.connect.assert_awaited_once()
        assert client.connected is True

    @pytest.mark.asyncio
    async def test_reconnect_replaces_owned_handle(
        self, client: SurrealClient, factory: MagicMock, handle: AsyncMock
    ) -> None:
        await client.connect()

        assert factory.call_count == 2
        handle.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_external_handle_is_reused(self, handle: AsyncMock) -> None:
        factory = MagicMock()
        client = SurrealClient("ws://localhost:8000/rpc", surreal=handle, handle_factory=factory)

        await client.connect()
        await client.connect()

        factory.assert_not_called()
        assert handle.connect.await_count == 2

    @pytest.mark.asyncio
    async def test_call_before_connect_fails(self) -> None:
        client = SurrealClient("ws://localhost:8000/rpc", handle_factory=MagicMock())
        with pytest.raises(ConnectionError, match="not connected"):
            await client.select("session", "abc")

    @pytest.mark.asyncio
    async def test_signin_and_use_pass_through(
        self, client: SurrealClient, handle: AsyncMock
    ) -> None:
        await client.signin({"username": "root", "password": "root"})
        await client.authenticate("jwt")
        await client.use("test", "test")

        handle.signin.assert_awaited_once_with({"username": "root", "password": "root"})
        handle.authenticate.assert_awaited_once_with("jwt")
        handle.use.assert_awaited_once_with("test", "test")

    @pytest.mark.asyncio
    async def test_select_record_uses_structured_id(
        self, client: SurrealClient, handle: AsyncMock
    ) -> None:
        handle.select.return_value = {"id": RecordID("session", "abc"), "views": 2}

        record = await client.select("session", "abc")

        target = handle.select.await_args.args[0]
        assert isinstance(target, RecordID)
        assert target.table_name == "session"
        assert target.id == "abc"
        assert record == {"id": "abc", "views": 2}

    @pytest.mark.asyncio
    async def test_select_missing_record_returns_none(
        self, client: SurrealClient, handle: AsyncMock
    ) -> None:
        handle.select.return_value = None
        assert await client.select("session", "missing") is None

    @pytest.mark.asyncio
    async def test_select_table_returns_plain_ids(
        self, client: SurrealClient, handle: AsyncMock
    ) -> None:
        handle.select.return_value = [
            {"id": RecordID("session", "a"), "views": 1},
            {"id": RecordID("session", "b"), "views": 2},
        ]

        rows = await client.select("session")

        handle.select.assert_awaited_once_with("session")
        assert rows == [{"id": "a", "views": 1}, {"id": "b", "views": 2}]

    @pytest.mark.asyncio
    async def test_upsert_unwraps_single_result(
        self, client: SurrealClient, handle: AsyncMock
    ) -> None:
        handle.upsert.return_value = [{"id": RecordID("session", "abc"), "views": 3}]

        result = await client.upsert("session", "abc", {"views": 3})

        target, data = handle.upsert.await_args.args
        assert (target.table_name, target.id) == ("session", "abc")
        assert data == {"views": 3}
        assert result == {"id": "abc", "views": 3}

    @pytest.mark.asyncio
    async def test_delete_record_and_table(self, client: SurrealClient, handle: AsyncMock) -> None:
        await client.delete("session", "abc")
        await client.delete("session")

        record_target = handle.delete.await_args_list[0].args[0]
        table_target = handle.delete.await_args_list[1].args[0]
        assert isinstance(record_target, RecordID)
        assert table_target == "session"

    @pytest.mark.asyncio
    async def test_query_unwraps_statement_results(
        self, client: SurrealClient, handle: AsyncMock
    ) -> None:
        handle.query.return_value = [
            {"status": "OK", "time": "1ms", "result": [{"count": 4}]},
        ]

        result = await client.query(
            "SELECT count() FROM type::table($table) GROUP ALL;", {"table": "session"}
        )

        handle.query.assert_awaited_once_with(
            "SELECT count() FROM type::table($table) GROUP ALL;", {"table": "session"}
        )
        assert result == [{"count": 4}]

    @pytest.mark.asyncio
    async def test_query_passes_plain_results_through(
        self, client: SurrealClient, handle: AsyncMock
    ) -> None:
        handle.query.return_value = [{"count": 4}]
        assert await client.query("SELECT 1;") == [{"count": 4}]
        handle.query.assert_awaited_once_with("SELECT 1;", {})

    @pytest.mark.asyncio
    async def test_query_statement_error_raises(
        self, client: SurrealClient, handle: AsyncMock
    ) -> None:
        handle.query.return_value = [{"status": "ERR", "time": "1ms", "result": "boom"}]

        with pytest.raises(RuntimeError, match="boom"):
            await client.query("DEFINE TABLE x;")


class TestDisconnectNotification:
    """Tests for transport failure detection."""

    @pytest.mark.asyncio
    async def test_transport_error_notifies_once_and_reraises(
        self, client: SurrealClient, handle: AsyncMock
    ) -> None:
        listener = MagicMock()
        client.add_disconnect_listener(listener)
        handle.select.side_effect = ConnectionResetError("reset")

        with pytest.raises(ConnectionResetError):
            await client.select("session", "abc")
        with pytest.raises(ConnectionResetError):
            await client.select("session", "abc")

        listener.assert_called_once_with()
        assert client.connected is False

    @pytest.mark.asyncio
    async def test_query_errors_do_not_notify(
        self, client: SurrealClient, handle: AsyncMock
    ) -> None:
        listener = MagicMock()
        client.add_disconnect_listener(listener)
        handle.select.side_effect = RuntimeError("permission denied")

        with pytest.raises(RuntimeError):
            await client.select("session", "abc")

        listener.assert_not_called()
        assert client.connected is True

    @pytest.mark.asyncio
    async def test_removed_listener_is_not_called(
        self, client: SurrealClient, handle: AsyncMock
    ) -> None:
        listener = MagicMock()
        client.add_disconnect_listener(listener)
        client.remove_disconnect_listener(listener)
        handle.select.side_effect = ConnectionResetError("reset")

        with pytest.raises(ConnectionResetError):
            await client.select("session", "abc")

        listener.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_does_not_notify(self, client: SurrealClient, handle: AsyncMock) -> None:
        listener = MagicMock()
        client.add_disconnect_listener(listener)

        await client.close()

        handle.close.assert_awaited_once()
        listener.assert_not_called()
        assert client.connected is False
