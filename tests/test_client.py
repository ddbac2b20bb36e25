"""
Client tests: transaction depth, savepoint nesting, release rules,
driver error wrapping and statement deadlines.
"""

import asyncio

import pytest

from strata.db.client import Client
from strata.db.pool import ConnectionPool
from strata.faults import (
    AlreadyReleasedError,
    AlreadyReleasedFault,
    InvalidArgumentsFault,
    QueryFault,
    TransactionStateError,
    TransactionStateFault,
)

from tests.conftest import FakeConnection


class TestTransactions:

    @pytest.mark.asyncio
    async def test_begin_commit(self, fake_client, fake_conn):
        await fake_client.begin_transaction()
        assert fake_client.depth == 1
        assert fake_client.in_transaction
        await fake_client.commit()
        assert fake_client.depth == 0
        assert fake_conn.statements == ["BEGIN", "COMMIT"]

    @pytest.mark.asyncio
    async def test_begin_rollback(self, fake_client, fake_conn):
        await fake_client.begin_transaction()
        await fake_client.rollback()
        assert fake_client.depth == 0
        assert fake_conn.statements == ["BEGIN", "ROLLBACK"]

    @pytest.mark.asyncio
    async def test_begin_is_not_reentrant(self, fake_client):
        await fake_client.begin_transaction()
        with pytest.raises(TransactionStateFault):
            await fake_client.begin_transaction()
        assert fake_client.depth == 1

    @pytest.mark.asyncio
    async def test_commit_without_transaction(self, fake_client, fake_conn):
        with pytest.raises(TransactionStateError):
            await fake_client.commit()
        assert fake_conn.statements == []

    @pytest.mark.asyncio
    async def test_rollback_without_transaction(self, fake_client):
        with pytest.raises(TransactionStateFault):
            await fake_client.rollback()


class TestSavepoints:

    @pytest.mark.asyncio
    async def test_savepoint_requires_transaction(self, fake_client):
        with pytest.raises(TransactionStateFault):
            await fake_client.savepoint()

    @pytest.mark.asyncio
    async def test_rollback_innermost_keeps_outer_open(self, fake_client, fake_conn):
        await fake_client.begin_transaction()
        name = await fake_client.savepoint()
        assert fake_client.depth == 2
        await fake_client.rollback()
        assert fake_client.depth == 1
        assert fake_client.in_transaction
        await fake_client.commit()
        assert fake_conn.statements == [
            "BEGIN",
            f'SAVEPOINT "{name}"',
            f'ROLLBACK TO SAVEPOINT "{name}"',
            f'RELEASE SAVEPOINT "{name}"',
            "COMMIT",
        ]

    @pytest.mark.asyncio
    async def test_commit_innermost_releases_savepoint(self, fake_client, fake_conn):
        await fake_client.begin_transaction()
        name = await fake_client.savepoint("outer_work")
        assert name == "outer_work"
        await fake_client.commit()
        assert fake_client.depth == 1
        assert fake_conn.statements[-1] == 'RELEASE SAVEPOINT "outer_work"'

    @pytest.mark.asyncio
    async def test_nesting_is_lifo(self, fake_client):
        await fake_client.begin_transaction()
        first = await fake_client.savepoint()
        second = await fake_client.savepoint()
        assert first != second
        assert fake_client.savepoints == (first, second)
        assert fake_client.depth == 3
        await fake_client.rollback()
        assert fake_client.savepoints == (first,)
        await fake_client.commit()
        assert fake_client.savepoints == ()
        assert fake_client.depth == 1

    @pytest.mark.asyncio
    async def test_invalid_savepoint_name(self, fake_client):
        await fake_client.begin_transaction()
        with pytest.raises(InvalidArgumentsFault):
            await fake_client.savepoint('x"; COMMIT; --')
        assert fake_client.depth == 1

    @pytest.mark.asyncio
    async def test_duplicate_savepoint_name(self, fake_client):
        await fake_client.begin_transaction()
        await fake_client.savepoint("step")
        with pytest.raises(TransactionStateFault):
            await fake_client.savepoint("step")
        assert fake_client.depth == 2

    @pytest.mark.asyncio
    async def test_savepoints_property_is_a_copy(self, fake_client):
        await fake_client.begin_transaction()
        await fake_client.savepoint()
        snapshot = fake_client.savepoints
        await fake_client.rollback()
        assert len(snapshot) == 1

    @pytest.mark.asyncio
    async def test_rollback_all_unwinds_every_level(self, fake_client, fake_conn):
        await fake_client.begin_transaction()
        await fake_client.savepoint()
        await fake_client.savepoint()
        await fake_client.rollback_all()
        assert fake_client.depth == 0
        assert fake_client.savepoints == ()
        assert fake_conn.statements[-1] == "ROLLBACK"

    @pytest.mark.asyncio
    async def test_rollback_all_without_transaction(self, fake_client, fake_conn):
        await fake_client.rollback_all()
        assert fake_conn.statements == []


class TestRelease:

    @pytest.mark.asyncio
    async def test_release_during_transaction(self, fake_client):
        await fake_client.begin_transaction()
        with pytest.raises(TransactionStateFault):
            await fake_client.release()
        assert not fake_client.released

    @pytest.mark.asyncio
    async def test_release_twice(self, fake_client):
        await fake_client.release()
        with pytest.raises(AlreadyReleasedError):
            await fake_client.release()

    @pytest.mark.asyncio
    async def test_use_after_release(self, fake_client):
        await fake_client.release()
        with pytest.raises(AlreadyReleasedFault):
            await fake_client.execute("SELECT 1")
        with pytest.raises(AlreadyReleasedFault):
            await fake_client.begin_transaction()

    @pytest.mark.asyncio
    async def test_release_without_pool_closes(self, fake_client, fake_conn):
        await fake_client.release()
        assert fake_conn.closed

    @pytest.mark.asyncio
    async def test_release_returns_to_pool(self):
        pool = ConnectionPool(FakeConnection.open, 1)
        conn = await pool.acquire()
        client = Client(conn, pool)
        await client.release()
        assert pool.in_use == 0
        assert pool.idle == 1
        assert not conn.closed


class TestExecute:

    @pytest.mark.asyncio
    async def test_execute_returns_rowset(self, fake_client, fake_conn):
        fake_conn.rows = [{"id": 1, "name": "A"}]
        result = await fake_client.execute("SELECT * FROM t WHERE id = ?", [1])
        assert result.rows == [{"id": 1, "name": "A"}]
        assert fake_conn.params[-1] == [1]

    @pytest.mark.asyncio
    async def test_fetch_helpers(self, fake_client, fake_conn):
        fake_conn.rows = [{"n": 3}, {"n": 4}]
        assert await fake_client.fetch_all("SELECT n") == [{"n": 3}, {"n": 4}]
        assert await fake_client.fetch_one("SELECT n") == {"n": 3}
        assert await fake_client.fetch_val("SELECT n") == 3
        fake_conn.rows = []
        assert await fake_client.fetch_one("SELECT n") is None
        assert await fake_client.fetch_val("SELECT n") is None

    @pytest.mark.asyncio
    async def test_driver_error_wrapped(self, fake_client, fake_conn):
        fake_conn.fail_on = ["INSERT"]
        with pytest.raises(QueryFault) as exc_info:
            await fake_client.execute("INSERT INTO t VALUES (?)", ["secret-value"])
        fault = exc_info.value
        assert isinstance(fault.__cause__, RuntimeError)
        assert fault.sql.startswith("INSERT INTO t")
        assert "secret-value" not in str(fault.to_dict()["metadata"])

    @pytest.mark.asyncio
    async def test_error_leaves_transaction_open(self, fake_client, fake_conn):
        await fake_client.begin_transaction()
        fake_conn.fail_on = ["INSERT"]
        with pytest.raises(QueryFault):
            await fake_client.execute("INSERT INTO t VALUES (1)")
        assert fake_client.depth == 1
        assert "ROLLBACK" not in fake_conn.statements

    @pytest.mark.asyncio
    async def test_failed_commit_keeps_depth(self, fake_client, fake_conn):
        await fake_client.begin_transaction()
        fake_conn.fail_on = ["COMMIT"]
        with pytest.raises(QueryFault):
            await fake_client.commit()
        assert fake_client.depth == 1

    @pytest.mark.asyncio
    async def test_failed_savepoint_keeps_depth(self, fake_client, fake_conn):
        await fake_client.begin_transaction()
        fake_conn.fail_on = ["SAVEPOINT"]
        with pytest.raises(QueryFault):
            await fake_client.savepoint()
        assert fake_client.depth == 1
        assert fake_client.savepoints == ()


class TestDeadlines:

    @pytest.mark.asyncio
    async def test_timeout_poisons_client(self, fake_client, fake_conn):
        fake_conn.delay = 1.0
        with pytest.raises(QueryFault) as exc_info:
            await fake_client.execute("SELECT slow()", timeout=0.01)
        assert exc_info.value.metadata["timeout"] == 0.01
        assert fake_client.poisoned
        fake_conn.delay = None
        with pytest.raises(TransactionStateFault):
            await fake_client.execute("SELECT 1")

    @pytest.mark.asyncio
    async def test_statement_timeout_default(self, fake_conn):
        client = Client(fake_conn, statement_timeout=0.01)
        fake_conn.delay = 1.0
        with pytest.raises(QueryFault):
            await client.execute("SELECT slow()")
        assert client.poisoned

    @pytest.mark.asyncio
    async def test_hung_commit_poisons_client(self, fake_conn):
        client = Client(fake_conn, statement_timeout=0.05)
        await client.begin_transaction()
        fake_conn.delay = 10.0
        with pytest.raises(QueryFault) as exc_info:
            await asyncio.wait_for(client.commit(), timeout=1.0)
        assert exc_info.value.metadata["timeout"] == 0.05
        assert client.poisoned
        assert client.depth == 1

    @pytest.mark.asyncio
    async def test_control_calls_accept_deadline(self, fake_client, fake_conn):
        fake_conn.delay = 1.0
        with pytest.raises(QueryFault):
            await fake_client.begin_transaction(timeout=0.01)
        assert fake_client.poisoned
        assert not fake_client.in_transaction

    @pytest.mark.asyncio
    async def test_savepoint_deadline(self, fake_client, fake_conn):
        await fake_client.begin_transaction()
        fake_conn.delay = 1.0
        with pytest.raises(QueryFault):
            await fake_client.savepoint(timeout=0.01)
        assert fake_client.poisoned
        assert fake_client.depth == 1
        assert fake_client.savepoints == ()

    @pytest.mark.asyncio
    async def test_poisoned_client_can_unwind_and_release(self):
        pool = ConnectionPool(FakeConnection.open, 1)
        conn = await pool.acquire()
        client = Client(conn, pool)
        await client.begin_transaction()
        conn.delay = 1.0
        with pytest.raises(QueryFault):
            await client.execute("UPDATE t SET x = 1", timeout=0.01)
        conn.delay = None
        with pytest.raises(TransactionStateFault):
            await client.commit()
        await client.rollback_all()
        await client.release()
        assert conn.closed
        assert pool.idle == 0
        assert pool.in_use == 0

    @pytest.mark.asyncio
    async def test_cancellation_poisons_client(self, fake_client, fake_conn):
        fake_conn.delay = 1.0
        task = asyncio.ensure_future(fake_client.execute("SELECT slow()"))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert fake_client.poisoned
