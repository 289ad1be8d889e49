"""
Transaction controller, transaction RPC and result stream tests.
"""

from __future__ import annotations

import pytest

from ydbcore.core.config import TxRpcKind
from ydbcore.core.errors import ConfigurationError, InvariantViolationError, StatusUnsuccessfulError, TransportError
from ydbcore.core.status import Issue, StatusCode
from ydbcore.query.stream import ExecuteQueryStream
from ydbcore.query.tx import (
    OnlineReadOnly,
    SerializableReadWrite,
    SnapshotReadOnly,
    StaleReadOnly,
    Tx,
    TxState,
)
from ydbcore.query.tx_rpc import (
    QueryServiceTransactionRpc,
    TableServiceTransactionRpc,
    TransactionRpc,
    create_transaction_rpc,
)
from ydbcore.session.session import Session
from ydbcore.tests.conftest import ScriptedStream, failed_part, raise_transport, result_part, transport_failure
from ydbcore.transport.driver import RpcMethod
from ydbcore.transport.messages import (
    ExecuteQueryResponsePart,
    Operation,
    OperationParams,
    TableOperationResponse,
    TxModeKind,
)
from ydbcore.value.builder import make_int32


@pytest.fixture
def session() -> Session:
    session = Session("session-1", node_id=1)
    session.acquire()
    return session


def make_tx(driver, session, kind=TxRpcKind.QUERY_SERVICE, mode=None) -> Tx:
    return Tx(session, driver, create_transaction_rpc(kind, driver), mode)


# =============================================================================
# TRANSACTION MODES
# =============================================================================
@pytest.mark.parametrize(
    "mode, kind",
    [
        (SerializableReadWrite(), TxModeKind.SERIALIZABLE_READ_WRITE),
        (OnlineReadOnly(), TxModeKind.ONLINE_READ_ONLY),
        (StaleReadOnly(), TxModeKind.STALE_READ_ONLY),
        (SnapshotReadOnly(), TxModeKind.SNAPSHOT_READ_ONLY),
    ],
)
def test_mode_settings(mode, kind):
    assert mode.to_settings().mode == kind


def test_online_read_only_inconsistent_reads():
    mode = OnlineReadOnly().with_allow_inconsistent_reads()
    assert mode.to_settings().allow_inconsistent_reads is True
    assert OnlineReadOnly().to_settings().allow_inconsistent_reads is False


# =============================================================================
# BEGIN
# =============================================================================
class TestBegin:
    @pytest.mark.asyncio
    async def test_begin_binds_identity(self, driver, session):
        tx = make_tx(driver, session, mode=SnapshotReadOnly())
        assert tx.tx_id is None
        assert tx.state == TxState.UNBOUND

        status = await tx.begin()

        assert status.is_success
        assert tx.tx_id == "tx-1"
        assert tx.session_id == "session-1"
        assert tx.state == TxState.BEGUN
        request = driver.requests(RpcMethod.BEGIN_TRANSACTION)[0]
        assert request.session_id == "session-1"
        assert request.tx_settings.mode == TxModeKind.SNAPSHOT_READ_ONLY

    @pytest.mark.asyncio
    async def test_failed_begin_stays_unbound(self, driver, session):
        driver.fail_unary(RpcMethod.BEGIN_TRANSACTION, StatusCode.OVERLOADED, "busy")
        tx = make_tx(driver, session)

        status = await tx.begin()

        assert status.code == StatusCode.OVERLOADED
        assert tx.state == TxState.UNBOUND
        assert tx.tx_id is None
        assert not session.is_broken

    @pytest.mark.asyncio
    async def test_bad_session_on_begin_breaks_session(self, driver, session):
        driver.fail_unary(RpcMethod.BEGIN_TRANSACTION, StatusCode.BAD_SESSION)
        tx = make_tx(driver, session)

        await tx.begin()
        assert session.is_broken

    @pytest.mark.asyncio
    async def test_begin_twice_is_an_invariant_violation(self, driver, session):
        tx = make_tx(driver, session)
        await tx.begin()
        with pytest.raises(InvariantViolationError):
            await tx.begin()
        assert driver.count(RpcMethod.BEGIN_TRANSACTION) == 1

    @pytest.mark.asyncio
    async def test_begin_transport_failure_propagates(self, driver, session):
        driver.on_unary(RpcMethod.BEGIN_TRANSACTION, raise_transport)
        tx = make_tx(driver, session)
        with pytest.raises(TransportError):
            await tx.begin()
        assert tx.state == TxState.UNBOUND


# =============================================================================
# QUERIES
# =============================================================================
class TestQueries:
    @pytest.mark.asyncio
    async def test_execute_before_begin_is_an_invariant_violation(self, driver, session):
        with pytest.raises(InvariantViolationError):
            make_tx(driver, session).execute("SELECT 1")

    @pytest.mark.asyncio
    async def test_execute_binds_request_to_tx(self, driver, session):
        tx = make_tx(driver, session)
        await tx.begin()

        stream = tx.execute("SELECT $x", {"$x": make_int32(7)})
        await stream.drain()

        request = driver.requests(RpcMethod.EXECUTE_QUERY)[0]
        assert request.session_id == "session-1"
        assert request.query_text == "SELECT $x"
        assert request.tx_control.tx_id == "tx-1"
        assert request.tx_control.begin_tx is None
        assert request.parameters == {"$x": make_int32(7)}

    @pytest.mark.asyncio
    async def test_query_collects_result_sets(self, driver, session):
        driver.script_query(result_part(1, 2), ExecuteQueryResponsePart(), result_part(3))
        tx = make_tx(driver, session)
        await tx.begin()

        result_sets = await tx.query("SELECT n FROM t")

        assert [rs.to_python() for rs in result_sets] == [[{"n": 1}, {"n": 2}], [{"n": 3}]]

    @pytest.mark.asyncio
    async def test_query_drains_what_consumer_left(self, driver, session):
        driver.script_query(result_part(1), result_part(2), result_part(3))
        tx = make_tx(driver, session)
        await tx.begin()

        async def first_only(stream: ExecuteQueryStream):
            part = await stream.__anext__()
            return part.result_set.to_python()

        assert await tx.query("SELECT n FROM t", func=first_only) == [{"n": 1}]
        assert driver.streams[-1].remaining == 0

    @pytest.mark.asyncio
    async def test_failing_consumer_aborts_stream(self, driver, session):
        driver.script_query(result_part(1), result_part(2))
        tx = make_tx(driver, session)
        await tx.begin()

        async def explode(stream):
            raise ValueError("consumer bug")

        with pytest.raises(ValueError):
            await tx.query("SELECT n FROM t", func=explode)
        assert driver.streams[-1].closed
        assert driver.streams[-1].remaining == 2

    @pytest.mark.asyncio
    async def test_failed_part_raises(self, driver, session):
        driver.script_query(result_part(1), failed_part(), result_part(2))
        tx = make_tx(driver, session)
        await tx.begin()

        with pytest.raises(StatusUnsuccessfulError) as exc:
            await tx.non_query("UPSERT INTO t SELECT 1")
        assert exc.value.status.code == StatusCode.ABORTED
        assert exc.value.status.message == "locks invalidated"
        assert driver.streams[-1].closed


# =============================================================================
# TERMINAL CALLS
# =============================================================================
class TestTerminalCalls:
    @pytest.mark.asyncio
    async def test_commit(self, driver, session):
        tx = make_tx(driver, session)
        await tx.begin()

        status = await tx.commit()

        assert status.is_success
        assert tx.state == TxState.COMMITTED
        request = driver.requests(RpcMethod.COMMIT_TRANSACTION)[0]
        assert (request.session_id, request.tx_id) == ("session-1", "tx-1")

    @pytest.mark.asyncio
    async def test_rollback(self, driver, session):
        tx = make_tx(driver, session)
        await tx.begin()

        assert (await tx.rollback()).is_success
        assert tx.state == TxState.ROLLED_BACK

    @pytest.mark.asyncio
    async def test_terminal_before_begin_is_an_invariant_violation(self, driver, session):
        tx = make_tx(driver, session)
        with pytest.raises(InvariantViolationError):
            await tx.commit()
        with pytest.raises(InvariantViolationError):
            await tx.rollback()

    @pytest.mark.asyncio
    async def test_only_one_terminal_call(self, driver, session):
        tx = make_tx(driver, session)
        await tx.begin()
        await tx.commit()

        with pytest.raises(InvariantViolationError):
            await tx.rollback()
        with pytest.raises(InvariantViolationError):
            await tx.commit()
        with pytest.raises(InvariantViolationError):
            tx.execute("SELECT 1")

        assert driver.count(RpcMethod.COMMIT_TRANSACTION) == 1
        assert driver.count(RpcMethod.ROLLBACK_TRANSACTION) == 0

    @pytest.mark.asyncio
    async def test_failed_commit_fails_tx(self, driver, session):
        driver.fail_unary(RpcMethod.COMMIT_TRANSACTION, StatusCode.ABORTED)
        tx = make_tx(driver, session)
        await tx.begin()

        status = await tx.commit()

        assert status.code == StatusCode.ABORTED
        assert tx.state == TxState.FAILED
        with pytest.raises(InvariantViolationError):
            await tx.rollback()

    @pytest.mark.asyncio
    async def test_transport_failure_on_commit_fails_tx(self, driver, session):
        driver.on_unary(RpcMethod.COMMIT_TRANSACTION, raise_transport)
        tx = make_tx(driver, session)
        await tx.begin()

        with pytest.raises(TransportError):
            await tx.commit()
        assert tx.state == TxState.FAILED


# =============================================================================
# TRANSACTION RPC
# =============================================================================
class TestTransactionRpc:
    def test_factory_selects_implementation(self, driver):
        query_rpc = create_transaction_rpc(TxRpcKind.QUERY_SERVICE, driver)
        table_rpc = create_transaction_rpc(TxRpcKind.TABLE_SERVICE, driver)
        assert isinstance(query_rpc, QueryServiceTransactionRpc)
        assert isinstance(table_rpc, TableServiceTransactionRpc)
        assert isinstance(table_rpc, TransactionRpc)

    def test_factory_rejects_unknown_kind(self, driver):
        with pytest.raises(ConfigurationError):
            create_transaction_rpc("smoke-signals", driver)

    @pytest.mark.asyncio
    async def test_table_service_lifecycle(self, driver, session):
        tx = make_tx(driver, session, kind=TxRpcKind.TABLE_SERVICE)

        assert (await tx.begin()).is_success
        assert tx.tx_id == "tx-1"
        assert (await tx.commit()).is_success

        begin = driver.requests(RpcMethod.TABLE_BEGIN_TRANSACTION)[0]
        commit = driver.requests(RpcMethod.TABLE_COMMIT_TRANSACTION)[0]
        assert isinstance(begin.operation_params, OperationParams)
        assert commit.tx_id == "tx-1"
        assert driver.count(RpcMethod.BEGIN_TRANSACTION) == 0

    @pytest.mark.asyncio
    async def test_table_service_status_comes_from_operation(self, driver, session):
        driver.on_unary(
            RpcMethod.TABLE_BEGIN_TRANSACTION,
            lambda request: TableOperationResponse(
                operation=Operation(status_code=StatusCode.SCHEME_ERROR, issues=(Issue(message="no table"),))
            ),
        )
        tx = make_tx(driver, session, kind=TxRpcKind.TABLE_SERVICE)

        status = await tx.begin()
        assert status.code == StatusCode.SCHEME_ERROR
        assert status.message == "no table"
        assert tx.state == TxState.UNBOUND

    @pytest.mark.asyncio
    async def test_table_service_rollback_failure(self, driver, session):
        driver.on_unary(
            RpcMethod.TABLE_ROLLBACK_TRANSACTION,
            lambda request: TableOperationResponse(operation=Operation(status_code=StatusCode.UNAVAILABLE)),
        )
        tx = make_tx(driver, session, kind=TxRpcKind.TABLE_SERVICE)
        await tx.begin()

        assert (await tx.rollback()).code == StatusCode.UNAVAILABLE
        assert tx.state == TxState.FAILED


# =============================================================================
# RESULT STREAM
# =============================================================================
class TestExecuteQueryStream:
    @pytest.mark.asyncio
    async def test_result_sets_skip_empty_parts(self, session):
        stream = ExecuteQueryStream(
            ScriptedStream([ExecuteQueryResponsePart(), result_part(5), ExecuteQueryResponsePart()]),
            session,
            timeout_s=1.0,
        )
        result_sets = [rs async for rs in stream.result_sets()]

        assert [rs.to_python() for rs in result_sets] == [[{"n": 5}]]
        assert stream.parts_read == 3
        assert stream.is_done

    @pytest.mark.asyncio
    async def test_failure_is_recorded(self, session):
        inner = ScriptedStream([failed_part(StatusCode.BAD_SESSION, "gone"), result_part(1)])
        stream = ExecuteQueryStream(inner, session, timeout_s=1.0)

        with pytest.raises(StatusUnsuccessfulError):
            await stream.drain()
        assert stream.failure.code == StatusCode.BAD_SESSION
        assert session.is_broken
        assert inner.closed

    @pytest.mark.asyncio
    async def test_transport_failure_closes_stream(self, session):
        inner = ScriptedStream([result_part(1), transport_failure()])
        stream = ExecuteQueryStream(inner, session, timeout_s=1.0)

        with pytest.raises(TransportError):
            await stream.read_all()
        assert inner.closed
        assert stream.is_done

    @pytest.mark.asyncio
    async def test_pull_timeout_is_a_transport_failure(self, session):
        inner = ScriptedStream(hang=True)
        stream = ExecuteQueryStream(inner, session, timeout_s=0.01)

        with pytest.raises(TransportError) as exc:
            await stream.drain()
        assert exc.value.status.code == StatusCode.CLIENT_TRANSPORT_TIMEOUT

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self, session):
        inner = ScriptedStream([result_part(1)])
        stream = ExecuteQueryStream(inner, session, timeout_s=1.0)
        await stream.aclose()
        await stream.aclose()
        assert inner.closed
        assert await stream.drain() == 0
