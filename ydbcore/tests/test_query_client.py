"""
Query client orchestration tests.

Covers:
- query / non_query / do_tx happy paths
- Rollback on body failure, exactly once
- Rollback failure reporting and commit failure
- Transport retry through the pool
- Cancellation (body, begin, commit) and invariant violations
- Configured transport timeout on every transaction call
- Construction from config
"""

from __future__ import annotations

import asyncio

import pytest

from ydbcore.core.config import DriverCoreConfig, ObservabilityConfig, QueryClientConfig, SessionPoolConfig, TxRpcKind
from ydbcore.core.errors import ConfigurationError, InvariantViolationError, StatusUnsuccessfulError
from ydbcore.core.status import Status, StatusCode
from ydbcore.core.types import Err, Ok
from ydbcore.observability.metrics import DriverMetrics
from ydbcore.query.client import QueryClient, QueryResponse
from ydbcore.query.tx import OnlineReadOnly, Tx
from ydbcore.session.pool import SessionPool
from ydbcore.tests.conftest import (
    ScriptedStream,
    client_config,
    failed_part,
    fast_retry,
    pool_config,
    result_part,
    transport_failure,
)
from ydbcore.transport.driver import RpcMethod
from ydbcore.transport.messages import TxModeKind


@pytest.fixture
def metrics() -> DriverMetrics:
    return DriverMetrics()


@pytest.fixture
def client(driver, metrics) -> QueryClient:
    return QueryClient(driver, client_config(), metrics=metrics)


def _counts(driver) -> tuple[int, int, int]:
    return (
        driver.count(RpcMethod.BEGIN_TRANSACTION),
        driver.count(RpcMethod.COMMIT_TRANSACTION),
        driver.count(RpcMethod.ROLLBACK_TRANSACTION),
    )


# =============================================================================
# HAPPY PATHS
# =============================================================================
@pytest.mark.asyncio
async def test_query_returns_result_sets(driver, client, metrics):
    driver.script_query(result_part(1), result_part(2))

    response = await client.query("SELECT n FROM t")

    assert response.is_success
    assert [rs.to_python() for rs in response.result] == [[{"n": 1}], [{"n": 2}]]
    assert _counts(driver) == (1, 1, 0)
    assert metrics.tx_outcomes.get(outcome="committed") == 1
    assert metrics.query_latency.count(operation="query") == 1
    assert client.pool.idle_count == 1


@pytest.mark.asyncio
async def test_non_query(driver, client):
    response = await client.non_query("UPSERT INTO t (n) VALUES (1)")

    assert response == QueryResponse.success(None)
    assert driver.streams[-1].remaining == 0
    assert _counts(driver) == (1, 1, 0)


@pytest.mark.asyncio
async def test_query_with_consumer_drains_the_rest(driver, client):
    driver.script_query(result_part(1), result_part(2), result_part(3))

    async def first_row(stream):
        async for rs in stream.result_sets():
            return rs.to_python()[0]

    response = await client.query("SELECT n FROM t", func=first_row)

    assert response.result == {"n": 1}
    assert driver.streams[-1].remaining == 0


@pytest.mark.asyncio
async def test_do_tx_runs_all_queries_in_one_transaction(driver, client):
    async def transfer(tx: Tx) -> str:
        await tx.non_query("UPDATE accounts SET balance = balance - 10 WHERE id = 1")
        await tx.non_query("UPDATE accounts SET balance = balance + 10 WHERE id = 2")
        return tx.tx_id

    response = await client.do_tx(transfer)

    assert response.result == "tx-1"
    assert [r.tx_control.tx_id for r in driver.requests(RpcMethod.EXECUTE_QUERY)] == ["tx-1", "tx-1"]
    assert _counts(driver) == (1, 1, 0)


@pytest.mark.asyncio
async def test_tx_mode_is_sent_on_begin(driver, client):
    await client.non_query("SELECT 1", tx_mode=OnlineReadOnly().with_allow_inconsistent_reads())

    settings = driver.requests(RpcMethod.BEGIN_TRANSACTION)[0].tx_settings
    assert settings.mode == TxModeKind.ONLINE_READ_ONLY
    assert settings.allow_inconsistent_reads is True


@pytest.mark.asyncio
async def test_table_service_transaction_calls(driver):
    client = QueryClient(driver, client_config(tx_rpc=TxRpcKind.TABLE_SERVICE))

    assert (await client.non_query("SELECT 1")).is_success
    assert driver.count(RpcMethod.TABLE_BEGIN_TRANSACTION) == 1
    assert driver.count(RpcMethod.TABLE_COMMIT_TRANSACTION) == 1
    assert driver.count(RpcMethod.BEGIN_TRANSACTION) == 0


@pytest.mark.asyncio
async def test_configured_timeout_reaches_every_transaction_call(driver):
    client = QueryClient(driver, client_config(transport_timeout_s=0.5))
    tx_calls = (RpcMethod.BEGIN_TRANSACTION, RpcMethod.EXECUTE_QUERY, RpcMethod.COMMIT_TRANSACTION)

    assert (await client.non_query("UPSERT INTO t (n) VALUES (1)")).is_success

    timeouts = [s.transport_timeout_s for m, _, s in driver.calls if m in tx_calls]
    assert timeouts == [0.5, 0.5, 0.5]


@pytest.mark.asyncio
async def test_configured_timeout_reaches_rollback(driver):
    client = QueryClient(driver, client_config(transport_timeout_s=0.5))

    async def body(tx):
        raise RuntimeError("boom")

    await client.do_tx(body)

    timeouts = [s.transport_timeout_s for m, _, s in driver.calls if m == RpcMethod.ROLLBACK_TRANSACTION]
    assert timeouts == [0.5]


# =============================================================================
# FAILURES
# =============================================================================
@pytest.mark.asyncio
async def test_body_exception_rolls_back_once(driver, client, metrics):
    async def body(tx):
        raise RuntimeError("boom")

    response = await client.do_tx(body)

    assert response.status.code == StatusCode.INTERNAL_ERROR
    assert response.status.message == "Failed to execute lambda on tx tx-1: boom"
    assert response.cause is None
    assert _counts(driver) == (1, 0, 1)
    assert driver.requests(RpcMethod.ROLLBACK_TRANSACTION)[0].tx_id == "tx-1"
    assert metrics.tx_outcomes.get(outcome="rolled_back") == 1


@pytest.mark.asyncio
async def test_rollback_failure_replaces_status(driver, client, metrics):
    driver.fail_unary(RpcMethod.ROLLBACK_TRANSACTION, StatusCode.UNAVAILABLE, "node down")

    async def body(tx):
        raise RuntimeError("boom")

    response = await client.do_tx(body)

    assert response.status.code == StatusCode.UNAVAILABLE
    assert response.cause.code == StatusCode.INTERNAL_ERROR
    assert metrics.tx_outcomes.get(outcome="rollback_failed") == 1
    with pytest.raises(StatusUnsuccessfulError) as exc:
        response.ensure_success()
    assert exc.value.context["cause_status"]["code"] == StatusCode.INTERNAL_ERROR.name


@pytest.mark.asyncio
async def test_status_error_from_body_keeps_its_status(driver, client):
    async def body(tx):
        Status.from_code(StatusCode.PRECONDITION_FAILED, "balance too low").ensure_success()

    response = await client.do_tx(body)

    assert response.status.code == StatusCode.PRECONDITION_FAILED
    assert response.status.message == "balance too low"
    assert _counts(driver) == (1, 0, 1)


@pytest.mark.asyncio
async def test_failed_stream_part_rolls_back(driver, client):
    driver.script_query(result_part(1), failed_part(StatusCode.ABORTED, "locks invalidated"))

    response = await client.query("SELECT n FROM t")

    assert response.status.code == StatusCode.ABORTED
    assert response.result is None
    assert _counts(driver) == (1, 0, 1)


@pytest.mark.asyncio
async def test_commit_failure_is_reported_without_rollback(driver, client, metrics):
    driver.fail_unary(RpcMethod.COMMIT_TRANSACTION, StatusCode.ABORTED, "conflict")

    response = await client.non_query("UPSERT INTO t (n) VALUES (1)")

    assert response.status.code == StatusCode.ABORTED
    assert _counts(driver) == (1, 1, 0)
    assert metrics.tx_outcomes.get(outcome="commit_failed") == 1


@pytest.mark.asyncio
async def test_begin_failure_skips_body(driver, client, metrics):
    driver.fail_unary(RpcMethod.BEGIN_TRANSACTION, StatusCode.OVERLOADED)
    ran = False

    async def body(tx):
        nonlocal ran
        ran = True

    response = await client.do_tx(body)

    assert response.status.code == StatusCode.OVERLOADED
    assert not ran
    assert _counts(driver) == (1, 0, 0)
    assert metrics.tx_outcomes.get(outcome="begin_failed") == 1


@pytest.mark.asyncio
async def test_committing_inside_body_is_an_invariant_violation(driver, client):
    async def body(tx):
        await tx.commit()

    with pytest.raises(InvariantViolationError):
        await client.do_tx(body)
    assert driver.count(RpcMethod.COMMIT_TRANSACTION) == 1


# =============================================================================
# TRANSPORT RETRY
# =============================================================================
@pytest.mark.asyncio
async def test_transport_failure_is_retried_on_new_session(driver, client, metrics):
    streams = iter([
        ScriptedStream([transport_failure()]),
        ScriptedStream([result_part(9)]),
    ])
    driver.on_stream(RpcMethod.EXECUTE_QUERY, lambda request: next(streams))

    response = await client.query("SELECT n FROM t")
    await client.pool.wait_background()

    assert [rs.to_python() for rs in response.result] == [[{"n": 9}]]
    assert [r.session_id for r in driver.requests(RpcMethod.EXECUTE_QUERY)] == ["session-1", "session-2"]
    assert _counts(driver) == (2, 1, 1)
    assert driver.requests(RpcMethod.DELETE_SESSION)[0].session_id == "session-1"
    assert metrics.retries.get() == 1


@pytest.mark.asyncio
async def test_persistent_transport_failure_returns_status(driver, client):
    driver.on_stream(RpcMethod.EXECUTE_QUERY, lambda request: ScriptedStream([transport_failure()]))

    response = await client.non_query("SELECT 1", retry_settings=fast_retry(2))

    assert response.status.code == StatusCode.CLIENT_TRANSPORT_UNAVAILABLE
    assert driver.count(RpcMethod.EXECUTE_QUERY) == 3
    assert driver.count(RpcMethod.COMMIT_TRANSACTION) == 0


@pytest.mark.asyncio
async def test_pool_timeout_is_returned_as_status(driver):
    config = QueryClientConfig(pool=SessionPoolConfig(max_sessions=1, acquire_timeout_s=0.02, attach_enabled=False))
    client = QueryClient(driver, config)
    release = asyncio.Event()

    async def hold(tx):
        await release.wait()

    holding = asyncio.create_task(client.do_tx(hold))
    await asyncio.sleep(0.01)

    response = await client.non_query("SELECT 1")
    assert response.status.code == StatusCode.CLIENT_SESSION_POOL_TIMEOUT

    release.set()
    assert (await holding).is_success


# =============================================================================
# CANCELLATION AND LIFECYCLE
# =============================================================================
@pytest.mark.asyncio
async def test_cancelled_body_discards_session(driver, client):
    started = asyncio.Event()

    async def stuck(tx):
        started.set()
        await asyncio.Event().wait()

    task = asyncio.create_task(client.do_tx(stuck))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    await client.pool.wait_background()
    assert client.pool.live_count == 0
    assert driver.requests(RpcMethod.DELETE_SESSION)[0].session_id == "session-1"


@pytest.mark.asyncio
@pytest.mark.parametrize("method", [RpcMethod.BEGIN_TRANSACTION, RpcMethod.COMMIT_TRANSACTION])
async def test_cancelled_transaction_call_discards_session(driver, client, metrics, method):
    reached = asyncio.Event()

    async def hang(request):
        reached.set()
        await asyncio.Event().wait()

    driver.on_unary(method, hang)

    task = asyncio.create_task(client.non_query("UPSERT INTO t (n) VALUES (1)"))
    await reached.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    await client.pool.wait_background()
    assert client.pool.idle_count == 0
    assert client.pool.live_count == 0
    assert driver.requests(RpcMethod.DELETE_SESSION)[0].session_id == "session-1"
    assert metrics.sessions_broken.get(reason="cancelled") == 1


@pytest.mark.asyncio
async def test_client_closes_its_own_pool(driver):
    async with QueryClient(driver, client_config()) as client:
        await client.non_query("SELECT 1")
    assert client.pool.is_closed
    assert driver.count(RpcMethod.DELETE_SESSION) == 1


@pytest.mark.asyncio
async def test_client_leaves_given_pool_open(driver):
    pool = SessionPool(driver, pool_config())
    async with QueryClient(driver, client_config(), pool=pool) as client:
        await client.non_query("SELECT 1")
    assert client.pool is pool
    assert not pool.is_closed
    await pool.close()


def test_from_config_validates(driver):
    bad = DriverCoreConfig(query_client=QueryClientConfig(pool=SessionPoolConfig(max_sessions=0)))
    with pytest.raises(ConfigurationError):
        QueryClient.from_config(driver, bad)


def test_from_config_hides_disabled_metrics(driver):
    enabled = QueryClient.from_config(driver, DriverCoreConfig())
    disabled = QueryClient.from_config(
        driver, DriverCoreConfig(observability=ObservabilityConfig(metrics_enabled=False)),
    )
    assert enabled.collector is not None
    assert disabled.collector is None


# =============================================================================
# RESPONSE
# =============================================================================
def test_response_conversions():
    ok = QueryResponse.success(5)
    failed = QueryResponse.failure(Status.from_code(StatusCode.ABORTED))

    assert ok.ensure_success() == 5
    assert ok.to_result() == Ok(5)
    assert failed.to_result() == Err(failed.status)
    with pytest.raises(StatusUnsuccessfulError):
        failed.ensure_success()
