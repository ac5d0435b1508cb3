"""Tests for embedded_postgres._core.health module."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import psycopg
import pytest

from embedded_postgres._core.health import (
    build_conninfo,
    create_database,
    probe_database,
    wait_ready,
)
from embedded_postgres.types import ReadinessOutcome


class TestBuildConninfo:
    """Tests for build_conninfo function."""

    def test_contains_all_parameters(self):
        conninfo = build_conninfo(15432, "postgres", "secret", "testdb")

        assert "host=localhost" in conninfo
        assert "port=15432" in conninfo
        assert "user=postgres" in conninfo
        assert "password=secret" in conninfo
        assert "dbname=testdb" in conninfo
        assert "sslmode=disable" in conninfo


class TestCreateDatabase:
    """Tests for create_database function."""

    @pytest.mark.asyncio
    async def test_skips_admin_database(self):
        conn = MagicMock()
        conn.execute = AsyncMock()

        await create_database(conn, "postgres")

        conn.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_creates_target_database(self):
        conn = MagicMock()
        conn.execute = AsyncMock()

        await create_database(conn, "testdb")

        conn.execute.assert_awaited_once()
        statement = conn.execute.call_args[0][0]
        assert isinstance(statement, psycopg.sql.Composed)

    @pytest.mark.asyncio
    async def test_existing_database_is_accepted(self):
        conn = MagicMock()
        conn.execute = AsyncMock(side_effect=psycopg.errors.DuplicateDatabase("exists"))

        await create_database(conn, "testdb")


class TestProbeDatabase:
    """Tests for probe_database function."""

    @pytest.mark.asyncio
    async def test_runs_liveness_query_and_creates_database(self):
        conn = MagicMock()
        conn.execute = AsyncMock()
        conn.__aenter__ = AsyncMock(return_value=conn)
        conn.__aexit__ = AsyncMock(return_value=None)

        with patch(
            "psycopg.AsyncConnection.connect", new_callable=AsyncMock, return_value=conn
        ) as mock_connect:
            await probe_database(15432, "postgres", "secret", "testdb")

        conninfo = mock_connect.call_args[0][0]
        assert "dbname=postgres" in conninfo
        assert mock_connect.call_args[1]["autocommit"] is True
        assert conn.execute.await_args_list[0][0][0] == "SELECT 1"
        assert conn.execute.await_count == 2
        conn.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_refused_propagates(self):
        with patch(
            "psycopg.AsyncConnection.connect",
            new_callable=AsyncMock,
            side_effect=psycopg.OperationalError("connection refused"),
        ):
            with pytest.raises(psycopg.OperationalError):
                await probe_database(15432, "postgres", "secret", "postgres")


class TestWaitReady:
    """Tests for wait_ready function."""

    @pytest.mark.asyncio
    async def test_ready_on_first_probe(self):
        probe = AsyncMock(return_value=None)

        readiness = await wait_ready(15432, "postgres", "pw", "testdb", timeout=5.0, probe=probe)

        assert readiness.outcome == ReadinessOutcome.READY
        assert readiness.attempts == 1
        probe.assert_awaited_once_with(15432, "postgres", "pw", "testdb")

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        probe = AsyncMock(side_effect=[
            psycopg.OperationalError("connection refused"),
            psycopg.OperationalError("the database system is starting up"),
            None,
        ])

        readiness = await wait_ready(
            15432, "postgres", "pw", "testdb", timeout=5.0, interval=0.01, probe=probe
        )

        assert readiness.is_ready
        assert readiness.attempts == 3

    @pytest.mark.asyncio
    async def test_timeout(self):
        probe = AsyncMock(side_effect=psycopg.OperationalError("connection refused"))

        readiness = await wait_ready(
            15432, "postgres", "pw", "testdb", timeout=0.1, interval=0.02, probe=probe
        )

        assert readiness.outcome == ReadinessOutcome.TIMED_OUT
        assert isinstance(readiness.error, psycopg.OperationalError)
        assert readiness.attempts >= 1

    @pytest.mark.asyncio
    async def test_hanging_probe_is_bounded_by_deadline(self):
        async def hang(*args):
            await asyncio.sleep(10)

        loop = asyncio.get_running_loop()
        started = loop.time()

        readiness = await wait_ready(15432, "postgres", "pw", "testdb", timeout=0.1, probe=hang)

        assert readiness.outcome == ReadinessOutcome.TIMED_OUT
        assert loop.time() - started < 2

    @pytest.mark.asyncio
    async def test_waits_between_attempts(self):
        call_times = []

        async def probe(*args):
            call_times.append(asyncio.get_running_loop().time())
            if len(call_times) < 3:
                raise psycopg.OperationalError("not yet")

        await wait_ready(15432, "postgres", "pw", "testdb", timeout=5.0, interval=0.05, probe=probe)

        assert call_times[1] - call_times[0] >= 0.04

    @pytest.mark.asyncio
    async def test_non_transient_error_is_fatal(self):
        probe = AsyncMock(side_effect=psycopg.ProgrammingError("invalid name"))

        readiness = await wait_ready(15432, "postgres", "pw", "testdb", timeout=5.0, probe=probe)

        assert readiness.outcome == ReadinessOutcome.FATAL
        assert probe.await_count == 1

    @pytest.mark.asyncio
    async def test_process_exit_is_fatal(self):
        process = MagicMock()
        process.returncode = 1
        probe = AsyncMock()

        readiness = await wait_ready(
            15432, "postgres", "pw", "testdb", timeout=5.0, process=process, probe=probe
        )

        assert readiness.outcome == ReadinessOutcome.FATAL
        assert "exited with code 1" in str(readiness.error)
        probe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_default_probe(self):
        with patch(
            "embedded_postgres._core.health.probe_database", new_callable=AsyncMock
        ) as mock_probe:
            readiness = await wait_ready(15432, "postgres", "pw", "postgres", timeout=1.0)

        assert readiness.is_ready
        mock_probe.assert_awaited_once()
