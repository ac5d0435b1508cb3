"""
Readiness checks for an embedded postgres server.

A server is ready once it answers ``SELECT 1`` on the administrative
database and the configured target database exists.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import psycopg
from psycopg import sql
from psycopg.conninfo import make_conninfo

from embedded_postgres.types import Readiness, ReadinessOutcome

logger = logging.getLogger(__name__)

ADMIN_DATABASE = "postgres"
DEFAULT_POLL_INTERVAL = 0.1
CONNECT_TIMEOUT = 2

Probe = Callable[[int, str, str, str], Awaitable[None]]


def build_conninfo(port: int, username: str, password: str, database: str) -> str:
    """Connection string for a database on the local server."""
    return make_conninfo(
        host="localhost",
        port=port,
        user=username,
        password=password,
        dbname=database,
        sslmode="disable",
    )


async def create_database(conn: psycopg.AsyncConnection, database: str) -> None:
    """
    Create ``database`` unless it is the administrative default.

    An already existing database is left alone.
    """
    if database == ADMIN_DATABASE:
        return

    try:
        await conn.execute(
            sql.SQL("CREATE DATABASE {}").format(sql.Identifier(database))
        )
        logger.debug(f"Created database {database}")
    except psycopg.errors.DuplicateDatabase:
        logger.debug(f"Database {database} already exists")


async def probe_database(port: int, username: str, password: str, database: str) -> None:
    """
    Check liveness and provision the target database.

    Connects to the administrative database, runs ``SELECT 1`` and creates
    ``database`` if needed.

    Raises:
        psycopg.Error: If the server is not reachable or a statement fails
    """
    conninfo = build_conninfo(port, username, password, ADMIN_DATABASE)
    conn = await psycopg.AsyncConnection.connect(
        conninfo,
        autocommit=True,
        connect_timeout=CONNECT_TIMEOUT,
    )
    async with conn:
        await conn.execute("SELECT 1")
        await create_database(conn, database)


def _is_transient(error: BaseException) -> bool:
    # Refused connections and "starting up" both surface as OperationalError
    return isinstance(error, (psycopg.OperationalError, OSError, asyncio.TimeoutError))


async def wait_ready(
    port: int,
    username: str,
    password: str,
    database: str,
    timeout: float = 15.0,
    interval: float = DEFAULT_POLL_INTERVAL,
    process: Optional[asyncio.subprocess.Process] = None,
    probe: Optional[Probe] = None,
) -> Readiness:
    """
    Poll the server until it is ready or ``timeout`` expires.

    Transient errors (connection refused, server starting up) are retried
    after ``interval`` seconds. The poll stops early with FATAL if the
    server process exits or a probe fails with a non-transient error.

    Args:
        port: Server port
        username: Superuser name
        password: Superuser password
        database: Target database to create
        timeout: Maximum time to wait in seconds
        interval: Time between probes in seconds
        process: Server process; its exit aborts the poll
        probe: Probe coroutine (default: probe_database)

    Returns:
        Readiness with outcome READY, TIMED_OUT or FATAL
    """
    probe = probe or probe_database
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempts = 0
    last_error: Optional[BaseException] = None

    while True:
        if process is not None and process.returncode is not None:
            return Readiness(
                ReadinessOutcome.FATAL,
                attempts,
                RuntimeError(f"postgres exited with code {process.returncode}"),
            )

        remaining = deadline - loop.time()
        if remaining <= 0:
            return Readiness(ReadinessOutcome.TIMED_OUT, attempts, last_error)

        attempts += 1
        try:
            await asyncio.wait_for(
                probe(port, username, password, database),
                timeout=remaining,
            )
            logger.debug(f"postgres on port {port} ready after {attempts} probe(s)")
            return Readiness(ReadinessOutcome.READY, attempts)
        except Exception as e:
            if not _is_transient(e):
                logger.debug(f"Readiness probe failed fatally: {e}")
                return Readiness(ReadinessOutcome.FATAL, attempts, e)
            last_error = e
            logger.debug(f"postgres on port {port} not ready yet: {e}")

        await asyncio.sleep(min(interval, max(deadline - loop.time(), 0)))
