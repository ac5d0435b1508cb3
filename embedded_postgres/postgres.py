"""
Embedded PostgreSQL lifecycle coordinator.

EmbeddedPostgres gives callers a synchronous start()/stop() contract over
an asynchronous supervisor. The supervisor and the readiness poller run on
a dedicated event-loop thread owned by the running instance; the caller
blocks on one future per transition.

Usage:
    from embedded_postgres import Config, EmbeddedPostgres

    config = Config.default().with_port(15432).with_database("testdb")

    with EmbeddedPostgres(config) as postgres:
        dsn = postgres.connection_info()
        ...

    # Manual lifecycle
    postgres = EmbeddedPostgres(config)
    postgres.start()
    try:
        ...
    finally:
        postgres.stop()

An EmbeddedPostgres is meant to be driven by a single caller. Concurrent or
repeated start() calls are rejected with AlreadyStartedError.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Coroutine, Optional, TypeVar

from embedded_postgres._core.health import build_conninfo, wait_ready
from embedded_postgres._core.lifecycle import (
    CacheLocator,
    ProcessSupervisor,
    RemoteFetchStrategy,
    VersionStrategy,
    default_cache_locator,
    default_remote_fetch_strategy,
    default_version_strategy,
    get_runtime_dir,
    initialize_instance,
)
from embedded_postgres.errors import (
    AlreadyStartedError,
    NotStartedError,
    PortInUseError,
)
from embedded_postgres.types import Config, Readiness, State

logger = logging.getLogger(__name__)

T = TypeVar("T")


def ensure_port_available(port: int) -> None:
    """
    Fail if something is already listening on ``localhost:port``.

    Raises:
        PortInUseError: If the port cannot be bound
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        if sys.platform != "win32":
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind(("localhost", port))
        except OSError as e:
            raise PortInUseError(port) from e


class _EventLoopThread:
    """An asyncio event loop running on a daemon thread."""

    def __init__(self, name: str) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """
        Run ``coro`` on the loop and block until it completes.

        If the caller is interrupted while waiting, the pending task is
        cancelled before the interruption propagates.
        """
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result()
        except BaseException:
            future.cancel()
            raise

    def close(self) -> None:
        if self._thread.is_alive():
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join()
        self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        self._loop.close()

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()


@dataclass
class _Instance:
    """The running child process association of one coordinator."""
    runtime_dir: Path
    supervisor: ProcessSupervisor
    loop_thread: _EventLoopThread


class EmbeddedPostgres:
    """
    Fetches, initializes, runs and stops one PostgreSQL server.

    Attributes:
        config: The immutable configuration this instance was built with
        state: Current lifecycle state
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        version_strategy: Optional[VersionStrategy] = None,
        cache_locator: Optional[CacheLocator] = None,
        remote_fetch_strategy: Optional[RemoteFetchStrategy] = None,
    ) -> None:
        """
        Args:
            config: Configuration (default: Config.default())
            version_strategy: Returns (os, arch, version) for the archive
            cache_locator: Returns (archive path, exists)
            remote_fetch_strategy: Downloads the archive on a cache miss
        """
        self._config = config or Config.default()
        self._version_strategy = version_strategy or default_version_strategy(self._config)
        self._cache_locator = cache_locator or default_cache_locator(
            self._version_strategy, self._config.cache_path
        )
        self._remote_fetch_strategy = remote_fetch_strategy or default_remote_fetch_strategy(
            self._version_strategy,
            self._cache_locator,
            self._config.binary_repository_url,
        )

        self._lock = threading.Lock()
        self._state = State.IDLE
        self._instance: Optional[_Instance] = None

    def start(self) -> None:
        """
        Start the server and block until it is ready.

        Raises:
            AlreadyStartedError: If an instance is starting or running
            PortInUseError: If the configured port is already bound
            FetchError: If the archive cannot be downloaded
            ExtractionError: If the archive cannot be extracted
            InitializationError: If initdb fails
            SpawnError: If the server process cannot be launched
            StartTimeoutError: If the server is not ready within start_timeout
            ReadinessError: If the server exits or fails during startup
        """
        with self._lock:
            if not self._state.can_start:
                raise AlreadyStartedError(f"postgres is already {self._state.value}")
            self._state = State.INITIALIZING

        config = self._config
        loop_thread: Optional[_EventLoopThread] = None
        supervisor: Optional[ProcessSupervisor] = None

        try:
            ensure_port_available(config.port)

            cache_location, exists = self._cache_locator()
            if exists:
                logger.debug(f"Using cached archive {cache_location}")
            else:
                self._remote_fetch_strategy()

            runtime_dir = get_runtime_dir(config.runtime_path, cache_location)
            initialize_instance(config, cache_location, runtime_dir)

            self._set_state(State.STARTING)
            supervisor = ProcessSupervisor(
                runtime_dir,
                config.port,
                start_timeout=config.start_timeout,
                stop_timeout=config.stop_timeout,
            )
            loop_thread = _EventLoopThread(name=f"embedded-postgres-{config.port}")
            loop_thread.start()
            loop_thread.run(supervisor.start(self._wait_ready))
        except BaseException:
            if loop_thread is not None:
                if supervisor is not None and supervisor.is_running:
                    loop_thread.run(supervisor.stop())
                loop_thread.close()
            with self._lock:
                self._instance = None
                self._state = State.FAILED
            raise

        with self._lock:
            self._instance = _Instance(runtime_dir, supervisor, loop_thread)
            self._state = State.READY

        logger.info(f"Embedded postgres {config.version_string} started on port {config.port}")

    def stop(self) -> None:
        """
        Stop the server and block until the process has exited.

        Raises:
            NotStartedError: If no instance is running
        """
        with self._lock:
            if self._state != State.READY or self._instance is None:
                raise NotStartedError()
            self._state = State.STOPPING
            instance = self._instance

        try:
            instance.loop_thread.run(instance.supervisor.stop())
        finally:
            instance.loop_thread.close()
            with self._lock:
                self._instance = None
                self._state = State.STOPPED

        logger.info(f"Embedded postgres on port {self._config.port} stopped")

    def _wait_ready(self, process: asyncio.subprocess.Process) -> Coroutine[Any, Any, Readiness]:
        config = self._config
        return wait_ready(
            config.port,
            config.username,
            config.password,
            config.database,
            timeout=config.start_timeout,
            process=process,
        )

    def _set_state(self, state: State) -> None:
        with self._lock:
            self._state = state

    def connection_info(self, database: Optional[str] = None) -> str:
        """libpq connection string for the configured (or given) database."""
        config = self._config
        return build_conninfo(
            config.port,
            config.username,
            config.password,
            database or config.database,
        )

    @property
    def config(self) -> Config:
        return self._config

    @property
    def state(self) -> State:
        return self._state

    @property
    def runtime_path(self) -> Optional[Path]:
        """Directory holding bin/, data/ and pwfile while running."""
        instance = self._instance
        return instance.runtime_dir if instance is not None else None

    @property
    def is_running(self) -> bool:
        """Check if the server process is running."""
        instance = self._instance
        return instance is not None and instance.supervisor.is_running

    def __enter__(self) -> "EmbeddedPostgres":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._state == State.READY:
            self.stop()
