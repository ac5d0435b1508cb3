"""
Type definitions for embedded-postgres.

Defines enums and dataclasses used across the package for:
- Instance configuration (Config)
- Published PostgreSQL binary versions
- Coordinator lifecycle states
- Readiness polling outcomes
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from embedded_postgres.errors import ConfigError


# =============================================================================
# Versions
# =============================================================================


class PostgresVersion(str, Enum):
    """PostgreSQL versions published to the binary repository."""
    V12_1_0 = "12.1.0"
    V12_0_0 = "12.0.0"
    V11_6_0 = "11.6.0"
    V11_5_0 = "11.5.0"
    V11_4_0 = "11.4.0"
    V11_3_0 = "11.3.0"
    V11_2_0 = "11.2.0"
    V11_1_0 = "11.1.0"
    V11_0_0 = "11.0.0"
    V10_11_0 = "10.11.0"
    V10_10_0 = "10.10.0"
    V10_9_0 = "10.9.0"
    V10_8_0 = "10.8.0"
    V10_7_0 = "10.7.0"
    V10_6_0 = "10.6.0"
    V10_5_0 = "10.5.0"
    V10_4_0 = "10.4.0"
    V9_6_16 = "9.6.16"
    V9_6_15 = "9.6.15"
    V9_6_14 = "9.6.14"
    V9_6_13 = "9.6.13"
    V9_6_12 = "9.6.12"
    V9_6_11 = "9.6.11"
    V9_6_10 = "9.6.10"
    V9_6_9 = "9.6.9"
    V9_5_20 = "9.5.20"
    V9_5_19 = "9.5.19"
    V9_5_18 = "9.5.18"
    V9_5_17 = "9.5.17"
    V9_5_16 = "9.5.16"
    V9_5_15 = "9.5.15"
    V9_5_14 = "9.5.14"
    V9_5_13 = "9.5.13"
    V9_4_25 = "9.4.25"
    V9_4_24 = "9.4.24"
    V9_4_23 = "9.4.23"
    V9_4_22 = "9.4.22"
    V9_4_21 = "9.4.21"
    V9_4_20 = "9.4.20"
    V9_4_19 = "9.4.19"
    V9_4_18 = "9.4.18"
    V9_3_25 = "9.3.25"
    V9_3_24 = "9.3.24"
    V9_3_23 = "9.3.23"


# =============================================================================
# Lifecycle
# =============================================================================


class State(str, Enum):
    """
    Lifecycle state of an EmbeddedPostgres coordinator.

    - IDLE: Constructed, never started
    - INITIALIZING: Port check, fetch, extraction and initdb in progress
    - STARTING: Server spawned, waiting for readiness
    - READY: Server accepts connections and the target database exists
    - STOPPING: Shutdown requested, waiting for the child to exit
    - STOPPED: Child exited after a successful stop()
    - FAILED: The last start() raised; no child is running
    """
    IDLE = "idle"
    INITIALIZING = "initializing"
    STARTING = "starting"
    READY = "ready"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def can_start(self) -> bool:
        return self in (State.IDLE, State.STOPPED, State.FAILED)


class ReadinessOutcome(str, Enum):
    """Result of polling the server for readiness."""
    READY = "ready"
    TIMED_OUT = "timed_out"
    FATAL = "fatal"


@dataclass(frozen=True)
class Readiness:
    """
    Outcome of a readiness race.

    Attributes:
        outcome: READY, TIMED_OUT or FATAL
        attempts: Number of probes performed
        error: Last probe error (transient for TIMED_OUT, fatal for FATAL)
    """
    outcome: ReadinessOutcome
    attempts: int = 0
    error: Optional[BaseException] = None

    @property
    def is_ready(self) -> bool:
        return self.outcome == ReadinessOutcome.READY


# =============================================================================
# Configuration
# =============================================================================


DEFAULT_VERSION = PostgresVersion.V12_1_0
DEFAULT_PORT = 5432
DEFAULT_DATABASE = "postgres"
DEFAULT_USERNAME = "postgres"
DEFAULT_PASSWORD = "postgres"
DEFAULT_START_TIMEOUT = 15.0
DEFAULT_STOP_TIMEOUT = 5.0
DEFAULT_INIT_TIMEOUT = 60.0


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration for an embedded PostgreSQL instance.

    Build one with the ``with_*`` methods, each returning a new Config:

        config = (
            Config.default()
            .with_port(15432)
            .with_database("testdb")
            .with_start_timeout(10)
        )

    Attributes:
        version: PostgreSQL version to fetch and run
        port: TCP port the server binds on localhost
        database: Database created once the server is ready
        username: Superuser created by initdb
        password: Superuser password (password authentication)
        runtime_path: Directory the binaries are extracted into
            (default: ``<cache dir>/extracted``)
        start_timeout: Seconds to wait for readiness
        stop_timeout: Seconds to wait for the server to exit before killing it
        init_timeout: Seconds to wait for initdb
        cache_path: Archive cache directory (default: EMBEDDED_POSTGRES_CACHE_DIR
            or ``~/.embedded-postgres-go``)
        binary_repository_url: Maven repository root for archive downloads
            (default: EMBEDDED_POSTGRES_REPOSITORY_URL or Maven Central)
    """
    version: Union[PostgresVersion, str] = DEFAULT_VERSION
    port: int = DEFAULT_PORT
    database: str = DEFAULT_DATABASE
    username: str = DEFAULT_USERNAME
    password: str = DEFAULT_PASSWORD
    runtime_path: Optional[Path] = None
    start_timeout: float = DEFAULT_START_TIMEOUT
    stop_timeout: float = DEFAULT_STOP_TIMEOUT
    init_timeout: float = DEFAULT_INIT_TIMEOUT
    cache_path: Optional[Path] = None
    binary_repository_url: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration on creation."""
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if not 1 <= self.port <= 65535:
            raise ConfigError(f"port must be 1-65535, got {self.port}")

        if not self.database:
            raise ConfigError("database must not be empty")

        if not self.username:
            raise ConfigError("username must not be empty")

        if not self.version_string:
            raise ConfigError("version must not be empty")

        for name in ("start_timeout", "stop_timeout", "init_timeout"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")

    @classmethod
    def default(cls) -> "Config":
        """Return the default configuration."""
        return cls()

    @property
    def version_string(self) -> str:
        """The version as a plain string (e.g. "12.1.0")."""
        if isinstance(self.version, PostgresVersion):
            return self.version.value
        return str(self.version)

    def with_version(self, version: Union[PostgresVersion, str]) -> "Config":
        return replace(self, version=version)

    def with_port(self, port: int) -> "Config":
        return replace(self, port=port)

    def with_database(self, database: str) -> "Config":
        return replace(self, database=database)

    def with_username(self, username: str) -> "Config":
        return replace(self, username=username)

    def with_password(self, password: str) -> "Config":
        return replace(self, password=password)

    def with_runtime_path(self, path: Union[str, Path]) -> "Config":
        return replace(self, runtime_path=Path(path))

    def with_start_timeout(self, timeout: float) -> "Config":
        return replace(self, start_timeout=float(timeout))

    def with_stop_timeout(self, timeout: float) -> "Config":
        return replace(self, stop_timeout=float(timeout))

    def with_init_timeout(self, timeout: float) -> "Config":
        return replace(self, init_timeout=float(timeout))

    def with_cache_path(self, path: Union[str, Path]) -> "Config":
        return replace(self, cache_path=Path(path))

    def with_binary_repository_url(self, url: str) -> "Config":
        return replace(self, binary_repository_url=url.rstrip("/"))
