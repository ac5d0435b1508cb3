"""
embedded-postgres: disposable PostgreSQL servers for tests and development.

This package provides:
- Download and caching of PostgreSQL binary distributions per platform
- A fresh data directory for every start
- A supervised server process with readiness polling
- Fast shutdown on stop

Installation:
    pip install embedded-postgres

Quickstart:
    import psycopg
    from embedded_postgres import Config, EmbeddedPostgres

    config = (
        Config.default()
        .with_port(15432)
        .with_database("testdb")
        .with_start_timeout(10)
    )

    with EmbeddedPostgres(config) as postgres:
        conn = psycopg.connect(postgres.connection_info())
        ...
"""

from embedded_postgres.types import (
    Config,
    PostgresVersion,
    State,
    ReadinessOutcome,
    Readiness,
)
from embedded_postgres.errors import (
    EmbeddedPostgresError,
    ConfigError,
    UnsupportedPlatformError,
    StartError,
    AlreadyStartedError,
    PortInUseError,
    FetchError,
    NoMatchingArchiveError,
    ExtractionError,
    InitializationError,
    SpawnError,
    StartTimeoutError,
    ReadinessError,
    StopError,
    NotStartedError,
)
from embedded_postgres.postgres import EmbeddedPostgres
from embedded_postgres._core.version import PACKAGE_VERSION

__version__ = PACKAGE_VERSION

__all__ = [
    # Version
    "__version__",
    # Coordinator
    "EmbeddedPostgres",
    # Types
    "Config",
    "PostgresVersion",
    "State",
    "ReadinessOutcome",
    "Readiness",
    # Errors
    "EmbeddedPostgresError",
    "ConfigError",
    "UnsupportedPlatformError",
    "StartError",
    "AlreadyStartedError",
    "PortInUseError",
    "FetchError",
    "NoMatchingArchiveError",
    "ExtractionError",
    "InitializationError",
    "SpawnError",
    "StartTimeoutError",
    "ReadinessError",
    "StopError",
    "NotStartedError",
]
