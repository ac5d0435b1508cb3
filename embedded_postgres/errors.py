"""
Exception types for embedded-postgres.

Provides typed exceptions for:
- Configuration and platform errors
- Start errors (pre-flight, fetch, extraction, initialization, spawn, readiness)
- Stop errors
"""

from __future__ import annotations

from typing import Optional


class EmbeddedPostgresError(Exception):
    """Base exception for all embedded-postgres errors."""
    pass


class ConfigError(EmbeddedPostgresError):
    """Raised when a Config value is invalid."""
    pass


class UnsupportedPlatformError(EmbeddedPostgresError):
    """Raised when no binary distribution exists for the host OS/architecture."""
    pass


# =============================================================================
# Start Errors
# =============================================================================


class StartError(EmbeddedPostgresError):
    """
    Raised when EmbeddedPostgres.start() cannot bring the server up.

    Every StartError leaves no running child process behind.
    """
    pass


class AlreadyStartedError(StartError):
    """Raised when start() is called while an instance is starting or running."""
    pass


class PortInUseError(StartError):
    """
    Raised when the configured port is already bound locally.

    This is a pre-flight guard: it runs before any fetch, extraction or spawn.
    """

    def __init__(self, port: int):
        self.port = port
        super().__init__(f"process already listening on port {port}")


class FetchError(StartError):
    """
    Raised when the binary archive cannot be downloaded into the cache.

    This includes:
    - Network failures and non-2xx responses
    - Downloaded bundles that are not valid zip containers
    - Failures writing the archive to the cache directory
    """

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        super().__init__(message)


class NoMatchingArchiveError(FetchError):
    """Raised when the downloaded bundle contains no platform archive entry."""
    pass


class ExtractionError(StartError):
    """Raised when a cached archive cannot be unpacked."""
    pass


class InitializationError(StartError):
    """
    Raised when the data directory cannot be created.

    This includes:
    - Failure to clean the runtime directory
    - Failure to write the password file
    - initdb missing, timing out, or exiting non-zero
    """

    def __init__(self, message: str, returncode: Optional[int] = None):
        self.returncode = returncode
        super().__init__(message)


class SpawnError(StartError):
    """Raised when the server process cannot be launched."""
    pass


class StartTimeoutError(StartError):
    """
    Raised when the server does not become ready within start_timeout.

    The child process is terminated before this is raised.
    """

    def __init__(self, timeout: float, last_error: Optional[BaseException] = None):
        self.timeout = timeout
        self.last_error = last_error
        message = f"postgres did not become ready within {timeout}s"
        if last_error is not None:
            message += f". Last error: {last_error}"
        super().__init__(message)


class ReadinessError(StartError):
    """
    Raised when readiness polling hits a non-retryable failure.

    Typically the server process exited during startup, or the target
    database could not be created.
    """
    pass


# =============================================================================
# Stop Errors
# =============================================================================


class StopError(EmbeddedPostgresError):
    """
    Raised when EmbeddedPostgres.stop() cannot proceed.

    Failures while signalling or reaping the child are logged rather than
    raised, since the goal of stop() is that the process is gone.
    """
    pass


class NotStartedError(StopError):
    """Raised when stop() is called without a running instance."""

    def __init__(self, message: str = "postgres not yet started"):
        super().__init__(message)
