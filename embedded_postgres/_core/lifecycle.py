"""
Binary lifecycle management for embedded-postgres.

Handles:
- Platform detection
- Archive cache lookup and download from the Maven repository
- Instance initialization (extraction, password file, initdb)
- Process supervision of the running server
"""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import shutil
import signal
import subprocess
import zipfile
import zlib
from pathlib import Path
from typing import Awaitable, Callable, Optional, Tuple, Union

import requests

from embedded_postgres._core.archive import extract_txz, iter_zip_members
from embedded_postgres._core.version import (
    ARCHIVE_SUFFIX,
    get_artifact_name,
    get_download_url,
)
from embedded_postgres.errors import (
    FetchError,
    InitializationError,
    NoMatchingArchiveError,
    ReadinessError,
    SpawnError,
    StartTimeoutError,
    UnsupportedPlatformError,
)
from embedded_postgres.types import Config, Readiness, ReadinessOutcome

logger = logging.getLogger(__name__)

CACHE_DIR_NAME = ".embedded-postgres-go"
CACHE_ENV_VAR = "EMBEDDED_POSTGRES_CACHE_DIR"
DOWNLOAD_TIMEOUT = 60

# (os, arch, version)
VersionStrategy = Callable[[], Tuple[str, str, str]]
# (archive path, exists)
CacheLocator = Callable[[], Tuple[Path, bool]]
RemoteFetchStrategy = Callable[[], Path]


def get_platform_info() -> Tuple[str, str]:
    """
    Determine the OS and architecture, named as in the binary repository.

    Returns:
        Tuple of (os_name, arch_name)

    Raises:
        UnsupportedPlatformError: If platform is unsupported
    """
    system = platform.system().lower()
    machine = platform.machine().lower()

    # Normalize OS
    if system in ("linux", "darwin", "windows"):
        os_name = system
    else:
        raise UnsupportedPlatformError(f"Unsupported operating system: {system}")

    # Normalize Architecture
    if machine in ("x86_64", "amd64"):
        arch_name = "amd64"
    elif machine in ("arm64", "aarch64"):
        arch_name = "arm64v8"
    elif machine.startswith("armv7"):
        arch_name = "arm32v7"
    elif machine in ("i386", "i686", "x86"):
        arch_name = "i386"
    else:
        raise UnsupportedPlatformError(f"Unsupported architecture: {machine}")

    return os_name, arch_name


def default_version_strategy(config: Config) -> VersionStrategy:
    """Version strategy for the host platform and the configured version."""
    def strategy() -> Tuple[str, str, str]:
        os_name, arch_name = get_platform_info()
        return os_name, arch_name, config.version_string
    return strategy


# =============================================================================
# Cache Locator
# =============================================================================


def get_cache_dir(override: Optional[Union[str, Path]] = None) -> Path:
    """
    Get the directory where binary archives are cached.

    Resolution order: explicit override, EMBEDDED_POSTGRES_CACHE_DIR,
    ``~/.embedded-postgres-go``, then ``.embedded-postgres-go`` relative to
    the working directory when no home directory can be resolved.
    """
    if override:
        return Path(override)

    env_dir = os.environ.get(CACHE_ENV_VAR)
    if env_dir:
        return Path(env_dir)

    try:
        return Path.home() / CACHE_DIR_NAME
    except (RuntimeError, KeyError):
        return Path(CACHE_DIR_NAME)


def get_archive_path(os_name: str, arch_name: str, version: str, cache_dir: Path) -> Path:
    """Get the canonical cache path of a (os, arch, version) archive."""
    filename = f"{get_artifact_name(os_name, arch_name)}-{version}{ARCHIVE_SUFFIX}"
    return cache_dir / filename


def locate_cached_archive(
    version_strategy: VersionStrategy,
    cache_dir: Optional[Union[str, Path]] = None,
) -> Tuple[Path, bool]:
    """
    Compute the expected archive path and whether it is already materialized.

    Existence is re-checked on every call; only a regular file counts.
    """
    os_name, arch_name, version = version_strategy()
    path = get_archive_path(os_name, arch_name, version, get_cache_dir(cache_dir))
    return path, path.is_file()


def default_cache_locator(
    version_strategy: VersionStrategy,
    cache_dir: Optional[Union[str, Path]] = None,
) -> CacheLocator:
    def locator() -> Tuple[Path, bool]:
        return locate_cached_archive(version_strategy, cache_dir)
    return locator


# =============================================================================
# Remote Fetch
# =============================================================================


def fetch_archive(
    version_strategy: VersionStrategy,
    cache_locator: CacheLocator,
    repository_url: Optional[str] = None,
) -> Path:
    """
    Download the version's binary jar and cache its platform archive.

    Single attempt, no retries. The whole jar is held in memory.

    Returns:
        Path to the cached archive

    Raises:
        FetchError: On network failure, bad container, or write failure
        NoMatchingArchiveError: If the jar holds no platform archive
    """
    os_name, arch_name, version = version_strategy()
    url = get_download_url(version, os_name, arch_name, repository_url)
    target_path, _ = cache_locator()

    logger.info(f"Downloading PostgreSQL {version} for {os_name}/{arch_name} from {url}")

    try:
        response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
        response.raise_for_status()
        body = response.content
    except requests.exceptions.RequestException as e:
        raise FetchError(f"Failed to download binaries from {url}: {e}", url=url) from e

    written = 0
    try:
        for name, content in iter_zip_members(body, ARCHIVE_SUFFIX):
            logger.debug(f"Caching {name} from {url} at {target_path}")
            target_path.parent.mkdir(parents=True, exist_ok=True)
            target_path.write_bytes(content)
            written += 1
    except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as e:
        # RuntimeError/NotImplementedError: encrypted or unsupported-compression entries
        target_path.unlink(missing_ok=True)
        raise FetchError(
            f"Downloaded bundle from {url} is not a valid archive: {e}", url=url
        ) from e
    except OSError as e:
        target_path.unlink(missing_ok=True)
        raise FetchError(f"Failed to write archive {target_path}: {e}", url=url) from e

    if written == 0:
        raise NoMatchingArchiveError(
            f"No *{ARCHIVE_SUFFIX} archive found in bundle downloaded from {url}",
            url=url,
        )

    logger.info(f"Cached PostgreSQL {version} archive at {target_path}")
    return target_path


def default_remote_fetch_strategy(
    version_strategy: VersionStrategy,
    cache_locator: CacheLocator,
    repository_url: Optional[str] = None,
) -> RemoteFetchStrategy:
    def strategy() -> Path:
        return fetch_archive(version_strategy, cache_locator, repository_url)
    return strategy


# =============================================================================
# Instance Initializer
# =============================================================================


def get_runtime_dir(runtime_path: Optional[Union[str, Path]], cache_location: Path) -> Path:
    """User-supplied runtime path, or ``extracted/`` beside the cached archive."""
    if runtime_path:
        return Path(runtime_path)
    return cache_location.parent / "extracted"


def get_binary_path(runtime_dir: Path, name: str) -> Path:
    """Path to a PostgreSQL executable inside an extracted distribution."""
    ext = ".exe" if platform.system().lower() == "windows" else ""
    return runtime_dir / "bin" / f"{name}{ext}"


def write_password_file(runtime_dir: Path, password: str) -> Path:
    """Write the superuser password to ``<runtime_dir>/pwfile`` with mode 0600."""
    pwfile = runtime_dir / "pwfile"
    fd = os.open(pwfile, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(password)
    return pwfile


def initialize_instance(config: Config, archive_path: Path, runtime_dir: Path) -> Path:
    """
    Prepare a fresh runtime directory and data directory.

    Cleans ``runtime_dir``, extracts the archive into it, writes the password
    file and runs initdb.

    Returns:
        Path to the data directory

    Raises:
        InitializationError: On cleanup, password file or initdb failure
        ExtractionError: If the archive cannot be extracted
    """
    try:
        if runtime_dir.exists():
            shutil.rmtree(runtime_dir)
    except OSError as e:
        raise InitializationError(
            f"unable to clean up directory {runtime_dir}: {e}"
        ) from e

    logger.info(f"Extracting {archive_path} to {runtime_dir}")
    extract_txz(archive_path, runtime_dir)

    try:
        pwfile = write_password_file(runtime_dir, config.password)
    except OSError as e:
        raise InitializationError(f"unable to write password file: {e}") from e

    data_dir = runtime_dir / "data"
    cmd = [
        str(get_binary_path(runtime_dir, "initdb")),
        "-A", "password",
        "-U", config.username,
        "-D", str(data_dir),
        f"--pwfile={pwfile}",
    ]
    logger.debug(f"Executing: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd, timeout=config.init_timeout)
    except subprocess.TimeoutExpired as e:
        raise InitializationError(
            f"initdb timed out after {config.init_timeout}s"
        ) from e
    except OSError as e:
        raise InitializationError(f"unable to run initdb: {e}") from e

    if result.returncode != 0:
        raise InitializationError(
            f"unable to init database: initdb exited with code {result.returncode}",
            returncode=result.returncode,
        )

    return data_dir


# =============================================================================
# Process Supervision
# =============================================================================


async def start_server_process(runtime_dir: Path, port: int) -> asyncio.subprocess.Process:
    """
    Start the postgres server process.

    stdout and stderr are inherited from the current process.

    Raises:
        SpawnError: If process fails to start
    """
    cmd = [
        str(get_binary_path(runtime_dir, "postgres")),
        "-p", str(port),
        "-h", "localhost",
        "-D", str(runtime_dir / "data"),
    ]

    try:
        process = await asyncio.create_subprocess_exec(*cmd)
    except OSError as e:
        raise SpawnError(f"Failed to start postgres: {e}") from e

    logger.debug(f"Started postgres process (PID: {process.pid}) on port {port}")
    return process


ReadinessCheck = Callable[[asyncio.subprocess.Process], Awaitable[Readiness]]


class ProcessSupervisor:
    """
    Supervises one postgres server process.

    Handles:
    - Process startup and readiness
    - Logging unexpected exits (no restart)
    - Fast shutdown with a kill fallback
    """

    def __init__(
        self,
        runtime_dir: Path,
        port: int,
        start_timeout: float = 15.0,
        stop_timeout: float = 5.0,
    ):
        self.runtime_dir = runtime_dir
        self.port = port
        self.start_timeout = start_timeout
        self.stop_timeout = stop_timeout

        self._process: Optional[asyncio.subprocess.Process] = None
        self._stopping = False
        self._watch_task: Optional[asyncio.Task] = None

    async def start(self, ready: ReadinessCheck) -> Readiness:
        """
        Spawn the server and wait until ``ready`` reports an outcome.

        Raises:
            SpawnError: If the process cannot be launched
            StartTimeoutError: If readiness timed out (process terminated)
            ReadinessError: If readiness failed fatally (process terminated)
        """
        self._stopping = False
        self._process = await start_server_process(self.runtime_dir, self.port)
        self._watch_task = asyncio.create_task(self._watch(self._process))

        try:
            readiness = await ready(self._process)
        except BaseException:
            await self.stop()
            raise

        if readiness.is_ready:
            logger.info(f"postgres is ready on port {self.port} (PID: {self._process.pid})")
            return readiness

        await self.stop()
        if readiness.outcome == ReadinessOutcome.TIMED_OUT:
            raise StartTimeoutError(self.start_timeout, readiness.error)
        raise ReadinessError(f"postgres failed to become ready: {readiness.error}")

    async def stop(self) -> None:
        """
        Stop the supervised process.

        Sends the fast-shutdown signal, waits up to stop_timeout, then kills.
        Failures are logged, never raised.
        """
        self._stopping = True
        process = self._process

        if process is not None and process.returncode is None:
            self._signal_shutdown(process)
            try:
                await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"postgres (PID: {process.pid}) did not exit within "
                    f"{self.stop_timeout}s, killing"
                )
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
            except Exception as e:
                logger.error(f"Error waiting for postgres (PID: {process.pid}) to exit: {e}")

        if self._watch_task is not None:
            if not self._watch_task.done():
                self._watch_task.cancel()
            try:
                await self._watch_task
            except asyncio.CancelledError:
                pass
            self._watch_task = None

        if process is not None:
            logger.debug(f"postgres (PID: {process.pid}) exited with code {process.returncode}")
        self._process = None

    def _signal_shutdown(self, process: asyncio.subprocess.Process) -> None:
        # SIGQUIT is postgres' "fast" shutdown; Windows only has terminate()
        sig = getattr(signal, "SIGQUIT", None)
        try:
            if sig is None:
                process.terminate()
            else:
                process.send_signal(sig)
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.error(f"Failed to signal postgres (PID: {process.pid}): {e}")

    async def _watch(self, process: asyncio.subprocess.Process) -> None:
        """Log an exit that was not requested through stop()."""
        return_code = await process.wait()
        if not self._stopping:
            logger.warning(f"postgres exited unexpectedly with code {return_code}")

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def is_running(self) -> bool:
        """Check if the process is running."""
        return self._process is not None and self._process.returncode is None
