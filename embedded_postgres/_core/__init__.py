"""
Core lifecycle machinery for embedded-postgres.

This module handles:
- Archive cache lookup and download
- Archive extraction and instance initialization
- Server process supervision
- Readiness polling
"""

from embedded_postgres._core.version import (
    PACKAGE_VERSION,
    DEFAULT_REPOSITORY_URL,
    get_download_url,
)
from embedded_postgres._core.lifecycle import (
    get_platform_info,
    get_cache_dir,
    get_archive_path,
    locate_cached_archive,
    fetch_archive,
    initialize_instance,
    ProcessSupervisor,
)
from embedded_postgres._core.health import (
    probe_database,
    wait_ready,
)

__all__ = [
    # Version
    "PACKAGE_VERSION",
    "DEFAULT_REPOSITORY_URL",
    "get_download_url",
    # Lifecycle
    "get_platform_info",
    "get_cache_dir",
    "get_archive_path",
    "locate_cached_archive",
    "fetch_archive",
    "initialize_instance",
    "ProcessSupervisor",
    # Health
    "probe_database",
    "wait_ready",
]
