"""
Version constants and binary repository layout for embedded-postgres.

PostgreSQL binaries are published as Maven artifacts:
- One artifact per (os, arch): embedded-postgres-binaries-<os>-<arch>
- One jar per version, wrapping a single .txz archive of the distribution
"""

from __future__ import annotations

import os
from typing import Optional

# embedded-postgres package version
PACKAGE_VERSION = "0.1.0"

# Maven repository hosting the binary jars
DEFAULT_REPOSITORY_URL = "https://repo1.maven.org/maven2"
REPOSITORY_ENV_VAR = "EMBEDDED_POSTGRES_REPOSITORY_URL"
ARTIFACT_GROUP_PATH = "io/zonky/test/postgres"
ARTIFACT_PREFIX = "embedded-postgres-binaries"

# Suffix of the platform archive inside the jar, and of the cached file
ARCHIVE_SUFFIX = ".txz"


def get_artifact_name(os_name: str, arch_name: str) -> str:
    """
    Get the Maven artifact id for a platform.

    Args:
        os_name: OS name (linux, darwin, windows)
        arch_name: Architecture (amd64, arm64v8, ...)

    Returns:
        Artifact id, e.g. "embedded-postgres-binaries-linux-amd64"
    """
    return f"{ARTIFACT_PREFIX}-{os_name}-{arch_name}"


def get_repository_url(override: Optional[str] = None) -> str:
    """Resolve the repository root: explicit override, then env, then Maven Central."""
    url = override or os.environ.get(REPOSITORY_ENV_VAR) or DEFAULT_REPOSITORY_URL
    return url.rstrip("/")


def get_download_url(
    version: str,
    os_name: str,
    arch_name: str,
    repository_url: Optional[str] = None,
) -> str:
    """
    Get the download URL for a specific PostgreSQL version and platform.

    Args:
        version: PostgreSQL version (e.g., "12.1.0")
        os_name: OS name (linux, darwin, windows)
        arch_name: Architecture (amd64, arm64v8, ...)
        repository_url: Repository root (default: see get_repository_url)

    Returns:
        URL of the version's binary jar
    """
    artifact = get_artifact_name(os_name, arch_name)
    return (
        f"{get_repository_url(repository_url)}/{ARTIFACT_GROUP_PATH}/"
        f"{artifact}/{version}/{artifact}-{version}.jar"
    )
