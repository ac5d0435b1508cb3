"""
Pytest configuration for embedded-postgres tests.
"""

import io
import socket
import tarfile
from pathlib import Path

import pytest

# Note: With pytest-asyncio in auto mode, no event_loop fixture needed


FAKE_INITDB = b"""#!/bin/sh
echo "$@" > "$(dirname "$0")/../initdb.args"
while [ $# -gt 0 ]; do
    if [ "$1" = "-D" ]; then
        mkdir -p "$2"
    fi
    shift
done
exit 0
"""

FAILING_INITDB = b"""#!/bin/sh
echo "initdb: simulated failure" >&2
exit 3
"""

FAKE_POSTGRES = b"""#!/bin/sh
exec sleep 30
"""


def build_distribution(path: Path, files: dict) -> Path:
    """Write a tar.xz archive of executable files (name -> bytes)."""
    with tarfile.open(path, "w:xz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture
def make_distribution():
    """Factory writing tar.xz archives of executable files."""
    return build_distribution


@pytest.fixture
def fake_archive(tmp_path):
    """A cached archive whose initdb/postgres are shell-script stand-ins."""
    return build_distribution(
        tmp_path / "embedded-postgres-binaries-linux-amd64-12.1.0.txz",
        {"bin/initdb": FAKE_INITDB, "bin/postgres": FAKE_POSTGRES},
    )


@pytest.fixture
def failing_archive(tmp_path):
    """A cached archive whose initdb always exits non-zero."""
    return build_distribution(
        tmp_path / "embedded-postgres-binaries-linux-amd64-12.1.0.txz",
        {"bin/initdb": FAILING_INITDB, "bin/postgres": FAKE_POSTGRES},
    )


@pytest.fixture
def free_port():
    """A TCP port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("localhost", 0))
        return s.getsockname()[1]


@pytest.fixture
def version_strategy():
    """Version strategy pinned to linux/amd64 12.1.0."""
    return lambda: ("linux", "amd64", "12.1.0")
