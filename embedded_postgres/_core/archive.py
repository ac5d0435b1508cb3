"""
Archive extraction helpers for embedded-postgres.

Two formats are involved:
- The downloaded jar is a zip container wrapping the platform archive
- The platform archive is a tar+xz bundle of the PostgreSQL distribution
"""

from __future__ import annotations

import io
import logging
import lzma
import os
import tarfile
import zipfile
from pathlib import Path
from typing import Iterator, Tuple, Union

from embedded_postgres.errors import ExtractionError

logger = logging.getLogger(__name__)


def _is_within_dir(base_dir: Path, candidate: Path) -> bool:
    try:
        return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
    except ValueError:
        return False


def extract_txz(archive_path: Union[str, Path], destination_dir: Union[str, Path]) -> None:
    """
    Unpack a tar+xz archive into a directory.

    Args:
        archive_path: Path to the .txz archive
        destination_dir: Directory to extract into (created if missing)

    Raises:
        ExtractionError: If the archive is unreadable or a member escapes
            the destination directory
    """
    base = Path(destination_dir).resolve()

    try:
        base.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive_path, "r:xz") as tar:
            for member in tar.getmembers():
                target_path = (base / member.name).resolve()
                if not _is_within_dir(base, target_path):
                    raise ExtractionError(
                        f"Unsafe archive entry detected: `{member.name}`. "
                        "Extraction aborted to prevent path traversal."
                    )
            if hasattr(tarfile, "tar_filter"):
                tar.extractall(base, filter="tar")
            else:
                tar.extractall(base)
    except ExtractionError:
        raise
    except (tarfile.TarError, lzma.LZMAError, OSError, EOFError) as e:
        raise ExtractionError(
            f"unable to extract postgres archive {archive_path} to {destination_dir}: {e}"
        ) from e

    logger.debug(f"Extracted {archive_path} to {base}")


def iter_zip_members(data: bytes, suffix: str) -> Iterator[Tuple[str, bytes]]:
    """
    Yield (name, content) for every zip entry whose name ends in ``suffix``.

    Args:
        data: Raw bytes of a zip container
        suffix: Entry name suffix to match (e.g. ".txz")

    Raises:
        zipfile.BadZipFile: If data is not a zip container
    """
    with zipfile.ZipFile(io.BytesIO(data), "r") as zip_ref:
        for member in zip_ref.infolist():
            if member.is_dir() or not member.filename.endswith(suffix):
                continue
            with zip_ref.open(member, "r") as src:
                yield member.filename, src.read()
