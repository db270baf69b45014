"""Free-space accounting for the managed asset tree."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MIN_FREE_SPACE = 100 * 1024 * 1024


@dataclass
class StorageInfo:
    free_space: int = 0
    total_space: int = 0
    has_enough_space: bool = False


def _disk_usage(path: os.PathLike[str] | str):  # type: ignore[no-untyped-def]
    import psutil

    # psutil needs an existing path; walk up until one exists
    probe = os.path.abspath(os.fspath(path))
    while not os.path.exists(probe):
        parent = os.path.dirname(probe)
        if parent == probe:
            break
        probe = parent
    return psutil.disk_usage(probe)


def get_storage_info(path: os.PathLike[str] | str = "/") -> StorageInfo:
    """Free and total bytes on the volume holding *path*; zeros if unavailable."""
    try:
        usage = _disk_usage(path)
    except (ImportError, AttributeError, OSError) as exc:
        logger.debug("Disk usage unavailable for %s: %s", path, exc)
        return StorageInfo()
    return StorageInfo(
        free_space=int(usage.free),
        total_space=int(usage.total),
        has_enough_space=usage.free > MIN_FREE_SPACE,
    )


def _required_bytes(needed: int) -> int:
    return needed + max(MIN_FREE_SPACE, int(needed * 0.1))


def has_enough_space(needed: int, path: os.PathLike[str] | str = "/") -> bool:
    """Whether *needed* bytes fit with a buffer of max(100 MiB, 10%)."""
    try:
        free = int(_disk_usage(path).free)
    except (ImportError, AttributeError, OSError):
        return False
    return free > _required_bytes(needed)


def check_before_download(
    size: int, path: os.PathLike[str] | str = "/"
) -> tuple[bool, str]:
    """Return ``(ok, message)``; message says how much space is missing."""
    try:
        free = int(_disk_usage(path).free)
    except (ImportError, AttributeError, OSError) as exc:
        return False, f"Could not determine free space: {exc}"
    required = _required_bytes(size)
    if free < required:
        return False, f"Need {format_bytes(required - free)} more space"
    return True, ""


def format_bytes(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{value:.1f} {units[i]}"
