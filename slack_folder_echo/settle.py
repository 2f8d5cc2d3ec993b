from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from .errors import FileSystemError, SettleTimeout

FILE_SETTLE_WAIT = 5.0
FILE_SETTLE_MAX_WAIT = 60.0


def check_settle_times(settle_wait: float, max_wait: float) -> None:
    if not 0 < settle_wait < max_wait:
        raise ValueError(
            f"settle wait ({settle_wait}s) must be positive and shorter than max wait ({max_wait}s)"
        )


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError as exc:
        raise FileSystemError(f"Cannot read size of {path}: {exc}") from exc


async def wait_until_settled(
    path: Path,
    settle_wait: float = FILE_SETTLE_WAIT,
    max_wait: float = FILE_SETTLE_MAX_WAIT,
    *,
    channel: str = "",
) -> None:
    """Wait until ``path`` has not changed size for ``settle_wait`` seconds.

    Files often fire their creation event while the writer (scp, sftp, a
    camera) is still appending, so uploading right away would send a
    truncated file. Raises SettleTimeout if the size is still changing after
    ``max_wait`` seconds. Log lines carry a ``[channel]`` prefix when given.
    """
    check_settle_times(settle_wait, max_wait)
    prefix = f"[{channel}] " if channel else ""
    logging.info(
        "%sWaiting for file to settle: %s (settle %gs, max %gs)",
        prefix,
        path.name,
        settle_wait,
        max_wait,
    )

    start = time.monotonic()
    last_change = start
    size = _file_size(path)

    while time.monotonic() - start < max_wait:
        await asyncio.sleep(settle_wait / 4)
        new_size = _file_size(path)
        if new_size != size:
            last_change = time.monotonic()
            size = new_size
        elif time.monotonic() - last_change > settle_wait:
            logging.info("%sFile settled: %s (%d bytes)", prefix, path.name, size)
            return

    logging.warning("%sFile failed to settle: %s", prefix, path.name)
    raise SettleTimeout(max_wait)
