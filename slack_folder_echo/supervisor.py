from __future__ import annotations

import asyncio
import logging
from typing import Any

from .config import ChannelConfig
from .worker import ChannelWorker


def build_workers(configs: list[ChannelConfig], **options: Any) -> list[ChannelWorker]:
    return [ChannelWorker(config, **options) for config in configs]


async def run_workers(workers: list[ChannelWorker]) -> bool:
    """Run every channel worker concurrently and report overall success.

    A worker that fails (missing folder, watcher failure, or rejected files
    in once mode) does not stop the others.
    """
    results = await asyncio.gather(
        *(worker.run() for worker in workers), return_exceptions=True
    )

    ok = True
    for worker, result in zip(workers, results):
        if isinstance(result, BaseException):
            ok = False
            logging.error(
                "Error running bot %r: %s",
                worker.name,
                result,
                exc_info=(type(result), result, result.__traceback__),
            )
        elif not result:
            ok = False

    if not ok:
        logging.warning("There were errors running bots")
    return ok
