from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from pathlib import Path

from .config import ChannelConfig
from .errors import (
    FileSystemError,
    FolderEchoError,
    SendError,
    SettleTimeout,
    WatcherError,
)
from .limiter import TokenBucket
from .notify import rate_limit_message, rejection_message
from .queue import (
    DeliveryQueue,
    STATUS_POSTED,
    STATUS_REJECTED,
    STATUS_SKIPPED,
)
from .settle import FILE_SETTLE_MAX_WAIT, FILE_SETTLE_WAIT, wait_until_settled
from .slack import FileMessage, SlackClient, TextMessage
from .watcher import scan_once, watch

PULL_TIMEOUT = 0.1

POSTED_DIR = "posted"
REJECTED_DIR = "rejected"


class ChannelWorker:
    """Relays files from one watched folder to one Slack channel.

    Each file goes Discovered -> Settling -> Sending -> Posted | Rejected.
    A file is moved out of the watched folder before any failure
    notification is sent, so it is never picked up twice.
    """

    def __init__(
        self,
        config: ChannelConfig,
        *,
        once: bool = False,
        settle_in_once: bool = False,
        settle_wait: float = FILE_SETTLE_WAIT,
        settle_max_wait: float = FILE_SETTLE_MAX_WAIT,
        force_polling: bool = False,
        client=None,
        watcher=watch,
    ) -> None:
        self.config = config
        self.once = once
        self.settle = settle_in_once or not once
        self.settle_wait = settle_wait
        self.settle_max_wait = settle_max_wait
        self.force_polling = force_polling
        self.folder = config.folder
        self.posted_dir = config.folder / POSTED_DIR
        self.rejected_dir = config.folder / REJECTED_DIR

        self.queue = DeliveryQueue()
        self.upload_limiter = TokenBucket(config.limit_uploads_per_minute)
        self.warning_limiter = TokenBucket(1)
        self.had_errors = False
        self.fatal_error: FolderEchoError | None = None
        self.started_at: float | None = None
        self.finished_at: float | None = None

        self._client = client
        self._watcher = watcher
        self._background: set[asyncio.Task] = set()

    @property
    def name(self) -> str:
        return self.config.name

    def prepare_folders(self) -> None:
        if not self.folder.is_dir():
            raise FileSystemError(f"Folder does not exist: {self.folder}")
        logging.info(
            "[%s] Creating folders: %s %s", self.name, self.posted_dir, self.rejected_dir
        )
        try:
            self.posted_dir.mkdir(exist_ok=True)
            self.rejected_dir.mkdir(exist_ok=True)
        except OSError as exc:
            raise FileSystemError(f"Cannot create subfolders in {self.folder}: {exc}") from exc

    async def run(self) -> bool:
        """Process files until the watcher ends (or the folder is drained in once mode).

        Returns False if once mode rejected any file. Raises FileSystemError or
        WatcherError when the worker itself cannot continue.
        """
        logging.info(
            "[%s] Starting bot %r: folder %s, channel %s",
            self.name,
            self.config.bot_name,
            self.folder,
            self.config.slack_channel,
        )
        self.started_at = time.monotonic()
        try:
            self.prepare_folders()
            if self._client is not None:
                return await self._run(self._client)
            async with SlackClient(self.config) as client:
                return await self._run(client)
        finally:
            self.finished_at = time.monotonic()

    async def _run(self, client) -> bool:
        feeder = None
        if self.once:
            logging.info("[%s] Scanning folder (--once)", self.name)
            for path in scan_once(self.folder):
                self.queue.put(path)
        else:
            feeder = asyncio.create_task(self._feed_from_watcher())

        try:
            await self._loop(client)
        finally:
            if feeder is not None:
                feeder.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await feeder
            if self._background:
                await asyncio.gather(*self._background, return_exceptions=True)

        if self.fatal_error is not None:
            raise self.fatal_error
        if self.once and self.had_errors:
            logging.error("[%s] There were errors processing files", self.name)
            return False
        return True

    async def _feed_from_watcher(self) -> None:
        try:
            async for path in self._watcher(
                self.folder, force_polling=self.force_polling, existing=True
            ):
                logging.info("[%s] Discovered %s", self.name, path.name)
                self.queue.put(path)
        except (WatcherError, FileSystemError) as exc:
            logging.error("[%s] File watcher failed: %s", self.name, exc)
            self.fatal_error = exc
        finally:
            self.queue.close()

    async def _loop(self, client) -> None:
        throttled = False
        while True:
            timeout = 0 if len(self.queue) and not throttled else PULL_TIMEOUT
            if not await self.queue.pull(timeout):
                logging.error("[%s] File watcher disconnected", self.name)
                break
            throttled = False

            if not len(self.queue):
                if self.once:
                    logging.info("[%s] Done scanning folder (--once)", self.name)
                    break
                continue

            if not self.upload_limiter.try_acquire():
                throttled = True
                if self.warning_limiter.try_acquire():
                    logging.warning(
                        "[%s] Upload rate limit exceeded (%d/min), %d file(s) waiting, next slot in %.0fs",
                        self.name,
                        self.config.limit_uploads_per_minute,
                        len(self.queue),
                        self.upload_limiter.time_until_available(),
                    )
                    self._notify_in_background(
                        client, rate_limit_message(self.config.limit_uploads_per_minute)
                    )
                continue

            await self._process(client, self.queue.pop())

    async def _process(self, client, path: Path) -> None:
        if path.name.startswith("."):
            logging.debug("[%s] Skipping hidden file %s", self.name, path.name)
            self.queue.mark(path, STATUS_SKIPPED)
            return
        if not path.exists():
            logging.info("[%s] %s is gone, already handled", self.name, path.name)
            self.queue.mark(path, STATUS_SKIPPED)
            return

        try:
            if self.settle:
                await wait_until_settled(
                    path, self.settle_wait, self.settle_max_wait, channel=self.name
                )
            await client.send(FileMessage(path=path, title=path.name))
        except (SettleTimeout, SendError, FileSystemError) as exc:
            await self._reject(client, path, exc)
            return

        if self._move(path, self.posted_dir):
            logging.info("[%s] Posted %s", self.name, path.name)
            self.queue.mark(path, STATUS_POSTED)
        else:
            self.had_errors = True
            self.queue.mark(path, STATUS_REJECTED)

    async def _reject(self, client, path: Path, exc: Exception) -> None:
        self.had_errors = True
        logging.error("[%s] Rejecting %s: %s", self.name, path.name, exc)
        moved = self._move(path, self.rejected_dir)
        self.queue.mark(path, STATUS_REJECTED)
        if not moved:
            return
        await self._send_quietly(client, rejection_message(path.name, exc))

    def _move(self, path: Path, target_dir: Path) -> bool:
        target = target_dir / path.name
        try:
            path.replace(target)
        except FileNotFoundError:
            logging.error(
                "[%s] %s vanished before it could be moved to %s",
                self.name,
                path.name,
                target_dir.name,
            )
            return False
        except OSError as exc:
            raise FileSystemError(f"Cannot move {path} to {target}: {exc}") from exc
        return True

    def _notify_in_background(self, client, message: TextMessage) -> None:
        task = asyncio.create_task(self._send_quietly(client, message))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_quietly(self, client, message: TextMessage) -> None:
        try:
            await client.send(message)
        except SendError as exc:
            logging.error("[%s] Error posting notification: %s", self.name, exc)
