from __future__ import annotations

import asyncio
from collections import deque
from pathlib import Path


STATUS_QUEUED = "queued"
STATUS_SENDING = "sending"
STATUS_POSTED = "posted"
STATUS_REJECTED = "rejected"
STATUS_SKIPPED = "skipped"

ALL_STATUSES = (
    STATUS_QUEUED,
    STATUS_SENDING,
    STATUS_POSTED,
    STATUS_REJECTED,
    STATUS_SKIPPED,
)

_CLOSED = object()


class DeliveryQueue:
    """In-memory FIFO between a folder watcher and its channel worker.

    The watcher side only calls ``put`` and ``close``. The worker moves new
    arrivals into its pending FIFO with ``pull`` and takes work with ``pop``.
    Nothing is persisted: files still in the watched folder after a restart
    are found again by the next scan or creation event.
    """

    def __init__(self) -> None:
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._pending: deque[Path] = deque()
        self.closed = False
        self.status: dict[Path, str] = {}

    def put(self, path: Path) -> None:
        self._inbox.put_nowait(path)

    def close(self) -> None:
        self._inbox.put_nowait(_CLOSED)

    def _accept(self, item: object) -> None:
        if item is _CLOSED:
            self.closed = True
            return
        # The startup scan and the watcher can both report a file that is
        # still waiting or already being sent.
        if self.status.get(item) in (STATUS_QUEUED, STATUS_SENDING):
            return
        self._pending.append(item)
        self.status[item] = STATUS_QUEUED

    async def pull(self, timeout: float) -> bool:
        """Move newly discovered paths into the pending FIFO.

        Waits at most ``timeout`` seconds for the first arrival, then takes
        whatever else is already waiting. Returns False once the producer has
        closed the queue.
        """
        if self.closed:
            return False
        if timeout > 0:
            try:
                item = await asyncio.wait_for(self._inbox.get(), timeout)
            except asyncio.TimeoutError:
                return True
            self._accept(item)
        while not self.closed:
            try:
                item = self._inbox.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._accept(item)
        return not self.closed

    def pop(self) -> Path:
        path = self._pending.popleft()
        self.status[path] = STATUS_SENDING
        return path

    def mark(self, path: Path, status: str) -> None:
        if status not in ALL_STATUSES:
            raise ValueError(f"Unknown status: {status}")
        self.status[path] = status

    def __len__(self) -> int:
        return len(self._pending)

    def stats(self) -> dict[str, int]:
        counts = {status: 0 for status in ALL_STATUSES}
        for status in self.status.values():
            counts[status] += 1
        return counts
