from __future__ import annotations

import asyncio
import logging
from typing import Optional

from reivun_bot.errors import FetchError
from reivun_bot.monitor.client import MonitorClient
from reivun_bot.types import Credentials, Snapshot

logger = logging.getLogger("reivun_bot.monitor")


class MarketDataSynchronizer:
    """Sole owner and writer of the symbol snapshot.

    A run is opened with `begin_run(generation)`. Until that run's snapshot
    fetch lands, stream updates are buffered with an arrival sequence number;
    once the fetch replaces the snapshot, the buffer is replayed in sequence
    order. Anything tagged with another generation is dropped.

    Merging replaces a symbol's record whole. A field missing from the update
    is missing afterwards; other symbols are never touched.
    """

    def __init__(self, *, client: MonitorClient, timeout_seconds: float = 10.0) -> None:
        self._client = client
        self._timeout_seconds = timeout_seconds
        self._snapshot: Snapshot = {}
        self._generation: Optional[int] = None
        self._awaiting_snapshot = False
        self._buffer: list[tuple[int, Snapshot]] = []
        self._seq = 0

    @property
    def generation(self) -> Optional[int]:
        return self._generation

    @property
    def awaiting_snapshot(self) -> bool:
        return self._awaiting_snapshot

    def snapshot(self) -> Snapshot:
        return dict(self._snapshot)

    def begin_run(self, generation: int) -> None:
        self._generation = generation
        self._awaiting_snapshot = True
        self._buffer.clear()

    def end_run(self) -> None:
        if self._buffer:
            logger.info(
                "buffered_updates_discarded",
                extra={"generation": self._generation, "symbols": len(self._buffer)},
            )
        self._buffer.clear()
        self._awaiting_snapshot = False
        self._generation = None

    async def fetch_snapshot(self, credentials: Credentials, *, generation: int) -> Optional[Snapshot]:
        """Replace the snapshot with a full read; returns None if the run went stale meanwhile."""
        try:
            records = await asyncio.wait_for(
                self._client.fetch_symbols(credentials),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise FetchError(f"snapshot request exceeded {self._timeout_seconds}s") from e

        if generation != self._generation:
            logger.info("stale_snapshot_discarded", extra={"generation": generation})
            return None

        self._snapshot = dict(records)
        self._awaiting_snapshot = False
        buffered = sorted(self._buffer, key=lambda item: item[0])
        self._buffer.clear()
        for _, update in buffered:
            self._apply(update)
        logger.info(
            "snapshot_loaded",
            extra={
                "generation": generation,
                "symbols": len(self._snapshot),
                "replayed": len(buffered),
            },
        )
        return self.snapshot()

    def merge(self, update: Snapshot, *, generation: int) -> bool:
        """Apply or buffer one stream update; returns False if it was dropped as stale."""
        if generation != self._generation:
            return False
        self._seq += 1
        if self._awaiting_snapshot:
            self._buffer.append((self._seq, dict(update)))
            return True
        self._apply(update)
        return True

    def _apply(self, update: Snapshot) -> None:
        for symbol, record in update.items():
            self._snapshot[symbol] = record
