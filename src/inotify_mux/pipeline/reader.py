# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Reader half of the pipeline - pulls bytes off the channel and queues decoded batches.
"""

from __future__ import annotations

from typing import Optional

import asyncio
import logging

from inotify_simple import flags

from inotify_mux.channel import Channel
from inotify_mux.config import MonitorConfig, OverflowPolicy
from inotify_mux.errors import ChannelClosed
from inotify_mux.records import RawRecord, decode_records

Batch = list[RawRecord]

#: Watch id the kernel uses for records which do not belong to any watch
SENTINEL_WD = -1


def batch_queue(config: MonitorConfig) -> asyncio.Queue[Optional[Batch]]:
    """
    The queue between reader and dispatcher, sized for the config.

    With DROP one slot beyond max_queue_size is kept back for the overflow marker - so the
    marker always fits, even when no further batch ever arrives.
    :param config:
    :return:
    """
    reserve = 1 if config.overflow_policy is OverflowPolicy.DROP else 0
    return asyncio.Queue(maxsize=config.max_queue_size + reserve)


def overflow_record() -> RawRecord:
    """
    A record equivalent to the kernel's own IN_Q_OVERFLOW.

    :return:
    """
    return RawRecord(SENTINEL_WD, int(flags.Q_OVERFLOW), 0, None)


class RecordReader:
    """
    Waits on the channel fd, reads one chunk per wake-up, decodes it and queues the batch.

    Runs until cancelled, or until the channel fails.
    """

    _logger: logging.Logger

    _channel: Channel
    _queue: asyncio.Queue[Optional[Batch]]
    _config: MonitorConfig

    _overflowed: bool = False
    dropped_records: int = 0

    def __init__(
        self,
        channel: Channel,
        queue: asyncio.Queue[Optional[Batch]],
        config: MonitorConfig,
    ) -> None:
        """
        Bind the reader to a channel and the queue it feeds.

        :param channel:
        :param queue:
        :param config:
        """
        self._logger = logging.getLogger(__name__ + ":" + type(self).__name__)
        self._channel = channel
        self._queue = queue
        self._config = config

    async def run(self) -> None:
        """
        Main loop.

        :return:
        """
        self._logger.debug("Reading from fd %d", self._channel.fileno())

        while True:
            await self._readable()

            try:
                chunk = self._channel.read_chunk(self._config.read_chunk_size)
            except (BlockingIOError, InterruptedError):
                continue

            if not chunk:
                raise ChannelClosed(f"End of file on fd {self._channel.fileno()}")

            batch = decode_records(chunk)
            self._logger.debug("Read %d bytes - %d records", len(chunk), len(batch))
            if batch:
                await self._enqueue(batch)

    async def _readable(self) -> None:
        """
        Suspend until the channel has something to read.

        The reader is only registered while we wait, so a full queue does not spin the loop.
        :return:
        """
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()
        fd = self._channel.fileno()

        loop.add_reader(fd, self._wake, waiter)
        try:
            await waiter
        finally:
            loop.remove_reader(fd)

    @staticmethod
    def _wake(waiter: asyncio.Future[None]) -> None:
        if not waiter.done():
            waiter.set_result(None)

    async def _enqueue(self, batch: Batch) -> None:
        """
        Put a batch on the queue - applying the overflow policy if it is full.

        :param batch:
        :return:
        """
        if self._config.overflow_policy is OverflowPolicy.BLOCK:
            await self._queue.put(batch)
            return

        # Data batches never use the reserved slot
        if self._queue.qsize() < self._config.max_queue_size:
            self._queue.put_nowait(batch)
            if self._overflowed:
                self._logger.info(
                    "Event queue accepting again - %d records dropped so far",
                    self.dropped_records,
                )
            self._overflowed = False
            return

        self.dropped_records += len(batch)
        if self._overflowed:
            return

        self._logger.warning(
            "Event queue full (%d batches) - dropping events until it drains",
            self._config.max_queue_size,
        )
        self._overflowed = True
        self._queue.put_nowait([overflow_record()])
