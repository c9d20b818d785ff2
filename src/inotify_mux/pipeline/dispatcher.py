# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Dispatcher half of the pipeline.

Exactly one of these runs per monitor, and every handler is run to completion before the next
record is looked at - which is what gives strict kernel order across all watches.
The flip side: a slow handler holds up delivery to every other watch.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Union

import asyncio
import inspect
import logging

from inotify_mux.classifier import classify
from inotify_mux.errors import ClassificationError, HandlerNotFound
from inotify_mux.events import Event, Ignored, QueueOverflow
from inotify_mux.pipeline.reader import SENTINEL_WD, Batch
from inotify_mux.records import RawRecord
from inotify_mux.registry import WatchRegistry

FallbackHandler = Callable[[int, Event], Union[None, Awaitable[Any]]]
ErrorHandler = Callable[[BaseException], None]

_fallback_logger = logging.getLogger(__name__ + ":fallback")


def log_unclaimed_event(wd: int, event: Event) -> None:
    """
    Default destination for events no subscription claimed.

    Overflow is always worth a warning - it means events have been lost.
    :param wd:
    :param event:
    :return:
    """
    if isinstance(event, QueueOverflow):
        _fallback_logger.warning("Events were lost - queue overflow reported for watch %d", wd)
    else:
        _fallback_logger.debug("Unclaimed event for watch %d - %s", wd, event)


class EventDispatcher:
    """
    Drains the batch queue, classifies each record, and hands it to its subscription.
    """

    _logger: logging.Logger

    _registry: WatchRegistry
    _queue: asyncio.Queue[Optional[Batch]]
    _fallback: FallbackHandler
    _error_handler: Optional[ErrorHandler]
    _remove_on_ignored: bool

    _stopping: bool = False
    delivered: int = 0
    unclaimed: int = 0
    abandoned: int = 0

    def __init__(  # pylint: disable=too-many-arguments
        self,
        registry: WatchRegistry,
        queue: asyncio.Queue[Optional[Batch]],
        fallback: Optional[FallbackHandler] = None,
        error_handler: Optional[ErrorHandler] = None,
        remove_on_ignored: bool = True,
    ) -> None:
        """
        Wire the dispatcher to the registry it consults and the queue it drains.

        :param registry:
        :param queue:
        :param fallback: Receives (wd, event) for every event no subscription claims.
        :param error_handler: Told about records which could not be classified.
        :param remove_on_ignored: Drop a subscription when the kernel says its watch is gone.
        """
        self._logger = logging.getLogger(__name__ + ":" + type(self).__name__)
        self._registry = registry
        self._queue = queue
        self._fallback = fallback if fallback is not None else log_unclaimed_event
        self._error_handler = error_handler
        self._remove_on_ignored = remove_on_ignored

    def stop(self) -> None:
        """
        Finish the record currently being delivered, then stop.

        :return:
        """
        self._stopping = True

    async def run(self) -> None:
        """
        Main loop - a None on the queue also ends it.

        :return:
        """
        while not self._stopping:
            batch = await self._queue.get()
            try:
                if batch is None:
                    self._logger.debug("Shutdown seen on the queue")
                    return
                for position, record in enumerate(batch):
                    if self._stopping:
                        self.abandoned += len(batch) - position
                        self._logger.debug(
                            "Stopping mid batch - %d records dropped", len(batch) - position
                        )
                        return
                    await self.dispatch(record)
            finally:
                self._queue.task_done()

    async def dispatch(self, record: RawRecord) -> bool:
        """
        Deliver one record.

        :param record:
        :return: True if a subscription's handler was invoked.
        """
        try:
            event = classify(record)
        except ClassificationError as exc:
            self._report(exc)
            return False

        discard = self._remove_on_ignored and isinstance(event, Ignored)
        try:
            subscription = self._registry.claim(record.wd, discard=discard)
        except HandlerNotFound as exc:
            self.unclaimed += 1
            if record.wd == SENTINEL_WD:
                self._logger.debug("%s for sentinel watch - passing to fallback", event)
            else:
                self._logger.debug("%s - passing %s to fallback", exc, event)
            await self._invoke(self._fallback, record.wd, event)
            return False

        self.delivered += 1
        await self._invoke(subscription.handler, event)
        return True

    async def _invoke(self, callback: Callable[..., Any], *args: Any) -> None:
        """
        Run a handler to completion - awaiting it if it hands back an awaitable.

        Handler failures are logged, never allowed to stop the pipeline.
        :param callback:
        :param args:
        :return:
        """
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Handler %r raised while processing %s", callback, args)

    def _report(self, exc: BaseException) -> None:
        self._logger.error("Skipping record - %s", exc)
        if self._error_handler is None:
            return
        try:
            self._error_handler(exc)
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Error handler %r raised", self._error_handler)
