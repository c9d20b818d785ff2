# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
The public face of the multiplexer.

A Monitor owns one kernel channel, the registry of subscriptions, and the two background tasks
which move events from the one to the other.

Basic program flow goes as follows
 - start_monitor() acquires a channel and starts the reader and dispatcher tasks
 - add_watch() registers a path with the kernel and a handler with the registry
 - the reader decodes every chunk read from the channel and queues the batch
 - the dispatcher classifies each record and calls the handler registered for its watch id
 - close() stops both tasks and releases the channel
"""

from __future__ import annotations

from typing import Any, Optional, Union

import asyncio
import errno
import logging
import os
import threading

import aiopath  # type: ignore

from inotify_mux.channel import Channel, acquire_channel
from inotify_mux.config import MonitorConfig
from inotify_mux.errors import MonitorClosed, MonitorFailed, PathNotFound
from inotify_mux.pipeline import Batch, EventDispatcher, RecordReader, batch_queue
from inotify_mux.pipeline.dispatcher import ErrorHandler, FallbackHandler
from inotify_mux.registry import Handler, Subscription, WatchRegistry
from inotify_mux.varieties import VarietySpec, as_varieties, is_one_shot, varieties_to_mask

StrPath = Union[str, "os.PathLike[str]"]


class Monitor:  # pylint: disable=too-many-instance-attributes
    """
    Multiplexes one inotify channel out to per-watch handlers.

    Handlers are called in exactly the order the kernel produced the events, across all watches.
    remove_watch may be called from any thread - including from inside a handler.
    """

    _logger: logging.Logger

    _config: MonitorConfig
    _channel: Optional[Channel]
    _registry: WatchRegistry
    _queue: asyncio.Queue[Optional[Batch]]
    _channel_lock: threading.Lock

    _reader: Optional[RecordReader] = None
    _dispatcher: Optional[EventDispatcher] = None
    _reader_task: Optional[asyncio.Task[None]] = None
    _dispatcher_task: Optional[asyncio.Task[None]] = None
    _close_task: Optional[asyncio.Task[None]] = None

    _loop: Optional[asyncio.AbstractEventLoop] = None
    _failure: Optional[BaseException] = None
    _discarded: int = 0

    def __init__(
        self,
        channel: Optional[Channel] = None,
        config: Optional[MonitorConfig] = None,
        fallback: Optional[FallbackHandler] = None,
        error_handler: Optional[ErrorHandler] = None,
    ) -> None:
        """
        Prepare a monitor - nothing runs until start() is called.

        :param channel: Kernel channel to read. One is acquired on start if not given.
        :param config:
        :param fallback: Receives (wd, event) for events with no subscription - overflow included.
        :param error_handler: Told about background failures and unclassifiable records.
        """
        self._logger = logging.getLogger(__name__ + ":" + type(self).__name__)

        self._config = config if config is not None else MonitorConfig()
        self._channel = channel
        self._fallback = fallback
        self._error_handler = error_handler

        self._registry = WatchRegistry()
        self._queue = batch_queue(self._config)
        self._closed = asyncio.Event()
        # Held while the channel is used from outside the loop - and while it is closed
        self._channel_lock = threading.Lock()

    # - STATE

    @property
    def config(self) -> MonitorConfig:
        """
        The settings this monitor was started with.
        """
        return self._config

    @property
    def registry(self) -> WatchRegistry:
        """
        The live subscriptions.
        """
        return self._registry

    @property
    def running(self) -> bool:
        """
        Are both background tasks alive?
        """
        return (
            self._reader_task is not None
            and self._dispatcher_task is not None
            and not self._reader_task.done()
            and not self._dispatcher_task.done()
            and self._close_task is None
        )

    @property
    def closed(self) -> bool:
        """
        Has close() completed?
        """
        return self._closed.is_set()

    @property
    def failure(self) -> Optional[BaseException]:
        """
        The exception which killed a background task - if one did.
        """
        return self._failure

    @property
    def dropped_records(self) -> int:
        """
        Records read from the kernel which were never dispatched.

        Counts both overflow drops and records still queued when the monitor was closed.
        """
        dropped = self._discarded
        if self._reader is not None:
            dropped += self._reader.dropped_records
        if self._dispatcher is not None:
            dropped += self._dispatcher.abandoned
        return dropped

    def watches(self) -> list[int]:
        """
        The watch ids currently subscribed.

        :return:
        """
        return self._registry.watch_ids()

    # - LIFECYCLE

    def start(self) -> None:
        """
        Start the reader and dispatcher tasks on the running loop.

        :return:
        """
        if self._loop is not None:
            raise RuntimeError("Monitor has already been started")

        self._loop = asyncio.get_running_loop()
        if self._channel is None:
            self._channel = acquire_channel()

        self._reader = RecordReader(self._channel, self._queue, self._config)
        self._dispatcher = EventDispatcher(
            self._registry,
            self._queue,
            fallback=self._fallback,
            error_handler=self._error_handler,
            remove_on_ignored=self._config.remove_on_ignored,
        )

        self._reader_task = self._loop.create_task(
            self._reader.run(), name=f"inotify-mux-reader-{self._channel.fileno()}"
        )
        self._dispatcher_task = self._loop.create_task(
            self._dispatcher.run(), name=f"inotify-mux-dispatcher-{self._channel.fileno()}"
        )
        self._reader_task.add_done_callback(self._task_done)
        self._dispatcher_task.add_done_callback(self._task_done)

        self._logger.info("Monitor started on fd %d - %s", self._channel.fileno(), self._config)

    async def close(self, timeout: Optional[float] = None) -> None:
        """
        Stop the background tasks and release the channel.

        Idempotent. A handler which is already running is allowed to finish - unless timeout
        is given and elapses first, in which case the dispatcher is cancelled.
        May be awaited from inside a handler - the shutdown then completes once it returns.
        :param timeout:
        :return:
        """
        if self._close_task is None:
            self._close_task = asyncio.get_running_loop().create_task(self._shutdown(timeout))

        if self._dispatcher_task is not None and asyncio.current_task() is self._dispatcher_task:
            if self._dispatcher is not None:
                self._dispatcher.stop()
            return

        await asyncio.shield(self._close_task)

    async def wait_closed(self) -> None:
        """
        Wait until the monitor is closed - by close(), or because a background task failed.

        :return:
        :raises MonitorFailed: If a background task failed.
        """
        await self._closed.wait()
        if self._failure is not None:
            raise MonitorFailed(f"Monitor stopped after a failure - {self._failure!r}") from (
                self._failure
            )

    async def __aenter__(self) -> Monitor:
        if self._loop is None:
            self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _shutdown(self, timeout: Optional[float]) -> None:
        self._logger.info("Closing monitor")

        if self._dispatcher is not None:
            self._dispatcher.stop()

        if self._reader_task is not None:
            self._reader_task.cancel()
            await asyncio.gather(self._reader_task, return_exceptions=True)

        self._discard_pending()
        self._queue.put_nowait(None)

        if self._dispatcher_task is not None and not self._dispatcher_task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._dispatcher_task), timeout)
            except asyncio.TimeoutError:
                self._logger.warning(
                    "Dispatcher still busy after %s seconds - cancelling it", timeout
                )
                self._dispatcher_task.cancel()
                await asyncio.gather(self._dispatcher_task, return_exceptions=True)

        removed = self._registry.clear()
        with self._channel_lock:
            if self._channel is not None:
                self._channel.close()

        self._closed.set()
        self._logger.info(
            "Monitor closed - %d subscriptions released, %d records dropped",
            len(removed),
            self.dropped_records,
        )

    def _discard_pending(self) -> None:
        """
        Empty the queue of batches which will now never be dispatched.

        :return:
        """
        while True:
            try:
                batch = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            if batch:
                self._discarded += len(batch)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        """
        Called when either background task finishes.

        Anything other than cancellation or a clean stop is a failure - record it and close.
        :param task:
        :return:
        """
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            self._logger.debug("%s finished", task.get_name())
            return

        if self._failure is None:
            self._failure = exc
        self._logger.error("%s failed - closing monitor", task.get_name(), exc_info=exc)

        if self._error_handler is not None:
            try:
                self._error_handler(exc)
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("Error handler %r raised", self._error_handler)

        if self._close_task is None and self._loop is not None:
            self._close_task = self._loop.create_task(self._shutdown(None))

    # - SUBSCRIPTIONS

    def _check_open(self) -> Channel:
        if self._close_task is not None or self._channel is None:
            raise MonitorClosed("Monitor is closed (or was never started)")
        return self._channel

    async def add_watch(self, varieties: VarietySpec, path: StrPath, handler: Handler) -> int:
        """
        Watch a path - every event for it is passed to handler.

        :param varieties: What to watch for. Include EventVariety.ONE_SHOT to fire only once.
        :param path: Must exist when this is called.
        :param handler: Called with each Event. May return an awaitable, which is awaited.
        :return: The watch id - pass it to remove_watch.
        :raises PathNotFound: Nothing exists at path.
        :raises ResourceLimitExceeded: The kernel refused the watch.
        """
        self._check_open()
        varieties = as_varieties(varieties)
        mask = varieties_to_mask(varieties)
        path_str = os.fsdecode(path)

        if not await aiopath.AsyncPath(path_str).exists():
            raise PathNotFound(errno.ENOENT, os.strerror(errno.ENOENT), path_str)

        # The await above may have let a close in
        channel = self._check_open()

        wd = channel.add_watch(path_str, mask)
        self._registry.insert(
            Subscription(
                wd=wd,
                handler=handler,
                one_shot=is_one_shot(varieties),
                path=path_str,
                mask=mask,
            )
        )
        self._logger.info("Watching %s as watch %d (mask %#x)", path_str, wd, mask)
        return wd

    def add_watch_threadsafe(
        self,
        varieties: VarietySpec,
        path: StrPath,
        handler: Handler,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Blocking add_watch for threads other than the one running the monitor's loop.

        :param varieties:
        :param path:
        :param handler:
        :param timeout:
        :return:
        """
        if self._loop is None:
            raise MonitorClosed("Monitor has not been started")
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            raise RuntimeError("add_watch_threadsafe called from the monitor's own loop")

        future = asyncio.run_coroutine_threadsafe(
            self.add_watch(varieties, path, handler), self._loop
        )
        return future.result(timeout)

    def remove_watch(self, wd: int) -> None:
        """
        Stop watching.

        Idempotent, thread safe, and safe to call from inside the handler being removed.
        :param wd:
        :return:
        """
        subscription = self._registry.remove(wd)
        if subscription is None:
            self._logger.debug("remove_watch(%d) - no such subscription", wd)
            return

        with self._channel_lock:
            if self._channel is not None and self._close_task is None:
                self._channel.rm_watch(wd)
        self._logger.info(
            "Stopped watching %s (watch %d, mask %#x)", subscription.path, wd, subscription.mask
        )


async def start_monitor(
    config: Optional[MonitorConfig] = None,
    fallback: Optional[FallbackHandler] = None,
    error_handler: Optional[ErrorHandler] = None,
    channel: Optional[Channel] = None,
) -> Monitor:
    """
    Acquire a channel and start monitoring it.

    :param config:
    :param fallback:
    :param error_handler:
    :param channel: Use this channel instead of opening a new inotify instance.
    :return:
    :raises ResourceLimitExceeded: No more inotify instances could be created.
    """
    monitor = Monitor(channel=channel, config=config, fallback=fallback, error_handler=error_handler)
    monitor.start()
    return monitor
