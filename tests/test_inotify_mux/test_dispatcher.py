# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Tests for the dispatcher - fed directly, without a channel or a reader.
"""

from typing import List, Optional, Tuple

import asyncio

import pytest
from inotify_simple import flags

from inotify_mux import (
    Created,
    Deleted,
    Event,
    Ignored,
    Modified,
    QueueOverflow,
    RawRecord,
    Subscription,
    WatchRegistry,
)
from inotify_mux.pipeline import Batch, EventDispatcher, overflow_record

from tests.test_inotify_mux.mux_test_utils import EventCollector, FallbackCollector

# pylint: disable=invalid-name
# for clarity, test functions should be named after the things they test


class DispatcherTestUtils:
    """
    Builds a dispatcher with a fresh registry, queue and fallback.
    """

    @staticmethod
    def get_dispatcher(
        remove_on_ignored: bool = True,
    ) -> Tuple[EventDispatcher, WatchRegistry, asyncio.Queue, FallbackCollector, List[BaseException]]:
        """
        Get a dispatcher and everything it is wired to.

        :param remove_on_ignored:
        :return:
        """
        registry = WatchRegistry()
        queue: asyncio.Queue[Optional[Batch]] = asyncio.Queue()
        fallback = FallbackCollector()
        errors: List[BaseException] = []
        dispatcher = EventDispatcher(
            registry,
            queue,
            fallback=fallback,
            error_handler=errors.append,
            remove_on_ignored=remove_on_ignored,
        )
        return dispatcher, registry, queue, fallback, errors


class TestEventDispatcher(DispatcherTestUtils):
    """
    Delivery of single records.
    """

    @pytest.mark.asyncio
    async def test_EventDispatcher_delivers(self) -> None:
        """
        A record for a subscribed watch reaches its handler.
        """
        dispatcher, registry, _, fallback, _ = self.get_dispatcher()
        handler = EventCollector()
        registry.insert(Subscription(1, handler))

        assert await dispatcher.dispatch(RawRecord(1, flags.CREATE, 0, b"a.txt"))

        assert handler.events == [Created(False, "a.txt")]
        assert not fallback.events
        assert dispatcher.delivered == 1

    @pytest.mark.asyncio
    async def test_EventDispatcher_one_shot(self) -> None:
        """
        After its one event a one shot subscription is gone - a second record is not delivered.
        """
        dispatcher, registry, _, fallback, _ = self.get_dispatcher()
        handler = EventCollector()
        registry.insert(Subscription(2, handler, one_shot=True))

        assert await dispatcher.dispatch(RawRecord(2, flags.MODIFY))
        assert 2 not in registry
        assert registry.lookup(2) is None

        assert not await dispatcher.dispatch(RawRecord(2, flags.MODIFY))

        assert handler.events == [Modified(False, None)]
        assert fallback.events == [(2, Modified(False, None))]
        assert dispatcher.unclaimed == 1

    @pytest.mark.asyncio
    async def test_EventDispatcher_one_shot_removed_before_handler(self) -> None:
        """
        The handler of a one shot subscription already sees it removed.

        So re-subscribing from inside the handler does not clash with the stale entry.
        """
        dispatcher, registry, _, _, _ = self.get_dispatcher()
        replacement = Subscription(3, EventCollector("replacement"))
        seen_in_registry: List[bool] = []

        def handler(_: Event) -> None:
            seen_in_registry.append(3 in registry)
            registry.insert(replacement)

        registry.insert(Subscription(3, handler, one_shot=True))
        await dispatcher.dispatch(RawRecord(3, flags.DELETE, 0, b"gone"))

        assert seen_in_registry == [False]
        assert registry.lookup(3) is replacement

    @pytest.mark.asyncio
    async def test_EventDispatcher_self_unsubscribe(self) -> None:
        """
        A handler may remove its own subscription - without deadlocking.
        """
        dispatcher, registry, _, fallback, _ = self.get_dispatcher()
        calls: List[Event] = []

        def handler(event: Event) -> None:
            calls.append(event)
            registry.remove(4)

        registry.insert(Subscription(4, handler))
        await asyncio.wait_for(dispatcher.dispatch(RawRecord(4, flags.ATTRIB)), timeout=5)
        await dispatcher.dispatch(RawRecord(4, flags.ATTRIB))

        assert len(calls) == 1
        assert len(fallback.events) == 1

    @pytest.mark.asyncio
    async def test_EventDispatcher_overflow_to_fallback(self) -> None:
        """
        Overflow has no watch of its own - it must still arrive somewhere.
        """
        dispatcher, _, _, fallback, _ = self.get_dispatcher()

        await dispatcher.dispatch(overflow_record())

        assert fallback.events == [(-1, QueueOverflow())]

    @pytest.mark.asyncio
    async def test_EventDispatcher_default_fallback(self) -> None:
        """
        Without an explicit fallback unclaimed events are logged - not raised.
        """
        dispatcher = EventDispatcher(WatchRegistry(), asyncio.Queue())
        assert not await dispatcher.dispatch(overflow_record())
        assert not await dispatcher.dispatch(RawRecord(10, flags.OPEN))

    @pytest.mark.asyncio
    async def test_EventDispatcher_classification_error(self) -> None:
        """
        A record which cannot be classified is reported and skipped.
        """
        dispatcher, registry, _, _, errors = self.get_dispatcher()
        handler = EventCollector()
        registry.insert(Subscription(1, handler))

        assert not await dispatcher.dispatch(RawRecord(1, flags.CREATE, 0, None))
        assert await dispatcher.dispatch(RawRecord(1, flags.CREATE, 0, b"fine"))

        assert len(errors) == 1
        assert handler.events == [Created(False, "fine")]

    @pytest.mark.asyncio
    async def test_EventDispatcher_handler_error_contained(self) -> None:
        """
        A handler which raises does not stop later deliveries.
        """
        dispatcher, registry, _, _, _ = self.get_dispatcher()
        good = EventCollector()

        def bad(_: Event) -> None:
            raise RuntimeError("handler blew up")

        registry.insert(Subscription(1, bad))
        registry.insert(Subscription(2, good))

        assert await dispatcher.dispatch(RawRecord(1, flags.MODIFY))
        assert await dispatcher.dispatch(RawRecord(2, flags.MODIFY))
        assert good.events == [Modified(False, None)]

    @pytest.mark.asyncio
    async def test_EventDispatcher_ignored_removes(self) -> None:
        """
        Ignored means the kernel has dropped the watch - so is the subscription.
        """
        dispatcher, registry, _, _, _ = self.get_dispatcher()
        handler = EventCollector()
        registry.insert(Subscription(6, handler))

        await dispatcher.dispatch(RawRecord(6, flags.IGNORED))

        assert handler.events == [Ignored()]
        assert 6 not in registry

    @pytest.mark.asyncio
    async def test_EventDispatcher_ignored_kept_when_disabled(self) -> None:
        """
        With remove_on_ignored off the subscription survives.
        """
        dispatcher, registry, _, _, _ = self.get_dispatcher(remove_on_ignored=False)
        registry.insert(Subscription(6, EventCollector()))

        await dispatcher.dispatch(RawRecord(6, flags.IGNORED))

        assert 6 in registry


class TestEventDispatcherRun(DispatcherTestUtils):
    """
    The dispatcher's main loop.
    """

    @pytest.mark.asyncio
    async def test_EventDispatcher_run_in_order(self) -> None:
        """
        Events across watches - sync and async handlers mixed - arrive in queue order.
        """
        dispatcher, registry, queue, _, _ = self.get_dispatcher()
        seen: List[tuple] = []

        async def slow(event: Event) -> None:
            await asyncio.sleep(0.05)
            seen.append(("slow", event))

        def fast(event: Event) -> None:
            seen.append(("fast", event))

        registry.insert(Subscription(1, slow))
        registry.insert(Subscription(2, fast))

        queue.put_nowait(
            [RawRecord(1, flags.CREATE, 0, b"a"), RawRecord(2, flags.CREATE, 0, b"b")]
        )
        queue.put_nowait([RawRecord(1, flags.DELETE, 0, b"a")])
        queue.put_nowait([RawRecord(2, flags.DELETE, 0, b"b")])
        queue.put_nowait(None)

        await asyncio.wait_for(dispatcher.run(), timeout=5)

        assert seen == [
            ("slow", Created(False, "a")),
            ("fast", Created(False, "b")),
            ("slow", Deleted(False, "a")),
            ("fast", Deleted(False, "b")),
        ]

    @pytest.mark.asyncio
    async def test_EventDispatcher_stop_mid_batch(self) -> None:
        """
        Stopping lets the current handler finish and drops the rest of the batch - counting what it drops.
        """
        dispatcher, registry, queue, _, _ = self.get_dispatcher()
        seen: List[Event] = []

        def handler(event: Event) -> None:
            seen.append(event)
            dispatcher.stop()

        registry.insert(Subscription(1, handler))
        queue.put_nowait(
            [RawRecord(1, flags.MODIFY), RawRecord(1, flags.ATTRIB), RawRecord(1, flags.OPEN)]
        )

        await asyncio.wait_for(dispatcher.run(), timeout=5)

        assert seen == [Modified(False, None)]
        assert dispatcher.abandoned == 2
