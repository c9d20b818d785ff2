# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Thread safe map from watch id to the subscription which owns it.

The lock is only ever held for dict operations - never while a handler runs.
So a handler may remove its own subscription (or any other) without deadlocking the dispatcher.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Union

import dataclasses
import logging
import threading

from inotify_mux.errors import HandlerNotFound
from inotify_mux.events import Event

Handler = Callable[[Event], Union[None, Awaitable[Any]]]


@dataclasses.dataclass(frozen=True)
class Subscription:
    """
    An active watch - the kernel handle, the handler to call, and how long it lives.
    """

    wd: int
    handler: Handler
    one_shot: bool = False
    path: Optional[str] = None
    mask: int = 0


class WatchRegistry:
    """
    Holds every live subscription.

    Never more than one per watch id. A miss on lookup is normal - not corruption.
    """

    _logger: logging.Logger

    _lock: threading.Lock
    _subscriptions: dict[int, Subscription]

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__ + ":" + type(self).__name__)
        self._lock = threading.Lock()
        self._subscriptions = {}

    def insert(self, subscription: Subscription) -> Optional[Subscription]:
        """
        Install a subscription - replacing any stale entry for the same watch id.

        :param subscription:
        :return: The subscription which was replaced, if there was one.
        """
        with self._lock:
            stale = self._subscriptions.get(subscription.wd)
            self._subscriptions[subscription.wd] = subscription

        if stale is not None:
            self._logger.debug("Replaced subscription for watch %d - %s", subscription.wd, stale)
        return stale

    def remove(self, wd: int) -> Optional[Subscription]:
        """
        Drop the subscription for a watch id, if there is one.

        Idempotent - removing an absent id is not an error.
        :param wd:
        :return: The subscription removed, or None.
        """
        with self._lock:
            return self._subscriptions.pop(wd, None)

    def lookup(self, wd: int) -> Optional[Subscription]:
        """
        Return the subscription for the watch id - or None.

        :param wd:
        :return:
        """
        with self._lock:
            return self._subscriptions.get(wd)

    def claim(self, wd: int, discard: bool = False) -> Subscription:
        """
        Fetch the subscription an event should be delivered to.

        One-shot subscriptions (and any subscription, if discard is set) are removed in the same
        atomic step - before the caller gets to invoke the handler.
        :param wd:
        :param discard: Remove the subscription whatever its policy.
        :return:
        """
        with self._lock:
            subscription = self._subscriptions.get(wd)
            if subscription is None:
                raise HandlerNotFound(wd)
            if subscription.one_shot or discard:
                del self._subscriptions[wd]
        return subscription

    def clear(self) -> list[Subscription]:
        """
        Remove everything.

        :return: What was removed.
        """
        with self._lock:
            removed = list(self._subscriptions.values())
            self._subscriptions.clear()
        return removed

    def watch_ids(self) -> list[int]:
        """
        A snapshot of the live watch ids.

        :return:
        """
        with self._lock:
            return list(self._subscriptions)

    def __contains__(self, wd: object) -> bool:
        with self._lock:
            return wd in self._subscriptions

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)
