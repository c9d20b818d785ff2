# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
The kinds of event a caller can ask for when adding a watch.

Values are taken from inotify_simple - which mirrors the platform headers - never hardcoded.
"""

from __future__ import annotations

from typing import Iterable, Union

import enum
import functools
import operator

from inotify_simple import flags, masks


class EventVariety(enum.IntFlag):
    """
    Flags requested at subscription time.

    Combined into the mask handed to inotify_add_watch.
    ONE_SHOT also makes the subscription remove itself after the first event.
    """

    ACCESS = int(flags.ACCESS)
    MODIFY = int(flags.MODIFY)
    ATTRIB = int(flags.ATTRIB)
    CLOSE_WRITE = int(flags.CLOSE_WRITE)
    CLOSE_NOWRITE = int(flags.CLOSE_NOWRITE)
    CLOSE = int(masks.CLOSE)
    OPEN = int(flags.OPEN)
    MOVE_OUT = int(flags.MOVED_FROM)
    MOVE_IN = int(flags.MOVED_TO)
    MOVE = int(masks.MOVE)
    MOVE_SELF = int(flags.MOVE_SELF)
    CREATE = int(flags.CREATE)
    DELETE = int(flags.DELETE)
    DELETE_SELF = int(flags.DELETE_SELF)
    ONLY_DIR = int(flags.ONLYDIR)
    NO_SYMLINK = int(flags.DONT_FOLLOW)
    MASK_ADD = int(flags.MASK_ADD)
    ONE_SHOT = int(flags.ONESHOT)
    ALL_EVENTS = int(masks.ALL_EVENTS)


VarietySpec = Union[EventVariety, Iterable[EventVariety]]


def as_varieties(varieties: VarietySpec) -> frozenset[EventVariety]:
    """
    Normalise a single variety, or any iterable of them, to a frozenset.

    :param varieties:
    :return:
    """
    if isinstance(varieties, EventVariety):
        return frozenset((varieties,))
    return frozenset(EventVariety(variety) for variety in varieties)


def varieties_to_mask(varieties: VarietySpec) -> int:
    """
    Bitwise union of the requested varieties - the mask the kernel sees.

    Raises ValueError if nothing which can produce an event was requested.
    (The kernel would reject such a mask with EINVAL anyway).
    :param varieties:
    :return:
    """
    mask = functools.reduce(operator.or_, (int(v) for v in as_varieties(varieties)), 0)
    if not mask & EventVariety.ALL_EVENTS:
        raise ValueError(f"No event producing varieties in {varieties!r}")
    return mask


def is_one_shot(varieties: VarietySpec) -> bool:
    """
    Does this request describe a fire-once subscription?

    :param varieties:
    :return:
    """
    return bool(varieties_to_mask(varieties) & EventVariety.ONE_SHOT)
