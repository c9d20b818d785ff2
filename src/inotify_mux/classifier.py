# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Turns the bit mask on a raw record into one structured Event.

The kernel sets one primary bit per record (plus ISDIR).
Should more than one be set, the first entry in _PRECEDENCE wins.
"""

from __future__ import annotations

from typing import Callable, Optional

import os

from inotify_simple import flags, masks

from inotify_mux.errors import ClassificationError
from inotify_mux.events import (
    Accessed,
    Attributes,
    Closed,
    Created,
    Deleted,
    DeletedSelf,
    Event,
    Ignored,
    Modified,
    MovedIn,
    MovedOut,
    MovedSelf,
    Opened,
    QueueOverflow,
    Unknown,
    Unmounted,
)
from inotify_mux.records import RawRecord


def _optional_name(record: RawRecord) -> Optional[str]:
    return None if record.name is None else os.fsdecode(record.name)


def _required_name(record: RawRecord, kind: str) -> str:
    if not record.name:
        raise ClassificationError(
            f"{kind} record for watch {record.wd} (mask {record.mask:#x}) carries no name"
        )
    return os.fsdecode(record.name)


_Builder = Callable[[RawRecord, bool], Event]

_PRECEDENCE: tuple[tuple[int, _Builder], ...] = (
    (flags.ACCESS, lambda r, d: Accessed(d, _optional_name(r))),
    (flags.MODIFY, lambda r, d: Modified(d, _optional_name(r))),
    (flags.ATTRIB, lambda r, d: Attributes(d, _optional_name(r))),
    (
        masks.CLOSE,
        lambda r, d: Closed(d, _optional_name(r), write=bool(r.mask & flags.CLOSE_WRITE)),
    ),
    (flags.OPEN, lambda r, d: Opened(d, _optional_name(r))),
    (flags.MOVED_FROM, lambda r, d: MovedOut(d, _required_name(r, "MovedOut"), r.cookie)),
    (flags.MOVED_TO, lambda r, d: MovedIn(d, _required_name(r, "MovedIn"), r.cookie)),
    (flags.MOVE_SELF, lambda r, d: MovedSelf(d)),
    (flags.CREATE, lambda r, d: Created(d, _required_name(r, "Created"))),
    (flags.DELETE, lambda r, d: Deleted(d, _required_name(r, "Deleted"))),
    (flags.DELETE_SELF, lambda r, d: DeletedSelf()),
    (flags.UNMOUNT, lambda r, d: Unmounted()),
    (flags.Q_OVERFLOW, lambda r, d: QueueOverflow()),
    (flags.IGNORED, lambda r, d: Ignored()),
)


def classify(record: RawRecord) -> Event:
    """
    Map one raw record to exactly one Event.

    :param record:
    :return: The event - Unknown if no recognised bit is set.
    :raises ClassificationError: If the event needs a name and the record has none.
    """
    is_directory = bool(record.mask & flags.ISDIR)

    for bits, build in _PRECEDENCE:
        if record.mask & bits:
            return build(record, is_directory)

    return Unknown(record.mask, record.cookie, record.name)
