# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
The two background tasks of a monitor - and the queue of record batches between them.
"""

from __future__ import annotations

from inotify_mux.pipeline.dispatcher import EventDispatcher, log_unclaimed_event
from inotify_mux.pipeline.reader import (
    SENTINEL_WD,
    Batch,
    RecordReader,
    batch_queue,
    overflow_record,
)

__all__ = [
    "Batch",
    "EventDispatcher",
    "RecordReader",
    "SENTINEL_WD",
    "batch_queue",
    "log_unclaimed_event",
    "overflow_record",
]
