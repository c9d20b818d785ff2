# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Tunables for a Monitor.
"""

from __future__ import annotations

import dataclasses
import enum

from inotify_mux.records import MIN_READ_SIZE


class OverflowPolicy(enum.Enum):
    """
    What the reader does when the batch queue is full.
    """

    #: Wait for the dispatcher to catch up. The kernel keeps buffering - and reports its own
    #: overflow if it runs out of room.
    BLOCK = "block"

    #: Throw the batch away and count it. A QueueOverflow is queued in a slot kept back for it.
    DROP = "drop"


@dataclasses.dataclass
class MonitorConfig:
    """
    Settings for the reader and dispatcher.
    """

    read_chunk_size: int = 64 * 1024
    max_queue_size: int = 1024
    overflow_policy: OverflowPolicy = OverflowPolicy.BLOCK
    remove_on_ignored: bool = True

    def __post_init__(self) -> None:
        """
        Validate the settings.

        :return:
        """
        if self.read_chunk_size < MIN_READ_SIZE:
            raise ValueError(
                f"read_chunk_size must be at least {MIN_READ_SIZE} - "
                f"got {self.read_chunk_size}"
            )
        if self.max_queue_size <= 0:
            raise ValueError(f"max_queue_size must be positive - got {self.max_queue_size}")
        if not isinstance(self.overflow_policy, OverflowPolicy):
            self.overflow_policy = OverflowPolicy(self.overflow_policy)
