#!/usr/bin/env python3

# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

# pylint: disable=duplicate-code
# this is an example - duplication for emphasis is desirable

"""
Watch a directory - and a single file inside it, once - printing every event as it arrives.

Usage: python -m mux_examples.watch_dir_example <dir> [<file in dir>]
"""

from __future__ import annotations

from typing import Optional

import asyncio
import logging
import sys

from inotify_mux import (
    Event,
    EventVariety,
    Monitor,
    QueueOverflow,
    start_monitor,
)


class EventPrinter:
    """
    Nothing fancy - writes every event it is handed to the log.
    """

    _logger: logging.Logger

    def __init__(self, label: str) -> None:
        """
        Label is included in every line - to tell the watches apart.

        :param label:
        """
        self._label = label
        self._logger = logging.getLogger(__name__ + ":" + type(self).__name__)

    def __call__(self, event: Event) -> None:
        self._logger.info("[%s] %s", self._label, event)


def report_unclaimed(wd: int, event: Event) -> None:
    """
    Fallback - events for no watch in particular end up here.

    :param wd:
    :param event:
    :return:
    """
    if isinstance(event, QueueOverflow):
        logging.getLogger(__name__).warning("Kernel queue overflowed - some events were lost")
    else:
        logging.getLogger(__name__).info("[unclaimed %d] %s", wd, event)


async def watch(dir_path: str, file_path: Optional[str] = None) -> Monitor:
    """
    Start a monitor with a watch on dir_path - and a one shot watch on file_path.

    :param dir_path:
    :param file_path:
    :return:
    """
    monitor = await start_monitor(fallback=report_unclaimed)

    await monitor.add_watch(
        {
            EventVariety.CREATE,
            EventVariety.DELETE,
            EventVariety.MOVE,
            EventVariety.CLOSE_WRITE,
            EventVariety.DELETE_SELF,
        },
        dir_path,
        EventPrinter(dir_path),
    )

    if file_path is not None:
        await monitor.add_watch(
            EventVariety.MODIFY | EventVariety.ONE_SHOT, file_path, EventPrinter(file_path)
        )

    return monitor


async def _main(argv: list[str]) -> None:
    monitor = await watch(argv[0], argv[1] if len(argv) > 1 else None)
    try:
        await monitor.wait_closed()
    finally:
        await monitor.close()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        sys.exit(__doc__)

    logging.basicConfig(level=logging.INFO)

    try:
        asyncio.run(_main(sys.argv[1:]))
    except KeyboardInterrupt:
        pass
