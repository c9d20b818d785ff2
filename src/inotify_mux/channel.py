# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
The kernel side of the multiplexer - one inotify file descriptor.

The pipeline only talks to the Channel protocol, so tests (and other platforms) can swap in
anything with a readable file descriptor.
"""

from __future__ import annotations

from typing import Protocol, Union

import errno
import logging
import os

import inotify_simple

from inotify_mux.errors import PathNotFound, ResourceLimitExceeded

PathLike = Union[str, bytes, "os.PathLike[str]", "os.PathLike[bytes]"]

_CHANNEL_LIMIT_ERRNOS = (errno.EMFILE, errno.ENFILE, errno.ENOMEM)
_WATCH_LIMIT_ERRNOS = (errno.ENOSPC, errno.ENOMEM)


class Channel(Protocol):
    """
    What the pipeline needs from a kernel notification channel.
    """

    def fileno(self) -> int:
        """
        File descriptor to wait on for readability.
        """

    def add_watch(self, path: PathLike, mask: int) -> int:
        """
        Register a watch - returns the watch id the kernel assigned.
        """

    def rm_watch(self, wd: int) -> None:
        """
        Remove a watch. Must not fail if the kernel has already dropped it.
        """

    def read_chunk(self, size: int) -> bytes:
        """
        One non-blocking read of at most size bytes.

        Raises BlockingIOError if nothing is ready. Returns b"" only at end of file.
        """

    def close(self) -> None:
        """
        Release the file descriptor.
        """


class InotifyChannel:
    """
    Channel backed by inotify_simple - which does the actual system calls.
    """

    _logger: logging.Logger

    _inotify: inotify_simple.INotify

    def __init__(self, inotify: inotify_simple.INotify) -> None:
        """
        Wrap an already open inotify instance.

        :param inotify:
        """
        self._logger = logging.getLogger(__name__ + ":" + type(self).__name__)
        self._inotify = inotify
        os.set_blocking(inotify.fileno(), False)

    @classmethod
    def acquire(cls) -> InotifyChannel:
        """
        Open a new inotify instance.

        :return:
        :raises ResourceLimitExceeded: Too many inotify instances or file descriptors.
        """
        try:
            inotify = inotify_simple.INotify()
        except OSError as exc:
            if exc.errno in _CHANNEL_LIMIT_ERRNOS:
                raise ResourceLimitExceeded(exc.errno, exc.strerror) from exc
            raise
        return cls(inotify)

    @property
    def closed(self) -> bool:
        """
        Has the underlying descriptor been closed?

        :return:
        """
        return bool(self._inotify.closed)

    def fileno(self) -> int:
        return self._inotify.fileno()

    def add_watch(self, path: PathLike, mask: int) -> int:
        """
        Ask the kernel to watch a path.

        :param path:
        :param mask:
        :return: The watch id.
        """
        try:
            wd = self._inotify.add_watch(path, mask)
        except OSError as exc:
            if exc.errno == errno.ENOENT:
                raise PathNotFound(exc.errno, exc.strerror, os.fsdecode(path)) from exc
            if exc.errno in _WATCH_LIMIT_ERRNOS:
                raise ResourceLimitExceeded(exc.errno, exc.strerror, os.fsdecode(path)) from exc
            raise
        self._logger.debug("Added watch %d on %s with mask %#x", wd, path, mask)
        return wd

    def rm_watch(self, wd: int) -> None:
        """
        Ask the kernel to stop watching.

        :param wd:
        :return:
        """
        try:
            self._inotify.rm_watch(wd)
        except OSError as exc:
            if exc.errno == errno.EINVAL:
                self._logger.debug("Cannot remove watch, descriptor does not exist: %d", wd)
                return
            raise
        self._logger.debug("Removed watch %d", wd)

    def read_chunk(self, size: int) -> bytes:
        return os.read(self._inotify.fileno(), size)

    def close(self) -> None:
        self._inotify.close()


def acquire_channel() -> InotifyChannel:
    """
    Open the default kernel channel for this platform.

    :return:
    """
    return InotifyChannel.acquire()
