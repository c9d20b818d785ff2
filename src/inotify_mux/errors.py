# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Exceptions raised by the multiplexer.

Subscription time errors are raised straight back to the caller.
Errors in the background tasks are recorded on the Monitor instead.
"""

from __future__ import annotations


class InotifyMuxError(Exception):
    """
    Base class for everything raised by this package.
    """


class PathNotFound(InotifyMuxError, FileNotFoundError):
    """
    add_watch was called on a path which does not exist.
    """


class ResourceLimitExceeded(InotifyMuxError, OSError):
    """
    The kernel refused to create a channel or a watch - usually a limit was hit.
    """


class DecodeError(InotifyMuxError, ValueError):
    """
    A buffer read from the channel did not contain well-formed records.
    """


class ClassificationError(DecodeError):
    """
    A record could not be turned into an Event - e.g. a CREATE with no name.
    """


class HandlerNotFound(InotifyMuxError, KeyError):
    """
    No subscription is registered for a watch id.

    This is a normal condition during dispatch (sentinel ids, late events after removal).
    """

    def __init__(self, wd: int) -> None:
        super().__init__(wd)
        self.wd = wd

    def __str__(self) -> str:
        return f"no subscription registered for watch {self.wd}"


class ChannelClosed(InotifyMuxError):
    """
    The kernel channel reported end of file.
    """


class MonitorFailed(InotifyMuxError):
    """
    A background task of the monitor died - the original exception is the __cause__.
    """


class MonitorClosed(InotifyMuxError):
    """
    The monitor has been closed and can no longer take subscriptions.
    """
