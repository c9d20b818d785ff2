# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Structured events handed to watch handlers.

Every raw record classifies to exactly one of these.
Names are relative to the watched directory, and are None when the event concerns the watched
object itself.
"""

from __future__ import annotations

from typing import Optional, Union

import dataclasses


@dataclasses.dataclass(frozen=True)
class Event:
    """
    Base class for all the events produced by the classifier.
    """


@dataclasses.dataclass(frozen=True)
class Accessed(Event):
    """
    A file was read.
    """

    is_directory: bool = False
    name: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class Modified(Event):
    """
    A file was written to.
    """

    is_directory: bool = False
    name: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class Attributes(Event):
    """
    Metadata changed - permissions, timestamps, link count, xattrs, ownership.
    """

    is_directory: bool = False
    name: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class Closed(Event):
    """
    A file was closed - write is True if it had been opened for writing.
    """

    is_directory: bool = False
    name: Optional[str] = None
    write: bool = False


@dataclasses.dataclass(frozen=True)
class Opened(Event):
    """
    A file or directory was opened.
    """

    is_directory: bool = False
    name: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class MovedOut(Event):
    """
    An entry was renamed away from the watched directory.

    The cookie matches the cookie on the MovedIn half of the same rename, if that is seen.
    """

    is_directory: bool
    name: str
    cookie: int = 0


@dataclasses.dataclass(frozen=True)
class MovedIn(Event):
    """
    An entry was renamed into the watched directory.
    """

    is_directory: bool
    name: str
    cookie: int = 0


@dataclasses.dataclass(frozen=True)
class MovedSelf(Event):
    """
    The watched object itself was moved.
    """

    is_directory: bool = False


@dataclasses.dataclass(frozen=True)
class Created(Event):
    """
    An entry was created in the watched directory.
    """

    is_directory: bool
    name: str


@dataclasses.dataclass(frozen=True)
class Deleted(Event):
    """
    An entry was deleted from the watched directory.
    """

    is_directory: bool
    name: str


@dataclasses.dataclass(frozen=True)
class DeletedSelf(Event):
    """
    The watched object itself was deleted.
    """


@dataclasses.dataclass(frozen=True)
class Unmounted(Event):
    """
    The filesystem containing the watched object was unmounted.
    """


@dataclasses.dataclass(frozen=True)
class QueueOverflow(Event):
    """
    Events were lost - either in the kernel, or because the internal queue was full.
    """


@dataclasses.dataclass(frozen=True)
class Ignored(Event):
    """
    The watch is gone - removed explicitly, or because its target went away.
    """


@dataclasses.dataclass(frozen=True)
class Unknown(Event):
    """
    A mask this version does not recognise - kept raw.
    """

    mask: int
    cookie: int = 0
    name: Optional[bytes] = None


AnyEvent = Union[
    Accessed,
    Modified,
    Attributes,
    Closed,
    Opened,
    MovedOut,
    MovedIn,
    MovedSelf,
    Created,
    Deleted,
    DeletedSelf,
    Unmounted,
    QueueOverflow,
    Ignored,
    Unknown,
]
