# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Decoding of the raw byte stream read off an inotify file descriptor.

Each record is laid out as struct inotify_event:

    int      wd;
    uint32_t mask;
    uint32_t cookie;
    uint32_t len;
    char     name[len];   /* NUL padded, only present when len > 0 */

Records follow each other with no padding between them.
"""

from __future__ import annotations

from typing import NamedTuple, Optional, Union

import os
import struct

from inotify_mux.errors import DecodeError

HEADER = struct.Struct("iIII")

#: Longest name the kernel will put in a record (NAME_MAX) plus its terminator
NAME_MAX = 255

#: The smallest read which is guaranteed to hold at least one record
MIN_READ_SIZE = HEADER.size + NAME_MAX + 1

Buffer = Union[bytes, bytearray, memoryview]


class RawRecord(NamedTuple):
    """
    One undecoded kernel event.
    """

    wd: int
    mask: int
    cookie: int = 0
    name: Optional[bytes] = None


def decode_records(buffer: Buffer, length: Optional[int] = None) -> list[RawRecord]:
    """
    Split the result of one read into the records it contains - in the order the kernel wrote them.

    :param buffer: Bytes from a single read of the channel.
    :param length: How much of the buffer was filled. Defaults to all of it.
                   Zero or less means nothing was read, and yields no records.
    :return:
    """
    view = memoryview(buffer).cast("B")

    if length is None:
        length = len(view)
    if length <= 0:
        return []
    if length > len(view):
        raise DecodeError(f"Declared length {length} exceeds buffer of {len(view)} bytes")

    records: list[RawRecord] = []
    offset = 0
    while offset < length:
        if length - offset < HEADER.size:
            raise DecodeError(
                f"Truncated header at offset {offset} - "
                f"{length - offset} bytes left, {HEADER.size} needed"
            )
        wd, mask, cookie, name_len = HEADER.unpack_from(view, offset)
        offset += HEADER.size

        if name_len > length - offset:
            raise DecodeError(
                f"Name of {name_len} bytes at offset {offset} runs past end of data ({length})"
            )

        name: Optional[bytes] = None
        if name_len:
            # Anything after the first NUL is padding
            name = bytes(view[offset : offset + name_len]).split(b"\0", 1)[0] or None
            offset += name_len

        records.append(RawRecord(wd, mask, cookie, name))

    return records


def encode_record(
    wd: int,
    mask: int,
    cookie: int = 0,
    name: Union[str, bytes, None] = None,
    align: int = HEADER.size,
) -> bytes:
    """
    Build a record exactly as the kernel would write it.

    The name is NUL terminated and padded up to a multiple of align bytes - like the kernel does.
    Used to feed fake channels and replay captured streams.
    :param wd:
    :param mask:
    :param cookie:
    :param name:
    :param align:
    :return:
    """
    if isinstance(name, str):
        name = os.fsencode(name)

    payload = b""
    if name:
        if b"\0" in name:
            raise ValueError(f"Names cannot contain NUL - {name!r}")
        payload = name + b"\0"
        if align > 1:
            payload += b"\0" * (-len(payload) % align)

    return HEADER.pack(wd, mask, cookie, len(payload)) + payload
