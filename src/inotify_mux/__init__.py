#!/usr/bin/env python3

"""
Public api for inotify_mux - which fans one inotify channel out to per-watch handlers.
"""

# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

from __future__ import annotations

from inotify_mux.channel import Channel, InotifyChannel, acquire_channel
from inotify_mux.classifier import classify
from inotify_mux.config import MonitorConfig, OverflowPolicy
from inotify_mux.errors import (
    ChannelClosed,
    ClassificationError,
    DecodeError,
    HandlerNotFound,
    InotifyMuxError,
    MonitorClosed,
    MonitorFailed,
    PathNotFound,
    ResourceLimitExceeded,
)
from inotify_mux.events import (
    Accessed,
    AnyEvent,
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
from inotify_mux.monitor import Monitor, start_monitor
from inotify_mux.records import RawRecord, decode_records, encode_record
from inotify_mux.registry import Subscription, WatchRegistry
from inotify_mux.varieties import EventVariety, varieties_to_mask

__version__ = "0.1.0"


__all__ = (
    "Monitor",
    "start_monitor",
    "MonitorConfig",
    "OverflowPolicy",
    "EventVariety",
    "varieties_to_mask",
    "Event",
    "AnyEvent",
    "Accessed",
    "Modified",
    "Attributes",
    "Closed",
    "Opened",
    "MovedOut",
    "MovedIn",
    "MovedSelf",
    "Created",
    "Deleted",
    "DeletedSelf",
    "Unmounted",
    "QueueOverflow",
    "Ignored",
    "Unknown",
    "RawRecord",
    "decode_records",
    "encode_record",
    "classify",
    "Subscription",
    "WatchRegistry",
    "Channel",
    "InotifyChannel",
    "acquire_channel",
    "InotifyMuxError",
    "PathNotFound",
    "ResourceLimitExceeded",
    "DecodeError",
    "ClassificationError",
    "HandlerNotFound",
    "ChannelClosed",
    "MonitorFailed",
    "MonitorClosed",
)
