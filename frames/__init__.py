"""Frames: a local journal of timestamped entries with optional pictures."""

from .db import FramesStore
from .errors import FramesError, NotFoundError, StorageError, ValidationError
from .grouping import group_by_month, month_label

VERSION = "1.0.0"

__all__ = [
    "FramesError",
    "FramesStore",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    "group_by_month",
    "month_label",
]
