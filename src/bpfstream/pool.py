#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Bounded freelists for reusing decode buffers and raw records.

A value taken from a pool is always reset before it is handed out, and the
caller must not keep a reference to it after release(). Pools are an
allocation optimization only; a pool that is always empty is still correct.
"""

import queue
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class FreeList(Generic[T]):
    """
    Fixed-capacity freelist.

    Backed by queue.Queue so a decode worker and the consuming thread can
    share one instance. Releasing into a full list drops the value.
    """

    def __init__(self, factory: Callable[[], T], reset: Callable[[T], None], capacity: int = 16):
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self.factory = factory
        self.reset = reset
        self.capacity = capacity
        self._free: "queue.Queue[T]" = queue.Queue(maxsize=capacity) if capacity else None
        self.created = 0
        self.reused = 0

    def acquire(self) -> T:
        if self._free is not None:
            try:
                item = self._free.get_nowait()
            except queue.Empty:
                pass
            else:
                self.reset(item)
                self.reused += 1
                return item
        self.created += 1
        return self.factory()

    def release(self, item: T):
        if self._free is None:
            return
        try:
            self._free.put_nowait(item)
        except queue.Full:
            pass

    def __len__(self) -> int:
        return self._free.qsize() if self._free is not None else 0


class BufferPool(FreeList[list]):
    """Pool of batch lists used by the structured parser."""

    def __init__(self, capacity: int = 16):
        super().__init__(list, list.clear, capacity)


class RecordPool(FreeList[T]):
    """Pool of raw event records of one domain."""

    def __init__(self, record_type: Callable[[], T], capacity: int = 16):
        super().__init__(record_type, _reset_record, capacity)


def _reset_record(record):
    fresh = type(record)()
    record.__dict__.update(fresh.__dict__)
