#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Interval aggregation for 'map' messages.

A bpftrace count script prints one map per interval; each becomes a
CountSnapshot, and an IntervalAccumulator keeps the running total.
"""

from typing import Any, Dict, Iterator, Optional, Tuple

from .diagnostics import Diagnostics
from .domains import Domain
from .errors import MissingFieldError
from .logfmt import INT64_MAX, INT64_MIN


class CountSnapshot:
    """
    Counter values of one domain; slots that were never set read as zero.
    """

    __slots__ = ("domain", "counts")

    def __init__(self, domain: Domain, counts: Optional[Dict[str, int]] = None):
        self.domain = domain
        self.counts: Dict[str, int] = dict(counts or {})

    def __getitem__(self, slot: str) -> int:
        return self.counts.get(slot, 0)

    def __setitem__(self, slot: str, value: int):
        self.counts[slot] = value

    def __eq__(self, other) -> bool:
        if not isinstance(other, CountSnapshot):
            return NotImplemented
        return self.domain.name == other.domain.name and dict(self.items()) == dict(other.items())

    def __repr__(self) -> str:
        return f"CountSnapshot({self.domain.name}, {dict(self.items())})"

    def items(self) -> Iterator[Tuple[str, int]]:
        """
        Slots in display order.

        Fixed-vocabulary domains list every slot (zeros included). Open
        domains list their slots by descending count.
        """
        if self.domain.open_counters:
            yield from sorted(self.counts.items(), key=lambda kv: (-kv[1], kv[0]))
        else:
            for slot in self.domain.slots:
                yield slot, self.counts.get(slot, 0)

    def as_dict(self) -> Dict[str, int]:
        return dict(self.items())

    def total(self) -> int:
        return total(self)

    def copy(self) -> "CountSnapshot":
        return CountSnapshot(self.domain, self.counts)


def add(acc: CountSnapshot, other: CountSnapshot) -> CountSnapshot:
    """Merge other into acc field by field and return acc."""
    if acc.domain.name != other.domain.name:
        raise ValueError(f"cannot add {other.domain.name} counts to {acc.domain.name} counts")
    counts = acc.counts
    for slot, value in other.counts.items():
        counts[slot] = counts.get(slot, 0) + value
    return acc


def total(snapshot: CountSnapshot) -> int:
    """Sum of every counter in the snapshot."""
    return sum(snapshot.counts.values())


def snapshot_from_map(domain: Domain, data: Any,
                      diagnostics: Optional[Diagnostics] = None) -> CountSnapshot:
    """
    Build a snapshot from a 'map' message payload ({"@": {name: count}}).

    Field names outside the domain vocabulary are skipped at debug level;
    values that are not signed 64-bit integers are skipped with a warning.

    Raises:
        MissingFieldError: '@' is absent or not an object
    """
    diagnostics = diagnostics or Diagnostics()
    if not isinstance(data, dict) or "@" not in data:
        raise MissingFieldError("@")
    values = data["@"]
    if not isinstance(values, dict):
        raise MissingFieldError("@", "failed to get object from '@' element")

    snapshot = CountSnapshot(domain)
    for name, value in values.items():
        if (isinstance(value, bool) or not isinstance(value, int)
                or not INT64_MIN <= value <= INT64_MAX):
            diagnostics.warning("Failed to parse field as int, skipping", field=name, value=value)
            continue
        slot = domain.slot_for(name)
        if slot is None:
            diagnostics.debug("Unknown field in map data", field=name, value=value)
            continue
        snapshot[slot] = value
    return snapshot


class IntervalAccumulator:
    """Running total over the intervals of one aggregation run."""

    def __init__(self, domain: Domain):
        self.domain = domain
        self.total = CountSnapshot(domain)
        self.interval_count = 0

    def add(self, snapshot: CountSnapshot):
        add(self.total, snapshot)
        self.interval_count += 1

    def grand_total(self) -> int:
        return total(self.total)
