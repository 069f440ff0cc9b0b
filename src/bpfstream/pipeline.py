#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Top-level stream operations.

count_stream() aggregates 'map' intervals; ingest_raw() decodes 'printf'
records and appends them to a sink. Both raise on the first fatal error;
everything processed before it stays processed.
"""

import logging
from dataclasses import dataclass
from datetime import time
from typing import Callable, Iterable, Optional, Union

from .aggregator import CountSnapshot, IntervalAccumulator, snapshot_from_map
from .backends import get_backend
from .config import StreamConfig
from .diagnostics import Diagnostics
from .domains import Domain, get_domain
from .envelope import MessageType
from .errors import SinkError, StreamError
from .pool import RecordPool
from .sink import RowSink

logger = logging.getLogger(__name__)

IntervalCallback = Callable[[CountSnapshot, int], None]


@dataclass
class IngestStats:
    """Outcome of one raw ingestion run."""
    rows: int = 0
    probes: Optional[int] = None
    start_time: Optional[time] = None
    lost_events: int = 0


def _resolve(domain: Union[str, Domain]) -> Domain:
    return get_domain(domain) if isinstance(domain, str) else domain


def count_stream(stream: Iterable[str], domain: Union[str, Domain],
                 backend: str = "json",
                 on_interval: Optional[IntervalCallback] = None,
                 diagnostics: Optional[Diagnostics] = None,
                 config: Optional[StreamConfig] = None) -> IntervalAccumulator:
    """
    Aggregate the interval counts of a stream.

    Args:
        stream: Text stream of bpftrace JSON output
        domain: Domain name or Domain
        backend: Parser backend; must be able to deliver 'map' messages
        on_interval: Called with each interval's snapshot and its 1-based index
        diagnostics: Channel for non-fatal notices
        config: Stream tunables

    Returns:
        Accumulator holding the total and the number of intervals seen
    """
    domain = _resolve(domain)
    diagnostics = diagnostics or Diagnostics()
    parser = get_backend(backend, diagnostics, config)
    if not parser.supports(MessageType.MAP):
        raise ValueError(f"the {backend} parser cannot aggregate map messages")

    accumulator = IntervalAccumulator(domain)

    def on_map(data):
        snapshot = snapshot_from_map(domain, data, diagnostics)
        accumulator.add(snapshot)
        if on_interval is not None:
            on_interval(snapshot, accumulator.interval_count)

    parser.run(stream, {MessageType.MAP: on_map})
    logger.debug(f"Aggregated {accumulator.interval_count} {domain.name} intervals")
    return accumulator


def ingest_raw(stream: Iterable[str], domain: Union[str, Domain], sink: RowSink,
               backend: str = "json",
               pool: Optional[RecordPool] = None,
               diagnostics: Optional[Diagnostics] = None,
               config: Optional[StreamConfig] = None) -> IngestStats:
    """
    Decode every printf record of a stream and append it to a sink.

    Records come from a RecordPool and go back to it right after
    append_row() returns, so a sink must copy what it keeps.

    Raises:
        LogfmtError: A record with an unknown key or a malformed value
        SinkError: append_row() failed
        StreamError: Any envelope-level fatal condition
    """
    domain = _resolve(domain)
    config = config or StreamConfig()
    diagnostics = diagnostics or Diagnostics()
    parser = get_backend(backend, diagnostics, config)
    decoder = domain.decoder()
    if pool is None:
        pool = RecordPool(domain.record_type, config.pool_size)
    stats = IngestStats()

    def on_printf(payload: str):
        record = pool.acquire()
        try:
            decoder.decode(payload, record)
            try:
                sink.append_row(record)
            except StreamError:
                raise
            except Exception as e:
                raise SinkError(f"failed to append row: {e}") from e
        finally:
            pool.release(record)
        stats.rows += 1

    try:
        dispatcher = parser.run(stream, {MessageType.PRINTF: on_printf})
    finally:
        logger.debug(f"Appended {stats.rows} {domain.name} rows")

    stats.probes = dispatcher.probes
    stats.start_time = dispatcher.start_time
    stats.lost_events = dispatcher.lost_events_total
    return stats
