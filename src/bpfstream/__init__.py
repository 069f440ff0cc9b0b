#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
bpfstream: streaming parse-and-dispatch engine for bpftrace JSON output.

This package turns bpftrace NDJSON into interval counts or typed raw rows.
"""

__version__ = "0.1.0"
__all__ = [
    "Envelope",
    "MessageType",
    "MessageDispatcher",
    "FastPathParser",
    "StructuredParser",
    "LogfmtDecoder",
    "CountSnapshot",
    "IntervalAccumulator",
    "StreamConfig",
    "StreamError",
    "count_stream",
    "ingest_raw",
]

from .envelope import Envelope, MessageType
from .dispatcher import MessageDispatcher
from .fastpath import FastPathParser
from .structured import StructuredParser
from .logfmt import LogfmtDecoder
from .aggregator import CountSnapshot, IntervalAccumulator
from .config import StreamConfig
from .errors import StreamError
from .pipeline import count_stream, ingest_raw
