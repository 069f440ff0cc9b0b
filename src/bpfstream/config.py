#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Runtime configuration for bpfstream.

Defaults can be overridden through BPFSTREAM_* environment variables and
then by command-line flags.
"""

import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

ENV_PREFIX = "BPFSTREAM_"


@dataclass(frozen=True)
class StreamConfig:
    """Tunables for parsing and ingestion."""
    queue_capacity: int = 10      # decoded batches in flight
    chunk_size: int = 64 * 1024   # characters read per decode step
    pool_size: int = 16           # buffers/records kept for reuse
    batch_size: int = 1000        # rows per sink flush
    db_path: str = "data/bpfstream.db"

    def __post_init__(self):
        for name in ("queue_capacity", "chunk_size", "batch_size"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.pool_size < 0:
            raise ValueError("pool_size must be >= 0")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StreamConfig":
        """
        Build a config from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            ValueError: A variable holds a value of the wrong type
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            if f.type in (int, "int"):
                try:
                    overrides[f.name] = int(raw)
                except ValueError:
                    raise ValueError(f"{ENV_PREFIX}{f.name.upper()} must be an integer, got {raw!r}") from None
            else:
                overrides[f.name] = raw
        return cls(**overrides)

    def with_overrides(self, **changes) -> "StreamConfig":
        """Copy with the given non-None values replaced."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
