#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Exception hierarchy for bpfstream.

Every fatal condition raised while processing a stream derives from
StreamError, so callers can treat "anything went wrong" uniformly.
"""


class StreamError(Exception):
    """Base class for errors that abort stream processing."""


class EnvelopeDecodeError(StreamError):
    """Input could not be decoded as a JSON envelope."""


class MissingFieldError(StreamError):
    """A required field is absent or has the wrong JSON type."""

    def __init__(self, field: str, detail: str = ""):
        self.field = field
        message = f"failed to find '{field}' element"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ProbesNotAttachedError(StreamError):
    """The tracer reported zero (or fewer) attached probes."""

    def __init__(self, count: int):
        self.count = count
        super().__init__(f"probes not attached (probes={count})")


class TimeFormatError(StreamError):
    """A 'time' message carried a value that is not HH:MM:SS."""


class LogfmtError(StreamError):
    """A printf payload could not be decoded into a record."""


class UnknownFieldError(LogfmtError):
    """A logfmt key is not part of the domain's vocabulary."""

    def __init__(self, domain: str, key: str):
        self.domain = domain
        self.key = key
        super().__init__(f"unknown {domain} field: {key!r}")


class FieldValueError(LogfmtError):
    """A logfmt value failed its type-specific parse."""

    def __init__(self, key: str, value: str, reason: str):
        self.key = key
        self.value = value
        super().__init__(f"invalid value for {key!r}: {value!r} ({reason})")


class SinkError(StreamError):
    """The row sink rejected a record."""
