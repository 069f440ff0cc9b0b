#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Message dispatcher shared by both parser backends.

Handles the envelope messages every bpftrace script emits (attached_probes,
time, lost_events) and delegates everything else to per-domain handlers.
"""

import re
from datetime import datetime, time
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from .diagnostics import Diagnostics
from .envelope import Envelope, MessageType
from .errors import (
    EnvelopeDecodeError, MissingFieldError, ProbesNotAttachedError, TimeFormatError
)

# Domain callback: receives the envelope's data payload.
MessageHandler = Callable[[Any], None]

TIME_FORMAT = "%H:%M:%S"
# Hour may be one digit; minutes and seconds are always two
_TIME_SHAPE = re.compile(r"[0-9]{1,2}:[0-9]{2}:[0-9]{2}")


class DispatchState(Enum):
    """Lifecycle of one stream."""
    AWAITING_PROBES = "awaiting_probes"
    STREAMING = "streaming"
    DONE = "done"


def parse_start_time(text: str) -> time:
    """Parse an HH:MM:SS time-of-day string."""
    if not _TIME_SHAPE.fullmatch(text):
        raise TimeFormatError(f"failed to parse time {text!r}: expected HH:MM:SS")
    try:
        return datetime.strptime(text, TIME_FORMAT).time()
    except ValueError as e:
        raise TimeFormatError(f"failed to parse time {text!r}: {e}") from e


def _get_int(data: Any, field: str) -> int:
    if not isinstance(data, dict) or field not in data:
        raise MissingFieldError(field)
    value = data[field]
    if isinstance(value, bool) or not isinstance(value, int):
        raise EnvelopeDecodeError(f"failed to get '{field}' as int: {value!r}")
    return value


class MessageDispatcher:
    """
    Per-stream state machine for envelope messages.

    The state only gates the probe-count check; messages for domain
    handlers are delivered in every state, including before the first
    attached_probes message.
    """

    def __init__(self, diagnostics: Optional[Diagnostics] = None):
        self.diagnostics = diagnostics or Diagnostics()
        self.state = DispatchState.AWAITING_PROBES
        self.probes: Optional[int] = None
        self.start_time: Optional[time] = None
        self.lost_events = 0
        self.lost_events_total = 0

    def attached_probes(self, count: int):
        if count <= 0:
            self.state = DispatchState.DONE
            raise ProbesNotAttachedError(count)
        self.probes = count
        if self.state is DispatchState.AWAITING_PROBES:
            self.state = DispatchState.STREAMING
        self.diagnostics.debug("Probes attached", probes=count)

    def session_start(self, text: str):
        """Record the session start time; only the first one counts."""
        if self.start_time is not None:
            self.diagnostics.warning("Received multiple 'time' messages, ignoring")
            return
        try:
            self.start_time = parse_start_time(text)
        except TimeFormatError:
            self.state = DispatchState.DONE
            raise
        self.diagnostics.info("Record start from",
                              start_time=self.start_time.strftime(TIME_FORMAT))

    def lost(self, count: int):
        self.lost_events = count
        self.lost_events_total += count
        self.diagnostics.info("Lost events", lost_events=count)

    def dispatch(self, envelope: Envelope, handlers: Mapping[str, MessageHandler]):
        """
        Route one envelope.

        Args:
            envelope: Decoded message
            handlers: Map of message type -> domain callback

        Raises:
            StreamError: On any fatal envelope condition or handler failure
        """
        try:
            if envelope.type == MessageType.ATTACHED_PROBES:
                self.attached_probes(_get_int(envelope.data, "probes"))
            elif envelope.type == MessageType.TIME:
                text = envelope.data
                if self.start_time is None:
                    if not isinstance(text, str):
                        raise EnvelopeDecodeError(
                            f"failed to get 'time' data as string: {text!r}")
                    text = text.strip()
                self.session_start(text)
            elif envelope.type == MessageType.LOST_EVENTS:
                self.lost(_get_int(envelope.data, "events"))
            else:
                handler = handlers.get(envelope.type)
                if handler is None:
                    self.diagnostics.warning("Unknown message type, skipping",
                                             type=envelope.type)
                    return
                handler(envelope.data)
        except Exception:
            self.state = DispatchState.DONE
            raise

    def finish(self):
        """Mark the end of input."""
        self.state = DispatchState.DONE

    def summary(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'probes': self.probes,
            'start_time': self.start_time,
            'lost_events': self.lost_events_total,
        }
