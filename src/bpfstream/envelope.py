#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Envelope model for bpftrace JSON output.

Every unit of input is a JSON object of the form {"type": ..., "data": ...}.
"""

from dataclasses import dataclass
from typing import Any, Dict

from .errors import MissingFieldError


class MessageType:
    """Message type identifiers."""
    ATTACHED_PROBES = "attached_probes"
    TIME = "time"
    LOST_EVENTS = "lost_events"
    PRINTF = "printf"
    MAP = "map"


# Types the dispatcher consumes itself; everything else goes to a domain.
ENVELOPE_TYPES = frozenset({
    MessageType.ATTACHED_PROBES,
    MessageType.TIME,
    MessageType.LOST_EVENTS,
})


@dataclass
class Envelope:
    """One decoded input unit."""
    type: str
    data: Any


def envelope_from_object(obj: Dict[str, Any]) -> Envelope:
    """
    Build an Envelope from a decoded JSON value.

    Args:
        obj: Value produced by the JSON decoder

    Returns:
        Envelope with the 'type' and 'data' fields; other keys are dropped

    Raises:
        MissingFieldError: 'type' is absent or not a string, or 'data' is absent
    """
    if not isinstance(obj, dict):
        raise MissingFieldError("type", f"expected a JSON object, got {type(obj).__name__}")

    msg_type = obj.get("type")
    if msg_type is None:
        raise MissingFieldError("type")
    if not isinstance(msg_type, str):
        raise MissingFieldError("type", "failed to get 'type' as string")

    if "data" not in obj:
        raise MissingFieldError("data")

    return Envelope(type=msg_type, data=obj["data"])
