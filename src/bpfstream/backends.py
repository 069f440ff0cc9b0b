#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Parser backends behind one interface.

"json" runs the structured parser, "simple" runs the fast-path parser. For
input in the documented bpftrace format both deliver the same printf
payloads and fail on the same envelope conditions.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Mapping, Optional, Type

from .config import StreamConfig
from .diagnostics import Diagnostics
from .dispatcher import MessageDispatcher, MessageHandler
from .envelope import ENVELOPE_TYPES, MessageType
from .fastpath import FastPathParser
from .structured import StructuredParser


class ParserBackend(ABC):
    """Strategy for turning a stream into dispatched messages."""

    name = ""
    # Domain message types this backend can deliver
    message_types = frozenset()

    def __init__(self, diagnostics: Optional[Diagnostics] = None,
                 config: Optional[StreamConfig] = None):
        self.diagnostics = diagnostics or Diagnostics()
        self.config = config or StreamConfig()

    def supports(self, msg_type: str) -> bool:
        return msg_type in self.message_types

    @staticmethod
    def _check_handlers(handlers: Mapping[str, MessageHandler]):
        reserved = sorted(ENVELOPE_TYPES.intersection(handlers))
        if reserved:
            raise ValueError(f"{', '.join(reserved)} messages are handled by the dispatcher")

    @abstractmethod
    def run(self, stream: Iterable[str], handlers: Mapping[str, MessageHandler]) -> MessageDispatcher:
        """
        Process a whole stream.

        Args:
            stream: Text stream or iterable of lines
            handlers: Map of message type -> domain callback

        Returns:
            The stream's dispatcher, holding start time and lost-event counts

        Raises:
            StreamError: On the first fatal condition
        """


class JsonBackend(ParserBackend):
    name = "json"
    message_types = frozenset({MessageType.PRINTF, MessageType.MAP})

    def run(self, stream, handlers):
        self._check_handlers(handlers)
        parser = StructuredParser(self.diagnostics, self.config)
        parser.parse_stream(stream, handlers)
        return parser.dispatcher


class SimpleBackend(ParserBackend):
    name = "simple"
    message_types = frozenset({MessageType.PRINTF})

    def run(self, stream, handlers):
        self._check_handlers(handlers)
        unsupported = sorted(set(handlers) - self.message_types)
        if unsupported:
            raise ValueError(f"the simple parser cannot deliver {', '.join(unsupported)} messages")

        printf = handlers.get(MessageType.PRINTF)
        if printf is None:
            def printf(payload):
                self.diagnostics.warning("Unknown message type, skipping", type=MessageType.PRINTF)

        parser = FastPathParser(self.diagnostics)
        parser.parse_lines(stream, printf)
        return parser.dispatcher


BACKENDS: Dict[str, Type[ParserBackend]] = {
    JsonBackend.name: JsonBackend,
    SimpleBackend.name: SimpleBackend,
}


def get_backend(name: str, diagnostics: Optional[Diagnostics] = None,
                config: Optional[StreamConfig] = None) -> ParserBackend:
    try:
        backend_cls = BACKENDS[name]
    except KeyError:
        raise ValueError(f"unknown parser: {name} (must be one of {', '.join(BACKENDS)})") from None
    return backend_cls(diagnostics, config)
