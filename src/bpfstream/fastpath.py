#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Fast line parser for bpftrace JSON output.

Recognizes the four line shapes bpftrace emits by literal prefix and cuts
the payload out at fixed offsets, without running a JSON decoder.

The format is trusted, not checked: a producer that reorders fields,
changes spacing or quoting, or drops the trailing newline from the time
string yields wrong slice boundaries rather than a structural error. The
printf payload is handed on still JSON-escaped.
"""

from typing import Callable, Iterable, Optional

from .diagnostics import Diagnostics
from .dispatcher import MessageDispatcher
from .errors import EnvelopeDecodeError
from .logfmt import parse_int

ATTACHED_PROBES_PREFIX = '{"type": "attached_probes", "data": {"probes": '
TIME_PREFIX = '{"type": "time", "data": "'
PRINTF_PREFIX = '{"type": "printf", "data": "'
LOST_EVENTS_PREFIX = '{"type": "lost_events", "data": {"events": '

ATTACHED_PROBES_SUFFIX = '}}'
TIME_SUFFIX = '\\n"}'
PRINTF_SUFFIX = '"}'
LOST_EVENTS_SUFFIX = '}}'

LineHandler = Callable[[str], None]


def _slice(line: str, prefix: str, suffix: str) -> str:
    return line[len(prefix):len(line) - len(suffix)]


def _parse_count(text: str, what: str) -> int:
    try:
        return parse_int(text)
    except ValueError as e:
        raise EnvelopeDecodeError(f"failed to parse {what} count {text!r}") from e


class FastPathParser:
    """
    Single-threaded, line-synchronous parser.

    Envelope lines go to the dispatcher; printf payloads go to the handler.
    """

    def __init__(self, diagnostics: Optional[Diagnostics] = None,
                 dispatcher: Optional[MessageDispatcher] = None):
        self.diagnostics = diagnostics or Diagnostics()
        self.dispatcher = dispatcher or MessageDispatcher(self.diagnostics)

    @property
    def start_time(self):
        return self.dispatcher.start_time

    def parse_lines(self, stream: Iterable[str], handler: LineHandler):
        """
        Parse a stream line by line.

        Args:
            stream: Iterable of text lines (a text file or sys.stdin)
            handler: Called with each printf payload

        Raises:
            StreamError: On the first fatal condition; nothing after the
                failing line is processed. Undecodable input is an
                EnvelopeDecodeError.
        """
        dispatcher = self.dispatcher
        try:
            for line in stream:
                line = line.rstrip("\r\n")
                if line.startswith(PRINTF_PREFIX):
                    handler(_slice(line, PRINTF_PREFIX, PRINTF_SUFFIX))
                elif line.startswith(ATTACHED_PROBES_PREFIX):
                    data = _slice(line, ATTACHED_PROBES_PREFIX, ATTACHED_PROBES_SUFFIX)
                    dispatcher.attached_probes(_parse_count(data, "probes"))
                elif line.startswith(TIME_PREFIX):
                    dispatcher.session_start(_slice(line, TIME_PREFIX, TIME_SUFFIX))
                elif line.startswith(LOST_EVENTS_PREFIX):
                    data = _slice(line, LOST_EVENTS_PREFIX, LOST_EVENTS_SUFFIX)
                    dispatcher.lost(_parse_count(data, "lost events"))
                else:
                    self.diagnostics.warning("Unknown line format, skipping", line=line)
        except UnicodeDecodeError as e:
            raise EnvelopeDecodeError(f"input is not valid text: {e}") from e
        finally:
            dispatcher.finish()
