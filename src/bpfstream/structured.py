#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Structured NDJSON parser for bpftrace output.

Decodes complete JSON objects from a stream, independent of key order,
spacing or how objects are split across lines and reads. Decoding runs on a
worker thread that hands batches of objects to the consumer through a
bounded queue; batch lists are recycled through a BufferPool.
"""

import codecs
import json
import queue
import re
import threading
from contextlib import closing
from typing import Any, Iterable, Iterator, Mapping, Optional

from .config import StreamConfig
from .diagnostics import Diagnostics
from .dispatcher import MessageDispatcher, MessageHandler
from .envelope import Envelope, envelope_from_object
from .errors import EnvelopeDecodeError
from .pool import BufferPool

_WHITESPACE = re.compile(r'[ \t\n\r]*')
_END = object()
WORKER_JOIN_TIMEOUT = 1.0


def iter_chunks(stream: Any, size: int) -> Iterator[str]:
    """
    Yield text from a stream as soon as it is available.

    Binary-backed text streams (files, sys.stdin) are read with read1 so a
    slow producer is not stalled waiting for a full chunk. Other objects
    with read() (StringIO) are read in fixed chunks; plain iterables of
    strings are passed through.
    """
    raw = getattr(stream, "buffer", None)
    if raw is not None and hasattr(raw, "read1"):
        encoding = getattr(stream, "encoding", None) or "utf-8"
        decoder = codecs.getincrementaldecoder(encoding)()
        while True:
            data = raw.read1(size)
            if not data:
                tail = decoder.decode(b"", final=True)
                if tail:
                    yield tail
                return
            text = decoder.decode(data)
            if text:
                yield text
    elif hasattr(stream, "read"):
        while True:
            text = stream.read(size)
            if not text:
                return
            yield text
    else:
        yield from stream


def _needs_more_input(buf: str, err: json.JSONDecodeError) -> bool:
    # Nothing after the error position has been terminated by a newline yet,
    # so the object may simply continue in the next read.
    return buf.find("\n", err.pos) == -1


class StructuredParser:
    """
    Parser that runs a real JSON decoder over the stream.

    Args:
        diagnostics: Channel for non-fatal notices
        config: Queue capacity, chunk size and pool size
        dispatcher: Envelope state machine (one per stream)
    """

    def __init__(self, diagnostics: Optional[Diagnostics] = None,
                 config: Optional[StreamConfig] = None,
                 dispatcher: Optional[MessageDispatcher] = None):
        self.diagnostics = diagnostics or Diagnostics()
        self.config = config or StreamConfig()
        self.dispatcher = dispatcher or MessageDispatcher(self.diagnostics)
        self.pool = BufferPool(self.config.pool_size)

    @property
    def start_time(self):
        return self.dispatcher.start_time

    def parse(self, stream: Iterable[str]) -> Iterator[Envelope]:
        """
        Lazily decode envelopes from a stream.

        The returned generator is single-use. Closing it early stops the
        decode worker.

        Raises:
            EnvelopeDecodeError: Invalid JSON; nothing after it is yielded
            MissingFieldError: An object without a string 'type' or a 'data'
        """
        out: "queue.Queue[Any]" = queue.Queue(maxsize=self.config.queue_capacity)
        stop = threading.Event()
        worker = threading.Thread(
            target=self._decode_worker,
            args=(stream, out, stop),
            name="bpfstream-decode",
            daemon=True,
        )
        worker.start()

        finished = False
        try:
            while True:
                item = out.get()
                if item is _END:
                    finished = True
                    return
                if isinstance(item, BaseException):
                    finished = True
                    raise item
                try:
                    for obj in item:
                        yield envelope_from_object(obj)
                finally:
                    item.clear()
                    self.pool.release(item)
        finally:
            stop.set()
            # The worker's last put was its final action
            if finished:
                worker.join(timeout=WORKER_JOIN_TIMEOUT)

    def parse_stream(self, stream: Iterable[str], handlers: Mapping[str, MessageHandler]):
        """
        Decode and dispatch every envelope in the stream.

        Args:
            stream: Text stream or iterable of strings
            handlers: Map of message type -> domain callback

        Raises:
            StreamError: On the first fatal condition
        """
        try:
            with closing(self.parse(stream)) as envelopes:
                for envelope in envelopes:
                    self.dispatcher.dispatch(envelope, handlers)
        finally:
            self.dispatcher.finish()

    @staticmethod
    def _put(out: queue.Queue, item: Any, stop: threading.Event) -> bool:
        while not stop.is_set():
            try:
                out.put(item, timeout=0.1)
                return True
            except queue.Full:
                continue
        return False

    def _decode_worker(self, stream: Iterable[str], out: queue.Queue, stop: threading.Event):
        decoder = json.JSONDecoder()
        buf = ""
        try:
            chunks = iter_chunks(stream, self.config.chunk_size)
            eof = False
            while not eof and not stop.is_set():
                chunk = next(chunks, None)
                if chunk is None:
                    eof = True
                else:
                    buf += chunk

                batch = self.pool.acquire()
                pos = 0
                end = len(buf)
                error = None
                while True:
                    pos = _WHITESPACE.match(buf, pos).end()
                    if pos >= end:
                        break
                    try:
                        obj, pos_after = decoder.raw_decode(buf, pos)
                    except json.JSONDecodeError as e:
                        if not eof and _needs_more_input(buf, e):
                            break
                        error = EnvelopeDecodeError(f"invalid JSON: {e}")
                        break
                    batch.append(obj)
                    pos = pos_after
                buf = buf[pos:]

                if batch:
                    if not self._put(out, batch, stop):
                        return
                else:
                    self.pool.release(batch)
                if error is not None:
                    self._put(out, error, stop)
                    return

            self._put(out, _END, stop)
        except UnicodeDecodeError as e:
            self._put(out, EnvelopeDecodeError(f"input is not valid text: {e}"), stop)
        except Exception as e:
            self._put(out, e, stop)
