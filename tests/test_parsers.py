#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Tests for the structured and fast-path parser backends.
"""

import io
import logging
import sys
import threading
import unittest
from datetime import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bpfstream.backends import get_backend
from bpfstream.config import StreamConfig
from bpfstream.diagnostics import Diagnostics
from bpfstream.dispatcher import DispatchState
from bpfstream.errors import (
    EnvelopeDecodeError, MissingFieldError, ProbesNotAttachedError, TimeFormatError
)
from bpfstream.fastpath import FastPathParser
from bpfstream.structured import StructuredParser, iter_chunks

import streams as s

LOGGER = "tests.parsers"


class BackendConformance:
    """Behaviour both backends must share for documented bpftrace output."""

    backend = None

    def setUp(self):
        self.diagnostics = Diagnostics(logging.getLogger(LOGGER))
        self.received = []

    def run_backend(self, text, handlers=None):
        if handlers is None:
            handlers = {'printf': self.received.append}
        parser = get_backend(self.backend, self.diagnostics)
        return parser.run(io.StringIO(text), handlers)

    def test_printf_scenario(self):
        """Probes, time, then printf records in order."""
        text = s.stream(
            s.probes(8),
            s.start_time("12:34:56"),
            s.printf(s.VFS_READ_PAYLOAD),
            s.printf("ts=2 fn=vfs_write"),
        )
        dispatcher = self.run_backend(text)

        self.assertEqual(self.received, [s.VFS_READ_PAYLOAD, "ts=2 fn=vfs_write"])
        self.assertEqual(dispatcher.probes, 8)
        self.assertEqual(dispatcher.start_time, time(12, 34, 56))
        self.assertEqual(dispatcher.state, DispatchState.DONE)

    def test_zero_probes(self):
        text = s.stream(s.probes(0), s.printf("ts=1"))
        with self.assertRaises(ProbesNotAttachedError) as ctx:
            self.run_backend(text)
        self.assertIn("probes not attached", str(ctx.exception))
        self.assertEqual(self.received, [])

    def test_negative_probes(self):
        with self.assertRaises(ProbesNotAttachedError):
            self.run_backend(s.probes(-1))

    def test_duplicate_time_keeps_first(self):
        text = s.stream(s.probes(1), s.start_time("01:00:00"), s.start_time("02:00:00"))
        with self.assertLogs(LOGGER, level='WARNING') as logs:
            dispatcher = self.run_backend(text)
        self.assertEqual(dispatcher.start_time, time(1, 0, 0))
        self.assertTrue(any("multiple 'time'" in line for line in logs.output))

    def test_unknown_type_never_reaches_handler(self):
        text = s.stream(s.probes(1), s.message("join", "x"), s.printf("ts=1"))
        with self.assertLogs(LOGGER, level='WARNING'):
            self.run_backend(text)
        self.assertEqual(self.received, ["ts=1"])

    def test_printf_before_probes(self):
        text = s.stream(s.printf("ts=1"), s.probes(2))
        dispatcher = self.run_backend(text)
        self.assertEqual(self.received, ["ts=1"])
        self.assertEqual(dispatcher.probes, 2)

    def test_bad_time(self):
        with self.assertRaises(TimeFormatError):
            self.run_backend(s.stream(s.probes(1), s.start_time("99:99:99")))

    def test_lost_events(self):
        text = s.stream(s.probes(1), s.lost_events(3), s.lost_events(4))
        dispatcher = self.run_backend(text)
        self.assertEqual(dispatcher.lost_events_total, 7)

    def test_handler_error_stops_stream(self):
        """Nothing after a failing record is delivered."""
        def handler(payload):
            self.received.append(payload)
            if payload == "ts=2":
                raise RuntimeError("sink full")

        text = s.stream(s.probes(1), s.printf("ts=1"), s.printf("ts=2"), s.printf("ts=3"))
        with self.assertRaises(RuntimeError):
            self.run_backend(text, {'printf': handler})
        self.assertEqual(self.received, ["ts=1", "ts=2"])

    def test_empty_input(self):
        dispatcher = self.run_backend("")
        self.assertEqual(self.received, [])
        self.assertIsNone(dispatcher.probes)


class TestJsonBackend(BackendConformance, unittest.TestCase):
    backend = "json"

    def test_map_messages_delivered(self):
        maps = []
        self.run_backend(s.stream(s.probes(1), s.counts({"vfs_read": 3})), {'map': maps.append})
        self.assertEqual(maps, [{"@": {"vfs_read": 3}}])


class TestSimpleBackend(BackendConformance, unittest.TestCase):
    backend = "simple"

    def test_map_handler_rejected(self):
        with self.assertRaises(ValueError):
            self.run_backend(s.probes(1), {'map': print})


class TestBackendEquivalence(unittest.TestCase):
    """Both backends deliver identical payload sequences."""

    def test_same_payloads(self):
        payloads = ["ts=%d fn=vfs_read tid=7 rc=0 path='f%d'" % (i, i) for i in range(50)]
        text = s.stream(s.probes(3), s.start_time("00:00:01"), *[s.printf(p) for p in payloads])

        results = {}
        for name in ("json", "simple"):
            got = []
            get_backend(name).run(io.StringIO(text), {'printf': got.append})
            results[name] = got

        self.assertEqual(results["json"], payloads)
        self.assertEqual(results["simple"], payloads)

    def test_envelope_handlers_rejected(self):
        for name in ("json", "simple"):
            with self.assertRaises(ValueError):
                get_backend(name).run(io.StringIO(""), {'time': print})

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            get_backend("yaml")


class TestStructuredParser(unittest.TestCase):
    """Behaviour specific to the JSON decoder."""

    def setUp(self):
        self.received = []
        self.handlers = {'printf': self.received.append}

    def parse(self, text, config=None):
        parser = StructuredParser(config=config)
        parser.parse_stream(io.StringIO(text), self.handlers)
        return parser

    def test_multiline_objects(self):
        text = '{\n  "type": "attached_probes",\n  "data": {"probes": 2}\n}\n' \
               '{"type":"printf",\n "data":"ts=1"}'
        parser = self.parse(text)
        self.assertEqual(parser.dispatcher.probes, 2)
        self.assertEqual(self.received, ["ts=1"])

    def test_reordered_keys(self):
        self.parse('{"data": "ts=9", "type": "printf"}\n')
        self.assertEqual(self.received, ["ts=9"])

    def test_time_without_newline(self):
        parser = self.parse('{"type": "time", "data": "08:09:10"}\n')
        self.assertEqual(parser.start_time, time(8, 9, 10))

    def test_escaped_payload_is_decoded(self):
        self.parse(s.printf('comm=\\"my app\\"'))
        self.assertEqual(self.received, ['comm="my app"'])

    def test_missing_type(self):
        with self.assertRaises(MissingFieldError):
            self.parse('{"data": "ts=1"}\n')

    def test_missing_data(self):
        with self.assertRaises(MissingFieldError):
            self.parse('{"type": "printf"}\n')

    def test_malformed_json_is_fatal(self):
        """Records before the bad line are kept, nothing after it."""
        text = s.stream(s.printf("ts=1"), "this is not json\n", s.printf("ts=2"))
        with self.assertRaises(EnvelopeDecodeError):
            self.parse(text)
        self.assertEqual(self.received, ["ts=1"])

    def test_truncated_input_is_fatal(self):
        with self.assertRaises(EnvelopeDecodeError):
            self.parse('{"type": "printf", "data": "ts=1"')

    def test_small_chunks(self):
        payloads = ["ts=%d rc=-1" % i for i in range(20)]
        text = s.stream(s.probes(4), s.start_time("10:00:00"), *[s.printf(p) for p in payloads])
        for chunk_size in (1, 7, 64):
            self.received.clear()
            parser = self.parse(text, StreamConfig(chunk_size=chunk_size, queue_capacity=2))
            self.assertEqual(self.received, payloads, f"chunk_size={chunk_size}")
            self.assertEqual(parser.dispatcher.probes, 4)

    def test_batches_are_recycled(self):
        parser = StructuredParser(config=StreamConfig(chunk_size=32, pool_size=4))
        text = s.stream(*[s.printf("ts=%d" % i) for i in range(30)])
        parser.parse_stream(io.StringIO(text), self.handlers)
        self.assertEqual(len(self.received), 30)
        self.assertGreater(parser.pool.reused, 0)

    def test_iterable_of_lines(self):
        parser = StructuredParser()
        parser.parse_stream([s.probes(1), s.printf("ts=1")], self.handlers)
        self.assertEqual(self.received, ["ts=1"])

    def test_early_close_stops_worker(self):
        text = s.stream(*[s.printf("ts=%d" % i) for i in range(5000)])
        parser = StructuredParser(config=StreamConfig(chunk_size=128, queue_capacity=1))
        envelopes = parser.parse(io.StringIO(text))
        first = next(envelopes)
        envelopes.close()

        self.assertEqual(first.data, "ts=0")
        for thread in threading.enumerate():
            if thread.name == "bpfstream-decode":
                thread.join(timeout=5)
        alive = [t for t in threading.enumerate() if t.name == "bpfstream-decode"]
        self.assertEqual(alive, [])

    def test_worker_joined_after_stream_ends(self):
        """No decode thread outlives a finished or failed stream"""
        for text in (s.stream(s.probes(1), s.printf("ts=1")), "not json\n"):
            before = set(threading.enumerate())
            try:
                StructuredParser().parse_stream(io.StringIO(text), self.handlers)
            except EnvelopeDecodeError:
                pass
            leftover = [t for t in set(threading.enumerate()) - before
                        if t.name == "bpfstream-decode"]
            self.assertEqual(leftover, [], repr(text))

    def test_iter_chunks_string_io(self):
        chunks = list(iter_chunks(io.StringIO("abcdefg"), 3))
        self.assertEqual(chunks, ["abc", "def", "g"])


class TestFastPathParser(unittest.TestCase):
    """The fast path trusts the exact bpftrace line layout."""

    def setUp(self):
        self.received = []
        self.parser = FastPathParser(Diagnostics(logging.getLogger(LOGGER)))

    def test_time_without_newline_misparses(self):
        with self.assertRaises(TimeFormatError):
            self.parser.parse_lines(['{"type": "time", "data": "08:09:10"}\n'], self.received.append)

    def test_reordered_keys_are_skipped(self):
        with self.assertLogs(LOGGER, level='WARNING') as logs:
            self.parser.parse_lines(['{"data": "ts=9", "type": "printf"}\n'], self.received.append)
        self.assertEqual(self.received, [])
        self.assertIn("Unknown line format", logs.output[0])

    def test_payload_stays_escaped(self):
        self.parser.parse_lines([s.printf('comm=\\"my app\\"')], self.received.append)
        self.assertEqual(self.received, ['comm=\\"my app\\"'])

    def test_compact_spacing_is_not_recognized(self):
        with self.assertLogs(LOGGER, level='WARNING'):
            self.parser.parse_lines(['{"type":"printf","data":"ts=1"}\n'], self.received.append)
        self.assertEqual(self.received, [])

    def test_bad_probe_count(self):
        with self.assertRaises(EnvelopeDecodeError):
            self.parser.parse_lines(['{"type": "attached_probes", "data": {"probes": x}}\n'],
                                    self.received.append)

    def test_crlf_line_endings(self):
        self.parser.parse_lines([s.probes(2).replace("\n", "\r\n"), s.printf("ts=1").replace("\n", "\r\n")],
                                self.received.append)
        self.assertEqual(self.received, ["ts=1"])
        self.assertEqual(self.parser.dispatcher.probes, 2)

    def test_start_time(self):
        self.parser.parse_lines([s.start_time("23:00:59")], self.received.append)
        self.assertEqual(self.parser.start_time, time(23, 0, 59))


if __name__ == '__main__':
    unittest.main()
