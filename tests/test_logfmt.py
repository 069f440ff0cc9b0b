#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Tests for logfmt tokenizing and per-domain record decoding.
"""

import sys
import unittest
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bpfstream.domains import MEM, NET, PROC, SYSCALL, VFS, MemEvent, VfsEvent
from bpfstream.errors import FieldValueError, LogfmtError, UnknownFieldError
from bpfstream.logfmt import (
    FieldKind, FieldSpec, LogfmtDecoder, iter_pairs, parse_int, parse_uint, parse_uint_any,
    strip_quote_chars, strip_quotes_positional
)


class TestIterPairs(unittest.TestCase):
    """Test tokenizing logfmt lines."""

    def test_simple_pairs(self):
        pairs = list(iter_pairs("a=1 b=two  c=3"))
        self.assertEqual(pairs, [("a", "1"), ("b", "two"), ("c", "3")])

    def test_bare_key(self):
        self.assertEqual(list(iter_pairs("flag x=1")), [("flag", ""), ("x", "1")])

    def test_empty_value(self):
        self.assertEqual(list(iter_pairs("x= y=2")), [("x", ""), ("y", "2")])

    def test_double_quoted_value(self):
        pairs = list(iter_pairs('msg="hello world" n=1'))
        self.assertEqual(pairs, [("msg", "hello world"), ("n", "1")])

    def test_escapes_in_quoted_value(self):
        pairs = list(iter_pairs(r'msg="a\"b\\c\tAA"'))
        self.assertEqual(pairs, [("msg", 'a"b\\c\tAA')])

    def test_single_quotes_are_kept(self):
        self.assertEqual(list(iter_pairs("path='x y'")), [("path", "'x"), ("y'", "")])

    def test_empty_key(self):
        with self.assertRaises(LogfmtError):
            list(iter_pairs("=5"))

    def test_quote_in_key(self):
        with self.assertRaises(LogfmtError):
            list(iter_pairs('a"b=1'))

    def test_unterminated_quote(self):
        with self.assertRaises(LogfmtError):
            list(iter_pairs('msg="open'))

    def test_short_unicode_escape(self):
        with self.assertRaises(LogfmtError):
            list(iter_pairs(r'msg="\u12"'))


class TestNumberParsing(unittest.TestCase):

    def test_parse_uint(self):
        self.assertEqual(parse_uint("18446744073709551615"), 2 ** 64 - 1)
        for bad in ("", "-1", "+1", "1.5", "0x10", "18446744073709551616", "１２"):
            with self.assertRaises(ValueError, msg=bad):
                parse_uint(bad)

    def test_parse_int(self):
        self.assertEqual(parse_int("-9"), -9)
        self.assertEqual(parse_int("+7"), 7)
        self.assertEqual(parse_int("-9223372036854775808"), -2 ** 63)
        with self.assertRaises(ValueError):
            parse_int("9223372036854775808")
        with self.assertRaises(ValueError):
            parse_int("-")

    def test_parse_uint_any(self):
        self.assertEqual(parse_uint_any("0x7fff0000"), 0x7fff0000)
        self.assertEqual(parse_uint_any("0X1F"), 31)
        self.assertEqual(parse_uint_any("0o17"), 15)
        self.assertEqual(parse_uint_any("0b101"), 5)
        self.assertEqual(parse_uint_any("017"), 15)
        self.assertEqual(parse_uint_any("0"), 0)
        self.assertEqual(parse_uint_any("42"), 42)
        for bad in ("0x", "09", "-1", "0xg", "0x10000000000000000"):
            with self.assertRaises(ValueError, msg=bad):
                parse_uint_any(bad)

    def test_strip_helpers(self):
        self.assertEqual(strip_quotes_positional("'test.txt'"), "test.txt")
        # Positional stripping trusts the producer
        self.assertEqual(strip_quotes_positional("test.txt"), "est.tx")
        self.assertEqual(strip_quotes_positional(""), "")
        self.assertEqual(strip_quote_chars("'bash'"), "bash")
        self.assertEqual(strip_quote_chars("bash"), "bash")


class TestLogfmtDecoder(unittest.TestCase):
    """Test decoding printf payloads into domain records."""

    def test_vfs_record(self):
        record = VFS.decoder().decode(
            "ts=1234567890 fn=vfs_read tid=1234 rc=100 path='test.txt' "
            "inode=12345 offset=0 len=100")
        self.assertEqual(record, VfsEvent(
            timestamp=1234567890, probe="vfs_read", tid=1234, return_value=100,
            path="test.txt", inode=12345, offset=0, length=100))

    def test_negative_return_value(self):
        record = VFS.decoder().decode("rc=-2")
        self.assertEqual(record.return_value, -2)

    def test_unknown_key(self):
        with self.assertRaises(UnknownFieldError) as ctx:
            VFS.decoder().decode("ts=1 foo=bar")
        self.assertEqual(ctx.exception.key, "foo")
        self.assertEqual(ctx.exception.domain, "vfs")

    def test_type_mismatch(self):
        with self.assertRaises(FieldValueError) as ctx:
            VFS.decoder().decode("ts=1 tid=abc")
        self.assertEqual(ctx.exception.key, "tid")
        self.assertEqual(ctx.exception.value, "abc")

    def test_missing_keys_keep_defaults(self):
        record = VFS.decoder().decode("fn=vfs_open")
        self.assertEqual(record.probe, "vfs_open")
        self.assertEqual(record.timestamp, 0)
        self.assertEqual(record.path, "")

    def test_net_record(self):
        record = NET.decoder().decode(
            "ts=5 fn=tcp_connect tid=9 comm='curl' saddr='10.0.0.1' sport=40000 "
            "daddr='1.1.1.1' dport=443 bytes=0 proto=tcp")
        self.assertEqual(record.comm, "curl")
        self.assertEqual(record.src_addr, "10.0.0.1")
        self.assertEqual(record.dst_port, 443)
        self.assertEqual(record.protocol, "tcp")

    def test_port_out_of_range(self):
        with self.assertRaises(FieldValueError):
            NET.decoder().decode("sport=70000")

    def test_proc_record(self):
        record = PROC.decoder().decode("ts=1 fn=exit pid=10 ppid=1 comm=sh exit_code=-1")
        self.assertEqual(record.comm, "sh")
        self.assertEqual(record.exit_code, -1)

    def test_mem_hex_address(self):
        record = MEM.decoder().decode("fn=do_mmap addr=0x7f0000001000 size=4096 type=anon")
        self.assertEqual(record.address, 0x7f0000001000)
        self.assertEqual(record.type, "anon")

    def test_syscall_args(self):
        record = SYSCALL.decoder().decode(
            "ts=1 pid=2 tid=2 comm='cat' nr=0 name=read arg0=3 arg1=0x55d0 arg2=4096 ret=-11")
        self.assertEqual(record.syscall_name, "read")
        self.assertEqual(record.arg1, 0x55d0)
        self.assertEqual(record.return_value, -11)

    def test_record_reuse(self):
        """A supplied record is filled in place."""
        record = MemEvent()
        result = MEM.decoder().decode("pid=3", record)
        self.assertIs(result, record)
        self.assertEqual(record.pid, 3)

    def test_unsupported_kind(self):
        with self.assertRaises(ValueError):
            LogfmtDecoder("x", dict, {"a": FieldSpec("a", "float")})

    def test_field_spec_convert(self):
        spec = FieldSpec("value", FieldKind.UINT)
        self.assertEqual(spec.convert("v", "12"), 12)
        with self.assertRaises(FieldValueError):
            spec.convert("v", "-12")


if __name__ == '__main__':
    unittest.main()
