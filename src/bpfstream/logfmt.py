#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Logfmt decoding for printf payloads.

A payload is a sequence of space-separated key=value tokens, e.g.

    ts=1234567890 fn=vfs_read tid=1234 rc=100 path='test.txt'

Each domain supplies a table mapping keys to typed record attributes; the
decoder itself has no per-domain code.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from .errors import FieldValueError, LogfmtError, UnknownFieldError

UINT64_MAX = (1 << 64) - 1
INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1
UINT16_MAX = (1 << 16) - 1

_ESCAPES = {'"': '"', '\\': '\\', '/': '/', 'b': '\b', 'f': '\f',
            'n': '\n', 'r': '\r', 't': '\t'}


def iter_pairs(text: str) -> Iterator[Tuple[str, str]]:
    """
    Tokenize a logfmt line into (key, value) pairs.

    Double-quoted values may contain spaces and backslash escapes. A key
    without '=' yields an empty value. Single quotes carry no meaning here;
    they stay part of the value.
    """
    i = 0
    n = len(text)
    while i < n:
        # Skip separators
        while i < n and text[i] <= ' ':
            i += 1
        if i >= n:
            break

        start = i
        while i < n and text[i] > ' ' and text[i] != '=':
            if text[i] == '"':
                raise LogfmtError(f"unexpected '\"' in key at offset {i}")
            i += 1
        key = text[start:i]
        if not key:
            raise LogfmtError(f"unexpected '=' at offset {i}")

        if i >= n or text[i] != '=':
            yield key, ""
            continue
        i += 1

        if i < n and text[i] == '"':
            i += 1
            chars = []
            while True:
                if i >= n:
                    raise LogfmtError(f"unterminated quoted value for {key!r}")
                c = text[i]
                if c == '"':
                    i += 1
                    break
                if c == '\\' and i + 1 < n:
                    nxt = text[i + 1]
                    if nxt == 'u':
                        try:
                            hex_digits = text[i + 2:i + 6]
                            if len(hex_digits) != 4:
                                raise ValueError("short escape")
                            chars.append(chr(int(hex_digits, 16)))
                        except ValueError as e:
                            raise LogfmtError(f"invalid \\u escape in value for {key!r}") from e
                        i += 6
                        continue
                    chars.append(_ESCAPES.get(nxt, nxt))
                    i += 2
                    continue
                chars.append(c)
                i += 1
            yield key, "".join(chars)
        else:
            start = i
            while i < n and text[i] > ' ':
                i += 1
            yield key, text[start:i]


def _check_digits(value: str, signed: bool) -> str:
    digits = value
    if signed and digits[:1] in ('+', '-'):
        digits = digits[1:]
    if not digits or not (digits.isascii() and digits.isdigit()):
        raise ValueError("invalid syntax")
    return value


def parse_uint(value: str, bits: int = 64) -> int:
    """Parse an unsigned base-10 integer with range checking."""
    number = int(_check_digits(value, signed=False), 10)
    if number > (1 << bits) - 1:
        raise ValueError("value out of range")
    return number


def parse_int(value: str) -> int:
    """Parse a signed base-10 64-bit integer."""
    number = int(_check_digits(value, signed=True), 10)
    if not INT64_MIN <= number <= INT64_MAX:
        raise ValueError("value out of range")
    return number


def parse_uint_any(value: str) -> int:
    """Parse an unsigned integer whose base comes from its prefix (0x, 0o, 0b, 0)."""
    text = value
    lowered = text.lower()
    if lowered.startswith(('0x', '0o', '0b')):
        base = {'x': 16, 'o': 8, 'b': 2}[lowered[1]]
        body = text[2:]
    elif len(text) > 1 and text.startswith('0'):
        base = 8
        body = text[1:]
    else:
        base = 10
        body = text
    if not body or not body.isascii() or not body.isalnum():
        raise ValueError("invalid syntax")
    number = int(body, base)
    if number > UINT64_MAX:
        raise ValueError("value out of range")
    return number


def strip_quotes_positional(value: str) -> str:
    """Drop the first and last character; assumes a quoted value."""
    return value[1:len(value) - 1]


def strip_quote_chars(value: str) -> str:
    return value.strip("'\"")


class FieldKind:
    """Semantic types a logfmt value can be decoded as."""
    UINT = "uint"
    INT = "int"
    UINT_ANY = "uint_any"
    PORT = "port"
    TEXT = "text"
    QUOTED = "quoted"
    TRIMMED = "trimmed"


CONVERTERS: Dict[str, Callable[[str], Any]] = {
    FieldKind.UINT: parse_uint,
    FieldKind.INT: parse_int,
    FieldKind.UINT_ANY: parse_uint_any,
    FieldKind.PORT: lambda v: parse_uint(v, bits=16),
    FieldKind.TEXT: str,
    FieldKind.QUOTED: strip_quotes_positional,
    FieldKind.TRIMMED: strip_quote_chars,
}


@dataclass(frozen=True)
class FieldSpec:
    """Maps one logfmt key onto a record attribute."""
    attr: str
    kind: str = FieldKind.TEXT

    def convert(self, key: str, value: str) -> Any:
        try:
            return CONVERTERS[self.kind](value)
        except ValueError as e:
            raise FieldValueError(key, value, str(e)) from e


class LogfmtDecoder:
    """
    Decodes printf payloads into records of one domain.

    Args:
        domain: Domain name, used in error messages
        record_type: Zero-argument factory for a blank record
        fields: Map of logfmt key -> FieldSpec
    """

    def __init__(self, domain: str, record_type: Callable[[], Any], fields: Mapping[str, FieldSpec]):
        self.domain = domain
        self.record_type = record_type
        self.fields = dict(fields)
        unknown = [kind for kind in (s.kind for s in self.fields.values()) if kind not in CONVERTERS]
        if unknown:
            raise ValueError(f"unsupported field kinds for {domain}: {unknown}")

    def decode(self, text: str, record: Optional[Any] = None) -> Any:
        """
        Decode one payload.

        Args:
            text: logfmt payload
            record: Blank record to fill (e.g. from a RecordPool); a new one
                is created when omitted

        Returns:
            The populated record

        Raises:
            UnknownFieldError: A key outside the domain vocabulary
            FieldValueError: A value that fails its type-specific parse
        """
        if record is None:
            record = self.record_type()
        fields = self.fields
        for key, value in iter_pairs(text):
            spec = fields.get(key)
            if spec is None:
                raise UnknownFieldError(self.domain, key)
            setattr(record, spec.attr, spec.convert(key, value))
        return record
