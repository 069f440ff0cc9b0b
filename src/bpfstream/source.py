#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Input sources: a file path or '-' for standard input.
"""

import sys
from contextlib import contextmanager
from typing import Iterator, TextIO

STDIN = "-"


@contextmanager
def open_input(path: str = STDIN) -> Iterator[TextIO]:
    """
    Open the trace input as text.

    Standard input is yielded as-is and left open; files are closed on exit.
    """
    if path == STDIN:
        yield sys.stdin
        return
    with open(path, "r", encoding="utf-8", newline="") as f:
        yield f
