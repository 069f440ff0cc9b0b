#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Rendering of aggregated counts as a table, JSON or CSV.
"""

import csv
import json
import sys
from typing import Optional, TextIO

from rich.console import Console
from rich.table import Table

from .aggregator import CountSnapshot

FORMATS = ("table", "json", "csv")


def validate_format(fmt: str) -> str:
    if fmt not in FORMATS:
        raise ValueError(f"invalid format: {fmt} (must be table, json, or csv)")
    return fmt


def counts_payload(snapshot: CountSnapshot, interval_count: int) -> dict:
    """JSON-ready view of a snapshot."""
    if snapshot.domain.open_counters:
        payload = {'counts': snapshot.as_dict()}
    else:
        payload = snapshot.as_dict()
    payload['intervals'] = interval_count
    payload['total'] = snapshot.total()
    return payload


def _print_table(snapshot: CountSnapshot, interval_count: int, out: TextIO):
    header = "Syscall" if snapshot.domain.open_counters else "Operation"
    table = Table(show_header=True, header_style="bold", show_footer=False)
    table.add_column(header)
    table.add_column("Count", justify="right")
    for name, value in snapshot.items():
        table.add_row(name, str(value))
    table.add_section()
    table.add_row("Total", str(snapshot.total()), style="bold")
    table.add_row("Intervals", str(interval_count))
    Console(file=out, highlight=False).print(table)


def _print_csv(snapshot: CountSnapshot, out: TextIO):
    header = "Syscall" if snapshot.domain.open_counters else "Operation"
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow([header, "Count"])
    for name, value in snapshot.items():
        writer.writerow([name, value])
    writer.writerow(["total", snapshot.total()])


def render_counts(snapshot: CountSnapshot, interval_count: int,
                  fmt: str = "table", out: Optional[TextIO] = None):
    """
    Print one snapshot.

    Args:
        snapshot: Counts to print (an interval or the running total)
        interval_count: Number of intervals the counts cover
        fmt: table, json or csv
        out: Destination stream (stdout by default)
    """
    out = out or sys.stdout
    validate_format(fmt)
    if fmt == "json":
        out.write(json.dumps(counts_payload(snapshot, interval_count)) + "\n")
    elif fmt == "csv":
        _print_csv(snapshot, out)
    else:
        _print_table(snapshot, interval_count, out)
