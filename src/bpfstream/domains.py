#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Domain configuration tables.

Each tracing domain (vfs, net, proc, mem, syscall) is described purely as
data: the counter slots a 'map' message feeds, the logfmt keys a 'printf'
message carries, and the columns its raw rows are stored with.
"""

from dataclasses import dataclass, fields as dataclass_fields
from typing import Callable, Dict, List, Optional, Tuple

from .logfmt import FieldKind as K
from .logfmt import FieldSpec, LogfmtDecoder


@dataclass
class VfsEvent:
    timestamp: int = 0
    probe: str = ""
    tid: int = 0
    return_value: int = 0
    path: str = ""
    inode: int = 0
    offset: int = 0
    length: int = 0


@dataclass
class NetEvent:
    timestamp: int = 0
    probe: str = ""
    tid: int = 0
    comm: str = ""
    src_addr: str = ""
    src_port: int = 0
    dst_addr: str = ""
    dst_port: int = 0
    bytes: int = 0
    protocol: str = ""


@dataclass
class ProcEvent:
    timestamp: int = 0
    probe: str = ""
    pid: int = 0
    ppid: int = 0
    tid: int = 0
    comm: str = ""
    cmdline: str = ""
    exit_code: int = 0


@dataclass
class MemEvent:
    timestamp: int = 0
    probe: str = ""
    pid: int = 0
    tid: int = 0
    comm: str = ""
    address: int = 0
    size: int = 0
    type: str = ""


@dataclass
class SyscallEvent:
    timestamp: int = 0
    pid: int = 0
    tid: int = 0
    comm: str = ""
    syscall_nr: int = 0
    syscall_name: str = ""
    arg0: int = 0
    arg1: int = 0
    arg2: int = 0
    arg3: int = 0
    arg4: int = 0
    arg5: int = 0
    return_value: int = 0


@dataclass(frozen=True)
class Domain:
    """
    Everything the engine needs to know about one tracing domain.

    counters maps a wire field name inside map.@ to a counter slot; several
    names may share a slot. slots fixes display order. When open_counters
    is set every field name is accepted as its own slot.
    """
    name: str
    slots: Tuple[str, ...]
    counters: Dict[str, str]
    record_type: Callable[[], object]
    fields: Dict[str, FieldSpec]
    columns: Tuple[Tuple[str, str], ...]
    open_counters: bool = False
    description: str = ""

    def slot_for(self, name: str) -> Optional[str]:
        if self.open_counters:
            return name
        return self.counters.get(name)

    def decoder(self) -> LogfmtDecoder:
        return LogfmtDecoder(self.name, self.record_type, self.fields)

    def row(self, record) -> tuple:
        """Record attributes in column order."""
        return tuple(getattr(record, f.name) for f in dataclass_fields(record))


VFS = Domain(
    name="vfs",
    description="Virtual file system tracing",
    slots=("create", "open", "read", "readlink", "readv", "write", "writev", "fsync"),
    counters={
        "vfs_create": "create",
        "vfs_open": "open",
        "vfs_read": "read",
        "vfs_readlink": "readlink",
        "vfs_readv": "readv",
        "vfs_write": "write",
        "vfs_writev": "writev",
        "vfs_fsync": "fsync",
    },
    record_type=VfsEvent,
    fields={
        "ts": FieldSpec("timestamp", K.UINT),
        "fn": FieldSpec("probe", K.TEXT),
        "tid": FieldSpec("tid", K.UINT),
        "rc": FieldSpec("return_value", K.INT),
        "path": FieldSpec("path", K.QUOTED),
        "inode": FieldSpec("inode", K.UINT),
        "offset": FieldSpec("offset", K.UINT),
        "len": FieldSpec("length", K.UINT),
    },
    columns=(
        ("Ts", "INTEGER"), ("Probe", "TEXT"), ("Tid", "INTEGER"), ("RC", "INTEGER"),
        ("Path", "TEXT"), ("Inode", "INTEGER"), ("Offset", "INTEGER"), ("Length", "INTEGER"),
    ),
)

NET = Domain(
    name="net",
    description="Network tracing",
    slots=("tcp_connect", "tcp_accept", "tcp_close", "udp_send", "udp_recv",
           "sock_create", "sock_close"),
    counters={name: name for name in (
        "tcp_connect", "tcp_accept", "tcp_close", "udp_send", "udp_recv",
        "sock_create", "sock_close")},
    record_type=NetEvent,
    fields={
        "ts": FieldSpec("timestamp", K.UINT),
        "fn": FieldSpec("probe", K.TEXT),
        "tid": FieldSpec("tid", K.UINT),
        "comm": FieldSpec("comm", K.TRIMMED),
        "saddr": FieldSpec("src_addr", K.TRIMMED),
        "sport": FieldSpec("src_port", K.PORT),
        "daddr": FieldSpec("dst_addr", K.TRIMMED),
        "dport": FieldSpec("dst_port", K.PORT),
        "bytes": FieldSpec("bytes", K.UINT),
        "proto": FieldSpec("protocol", K.TEXT),
    },
    columns=(
        ("Ts", "INTEGER"), ("Probe", "TEXT"), ("Tid", "INTEGER"), ("Comm", "TEXT"),
        ("SrcAddr", "TEXT"), ("SrcPort", "INTEGER"), ("DstAddr", "TEXT"),
        ("DstPort", "INTEGER"), ("Bytes", "INTEGER"), ("Protocol", "TEXT"),
    ),
)

PROC = Domain(
    name="proc",
    description="Process lifecycle tracing",
    slots=("exec", "fork", "exit", "clone"),
    counters={
        "exec": "exec", "sched_process_exec": "exec",
        "fork": "fork", "sched_process_fork": "fork",
        "exit": "exit", "sched_process_exit": "exit",
        "clone": "clone",
    },
    record_type=ProcEvent,
    fields={
        "ts": FieldSpec("timestamp", K.UINT),
        "fn": FieldSpec("probe", K.TEXT),
        "pid": FieldSpec("pid", K.UINT),
        "ppid": FieldSpec("ppid", K.UINT),
        "tid": FieldSpec("tid", K.UINT),
        "comm": FieldSpec("comm", K.TRIMMED),
        "cmdline": FieldSpec("cmdline", K.TRIMMED),
        "exit_code": FieldSpec("exit_code", K.INT),
    },
    columns=(
        ("Ts", "INTEGER"), ("Probe", "TEXT"), ("Pid", "INTEGER"), ("Ppid", "INTEGER"),
        ("Tid", "INTEGER"), ("Comm", "TEXT"), ("Cmdline", "TEXT"), ("ExitCode", "INTEGER"),
    ),
)

MEM = Domain(
    name="mem",
    description="Memory tracing",
    slots=("mmap", "munmap", "brk", "page_fault"),
    counters={
        "mmap": "mmap", "do_mmap": "mmap",
        "munmap": "munmap", "do_munmap": "munmap",
        "brk": "brk", "do_brk": "brk",
        "page_fault": "page_fault", "handle_mm_fault": "page_fault",
    },
    record_type=MemEvent,
    fields={
        "ts": FieldSpec("timestamp", K.UINT),
        "fn": FieldSpec("probe", K.TEXT),
        "pid": FieldSpec("pid", K.UINT),
        "tid": FieldSpec("tid", K.UINT),
        "comm": FieldSpec("comm", K.TRIMMED),
        "addr": FieldSpec("address", K.UINT_ANY),
        "size": FieldSpec("size", K.UINT),
        "type": FieldSpec("type", K.TEXT),
    },
    columns=(
        ("Ts", "INTEGER"), ("Probe", "TEXT"), ("Pid", "INTEGER"), ("Tid", "INTEGER"),
        ("Comm", "TEXT"), ("Address", "INTEGER"), ("Size", "INTEGER"), ("Type", "TEXT"),
    ),
)

SYSCALL = Domain(
    name="syscall",
    description="System call tracing",
    slots=(),
    counters={},
    open_counters=True,
    record_type=SyscallEvent,
    fields={
        "ts": FieldSpec("timestamp", K.UINT),
        "pid": FieldSpec("pid", K.UINT),
        "tid": FieldSpec("tid", K.UINT),
        "comm": FieldSpec("comm", K.TRIMMED),
        "nr": FieldSpec("syscall_nr", K.UINT),
        "name": FieldSpec("syscall_name", K.TEXT),
        "arg0": FieldSpec("arg0", K.UINT_ANY),
        "arg1": FieldSpec("arg1", K.UINT_ANY),
        "arg2": FieldSpec("arg2", K.UINT_ANY),
        "arg3": FieldSpec("arg3", K.UINT_ANY),
        "arg4": FieldSpec("arg4", K.UINT_ANY),
        "arg5": FieldSpec("arg5", K.UINT_ANY),
        "ret": FieldSpec("return_value", K.INT),
    },
    columns=(
        ("Ts", "INTEGER"), ("Pid", "INTEGER"), ("Tid", "INTEGER"), ("Comm", "TEXT"),
        ("SyscallNr", "INTEGER"), ("SyscallName", "TEXT"),
        ("Arg0", "INTEGER"), ("Arg1", "INTEGER"), ("Arg2", "INTEGER"),
        ("Arg3", "INTEGER"), ("Arg4", "INTEGER"), ("Arg5", "INTEGER"),
        ("Ret", "INTEGER"),
    ),
)

DOMAINS: Dict[str, Domain] = {d.name: d for d in (VFS, NET, PROC, MEM, SYSCALL)}


def get_domain(name: str) -> Domain:
    try:
        return DOMAINS[name]
    except KeyError:
        raise ValueError(f"unknown domain: {name} (must be one of {', '.join(DOMAINS)})") from None


def domain_names() -> List[str]:
    return list(DOMAINS)
