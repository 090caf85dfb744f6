# tracefacts/errors.py
"""
Error types for trace replay and flow-fact extraction.

Error Hierarchy:
────────────────
┌─────────────────────────────────────────────────────────────────────┐
│  TraceAnalysisError (base)                                          │
│  ├── ProgramModelError      - Unusable program document             │
│  ├── WatchpointConflictError - Two roles at one trace address       │
│  ├── TraceSyncError         - Replay lost sync with the model       │
│  │   ├── DelaySlotMismatchError                                     │
│  │   ├── CallStackError                                             │
│  │   ├── BlockMismatchError                                         │
│  │   └── EmptyBlockChainError                                       │
│  ├── RelationGraphError     - Progress correlation failed           │
│  ├── RecorderSpecError      - Malformed recorder specification      │
│  ├── RecorderStateError     - Recorder used out of order            │
│  └── TraceSourceError       - Trace could not be produced or read   │
└─────────────────────────────────────────────────────────────────────┘

Every error is fatal: nothing in the package catches these, the command
line driver reports them and exits with a non-zero status.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Optional


@unique
class ErrorCode(Enum):
    """Stable identifiers, printed in front of the message (``TF-XXXX``)."""

    # 1000-1999: configuration / input
    BAD_PROGRAM_MODEL = 1001
    BAD_RECORDER_SPEC = 1002
    TRACE_SOURCE = 1003

    # 2000-2999: static setup
    WATCHPOINT_CONFLICT = 2001

    # 3000-3999: replay synchronisation
    DELAY_SLOT_MISMATCH = 3001
    CALLSTACK = 3002
    BLOCK_MISMATCH = 3003
    EMPTY_BLOCK_CHAIN = 3004
    RELATION_GRAPH = 3005

    # 9000-9999: internal
    INTERNAL = 9000
    RECORDER_STATE = 9001

    @property
    def tag(self) -> str:
        return f"TF-{self.value:04d}"


class TraceAnalysisError(Exception):
    """Base class of all errors raised by :mod:`tracefacts`."""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str, *, code: Optional[ErrorCode] = None) -> None:
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(f"{self.code.tag}: {message}")


class ProgramModelError(TraceAnalysisError):
    code = ErrorCode.BAD_PROGRAM_MODEL


class WatchpointConflictError(TraceAnalysisError):
    code = ErrorCode.WATCHPOINT_CONFLICT


class TraceSyncError(TraceAnalysisError):
    """The trace contradicts the program model; replay cannot continue."""


class DelaySlotMismatchError(TraceSyncError):
    code = ErrorCode.DELAY_SLOT_MISMATCH


class CallStackError(TraceSyncError):
    code = ErrorCode.CALLSTACK


class BlockMismatchError(TraceSyncError):
    code = ErrorCode.BLOCK_MISMATCH


class EmptyBlockChainError(TraceSyncError):
    code = ErrorCode.EMPTY_BLOCK_CHAIN


class RelationGraphError(TraceAnalysisError):
    code = ErrorCode.RELATION_GRAPH


class RecorderSpecError(TraceAnalysisError):
    """Raised for malformed recorder specifications.

    ``fragment`` holds the offending part of the specification string.
    """

    code = ErrorCode.BAD_RECORDER_SPEC

    def __init__(self, message: str, fragment: str = "") -> None:
        self.fragment = fragment
        super().__init__(message)


class RecorderStateError(TraceAnalysisError):
    code = ErrorCode.RECORDER_STATE


class TraceSourceError(TraceAnalysisError):
    code = ErrorCode.TRACE_SOURCE
