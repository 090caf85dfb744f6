"""Sources of ``(address, cycles)`` trace records.

The simulator writes one line per executed instruction: the program
counter in hex followed by the cycle counter in decimal::

    1000 0
    1004 1
    1008 3

Both sources below are lazy, single pass iterables.
"""

from __future__ import annotations

import gzip
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from .errors import TraceSourceError

_log = logging.getLogger(__name__)

TraceRecord = Tuple[int, int]


def parse_trace_line(line: str) -> Optional[TraceRecord]:
    """Parse one trace line; blank lines yield ``None``."""
    parts = line.split(None, 2)
    if not parts:
        return None
    if len(parts) < 2:
        raise TraceSourceError(f"Malformed trace line {line.rstrip()!r}")
    pc, cycles = parts[0], parts[1]
    try:
        return int(pc, 16), int(cycles)
    except ValueError:
        raise TraceSourceError(f"Malformed trace line {line.rstrip()!r}") from None


def _parse_lines(lines) -> Iterator[TraceRecord]:
    for line in lines:
        record = parse_trace_line(line)
        if record is not None:
            yield record


class TraceFile:
    """A recorded trace (plain text or gzip compressed)."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def __iter__(self) -> Iterator[TraceRecord]:
        if not self.path.exists():
            raise TraceSourceError(f"Trace file {self.path} not found")
        opener = gzip.open if self.path.suffix == ".gz" else open
        with opener(self.path, "rt", encoding="utf-8") as fh:
            yield from _parse_lines(fh)


class SimulatorTrace:
    """Runs the simulator on *binary* and yields its instruction trace."""

    def __init__(self, binary: Union[str, Path], command: str = "pasim",
                 extra_args: Sequence[str] = ()) -> None:
        self.binary = str(binary)
        self.command = command
        self.extra_args = list(extra_args)

    def argv(self) -> List[str]:
        executable = shutil.which(self.command)
        if executable is None:
            raise TraceSourceError(f"Executable {self.command} not found")
        return [executable, "-q", "--debug", "0", "--debug-fmt", "trace",
                "-b", self.binary, *self.extra_args]

    def __iter__(self) -> Iterator[TraceRecord]:
        argv = self.argv()
        _log.info("Running %s", " ".join(argv))
        # the trace is written to stderr, program output is discarded
        proc = subprocess.Popen(argv, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE,
                                text=True, bufsize=1 << 16)
        try:
            yield from _parse_lines(proc.stderr)
        finally:
            if proc.poll() is None:
                proc.terminate()
            proc.stderr.close()
            status = proc.wait()
            _log.debug("%s exited with status %s", self.command, status)
        # only reached when the simulator closed the trace itself
        if status != 0:
            _log.warning("%s exited with status %s; the trace may be truncated",
                         self.command, status)
