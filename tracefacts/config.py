"""Run configuration for trace analysis."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

DEFAULT_ENTRY = "main"
DEFAULT_RECORDERS = "g:blc,f:b"
DEFAULT_SIMULATOR = "pasim"


@dataclass
class TraceAnalysisConfig:
    """Tuning knobs for one trace analysis.

    ``trace_entry`` gates the replay (nothing before its first instruction
    is looked at), ``analysis_entry`` is the function whose executions are
    recorded.  They usually coincide, but a test harness calling a measured
    function several times is analysed with ``analysis_entry`` set to it.
    """

    trace_entry: str = DEFAULT_ENTRY
    analysis_entry: Optional[str] = None
    recorders: str = DEFAULT_RECORDERS
    callstring_length: int = 0
    simulator: str = DEFAULT_SIMULATOR
    progress_trace: bool = False
    debug_events: bool = False
    dump_results: bool = False

    def __post_init__(self) -> None:
        if self.analysis_entry is None:
            self.analysis_entry = self.trace_entry

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if self.callstring_length < 0:
            warnings.append("callstring_length must be non-negative")
        if not self.recorders.strip():
            warnings.append("no recorders configured; no flow facts will be produced")
        if not self.trace_entry:
            warnings.append("trace_entry must name a function")
        return warnings
