"""
tracefacts — Flow Facts from Machine-Code Execution Traces
==========================================================

Replays an instruction trace (``(address, cycles)`` records from a cycle
accurate simulator) against a machine-code program model and derives flow
facts for WCET analysis: block frequencies, infeasible blocks, loop bounds,
indirect call targets and observed execution times.

Modules
-------
program_model
    Functions, blocks, instructions and relation graphs of the program.
watchpoints
    Address → role table driving the replay.
monitor
    The replay engine; publishes function/block/loop/ret/eof events.
events
    Event bus and the observer interface.
recorder_spec
    Parser for recorder specifications such as ``g:blc,f:b/1``.
recorders
    Run scheduler and per-scope recorders.
frequency
    Cross-run accumulation of frequencies, cycles and call targets.
flowfacts
    Export of recorder results as flow facts and timing entries.
progress
    Correlation of the replay with source/machine relation graphs.
trace_source
    Trace files and simulator subprocesses as trace sources.
analysis
    One-shot driver wiring all of the above.

Quick start
-----------
>>> from tracefacts import ProgramModel, TraceAnalysis, TraceFile
>>> model = ProgramModel.load("program.json")
>>> analysis = TraceAnalysis(model, TraceFile("run.trace"))
>>> analysis.run()
>>> document = analysis.add_to_document(model.document)
"""

from __future__ import annotations

import importlib
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__all__: List[str] = []          # populated incrementally below

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_import)
# ---------------------------------------------------------------------------

_MODULES = {
    "errors": [
        "ErrorCode",
        "TraceAnalysisError",
        "ProgramModelError",
        "WatchpointConflictError",
        "TraceSyncError",
        "RecorderSpecError",
        "RecorderStateError",
    ],
    "config": [
        "TraceAnalysisConfig",
    ],
    "intervals": [
        "Interval",
    ],
    "callstring": [
        "ContextRef",
        "bounded_suffix",
    ],
    "program_model": [
        "Architecture",
        "Instruction",
        "Block",
        "Function",
        "ProgramModel",
    ],
    "watchpoints": [
        "WatchpointTable",
    ],
    "events": [
        "EventBus",
        "TraceObserver",
        "VerboseRecorder",
    ],
    "monitor": [
        "MachineTraceMonitor",
        "FallthroughReturnHeuristic",
    ],
    "recorder_spec": [
        "RecorderSpec",
        "RecorderSpecItem",
        "parse_recorder_specs",
    ],
    "frequency": [
        "FrequencyRecord",
    ],
    "recorders": [
        "RecorderScheduler",
        "ScopeRecorder",
    ],
    "flowfacts": [
        "FlowFact",
        "TimingEntry",
        "FlowFactExporter",
    ],
    "progress": [
        "ProgressTraceRecorder",
    ],
    "trace_source": [
        "TraceFile",
        "SimulatorTrace",
    ],
    "analysis": [
        "TraceAnalysis",
    ],
}

# ---------------------------------------------------------------------------
# Import helper
# ---------------------------------------------------------------------------

def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"tracefacts: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            raise AttributeError(f"tracefacts.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, obj)
        __all__.append(name)

    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _MODULES.items():
    _import_names(_mod, _names)

del _mod, _names

__all__.append("__version__")

if TYPE_CHECKING:
    from .errors import (
        ErrorCode as ErrorCode,
        TraceAnalysisError as TraceAnalysisError,
        ProgramModelError as ProgramModelError,
        WatchpointConflictError as WatchpointConflictError,
        TraceSyncError as TraceSyncError,
        RecorderSpecError as RecorderSpecError,
        RecorderStateError as RecorderStateError,
    )
    from .config import TraceAnalysisConfig as TraceAnalysisConfig
    from .intervals import Interval as Interval
    from .callstring import ContextRef as ContextRef, bounded_suffix as bounded_suffix
    from .program_model import (
        Architecture as Architecture,
        Instruction as Instruction,
        Block as Block,
        Function as Function,
        ProgramModel as ProgramModel,
    )
    from .watchpoints import WatchpointTable as WatchpointTable
    from .events import (
        EventBus as EventBus,
        TraceObserver as TraceObserver,
        VerboseRecorder as VerboseRecorder,
    )
    from .monitor import (
        MachineTraceMonitor as MachineTraceMonitor,
        FallthroughReturnHeuristic as FallthroughReturnHeuristic,
    )
    from .recorder_spec import (
        RecorderSpec as RecorderSpec,
        RecorderSpecItem as RecorderSpecItem,
        parse_recorder_specs as parse_recorder_specs,
    )
    from .frequency import FrequencyRecord as FrequencyRecord
    from .recorders import RecorderScheduler as RecorderScheduler, ScopeRecorder as ScopeRecorder
    from .flowfacts import (
        FlowFact as FlowFact,
        TimingEntry as TimingEntry,
        FlowFactExporter as FlowFactExporter,
    )
    from .analysis import TraceAnalysis as TraceAnalysis
    from .progress import ProgressTraceRecorder as ProgressTraceRecorder
    from .trace_source import TraceFile as TraceFile, SimulatorTrace as SimulatorTrace
