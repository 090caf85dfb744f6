"""One trace analysis: replay, record, export.

    model = ProgramModel.load("program.json")
    analysis = TraceAnalysis(model, TraceFile("run.trace"), TraceAnalysisConfig())
    analysis.run()
    analysis.add_to_document(model.document)
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict, Iterable, List, Optional, TextIO, Tuple

from .config import TraceAnalysisConfig
from .errors import RecorderStateError
from .events import VerboseRecorder
from .flowfacts import FlowFactExporter
from .monitor import MachineTraceMonitor, ReturnPredicate
from .program_model import ProgramModel
from .progress import ProgressTraceRecorder
from .recorder_spec import RecorderSpecItem, parse_recorder_specs
from .recorders import RecorderScheduler

_log = logging.getLogger(__name__)


class TraceAnalysis:
    """Wires the replay monitor to the recorders for one trace."""

    def __init__(
        self,
        model: ProgramModel,
        trace: Iterable[Tuple[int, int]],
        config: Optional[TraceAnalysisConfig] = None,
        *,
        recorder_specs: Optional[List[RecorderSpecItem]] = None,
        debug_stream: Optional[TextIO] = None,
        return_predicate: Optional[ReturnPredicate] = None,
    ) -> None:
        self.model = model
        self.config = config or TraceAnalysisConfig()
        for warning in self.config.validate():
            _log.warning("config: %s", warning)
        if recorder_specs is None:
            recorder_specs = parse_recorder_specs(self.config.recorders, self.config.callstring_length)

        self.monitor = MachineTraceMonitor(model, trace, self.config.trace_entry,
                                           return_predicate=return_predicate)
        if self.config.debug_events:
            self.monitor.subscribe(VerboseRecorder(debug_stream or sys.stderr))
        entry = model.by_label(self.config.analysis_entry)
        self.scheduler = RecorderScheduler(recorder_specs, entry)
        self.monitor.subscribe(self.scheduler)
        self.progress: Optional[ProgressTraceRecorder] = None
        if self.config.progress_trace:
            self.progress = ProgressTraceRecorder(model, is_machine_code=True)
            self.monitor.subscribe(self.progress)
        self.exporter: Optional[FlowFactExporter] = None

    def run(self) -> FlowFactExporter:
        _log.info("Replaying trace from %s, analysing %s",
                  self.config.trace_entry, self.config.analysis_entry)
        self.monitor.run()
        _log.info("Replayed %d instructions, %d runs of %s",
                  self.monitor.executed_instructions, self.scheduler.runs,
                  self.config.analysis_entry)
        if self.scheduler.runs == 0:
            _log.warning("Analysis entry %s was never executed", self.config.analysis_entry)
        self.exporter = FlowFactExporter(self.scheduler).export()
        return self.exporter

    def dump(self, io: Optional[TextIO] = None) -> None:
        io = io if io is not None else sys.stdout
        self.scheduler.dump(io)
        executed = ", ".join(sorted(f.name for f in self.scheduler.executed_blocks))
        io.write(f"Executed Functions: {executed}\n")
        if self.progress is not None:
            io.write("Progress trace: " + " ".join(n.name for n in self.progress.trace) + "\n")

    def add_to_document(self, document: Dict[str, Any]) -> Dict[str, Any]:
        if self.exporter is None:
            raise RecorderStateError("TraceAnalysis.run() has not been called")
        return self.exporter.add_to_document(document)
