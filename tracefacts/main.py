#!/usr/bin/env python3
"""tracefacts/main.py — command line driver.

Usage examples
--------------
    # Replay a recorded trace and write the program document with flow facts
    python -m tracefacts analyze program.json --trace run.trace -o program.facts.json

    # Run the simulator on the binary and record loop bounds per function
    python -m tracefacts analyze program.json --binary prog.elf --recorders f:l

    # Describe the recorder specification language
    python -m tracefacts recorder-help

Exit codes
----------
    0   Success.
    2   Fatal analysis, configuration or infrastructure error.  Nothing is
        written in this case.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence, TextIO

from . import __version__
from .analysis import TraceAnalysis
from .config import DEFAULT_ENTRY, DEFAULT_RECORDERS, DEFAULT_SIMULATOR, TraceAnalysisConfig
from .errors import TraceAnalysisError
from .program_model import ProgramModel
from .recorder_spec import recorder_spec_help
from .trace_source import SimulatorTrace, TraceFile

_log = logging.getLogger("tracefacts")

EXIT_OK: int = 0
EXIT_FATAL: int = 2


def _configure_logging(verbosity: int) -> None:
    """Set up the ``tracefacts`` logger.

    0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("tracefacts")
    root.setLevel(level)
    # repeated calls (tests, embedding) replace the handler
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


# ===========================================================================
# Sub-commands
# ===========================================================================

def cmd_analyze(args: argparse.Namespace) -> int:
    config = TraceAnalysisConfig(
        trace_entry=args.trace_entry,
        analysis_entry=args.analysis_entry,
        recorders=args.recorders,
        callstring_length=args.callstring_length,
        simulator=args.pasim_command,
        progress_trace=args.progress_trace,
        debug_events=args.debug_events,
        dump_results=args.dump_results,
    )
    model = ProgramModel.load(args.program)
    if args.trace:
        trace = TraceFile(args.trace)
    else:
        trace = SimulatorTrace(args.binary, config.simulator)

    analysis = TraceAnalysis(model, trace, config)
    analysis.run()
    if config.dump_results:
        analysis.dump(sys.stderr)

    document = analysis.add_to_document(model.document)
    out = _open_output(args.output)
    try:
        json.dump(document, out, indent=2)
        out.write("\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


def cmd_recorder_help(args: argparse.Namespace) -> int:
    sys.stdout.write(recorder_spec_help() + "\n")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tracefacts",
        description="Derive flow facts (block frequencies, loop bounds, call "
                    "targets) from machine-code execution traces.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase log verbosity (-v info, -vv debug).")
    subparsers = parser.add_subparsers(title="commands")

    p_analyze = subparsers.add_parser(
        "analyze",
        help="Replay a trace and add flow facts to the program document.",
    )
    p_analyze.add_argument("program", help="Program document (JSON).")
    source = p_analyze.add_mutually_exclusive_group(required=True)
    source.add_argument("--trace", metavar="FILE",
                        help="Recorded trace file ('<hex pc> <cycles>' per line, optionally .gz).")
    source.add_argument("--binary", metavar="ELF",
                        help="Binary to run in the simulator to produce the trace.")
    p_analyze.add_argument("--pasim-command", default=DEFAULT_SIMULATOR, metavar="CMD",
                           help=f"Simulator executable (default: {DEFAULT_SIMULATOR}).")
    p_analyze.add_argument("--trace-entry", default=DEFAULT_ENTRY, metavar="FUNCTION",
                           help=f"Program entry of the trace (default: {DEFAULT_ENTRY}).")
    p_analyze.add_argument("-e", "--analysis-entry", default=None, metavar="FUNCTION",
                           help="Function to analyse (default: the trace entry).")
    p_analyze.add_argument("--recorders", default=DEFAULT_RECORDERS, metavar="SPEC",
                           help=f"Recorder specification (default: {DEFAULT_RECORDERS}); "
                                "see 'tracefacts recorder-help'.")
    p_analyze.add_argument("--callstring-length", type=int, default=0, metavar="N",
                           help="Default callstring length (default: 0).")
    p_analyze.add_argument("--progress-trace", action="store_true",
                           help="Correlate the trace with the relation graphs.")
    p_analyze.add_argument("--debug-events", action="store_true",
                           help="Print every replay event to stderr.")
    p_analyze.add_argument("--dump-results", action="store_true",
                           help="Print all recorder results to stderr.")
    p_analyze.add_argument("-o", "--output", default=None, metavar="FILE",
                           help='Output document ("-" or omit for stdout).')
    p_analyze.set_defaults(func=cmd_analyze)

    p_help = subparsers.add_parser("recorder-help",
                                   help="Describe the recorder specification language.")
    p_help.set_defaults(func=cmd_recorder_help)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_FATAL

    try:
        return args.func(args)
    except TraceAnalysisError as exc:
        _log.error("%s", exc)
        return EXIT_FATAL
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
