# tests/test_trace_source.py
"""
Tests for trace files and the simulator trace source.
"""

import gzip
import logging
import os
import sys

import pytest

from tracefacts.errors import TraceSourceError
from tracefacts.trace_source import SimulatorTrace, TraceFile, parse_trace_line


class TestParseTraceLine:

    def test_hex_pc_decimal_cycles(self):
        assert parse_trace_line("1000 0\n") == (0x1000, 0)
        assert parse_trace_line("  1a4  17  ") == (0x1a4, 17)

    def test_blank(self):
        assert parse_trace_line("\n") is None

    @pytest.mark.parametrize("line", ["1000", "xyz 1", "1000 0x10"])
    def test_malformed(self, line):
        with pytest.raises(TraceSourceError):
            parse_trace_line(line)


class TestTraceFile:

    def test_plain(self, tmp_path):
        path = tmp_path / "run.trace"
        path.write_text("100 0\n\n104 1\n", encoding="utf-8")
        assert list(TraceFile(path)) == [(0x100, 0), (0x104, 1)]

    def test_gzip(self, tmp_path):
        path = tmp_path / "run.trace.gz"
        with gzip.open(path, "wt", encoding="utf-8") as fh:
            fh.write("100 0\n104 3\n")
        assert list(TraceFile(path)) == [(0x100, 0), (0x104, 3)]

    def test_missing(self, tmp_path):
        with pytest.raises(TraceSourceError):
            list(TraceFile(tmp_path / "missing.trace"))


class TestSimulatorTrace:

    def test_missing_executable(self):
        source = SimulatorTrace("prog.elf", command="no-such-simulator-xyz")
        with pytest.raises(TraceSourceError) as excinfo:
            source.argv()
        assert "not found" in str(excinfo.value)

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    def test_reads_trace_from_stderr(self, tmp_path):
        script = tmp_path / "fakesim"
        script.write_text(
            "#!/bin/sh\n"
            "echo 'program output'\n"
            "echo '100 0' 1>&2\n"
            "echo '104 2' 1>&2\n",
            encoding="utf-8",
        )
        os.chmod(script, 0o755)
        source = SimulatorTrace(tmp_path / "prog.elf", command=str(script))
        argv = source.argv()
        assert argv[1:] == ["-q", "--debug", "0", "--debug-fmt", "trace",
                            "-b", str(tmp_path / "prog.elf")]
        assert list(source) == [(0x100, 0), (0x104, 2)]

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    def test_failing_simulator_warns(self, tmp_path, caplog):
        script = tmp_path / "fakesim"
        script.write_text(
            "#!/bin/sh\n"
            "echo '100 0' 1>&2\n"
            "exit 3\n",
            encoding="utf-8",
        )
        os.chmod(script, 0o755)
        source = SimulatorTrace(tmp_path / "prog.elf", command=str(script))
        with caplog.at_level(logging.WARNING, logger="tracefacts.trace_source"):
            assert list(source) == [(0x100, 0)]
        assert "status 3" in caplog.text

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    def test_clean_exit_does_not_warn(self, tmp_path, caplog):
        script = tmp_path / "fakesim"
        script.write_text("#!/bin/sh\necho '100 0' 1>&2\n", encoding="utf-8")
        os.chmod(script, 0o755)
        source = SimulatorTrace(tmp_path / "prog.elf", command=str(script))
        with caplog.at_level(logging.WARNING, logger="tracefacts.trace_source"):
            list(source)
        assert caplog.text == ""
