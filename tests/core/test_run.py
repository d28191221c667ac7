# This file is part of Relsmith, a tool for building and signing RPM release sets.
#
# Copyright 2025 The Relsmith Authors.
#
# SPDX-License-Identifier: GPL-3.0-only
#
# Relsmith is free software: you can redistribute it and/or modify it under
# the terms of the GNU General Public License version 3, as published by the
# Free Software Foundation.
#
# Relsmith is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranties of MERCHANTABILITY,
# SATISFACTORY QUALITY, or FITNESS FOR A PARTICULAR PURPOSE. See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU General Public License along with
# Relsmith. If not, see <http://www.gnu.org/licenses/>.


from __future__ import annotations

import json
import re
import sys
from pathlib import Path

import pytest

from relsmith.core.config import load_config
from relsmith.core.run import RunContext


class TestRunContext:
    """Tests for RunContext class."""

    def test_creates_run_directory(self, temp_home: Path, mock_config: Path) -> None:
        with RunContext("test") as ctx:
            assert ctx.run_path.is_dir()
            assert ctx.logs_path.is_dir()

    def test_run_id_format(self, temp_home: Path, mock_config: Path) -> None:
        with RunContext("mycommand") as ctx:
            # Format: YYYYMMDDTHHMMSSZ-<command>-<shortid>
            assert re.match(r"^\d{8}T\d{6}Z-mycommand-[a-f0-9]{8}$", ctx.run_id)

    def test_runs_root_from_config(self, temp_home: Path, mock_config: Path) -> None:
        """Test that runs are created below the configured runs_root."""
        with RunContext("test") as ctx:
            assert ctx.run_path.parent == (temp_home / ".cache" / "relsmith" / "runs").resolve()

    def test_captures_stdout_and_stderr(self, temp_home: Path, mock_config: Path) -> None:
        with RunContext("test") as ctx:
            print("test output")
            print("error output", file=sys.stderr)

        assert "test output" in (ctx.logs_path / "stdout.log").read_text()
        assert "error output" in (ctx.logs_path / "stderr.log").read_text()

    def test_events_jsonl(self, temp_home: Path, mock_config: Path) -> None:
        with RunContext("test") as ctx:
            ctx.log_event({"event": "custom", "data": "value"})

        lines = (ctx.logs_path / "events.jsonl").read_text().strip().splitlines()
        events = [json.loads(line) for line in lines]
        assert [e["event"] for e in events] == ["run.start", "custom", "run.end"]
        assert all("timestamp" in e for e in events)

    def test_summary_success(self, temp_home: Path, mock_config: Path) -> None:
        with RunContext("test") as ctx:
            ctx.write_summary(targets=3)

        summary = json.loads((ctx.run_path / "summary.json").read_text())
        assert summary["status"] == "success"
        assert summary["targets"] == 3
        assert summary["command"] == "test"

    def test_failed_status_preserved(self, temp_home: Path, mock_config: Path) -> None:
        """Test that a failed status written during the run survives exit."""
        with RunContext("test") as ctx:
            ctx.write_summary(status="failed", exit_code=7)

        summary = json.loads((ctx.run_path / "summary.json").read_text())
        assert summary["status"] == "failed"

    def test_exception_marks_failure(self, temp_home: Path, mock_config: Path) -> None:
        with pytest.raises(RuntimeError), RunContext("test") as ctx:
            raise RuntimeError("boom")

        summary = json.loads((ctx.run_path / "summary.json").read_text())
        assert summary["status"] == "failed"
        assert summary["error"] == "boom"

    def test_system_exit_zero_is_success(self, temp_home: Path, mock_config: Path) -> None:
        with pytest.raises(SystemExit), RunContext("test") as ctx:
            sys.exit(0)

        summary = json.loads((ctx.run_path / "summary.json").read_text())
        assert summary["status"] == "success"

    def test_restores_streams(self, temp_home: Path, mock_config: Path) -> None:
        original = sys.stdout
        with RunContext("test"):
            assert sys.stdout is not original
        assert sys.stdout is original

    def test_accepts_loaded_config(self, temp_home: Path, mock_config: Path) -> None:
        cfg = load_config()
        cfg["paths"]["runs_root"] = str(temp_home / "elsewhere")
        with RunContext("test", cfg) as ctx:
            assert ctx.run_path.parent == (temp_home / "elsewhere").resolve()
