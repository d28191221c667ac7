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


"""Implementation of `relsmith clean` and `relsmith clobber`.

Runs the configured housekeeping command in every target directory in
parallel. Unlike a build pass, the sweep stops at the first failing
directory and cancels work that has not started yet.
"""

from __future__ import annotations

import sys

import typer

from relsmith.build import EXIT_SUCCESS, report_error
from relsmith.build.housekeeping import sweep
from relsmith.build.procedures import DEFAULT_COMMAND_TIMEOUT
from relsmith.commands.build import resolve_target_paths
from relsmith.core.config import load_config
from relsmith.core.context import HousekeepingRequest, RunSettings
from relsmith.core.exceptions import HousekeepingError, RelsmithError
from relsmith.core.run import RunContext, activity


def run_housekeeping(run: RunContext, cfg: dict, request: HousekeepingRequest, phase: str) -> int:
    """Sweep every requested directory and return an exit code."""
    try:
        settings = RunSettings.from_sources(cfg)
    except RelsmithError as e:
        return report_error(run, phase, e)

    run.log_event(
        {
            "event": f"{phase}.start",
            "command": list(request.command),
            "directories": [str(d) for d in request.directories],
        }
    )
    try:
        done = sweep(
            request.directories,
            request.command,
            settings,
            name=phase,
            log_root=run.logs_path / phase,
            timeout=int(cfg.get("build", {}).get("command_timeout", DEFAULT_COMMAND_TIMEOUT)),
        )
    except HousekeepingError as e:
        for name in e.cancelled:
            activity(phase, f"[cancelled] {name}")
        return report_error(run, phase, e, failed=e.failed, cancelled=e.cancelled)

    activity("report", f"{phase}: {len(done)} directories done")
    run.write_summary(status="success", exit_code=EXIT_SUCCESS, swept=[str(d) for d in done])
    return EXIT_SUCCESS


def _housekeeping_command(name: str, targets: list[str] | None) -> None:
    cfg = load_config()
    command = tuple(cfg.get("build", {}).get(f"{name}_command", ["rake", name]))
    with RunContext(name, cfg) as run:
        request = HousekeepingRequest(directories=resolve_target_paths(targets, cfg), command=command)
        exit_code = run_housekeeping(run, cfg, request, name)
    sys.exit(exit_code)


def clean(
    targets: list[str] = typer.Argument(None, help="Target directories or globs (default: configured targets)"),
) -> None:
    """Run the clean command in every target directory.

    Exit codes:
      0 - Success
      1 - Configuration error
      8 - A directory failed; remaining work was cancelled
    """
    _housekeeping_command("clean", targets)


def clobber(
    targets: list[str] = typer.Argument(None, help="Target directories or globs (default: configured targets)"),
) -> None:
    """Run the clobber command in every target directory.

    Exit codes:
      0 - Success
      1 - Configuration error
      8 - A directory failed; remaining work was cancelled
    """
    _housekeeping_command("clobber", targets)
