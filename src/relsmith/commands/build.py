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


"""Implementation of `relsmith build` and `relsmith single`.

Builds a release set: every target is decided, built or fetched, and
recorded in parallel; once the pass has finished the recorded RPMs are
signed and, with --rpm-dir, copied into a repository tree.
"""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from relsmith.build import EXIT_SUCCESS, TargetStatus, report_error
from relsmith.build.phases import run_release_pipeline
from relsmith.core.config import load_config
from relsmith.core.context import BuildRequest, RunSettings
from relsmith.core.exceptions import BuildFailedError, RelsmithError
from relsmith.core.run import RunContext, activity
from relsmith.planning.targets import expand_target_paths


def resolve_target_paths(patterns: list[str] | None, cfg: dict) -> tuple[Path, ...]:
    """Expand CLI target arguments, falling back to the configured globs."""
    if not patterns:
        patterns = list(cfg.get("build", {}).get("default_targets", []))
    return tuple(expand_target_paths(patterns))


def run_build(
    run: RunContext,
    cfg: dict,
    request: BuildRequest,
    settings: RunSettings,
    phase: str = "build",
) -> int:
    """Run the release pipeline and return an exit code."""
    run.log_event(
        {
            "event": f"{phase}.start",
            "targets": [str(t) for t in request.targets],
            "fetch": request.fetch,
            "key": request.key,
            "rpm_dir": str(request.rpm_dir) if request.rpm_dir else None,
            "concurrency": settings.concurrency,
        }
    )
    try:
        result = run_release_pipeline(request, settings, cfg, run=run)
    except BuildFailedError as e:
        for target, error in sorted(e.failures.items()):
            activity(phase, f"  {target}: {error}")
        return report_error(run, phase, e, failures=e.failures)
    except RelsmithError as e:
        return report_error(run, phase, e)

    activity(
        "report",
        ", ".join(f"{len(result.by_status(s))} {s.value}" for s in TargetStatus if s is not TargetStatus.FAILED),
    )
    run.write_summary(status="success", exit_code=EXIT_SUCCESS)
    return EXIT_SUCCESS


def build(
    targets: list[str] = typer.Argument(None, help="Target directories or globs (default: configured targets)"),
    key: str = typer.Option(None, "--key", "-k", help="Signing key name under the build keys directory"),
    no_sign: bool = typer.Option(False, "--no-sign", help="Do not sign the built RPMs"),
    fetch: bool = typer.Option(None, "--fetch/--no-fetch", help="Fetch published RPMs instead of rebuilding"),
    rpm_dir: Path = typer.Option(None, "--rpm-dir", help="Populate this repository tree after the build"),
    require_index: bool = typer.Option(False, "--require-index", help="Fail if the remote index is unavailable"),
    dependency_file: Path = typer.Option(None, "--dependency-file", help="Dependency rules YAML file"),
) -> None:
    """Build, sign and optionally publish a release set.

    Exit codes:
      0 - Success
      1 - Configuration error
      7 - One or more targets failed to build
      9 - Signing failed for every RPM
      10 - Signing failed for some RPMs
      11 - Dependency rules missing
      12 - Signing key unusable
      13 - Remote index required but unavailable
      14 - Repository population failed
    """
    cfg = load_config()
    with RunContext("build", cfg) as run:
        try:
            settings = RunSettings.from_sources(cfg)
        except RelsmithError as e:
            exit_code = report_error(run, "build", e)
        else:
            request = BuildRequest(
                targets=resolve_target_paths(targets, cfg),
                fetch=settings.should_fetch() if fetch is None else fetch,
                require_index=require_index,
                dependency_file=dependency_file,
                rpm_dir=rpm_dir.absolute() if rpm_dir else None,
                key=None if no_sign else (key or cfg.get("signing", {}).get("default_key", "dev")),
            )
            exit_code = run_build(run, cfg, request, settings)

    sys.exit(exit_code)


def single(
    path: Path = typer.Argument(..., help="Target directory to build"),
    fetch: bool = typer.Option(None, "--fetch/--no-fetch", help="Fetch a published RPM instead of rebuilding"),
) -> None:
    """Build one target without signing it.

    Uses the same decision and build procedure as `relsmith build`.
    """
    cfg = load_config()
    with RunContext("single", cfg) as run:
        try:
            settings = RunSettings.from_sources(cfg)
        except RelsmithError as e:
            exit_code = report_error(run, "single", e)
        else:
            request = BuildRequest(
                targets=(path.expanduser().absolute(),),
                fetch=settings.should_fetch() if fetch is None else fetch,
            )
            exit_code = run_build(run, cfg, request, settings, phase="single")

    sys.exit(exit_code)
