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


"""Implementation of `relsmith populate`."""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from relsmith.build import EXIT_SUCCESS, report_error
from relsmith.build.phases import populate_repository, resolve_dependency_file
from relsmith.core.config import load_config
from relsmith.core.context import RunSettings
from relsmith.core.exceptions import RelsmithError
from relsmith.core.run import RunContext


def populate(
    rpm_dir: Path = typer.Argument(..., help="Repository tree to populate (RPMs go to <rpm_dir>/<arch>)"),
    src_dir: Path = typer.Option(Path("."), "--src-dir", help="Directory searched for build records"),
    dependency_file: Path = typer.Option(None, "--dependency-file", help="Dependency rules YAML file"),
) -> None:
    """Copy the RPMs named in build records into a repository tree.

    Source RPMs go to the sibling SRPMS directory. Unsigned source RPMs are
    skipped for targets whose binary RPMs are signed.

    Exit codes:
      0 - Success
      1 - Configuration error
      11 - Dependency rules missing
      14 - No records, or a recorded file is missing
    """
    cfg = load_config()
    with RunContext("populate", cfg) as run:
        exit_code = EXIT_SUCCESS
        try:
            settings = RunSettings.from_sources(cfg)
            populate_repository(
                rpm_dir.absolute(),
                src_dir.absolute(),
                resolve_dependency_file(cfg, dependency_file),
                settings,
                run=run,
            )
        except RelsmithError as e:
            exit_code = report_error(run, "populate", e)
        else:
            run.write_summary(status="success", exit_code=exit_code)

    sys.exit(exit_code)
