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


"""Implementation of `relsmith check-published`.

Reports, for every target, whether its local version is already published
in the remote index and whether a new git release tag is owed. Nothing is
built or fetched. Errors are collected per target and reported together at
the end.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.table import Table

from relsmith.build import EXIT_BUILD_FAILED, EXIT_SUCCESS, phase_error, phase_warning, report_error
from relsmith.build.phases import load_rules, resolve_dependency_file, setup_index
from relsmith.commands.build import resolve_target_paths
from relsmith.core.config import load_config
from relsmith.core.context import RunSettings
from relsmith.core.exceptions import RelsmithError
from relsmith.core.run import RunContext, activity
from relsmith.gitinfo import read_tag_info
from relsmith.planning.decision import decide
from relsmith.planning.targets import detect_target
from relsmith.rpm.spec import DescriptorError, load_package_metadata
from relsmith.rpm.version import tag_rules_from_config

if TYPE_CHECKING:
    from relsmith.planning.decision import RebuildDecision


def _tag_column(decision: RebuildDecision) -> str:
    status = decision.tag_status
    if status is None:
        return "-"
    if status.error:
        return f"error: {status.error}"
    if status.release_tag_required:
        return "tag required"
    if status.release_unverified:
        return f"{status.latest_tag} (release unverified)"
    return status.latest_tag or "-"


def check_published(
    targets: list[str] = typer.Argument(None, help="Target directories or globs (default: configured targets)"),
    require_index: bool = typer.Option(False, "--require-index", help="Fail if the remote index is unavailable"),
    dependency_file: Path = typer.Option(None, "--dependency-file", help="Dependency rules YAML file"),
) -> None:
    """Check which targets are published and which need a release tag.

    Exit codes:
      0 - Every target was checked
      1 - Configuration error
      7 - One or more targets could not be checked
      13 - Remote index required but unavailable
    """
    cfg = load_config()
    tags_cfg = cfg.get("tags", {})
    tag_rules = tag_rules_from_config(tags_cfg.get("legacy_prefixes", []), tags_cfg.get("legacy_suffixes", []))

    with RunContext("check-published", cfg) as run:
        exit_code = EXIT_SUCCESS
        try:
            settings = RunSettings.from_sources(cfg)
            rules = load_rules(resolve_dependency_file(cfg, dependency_file), required=False, run=run)
            client = setup_index(settings, cfg, require=require_index, run=run)
        except RelsmithError as e:
            exit_code = report_error(run, "check", e)
        else:
            table = Table(title="Published package status")
            table.add_column("Target")
            table.add_column("Package")
            table.add_column("Version")
            table.add_column("Decision")
            table.add_column("Git tag")

            errors: dict[str, str] = {}
            lookup = client.available if client is not None else None
            for path in resolve_target_paths(targets, cfg):
                target = detect_target(path)
                if not target.buildable:
                    errors[str(path)] = "no metadata.json or Rakefile"
                    continue
                try:
                    metadata = load_package_metadata(path, rules)
                    decision = decide(
                        target,
                        rules,
                        lookup,
                        settings,
                        fetch=False,
                        tag_info=read_tag_info(path),
                        metadata=metadata,
                        tag_rules=tag_rules,
                    )
                except (DescriptorError, OSError) as e:
                    errors[str(path)] = str(e)
                    continue

                table.add_row(
                    target.name,
                    metadata.name,
                    f"{metadata.version}-{metadata.release}",
                    decision.reason.value,
                    _tag_column(decision),
                )
                for note in decision.lookup_errors:
                    phase_warning(run, "check", f"{target.name}: {note}")
                run.log_event({"event": "check.target", "target": str(path), **decision.to_dict()})

            Console(file=sys.__stdout__).print(table)
            run.write_summary(errors=errors)

            if errors:
                for target_path, error in sorted(errors.items()):
                    activity("check", f"  {target_path}: {error}")
                exit_code = phase_error(
                    run,
                    "check",
                    f"{len(errors)} target(s) could not be checked",
                    EXIT_BUILD_FAILED,
                    errors=errors,
                )

    sys.exit(exit_code)
