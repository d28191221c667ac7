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


"""Implementation of `relsmith sign`."""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from relsmith.build import EXIT_CONFIG_ERROR, EXIT_SUCCESS, phase_error, report_error
from relsmith.build.phases import sign_tree
from relsmith.core.config import load_config
from relsmith.core.context import RunSettings, SignRequest
from relsmith.core.exceptions import RelsmithError
from relsmith.core.run import RunContext


def sign(
    directory: Path = typer.Argument(..., help="Directory searched recursively for RPMs"),
    key: str = typer.Option(None, "--key", "-k", help="Signing key name under the build keys directory"),
    force: bool = typer.Option(False, "--force", "-f", help="Re-sign RPMs that are already signed"),
    digest_algo: str = typer.Option(None, "--digest-algo", help="Digest algorithm passed to rpmsign"),
) -> None:
    """Sign every RPM below DIRECTORY.

    Each RPM is attempted exactly once. RPMs that already carry a signature
    are skipped unless --force is given.

    Exit codes:
      0 - Success
      1 - Configuration error
      9 - No RPM could be signed
      10 - Some RPMs could not be signed
      12 - Signing key unusable
    """
    cfg = load_config()
    signing_cfg = cfg.get("signing", {})
    with RunContext("sign", cfg) as run:
        exit_code = EXIT_SUCCESS
        if not directory.is_dir():
            exit_code = phase_error(run, "sign", f"Could not find directory {directory}", EXIT_CONFIG_ERROR)
        else:
            request = SignRequest(
                artifact_root=directory.absolute(),
                key=key or signing_cfg.get("default_key", "dev"),
                force=force,
                digest_algorithm=digest_algo or signing_cfg.get("digest_algorithm", "sha256"),
            )
            run.log_event(
                {
                    "event": "sign.start",
                    "artifact_root": str(request.artifact_root),
                    "key": request.key,
                    "force": request.force,
                }
            )
            try:
                settings = RunSettings.from_sources(cfg)
                sign_tree(request, settings, cfg, run=run)
            except RelsmithError as e:
                exit_code = report_error(run, "sign", e)
            else:
                run.write_summary(status="success", exit_code=exit_code)

    sys.exit(exit_code)
