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

"""Local build procedures run inside a target directory.

Every command runs with an explicit ``cwd`` and captures its output to log
files. Build-file targets get a single recovery attempt: the recovery
command is run and the build repeated under an environment with the
toolchain variables stripped, which clears state a previous toolchain
invocation may have left behind.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from relsmith.planning.targets import BuildStrategy, BuildTarget

logger = logging.getLogger(__name__)

# Variables and prefixes that carry toolchain state between invocations.
TOOLCHAIN_ENV_PREFIXES: tuple[str, ...] = ("BUNDLE_", "BUNDLER_", "GEM_", "RUBYOPT", "RUBYLIB")

DEFAULT_COMMAND_TIMEOUT = 3600


@dataclass(frozen=True)
class BuildCommands:
    """Commands used to build, recover and clean targets."""

    module: tuple[str, ...] = ("rake", "pkg:rpm")
    build_file: tuple[str, ...] = ("rake", "pkg:rpm")
    recovery: tuple[str, ...] = ("bundle", "install", "--with", "development")
    timeout: int = DEFAULT_COMMAND_TIMEOUT

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> BuildCommands:
        build_cfg = cfg.get("build", {})
        return cls(
            module=tuple(build_cfg.get("module_command") or cls.module),
            build_file=tuple(build_cfg.get("build_file_command") or cls.build_file),
            recovery=tuple(build_cfg.get("recovery_command") or cls.recovery),
            timeout=int(build_cfg.get("command_timeout", DEFAULT_COMMAND_TIMEOUT)),
        )


@dataclass
class CommandResult:
    """Outcome of one external command."""

    command: list[str]
    returncode: int | None = None
    stdout_log: Path | None = None
    stderr_log: Path | None = None
    error: str = ""
    attempts: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.error

    def describe(self) -> str:
        if self.error:
            return self.error
        where = f" (see {self.stderr_log})" if self.stderr_log else ""
        return f"'{' '.join(self.command)}' exited with code {self.returncode}{where}"


def clean_toolchain_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a copy of the environment without toolchain state variables."""
    env = dict(os.environ if environ is None else environ)
    return {k: v for k, v in env.items() if not k.startswith(TOOLCHAIN_ENV_PREFIXES)}


def run_command(
    command: Sequence[str],
    cwd: Path,
    log_dir: Path,
    name: str,
    timeout: int = DEFAULT_COMMAND_TIMEOUT,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run a command in ``cwd`` with output captured to ``log_dir``.

    Never raises for command failures; the result carries the outcome.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    stdout_log = log_dir / f"{name}.stdout.log"
    stderr_log = log_dir / f"{name}.stderr.log"
    result = CommandResult(command=list(command), stdout_log=stdout_log, stderr_log=stderr_log)

    try:
        with stdout_log.open("w", encoding="utf-8") as stdout_f, stderr_log.open(
            "w", encoding="utf-8"
        ) as stderr_f:
            proc = subprocess.run(
                list(command),
                cwd=cwd,
                stdout=stdout_f,
                stderr=stderr_f,
                text=True,
                timeout=timeout,
                env=dict(env) if env is not None else None,
                check=False,
            )
        result.returncode = proc.returncode
    except subprocess.TimeoutExpired:
        result.error = f"'{' '.join(command)}' timed out after {timeout} seconds"
    except OSError as e:
        result.error = f"Could not run '{' '.join(command)}': {e}"

    return result


def run_local_build(
    target: BuildTarget,
    commands: BuildCommands,
    log_dir: Path,
    environ: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run the target's local build procedure in its own directory.

    Descriptor targets get one attempt. Build-file targets get one recovery
    attempt after a failure.
    """
    if target.strategy is BuildStrategy.DESCRIPTOR:
        result = run_command(commands.module, target.path, log_dir, "build", commands.timeout, env=environ)
        result.attempts.append("build")
        return result

    first = run_command(commands.build_file, target.path, log_dir, "build", commands.timeout, env=environ)
    first.attempts.append("build")
    if first.ok:
        return first

    logger.warning("Build of %s failed (%s); retrying with a clean toolchain", target.name, first.describe())
    env = clean_toolchain_env(environ)
    recovery = run_command(commands.recovery, target.path, log_dir, "recovery", commands.timeout, env=env)
    if not recovery.ok:
        recovery.attempts = [*first.attempts, "recovery"]
        recovery.error = recovery.error or f"recovery failed: {recovery.describe()}"
        return recovery

    second = run_command(commands.build_file, target.path, log_dir, "rebuild", commands.timeout, env=env)
    second.attempts = [*first.attempts, "recovery", "rebuild"]
    return second
