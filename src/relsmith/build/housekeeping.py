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

"""Fail-fast housekeeping sweep (clean/clobber) over target directories.

Unlike the build pass, the first failing directory stops the sweep: jobs
that have not started are cancelled and the error names every directory
that failed, including ones that were already running.
"""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from relsmith.build.procedures import DEFAULT_COMMAND_TIMEOUT, run_command
from relsmith.core.exceptions import HousekeepingError
from relsmith.core.run import activity

if TYPE_CHECKING:
    from relsmith.core.context import RunSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepJob:
    directory: Path
    command: tuple[str, ...]
    log_dir: Path
    timeout: int = DEFAULT_COMMAND_TIMEOUT
    name: str = "sweep"


def sweep_directory(job: SweepJob) -> str:
    """Run the housekeeping command in one directory.

    Command output goes to ``<log_dir>/<name>.stdout.log`` and
    ``<name>.stderr.log``.

    Returns:
        An error message, or an empty string on success.
    """
    if not job.directory.is_dir():
        return f"Could not find directory {job.directory}"
    result = run_command(job.command, job.directory, job.log_dir, job.name, job.timeout)
    return "" if result.ok else result.describe()


def _default_executor(max_workers: int) -> concurrent.futures.Executor:
    return concurrent.futures.ProcessPoolExecutor(max_workers=max_workers)


def sweep(
    directories: Sequence[Path],
    command: Sequence[str],
    settings: RunSettings,
    *,
    name: str = "clean",
    log_root: Path | None = None,
    timeout: int = DEFAULT_COMMAND_TIMEOUT,
    executor_factory: Callable[[int], concurrent.futures.Executor] | None = None,
    runner: Callable[[SweepJob], str] = sweep_directory,
) -> list[Path]:
    """Run ``command`` in every directory, stopping at the first failure.

    At most ``settings.concurrency`` directories are handed to the pool at a
    time, so a directory is only started while no failure has been seen.

    Returns:
        Directories that were swept successfully.

    Raises:
        HousekeepingError: If any directory failed. ``failed`` lists each
            failing directory, ``cancelled`` the ones never started.
    """
    failed: list[str] = []
    done: list[Path] = []
    pending = list(directories)
    factory = executor_factory or _default_executor

    def job_for(d: Path) -> SweepJob:
        log_dir = (log_root / d.name) if log_root is not None else d / "build" / "logs"
        return SweepJob(directory=d, command=tuple(command), log_dir=log_dir, timeout=timeout, name=name)

    with factory(settings.concurrency) as executor:
        in_flight: dict[concurrent.futures.Future[str], Path] = {}
        while pending or in_flight:
            while pending and not failed and len(in_flight) < settings.concurrency:
                d = pending.pop(0)
                in_flight[executor.submit(runner, job_for(d))] = d
            if not in_flight:
                break

            finished, _ = concurrent.futures.wait(in_flight, return_when=concurrent.futures.FIRST_COMPLETED)
            for future in finished:
                directory = in_flight.pop(future)
                try:
                    error = future.result()
                except Exception as e:  # worker crashed
                    error = str(e) or type(e).__name__
                if not error:
                    done.append(directory)
                    if settings.verbose:
                        activity(name, f"[ok]    {directory.name}")
                    continue
                failed.append(f"{directory}: {error}")
                activity(name, f"[fail]  {directory.name}: {error}")

    if failed:
        # Running jobs finished and are reported above; the rest never started.
        logger.info("%s sweep stopped; %d directories not started", name, len(pending))
        cancelled = [str(d) for d in pending]
        raise HousekeepingError(
            message=f"Housekeeping failed in {len(failed)} director{'y' if len(failed) == 1 else 'ies'}:\n"
            + "\n".join(f"  {f}" for f in failed),
            failed=failed,
            cancelled=cancelled,
        )
    return done
