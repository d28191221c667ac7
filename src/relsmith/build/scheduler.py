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

"""Bounded-parallelism build pass.

Each target is handled by one job in a process pool: decide, then fetch the
published build or run the local build procedure, then validate ``dist/``
and write the target's BuildRecord. A failing job never cancels its
siblings; every failure is collected and reported once the pass is over.

Jobs run in separate processes because the build toolchain mutates the
process environment and working directory.
"""

from __future__ import annotations

import concurrent.futures
import contextlib
import logging
import sys
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from relsmith.build.procedures import BuildCommands, run_local_build
from relsmith.build.record import (
    DIST_DIR,
    RECORD_FILENAME,
    ArtifactValidationError,
    BuildRecord,
    RecordOrigin,
    describe_artifacts,
    record_dist,
    validate_dist,
)
from relsmith.core.exceptions import BuildFailedError, TargetBuildError
from relsmith.core.run import activity
from relsmith.planning.decision import RebuildDecision, decide, fetch_published
from relsmith.planning.targets import BuildStrategy, BuildTarget
from relsmith.rpm.deps import write_rpm_meta_files
from relsmith.rpm.spec import DescriptorError, load_package_metadata, read_module_descriptor
from relsmith.rpm.version import DEFAULT_TAG_RULES

if TYPE_CHECKING:
    from relsmith.core.context import RunSettings
    from relsmith.core.run import RunContext
    from relsmith.index.client import PackageIndexClient
    from relsmith.rpm.deps import DependencyRules
    from relsmith.rpm.spec import PackageMetadata
    from relsmith.rpm.version import TagRule

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[int], concurrent.futures.Executor]


class TargetStatus(str, Enum):
    BUILT = "built"
    FETCHED = "fetched"
    CURRENT = "current"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class BuildJob:
    """Everything one worker needs to handle a target."""

    target: BuildTarget
    rules: DependencyRules
    settings: RunSettings
    commands: BuildCommands
    fetch: bool
    log_dir: Path
    tag_rules: tuple[TagRule, ...] = DEFAULT_TAG_RULES


@dataclass
class TargetResult:
    """Outcome of one target's job."""

    target: Path
    status: TargetStatus
    decision: RebuildDecision | None = None
    record: BuildRecord | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status is not TargetStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"target": str(self.target), "status": self.status.value}
        if self.decision is not None:
            data["decision"] = self.decision.to_dict()
        if self.record is not None:
            data["rpms"] = sorted(self.record.rpms)
        if self.error:
            data["error"] = self.error
        return data


def _fail(target: BuildTarget, message: str) -> TargetBuildError:
    return TargetBuildError(message=f"{target.name}: {message}", target=str(target.path))


def _prepare_descriptor_target(job: BuildJob) -> PackageMetadata:
    target = job.target
    metadata = load_package_metadata(target.path, job.rules)
    module = read_module_descriptor(target.path / "metadata.json")
    write_rpm_meta_files(target.path, metadata.name, job.rules, module_metadata=module)
    return metadata


def _run_target(job: BuildJob, client: PackageIndexClient | None) -> TargetResult:
    target = job.target
    if not target.path.is_dir():
        raise _fail(target, f"Could not find directory {target.path}")

    if target.strategy is BuildStrategy.NONE:
        logger.warning("'%s' could not be built (no metadata.json and no Rakefile)", target.path)
        return TargetResult(target=target.path, status=TargetStatus.SKIPPED)

    try:
        if target.strategy is BuildStrategy.DESCRIPTOR:
            metadata = _prepare_descriptor_target(job)
        else:
            metadata = load_package_metadata(target.path, job.rules)
    except DescriptorError as e:
        raise _fail(target, str(e)) from e

    lookup = client.available if client is not None else None
    decision = decide(
        target,
        job.rules,
        lookup,
        job.settings,
        fetch=job.fetch,
        metadata=metadata,
        tag_rules=job.tag_rules,
    )
    dist = target.path / DIST_DIR

    if not decision.must_build and decision.fetch_candidates and client is not None:
        outcome = fetch_published(decision, client, dist, job.settings.download_retries)
        if outcome.ok:
            try:
                validate_dist(dist)
            except ArtifactValidationError as e:
                raise _fail(target, str(e)) from e
            record = describe_artifacts(target.path, list(outcome.files), RecordOrigin.FETCHED)
            record.write()
            return TargetResult(target=target.path, status=TargetStatus.FETCHED, decision=decision, record=record)
        decision = outcome.decision

    status = TargetStatus.CURRENT
    if decision.must_build:
        status = TargetStatus.BUILT
        result = run_local_build(target, job.commands, job.log_dir)
        if not result.ok:
            raise _fail(target, f"build failed: {result.describe()}")

    try:
        record = record_dist(target.path, RecordOrigin.BUILT)
    except ArtifactValidationError as e:
        raise _fail(target, str(e)) from e
    return TargetResult(target=target.path, status=status, decision=decision, record=record)


def build_target_job(job: BuildJob, client: PackageIndexClient | None) -> TargetResult:
    """Worker entry point: handle one target and never raise for its failure.

    A failed target loses any record left by an earlier run so that stale
    artifacts are not picked up by repository population.
    """
    try:
        return _run_target(job, client)
    except TargetBuildError as e:
        with contextlib.suppress(OSError):
            (job.target.path / RECORD_FILENAME).unlink(missing_ok=True)
        return TargetResult(target=job.target.path, status=TargetStatus.FAILED, error=e.message)


@dataclass
class BuildPassResult:
    """Aggregated outcome of a build pass."""

    results: list[TargetResult] = field(default_factory=list)

    def by_status(self, status: TargetStatus) -> list[TargetResult]:
        return [r for r in self.results if r.status is status]

    @property
    def failed(self) -> list[TargetResult]:
        return self.by_status(TargetStatus.FAILED)

    @property
    def records(self) -> list[BuildRecord]:
        return [r.record for r in self.results if r.record is not None]

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failures(self) -> None:
        """Raise BuildFailedError naming every failed target."""
        failures = {str(r.target): r.error for r in self.failed}
        if failures:
            lines = "\n".join(f"  {t}: {msg}" for t, msg in sorted(failures.items()))
            raise BuildFailedError(
                message=f"{len(failures)} target(s) failed to build:\n{lines}",
                failures=failures,
            )

    def to_dict(self) -> dict[str, Any]:
        counts = {s.value: len(self.by_status(s)) for s in TargetStatus}
        return {"counts": counts, "targets": [r.to_dict() for r in self.results]}


def _default_executor(max_workers: int) -> concurrent.futures.Executor:
    return concurrent.futures.ProcessPoolExecutor(max_workers=max_workers)


def _progress(total: int) -> Any:
    from rich.console import Console
    from rich.progress import (
        BarColumn,
        Progress,
        TaskProgressColumn,
        TextColumn,
        TimeRemainingColumn,
    )

    console = Console(file=sys.__stdout__, force_terminal=True)
    return Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(bar_width=40),
        TaskProgressColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeRemainingColumn(),
        console=console,
        transient=True,
    )


class BuildScheduler:
    """Runs build jobs for a set of targets with bounded parallelism."""

    def __init__(
        self,
        settings: RunSettings,
        rules: DependencyRules,
        *,
        client: PackageIndexClient | None = None,
        commands: BuildCommands | None = None,
        fetch: bool = True,
        log_root: Path | None = None,
        tag_rules: Sequence[TagRule] = DEFAULT_TAG_RULES,
        executor_factory: ExecutorFactory | None = None,
        job: Callable[[BuildJob, PackageIndexClient | None], TargetResult] = build_target_job,
        run: RunContext | None = None,
        show_progress: bool = True,
    ) -> None:
        self.settings = settings
        self.rules = rules
        self.client = client
        self.commands = commands or BuildCommands()
        self.fetch = fetch
        self.log_root = log_root
        self.tag_rules = tuple(tag_rules)
        self.executor_factory = executor_factory or _default_executor
        self.job = job
        self.run = run
        self.show_progress = show_progress

    def _job_for(self, target: BuildTarget) -> BuildJob:
        if self.log_root is not None:
            log_dir = self.log_root / target.name
        else:
            log_dir = target.path / "build" / "logs"
        return BuildJob(
            target=target,
            rules=self.rules,
            settings=self.settings,
            commands=self.commands,
            fetch=self.fetch,
            log_dir=log_dir,
            tag_rules=self.tag_rules,
        )

    def build(self, targets: Sequence[BuildTarget]) -> BuildPassResult:
        """Build every target; return once all jobs have completed."""
        results: dict[Path, TargetResult] = {}
        lock = threading.Lock()

        def on_complete(result: TargetResult) -> None:
            with lock:
                results[result.target] = result
            if result.status is TargetStatus.FAILED:
                activity("build", f"[fail]  {result.target.name}: {result.error}")
            elif result.status is TargetStatus.SKIPPED:
                activity("build", f"[skip]  {result.target.name}: nothing to build")
            else:
                activity("build", f"[{result.status.value}] {result.target.name}")
                if self.settings.verbose and result.decision is not None:
                    activity("build", f"        {result.decision.reason.value}")
            if self.run is not None:
                self.run.log_event({"event": "build.target", **result.to_dict()})

        progress_context: Any = contextlib.nullcontext()
        if targets and self.show_progress:
            progress_context = _progress(len(targets))

        with progress_context as progress:
            task = progress.add_task("Building targets", total=len(targets)) if progress else None
            with self.executor_factory(self.settings.concurrency) as executor:
                futures = {executor.submit(self.job, self._job_for(t), self.client): t for t in targets}
                for future in concurrent.futures.as_completed(futures):
                    target = futures[future]
                    try:
                        on_complete(future.result())
                    except Exception as e:  # worker crashed outside the job's own handling
                        logger.exception("Build job for %s crashed", target.path)
                        on_complete(TargetResult(target=target.path, status=TargetStatus.FAILED, error=str(e)))
                    if progress and task is not None:
                        progress.advance(task)

        # Report in input order regardless of completion order.
        return BuildPassResult(results=[results[t.path] for t in targets if t.path in results])
