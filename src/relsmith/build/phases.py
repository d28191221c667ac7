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

"""Release pipeline phases.

The pipeline is: load dependency rules, set up the remote index, run the
build pass, then (only after every build job has finished) sign the
recorded artifacts and populate the repository tree.

Phase functions follow these conventions:
- Accept only the data they need
- Log activity via ``activity()`` and structured events via the run
- Raise a RelsmithError subclass for anything that should stop the command
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from relsmith.build.errors import log_phase_event
from relsmith.build.procedures import BuildCommands
from relsmith.build.record import refresh_signatures
from relsmith.build.scheduler import BuildPassResult, BuildScheduler, ExecutorFactory
from relsmith.core.run import activity
from relsmith.index.client import create_index_client
from relsmith.planning.targets import discover_targets
from relsmith.repo.populate import PopulateResult, populate_rpm_dir
from relsmith.rpm.deps import DependencyMetadataStore
from relsmith.rpm.version import tag_rules_from_config
from relsmith.signing.engine import (
    SigningEngine,
    SigningOptions,
    SigningSummary,
    raise_for_outcome,
    summarize,
)
from relsmith.signing.key import load_signing_key

if TYPE_CHECKING:
    from relsmith.build.record import BuildRecord
    from relsmith.core.context import BuildRequest, RunSettings, SignRequest
    from relsmith.core.run import RunContext
    from relsmith.index.client import PackageIndexClient
    from relsmith.rpm.deps import DependencyRules

logger = logging.getLogger(__name__)


def resolve_dependency_file(cfg: dict[str, Any], override: Path | None = None) -> Path:
    if override is not None:
        return override
    return Path(cfg.get("build", {}).get("dependency_file", "build/rpm/dependencies.yaml")).expanduser()


def resolve_key_dir(cfg: dict[str, Any], key: str) -> Path:
    keys_root = Path(cfg.get("paths", {}).get("build_keys_dir", "~/.cache/relsmith/gpgkeys")).expanduser()
    return keys_root / key


def load_rules(dependency_file: Path, *, required: bool, run: RunContext | None = None) -> DependencyRules:
    """Load dependency rules; required when the repository will be populated."""
    rules = DependencyMetadataStore.load(dependency_file, required=required)
    if run is not None:
        run.log_event({"event": "rules.loaded", "path": str(dependency_file), "packages": len(rules)})
    return rules


def setup_index(
    settings: RunSettings,
    cfg: dict[str, Any],
    *,
    require: bool,
    run: RunContext | None = None,
) -> PackageIndexClient | None:
    """Create the remote index client, or None to build everything locally."""
    client = create_index_client(settings, cfg, require=require)
    if client is None:
        activity("index", "Remote index unavailable; packages will be built locally")
    if run is not None:
        run.log_event({"event": "index.setup", "available": client is not None})
    return client


def run_build_pass(
    request: BuildRequest,
    settings: RunSettings,
    cfg: dict[str, Any],
    rules: DependencyRules,
    client: PackageIndexClient | None,
    *,
    run: RunContext | None = None,
    executor_factory: ExecutorFactory | None = None,
) -> BuildPassResult:
    """Build every requested target and raise if any of them failed.

    Raises:
        BuildFailedError: Listing every failed target and its cause.
    """
    targets = discover_targets(str(t) for t in request.targets)
    activity("build", f"Building {len(targets)} target(s) with {settings.concurrency} worker(s)")
    tags_cfg = cfg.get("tags", {})
    scheduler = BuildScheduler(
        settings,
        rules,
        client=client,
        commands=BuildCommands.from_config(cfg),
        fetch=request.fetch,
        log_root=run.logs_path / "targets" if run is not None else None,
        tag_rules=tag_rules_from_config(tags_cfg.get("legacy_prefixes", []), tags_cfg.get("legacy_suffixes", [])),
        executor_factory=executor_factory,
        run=run,
    )
    result = scheduler.build(targets)
    if run is not None:
        run.write_summary(build=result.to_dict())
    result.raise_for_failures()
    return result


def _report_signing(summary: SigningSummary, settings: RunSettings, run: RunContext | None) -> None:
    if settings.verbose:
        from rich.console import Console
        from rich.table import Table

        table = Table(title="Signing summary")
        table.add_column("Status")
        table.add_column("RPMs", justify="right")
        table.add_row("already signed", str(len(summary.skipped)))
        table.add_row("signed", str(len(summary.signed)))
        table.add_row("failed", str(len(summary.unsigned)))
        Console(file=sys.__stdout__).print(table)
    message = f"{len(summary.signed)} signed, {len(summary.skipped)} already signed, {len(summary.unsigned)} failed"
    if run is None:
        activity("sign", message)
        return
    log_phase_event(run, "sign", message, "sign.summary", **summary.to_dict())
    run.write_summary(signing=summary.to_dict())


def sign_records(
    records: list[BuildRecord],
    key: str,
    settings: RunSettings,
    cfg: dict[str, Any],
    *,
    run: RunContext | None = None,
    engine: SigningEngine | None = None,
) -> SigningSummary:
    """Sign every artifact in the given records and refresh their signature flags.

    Raises:
        SigningKeyError: If the key directory is unusable.
        SigningTotalFailureError / SigningPartialFailureError: On failures.
    """
    signing_key = load_signing_key(resolve_key_dir(cfg, key))
    options = SigningOptions(
        force=False,
        digest_algorithm=cfg.get("signing", {}).get("digest_algorithm", "sha256"),
        concurrency=settings.concurrency,
        timeout=settings.sign_timeout,
    )
    artifacts = sorted(
        {record.resolve(d) for record in records for d in [*record.rpms.values(), *record.srpms.values()]}
    )
    results = (engine or SigningEngine()).sign_artifacts(artifacts, signing_key, options)
    for record in records:
        refresh_signatures(record)

    summary = summarize(results)
    _report_signing(summary, settings, run)
    raise_for_outcome(summary, "the build output")
    return summary


def sign_tree(
    request: SignRequest,
    settings: RunSettings,
    cfg: dict[str, Any],
    *,
    run: RunContext | None = None,
    engine: SigningEngine | None = None,
) -> SigningSummary:
    """Sign every RPM below request.artifact_root."""
    signing_key = load_signing_key(resolve_key_dir(cfg, request.key))
    options = SigningOptions(
        force=request.force,
        digest_algorithm=request.digest_algorithm,
        concurrency=settings.concurrency,
        timeout=settings.sign_timeout,
    )
    results = (engine or SigningEngine()).sign(request.artifact_root, signing_key, options)
    summary = summarize(results)
    _report_signing(summary, settings, run)
    raise_for_outcome(summary, request.artifact_root)
    return summary


def populate_repository(
    rpm_dir: Path,
    src_dir: Path,
    dependency_file: Path,
    settings: RunSettings,
    *,
    run: RunContext | None = None,
    record_files: list[Path] | None = None,
) -> PopulateResult:
    result = populate_rpm_dir(
        rpm_dir, src_dir, dependency_file, record_files=record_files, verbose=settings.verbose
    )
    message = f"Copied {len(result.copied)} file(s) from {result.records} record(s) into {rpm_dir}"
    if run is None:
        activity("populate", message)
    else:
        log_phase_event(
            run,
            "populate",
            message,
            "populate.done",
            rpm_dir=str(rpm_dir),
            copied=len(result.copied),
            skipped=len(result.skipped),
        )
    return result


def run_release_pipeline(
    request: BuildRequest,
    settings: RunSettings,
    cfg: dict[str, Any],
    *,
    run: RunContext | None = None,
    executor_factory: ExecutorFactory | None = None,
    engine: SigningEngine | None = None,
    src_dir: Path | None = None,
) -> BuildPassResult:
    """Build, then sign, then populate.

    Signing starts only once the build pass has returned, so partial build
    output is never signed.
    """
    dependency_file = resolve_dependency_file(cfg, request.dependency_file)
    rules = load_rules(dependency_file, required=request.rpm_dir is not None, run=run)
    client = setup_index(settings, cfg, require=request.require_index, run=run)

    result = run_build_pass(request, settings, cfg, rules, client, run=run, executor_factory=executor_factory)

    if request.key:
        sign_records(result.records, request.key, settings, cfg, run=run, engine=engine)

    if request.rpm_dir is not None:
        populate_repository(
            request.rpm_dir,
            src_dir or Path.cwd(),
            dependency_file,
            settings,
            run=run,
            record_files=[r.path for r in result.records],
        )
    return result
