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

"""Rebuild decisions for build targets.

``decide`` is a pure function of its arguments: the target's package
metadata, the dependency rules, the remote lookup answers, the run settings
and (optionally) the git tag state. Nothing is read from the environment
and nothing is downloaded; fetching a published build is a separate step
(``fetch_published``) applied to the decision afterwards.

Decision table per sub-package:

    remote missing / lookup error      -> build (new_package)
    remote >= local (version, release) -> no build, fetch candidate
    local > remote                     -> build (newer_local_version)

A target builds as a whole if any of its sub-packages needs a build.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from packaging.version import InvalidVersion

from relsmith.core.context import RebuildPolicy
from relsmith.core.exceptions import PackageIndexError
from relsmith.rpm.spec import load_package_metadata
from relsmith.rpm.version import DEFAULT_TAG_RULES, compare_tag, compare_version_release

if TYPE_CHECKING:
    from collections.abc import Sequence

    from relsmith.core.context import RunSettings
    from relsmith.gitinfo import TagInfo
    from relsmith.index.client import PackageIndexClient, RemotePackage
    from relsmith.planning.targets import BuildTarget
    from relsmith.rpm.deps import DependencyRules
    from relsmith.rpm.spec import PackageMetadata
    from relsmith.rpm.version import TagRule, TagStatus

logger = logging.getLogger(__name__)

RemoteLookup = Callable[[str], "RemotePackage | None"]


class DecisionReason(str, Enum):
    FORCED = "forced"
    NEW_PACKAGE = "new_package"
    NEWER_LOCAL_VERSION = "newer_local_version"
    UP_TO_DATE = "up_to_date"
    FETCH_FAILED = "fetch_failed"


@dataclass(frozen=True)
class RebuildDecision:
    """Must-build / may-fetch determination for one target.

    Attributes:
        must_build: The target has to be built locally.
        reason: Why (for a build) or why not.
        fetch_candidates: Published packages to fetch instead of building.
            Empty whenever ``must_build`` is set or fetching was not requested.
        tag_status: Advisory git tag comparison, when tag info was supplied.
        lookup_errors: Remote lookup failures that were degraded to
            "not published".
        metadata: The package metadata the decision was based on.
    """

    must_build: bool
    reason: DecisionReason
    fetch_candidates: tuple[RemotePackage, ...] = ()
    tag_status: TagStatus | None = None
    lookup_errors: tuple[str, ...] = ()
    metadata: PackageMetadata | None = None

    @property
    def fetch_candidate(self) -> RemotePackage | None:
        return self.fetch_candidates[0] if self.fetch_candidates else None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "must_build": self.must_build,
            "reason": self.reason.value,
            "fetch_candidates": [c.filename for c in self.fetch_candidates],
            "lookup_errors": list(self.lookup_errors),
        }
        if self.metadata is not None:
            data["package"] = self.metadata.name
            data["version"] = self.metadata.version
            data["release"] = self.metadata.release
        if self.tag_status is not None:
            data["tag"] = {
                "latest_tag": self.tag_status.latest_tag,
                "release_tag_required": self.tag_status.release_tag_required,
                "release_unverified": self.tag_status.release_unverified,
                "error": self.tag_status.error,
            }
        return data


@dataclass(frozen=True)
class _SubpackageVerdict:
    package: str
    must_build: bool
    reason: DecisionReason
    remote: RemotePackage | None = None
    error: str = ""


def _judge_subpackage(
    package: str,
    metadata: PackageMetadata,
    remote_lookup: RemoteLookup | None,
) -> _SubpackageVerdict:
    if remote_lookup is None:
        return _SubpackageVerdict(package, True, DecisionReason.NEW_PACKAGE)

    try:
        remote = remote_lookup(package)
    except PackageIndexError as e:
        logger.warning("Remote lookup for %s failed, assuming unpublished: %s", package, e)
        return _SubpackageVerdict(package, True, DecisionReason.NEW_PACKAGE, error=f"{package}: {e}")

    if remote is None:
        return _SubpackageVerdict(package, True, DecisionReason.NEW_PACKAGE)

    try:
        cmp = compare_version_release(metadata.version, metadata.release, remote.version, remote.release)
    except InvalidVersion as e:
        logger.warning("Cannot compare %s with published %s: %s", package, remote.filename, e)
        return _SubpackageVerdict(package, True, DecisionReason.NEW_PACKAGE, error=f"{package}: {e}")

    if cmp > 0:
        return _SubpackageVerdict(package, True, DecisionReason.NEWER_LOCAL_VERSION, remote=remote)
    return _SubpackageVerdict(package, False, DecisionReason.UP_TO_DATE, remote=remote)


def decide(
    target: BuildTarget,
    rules: DependencyRules,
    remote_lookup: RemoteLookup | None,
    settings: RunSettings,
    *,
    fetch: bool,
    tag_info: TagInfo | None = None,
    metadata: PackageMetadata | None = None,
    tag_rules: Sequence[TagRule] = DEFAULT_TAG_RULES,
) -> RebuildDecision:
    """Decide whether a target must be built.

    Args:
        target: The build target.
        rules: Dependency rules, used for release overrides.
        remote_lookup: Callable answering "newest published build of P", or
            None when no index client could be constructed.
        settings: Run settings (forced-rebuild override).
        fetch: Whether published packages should become fetch candidates.
        tag_info: Optional git tag state for the advisory tag check.
        metadata: Precomputed package metadata; derived from the target's
            descriptor when omitted.
        tag_rules: Legacy tag decorations to strip.

    Raises:
        DescriptorError: If package metadata cannot be derived.
    """
    if settings.require_rebuild is RebuildPolicy.ALWAYS:
        return RebuildDecision(must_build=True, reason=DecisionReason.FORCED, metadata=metadata)

    if metadata is None:
        metadata = load_package_metadata(target.path, rules)

    tag_status = None
    if tag_info is not None:
        tag_status = compare_tag(metadata.version, metadata.release, tag_info.latest_tag, tag_rules)
        if tag_status.error:
            logger.warning("%s: %s", metadata.name, tag_status.error)

    verdicts = [_judge_subpackage(pkg, metadata, remote_lookup) for pkg in metadata.packages]
    errors = tuple(v.error for v in verdicts if v.error)

    building = [v for v in verdicts if v.must_build]
    if building:
        return RebuildDecision(
            must_build=True,
            reason=building[0].reason,
            tag_status=tag_status,
            lookup_errors=errors,
            metadata=metadata,
        )

    candidates = tuple(v.remote for v in verdicts if v.remote is not None) if fetch else ()
    return RebuildDecision(
        must_build=False,
        reason=DecisionReason.UP_TO_DATE,
        fetch_candidates=candidates,
        tag_status=tag_status,
        lookup_errors=errors,
        metadata=metadata,
    )


@dataclass(frozen=True)
class FetchOutcome:
    """Result of fetching a decision's candidates."""

    decision: RebuildDecision
    files: tuple[Path, ...] = ()
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.decision.must_build


def _download_with_retry(
    client: PackageIndexClient,
    remote: RemotePackage,
    dest: Path,
    retries: int,
    sleep: Callable[[float], None],
    backoff: float,
) -> Path:
    for attempt in range(1, retries + 1):
        try:
            return client.download(remote.name, dest)
        except PackageIndexError as e:
            if not e.transient or attempt >= retries:
                raise
            logger.warning(
                "Download of %s failed (attempt %d/%d), retrying: %s", remote.filename, attempt, retries, e
            )
            sleep(backoff * attempt)
    raise PackageIndexError(f"Download of {remote.filename} was not attempted")


def fetch_published(
    decision: RebuildDecision,
    client: PackageIndexClient,
    dest: Path,
    retries: int = 3,
    *,
    sleep: Callable[[float], None] = time.sleep,
    backoff: float = 1.0,
) -> FetchOutcome:
    """Fetch the decision's candidates into ``dest``.

    Files already present are not downloaded again. Transient errors are
    retried up to ``retries`` attempts in total; permanent errors stop at
    once. Any failure turns the decision into a ``fetch_failed`` build.
    """
    if decision.must_build or not decision.fetch_candidates:
        return FetchOutcome(decision=decision)

    files: list[Path] = []
    for remote in decision.fetch_candidates:
        existing = dest / remote.filename
        if existing.is_file() and existing.stat().st_size > 0:
            logger.info("%s already present in %s", remote.filename, dest)
            files.append(existing)
            continue
        try:
            files.append(_download_with_retry(client, remote, dest, retries, sleep, backoff))
        except PackageIndexError as e:
            logger.warning("Could not fetch %s, building locally instead: %s", remote.filename, e)
            failed = RebuildDecision(
                must_build=True,
                reason=DecisionReason.FETCH_FAILED,
                tag_status=decision.tag_status,
                lookup_errors=decision.lookup_errors,
                metadata=decision.metadata,
            )
            return FetchOutcome(decision=failed, errors=(f"{remote.filename}: {e}",))

    return FetchOutcome(decision=decision, files=tuple(files))
