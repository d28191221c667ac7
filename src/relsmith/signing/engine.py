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

"""Concurrent RPM signing.

Every ``*.rpm`` below the artifact root gets exactly one attempt. Already
signed packages are skipped unless forced; a failed or timed-out rpmsign
run leaves the package ``unsigned``. The engine never stops early and
never retries: it returns the complete status map, and ``summarize``
turns that into an ok / partial-failure / total-failure outcome for the
caller.
"""

from __future__ import annotations

import concurrent.futures
import contextlib
import logging
import subprocess
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from relsmith.core.context import DEFAULT_SIGN_TIMEOUT
from relsmith.core.exceptions import SigningPartialFailureError, SigningTotalFailureError
from relsmith.rpm.header import is_signed

if TYPE_CHECKING:
    from relsmith.signing.key import SigningKey

logger = logging.getLogger(__name__)


class SigningStatus(str, Enum):
    SIGNED = "signed"
    SKIPPED_ALREADY_SIGNED = "skipped_already_signed"
    UNSIGNED = "unsigned"


class SigningOutcome(str, Enum):
    OK = "ok"
    PARTIAL_FAILURE = "partial_failure"
    TOTAL_FAILURE = "total_failure"


@dataclass(frozen=True)
class SigningOptions:
    """Options for one signing pass."""

    force: bool = False
    digest_algorithm: str = "sha256"
    concurrency: int = 1
    timeout: int = DEFAULT_SIGN_TIMEOUT


def build_rpmsign_command(rpm: Path, key: SigningKey, digest_algorithm: str) -> list[str]:
    """Return the rpmsign invocation for one package."""
    return [
        "rpmsign",
        "--addsign",
        "--define",
        f"%_gpg_name {key.name}",
        "--define",
        f"%_gpg_path {key.key_dir}",
        "--define",
        f"%_gpg_digest_algo {digest_algorithm}",
        "--define",
        "%_gpg_sign_cmd_extra_args --batch --no-tty --pinentry-mode loopback",
        str(rpm),
    ]


def sign_artifact(rpm: Path, key: SigningKey, options: SigningOptions) -> SigningStatus:
    """Sign one RPM. Runs in a worker; never raises for a signing failure."""
    if not options.force and is_signed(rpm):
        return SigningStatus.SKIPPED_ALREADY_SIGNED

    cmd = build_rpmsign_command(rpm, key, options.digest_algorithm)
    try:
        result = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            timeout=options.timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.warning("Signing %s timed out after %s seconds", rpm, options.timeout)
        return SigningStatus.UNSIGNED
    except OSError as e:
        logger.warning("Could not run rpmsign for %s: %s", rpm, e)
        return SigningStatus.UNSIGNED

    if result.returncode != 0:
        logger.warning("rpmsign failed for %s: %s", rpm, result.stderr.strip())
        return SigningStatus.UNSIGNED
    if not is_signed(rpm):
        logger.warning("rpmsign reported success but %s carries no signature", rpm)
        return SigningStatus.UNSIGNED
    return SigningStatus.SIGNED


def find_artifacts(artifact_root: Path) -> list[Path]:
    """Every ``*.rpm`` file below artifact_root, sorted."""
    return sorted(p for p in artifact_root.rglob("*.rpm") if p.is_file())


def _default_executor(max_workers: int) -> concurrent.futures.Executor:
    return concurrent.futures.ProcessPoolExecutor(max_workers=max_workers)


class SigningEngine:
    """Signs a tree of RPMs with bounded parallelism."""

    def __init__(
        self,
        *,
        executor_factory: Callable[[int], concurrent.futures.Executor] | None = None,
        signer: Callable[[Path, SigningKey, SigningOptions], SigningStatus] = sign_artifact,
        show_progress: bool = True,
    ) -> None:
        self.executor_factory = executor_factory or _default_executor
        self.signer = signer
        self.show_progress = show_progress

    def sign(self, artifact_root: Path, key: SigningKey, options: SigningOptions) -> dict[Path, SigningStatus]:
        """Attempt every artifact under artifact_root and return the status map."""
        return self.sign_artifacts(find_artifacts(artifact_root), key, options)

    def sign_artifacts(
        self, artifacts: list[Path], key: SigningKey, options: SigningOptions
    ) -> dict[Path, SigningStatus]:
        """Attempt every listed artifact and return the status map."""
        results: dict[Path, SigningStatus] = {}
        lock = threading.Lock()

        def record(path: Path, status: SigningStatus) -> None:
            with lock:
                results[path] = status

        progress_context: Any = contextlib.nullcontext()
        if artifacts and self.show_progress:
            from rich.console import Console
            from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn

            progress_context = Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(bar_width=40),
                TaskProgressColumn(),
                TextColumn("{task.completed}/{task.total}"),
                console=Console(file=sys.__stdout__, force_terminal=True),
                transient=True,
            )

        with progress_context as progress:
            task = progress.add_task("Signing RPMs", total=len(artifacts)) if progress else None
            with self.executor_factory(options.concurrency) as executor:
                futures = {executor.submit(self.signer, rpm, key, options): rpm for rpm in artifacts}
                for future in concurrent.futures.as_completed(futures):
                    rpm = futures[future]
                    try:
                        record(rpm, future.result())
                    except Exception as e:  # worker crashed
                        logger.warning("Signing job for %s crashed: %s", rpm, e)
                        record(rpm, SigningStatus.UNSIGNED)
                    if progress and task is not None:
                        progress.advance(task)

        return {rpm: results[rpm] for rpm in artifacts}


@dataclass
class SigningSummary:
    """Counts over a signing status map."""

    signed: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    unsigned: list[Path] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.signed) + len(self.unsigned)

    @property
    def outcome(self) -> SigningOutcome:
        if not self.unsigned:
            return SigningOutcome.OK
        if len(self.unsigned) == self.attempted:
            return SigningOutcome.TOTAL_FAILURE
        return SigningOutcome.PARTIAL_FAILURE

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "signed": len(self.signed),
            "skipped_already_signed": len(self.skipped),
            "unsigned": [str(p) for p in self.unsigned],
        }


def summarize(results: dict[Path, SigningStatus]) -> SigningSummary:
    summary = SigningSummary()
    for path, status in sorted(results.items()):
        if status is SigningStatus.SIGNED:
            summary.signed.append(path)
        elif status is SigningStatus.SKIPPED_ALREADY_SIGNED:
            summary.skipped.append(path)
        else:
            summary.unsigned.append(path)
    return summary


def raise_for_outcome(summary: SigningSummary, location: str | Path) -> None:
    """Translate a failed outcome into its distinct error.

    Raises:
        SigningTotalFailureError: Nothing that needed a signature got one.
        SigningPartialFailureError: Some packages could not be signed.
    """
    outcome = summary.outcome
    if outcome is SigningOutcome.TOTAL_FAILURE:
        detail = "unsigned " if summary.skipped else ""
        raise SigningTotalFailureError(
            message=(
                f"Failed to sign all {detail}RPMs in {location}. "
                "This usually means the signing key or gpg-agent is unusable; "
                "check the key directory and that no stale gpg-agent is running."
            ),
            failed=list(summary.unsigned),
        )
    if outcome is SigningOutcome.PARTIAL_FAILURE:
        listing = "\n  ".join(str(p) for p in summary.unsigned)
        raise SigningPartialFailureError(
            message=f"Failed to sign some RPMs in {location}:\n  {listing}",
            failed=list(summary.unsigned),
        )
