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

"""Relsmith-specific exception types with associated exit codes."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class RelsmithError(Exception):
    """Base class for Relsmith errors with an exit code."""

    message: str = "An error occurred"
    exit_code: int = field(default=1)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.message} (exit {self.exit_code})"


@dataclass
class ConfigError(RelsmithError):
    exit_code: int = field(default=1)


@dataclass
class TargetBuildError(RelsmithError):
    """A failure that aborts a single target's job and nothing else."""

    exit_code: int = field(default=7)
    target: str = ""


@dataclass
class BuildFailedError(RelsmithError):
    """Raised after a build pass when one or more targets failed."""

    exit_code: int = field(default=7)
    failures: dict[str, str] = field(default_factory=dict)


@dataclass
class HousekeepingError(RelsmithError):
    """Raised when a housekeeping sweep was stopped by a failing directory."""

    exit_code: int = field(default=8)
    failed: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)


@dataclass
class SigningTotalFailureError(RelsmithError):
    """Every artifact that needed a signature failed to get one."""

    exit_code: int = field(default=9)
    failed: list[Path] = field(default_factory=list)


@dataclass
class SigningPartialFailureError(RelsmithError):
    """Some, but not all, artifacts that needed a signature failed."""

    exit_code: int = field(default=10)
    failed: list[Path] = field(default_factory=list)


@dataclass
class MissingDependencyRulesError(RelsmithError):
    exit_code: int = field(default=11)
    path: Path | None = None


@dataclass
class SigningKeyError(RelsmithError):
    exit_code: int = field(default=12)
    key_dir: Path | None = None


@dataclass
class IndexUnavailableError(RelsmithError):
    """The remote package index is required but could not be set up."""

    exit_code: int = field(default=13)


@dataclass
class PopulateError(RelsmithError):
    exit_code: int = field(default=14)


class PackageIndexError(Exception):
    """Error raised by a package index client.

    ``transient`` marks failures that are worth retrying (connection errors,
    timeouts, server-side errors). Anything else is permanent.
    """

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient
