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

"""Context objects for Relsmith operations.

Run parameters are read from the environment exactly once, at the command
boundary, and frozen into a RunSettings value. Everything below the CLI
receives that value explicitly; nothing in the library reads os.environ.

Immutable configs (frozen=True):
- RunSettings: environment-style run parameters
- BuildRequest: inputs for a build pass
- SignRequest: inputs for a signing pass
- HousekeepingRequest: inputs for a clean/clobber sweep
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from relsmith.core.exceptions import ConfigError

ENV_PREFIX = "RELSMITH_"

DEFAULT_SIGN_TIMEOUT = 60
DEFAULT_DOWNLOAD_RETRIES = 3

_TRUE_VALUES = {"yes", "true", "1", "on"}
_FALSE_VALUES = {"no", "false", "0", "off"}


class RebuildPolicy(str, Enum):
    """Forced-rebuild override."""

    NEVER = "never"
    ALWAYS = "always"
    UNSET = "unset"


def get_default_concurrency() -> int:
    """Return the default number of parallel workers (one per CPU)."""
    return max(1, os.cpu_count() or 1)


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(message=f"{ENV_PREFIX}{name} must be yes or no, got '{value}'")


def _parse_positive_int(name: str, value: str) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        raise ConfigError(message=f"{ENV_PREFIX}{name} must be an integer, got '{value}'") from None
    if parsed < 1:
        raise ConfigError(message=f"{ENV_PREFIX}{name} must be at least 1, got {parsed}")
    return parsed


@dataclass(frozen=True)
class RunSettings:
    """Immutable run parameters shared by the build, decision and signing passes.

    Attributes:
        verbose: Report decisions and file operations as they happen.
        concurrency: Maximum number of simultaneously active worker processes.
        sign_timeout: Seconds allowed for a single signing operation.
        require_rebuild: Forced-rebuild override.
        fetch_published: Default for fetching published RPMs instead of
            building. None means "not set", letting the caller decide.
        refresh_index: Re-download remote index metadata when it changed.
        download_retries: Attempts made for a transient download failure.
    """

    verbose: bool = False
    concurrency: int = field(default_factory=get_default_concurrency)
    sign_timeout: int = DEFAULT_SIGN_TIMEOUT
    require_rebuild: RebuildPolicy = RebuildPolicy.UNSET
    fetch_published: bool | None = None
    refresh_index: bool = True
    download_retries: int = DEFAULT_DOWNLOAD_RETRIES

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ConfigError(message=f"concurrency must be at least 1, got {self.concurrency}")
        if self.sign_timeout < 1:
            raise ConfigError(message=f"sign_timeout must be at least 1, got {self.sign_timeout}")
        if self.download_retries < 1:
            raise ConfigError(message=f"download_retries must be at least 1, got {self.download_retries}")

    def should_fetch(self, default: bool = True) -> bool:
        """Resolve the fetch-vs-build-only default."""
        return default if self.fetch_published is None else self.fetch_published

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> RunSettings:
        """Build settings from RELSMITH_* environment variables.

        Unknown values are rejected with a ConfigError rather than silently
        ignored.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}

        def get(name: str) -> str | None:
            value = env.get(f"{ENV_PREFIX}{name}")
            if value is None or not value.strip():
                return None
            return value

        if (value := get("VERBOSE")) is not None:
            kwargs["verbose"] = _parse_bool("VERBOSE", value)
        if (value := get("CONCURRENCY")) is not None:
            kwargs["concurrency"] = _parse_positive_int("CONCURRENCY", value)
        if (value := get("SIGN_TIMEOUT")) is not None:
            kwargs["sign_timeout"] = _parse_positive_int("SIGN_TIMEOUT", value)
        if (value := get("REQUIRE_REBUILD")) is not None:
            lowered = value.strip().lower()
            if lowered in {"yes", "always"}:
                kwargs["require_rebuild"] = RebuildPolicy.ALWAYS
            elif lowered in {"no", "never"}:
                kwargs["require_rebuild"] = RebuildPolicy.NEVER
            elif lowered == "unset":
                kwargs["require_rebuild"] = RebuildPolicy.UNSET
            else:
                raise ConfigError(
                    message=f"{ENV_PREFIX}REQUIRE_REBUILD must be never, always or unset, got '{value}'"
                )
        if (value := get("FETCH_PUBLISHED")) is not None:
            kwargs["fetch_published"] = _parse_bool("FETCH_PUBLISHED", value)
        if (value := get("INDEX_REFRESH")) is not None:
            kwargs["refresh_index"] = _parse_bool("INDEX_REFRESH", value)
        if (value := get("DOWNLOAD_RETRIES")) is not None:
            kwargs["download_retries"] = _parse_positive_int("DOWNLOAD_RETRIES", value)

        return cls(**kwargs)

    @classmethod
    def from_sources(cls, cfg: Mapping[str, Any], environ: Mapping[str, str] | None = None) -> RunSettings:
        """Build settings from the config file's ``run`` section and the environment.

        Config keys use the environment names without the prefix, lower-cased
        (``sign_timeout``, ``index_refresh``, ...). Environment values win.
        """
        merged: dict[str, str] = {}
        for key, value in (cfg.get("run") or {}).items():
            if value is None or str(value).strip() == "":
                continue
            merged[f"{ENV_PREFIX}{str(key).upper()}"] = str(value)
        env = os.environ if environ is None else environ
        merged.update({k: v for k, v in env.items() if k.startswith(ENV_PREFIX)})
        return cls.from_environ(merged)


@dataclass(frozen=True)
class BuildRequest:
    """Immutable request for a build pass.

    Attributes:
        targets: Target directories to build.
        fetch: Fetch published RPMs when they are up to date.
        require_index: Fail instead of building locally when the remote
            index cannot be reached.
        dependency_file: DependencyRules YAML file.
        rpm_dir: Destination for repository population (None skips it).
        key: Build-keys subdirectory to sign with (None skips signing).
    """

    targets: tuple[Path, ...]
    fetch: bool = True
    require_index: bool = False
    dependency_file: Path | None = None
    rpm_dir: Path | None = None
    key: str | None = None


@dataclass(frozen=True)
class HousekeepingRequest:
    """Immutable request for a clean/clobber sweep."""

    directories: tuple[Path, ...]
    command: tuple[str, ...] = ("rake", "clean")


@dataclass(frozen=True)
class SignRequest:
    """Immutable request for a signing pass.

    Attributes:
        artifact_root: Directory searched recursively for ``*.rpm`` files.
        key: Build-keys subdirectory holding the signing key.
        force: Re-sign artifacts that already carry a signature.
        digest_algorithm: Digest algorithm passed to rpmsign.
    """

    artifact_root: Path
    key: str = "dev"
    force: bool = False
    digest_algorithm: str = "sha256"
