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

"""Build target discovery.

A target is a directory holding one independently buildable component. Its
build strategy is detected from the files it contains:

- ``metadata.json`` -> descriptor-driven module build
- ``Rakefile`` -> delegated build-file build
- neither -> nothing to build (reported, not failed)
"""

from __future__ import annotations

import glob
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

DESCRIPTOR_FILE = "metadata.json"
BUILD_FILE = "Rakefile"
DOC_DIR_NAMES = frozenset({"doc", "docs"})


class TargetKind(str, Enum):
    MODULE = "module"
    AUXILIARY = "auxiliary"
    DOC = "doc"


class BuildStrategy(str, Enum):
    DESCRIPTOR = "descriptor"
    BUILD_FILE = "build_file"
    NONE = "none"


@dataclass(frozen=True)
class BuildTarget:
    """One independently buildable component."""

    path: Path
    kind: TargetKind
    strategy: BuildStrategy

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def buildable(self) -> bool:
        return self.strategy is not BuildStrategy.NONE


def detect_strategy(path: Path) -> BuildStrategy:
    if (path / DESCRIPTOR_FILE).is_file():
        return BuildStrategy.DESCRIPTOR
    if (path / BUILD_FILE).is_file():
        return BuildStrategy.BUILD_FILE
    return BuildStrategy.NONE


def detect_target(path: Path, kind: TargetKind | None = None) -> BuildTarget:
    """Create a BuildTarget for a directory.

    The directory does not have to exist; a missing directory is reported
    when its job runs so that it fails that target only.
    """
    path = path.expanduser().absolute()
    strategy = detect_strategy(path) if path.is_dir() else BuildStrategy.NONE
    if kind is None:
        if strategy is BuildStrategy.DESCRIPTOR:
            kind = TargetKind.MODULE
        elif path.name in DOC_DIR_NAMES:
            kind = TargetKind.DOC
        else:
            kind = TargetKind.AUXILIARY
    return BuildTarget(path=path, kind=kind, strategy=strategy)


def expand_target_paths(patterns: Iterable[str], base: Path | None = None) -> list[Path]:
    """Expand directory names and globs into an ordered, de-duplicated list.

    A pattern that matches nothing is kept literally so that a missing
    directory still surfaces as a failed target.
    """
    base = base or Path.cwd()
    seen: set[Path] = set()
    paths: list[Path] = []
    for pattern in patterns:
        full = pattern if Path(pattern).is_absolute() else str(base / pattern)
        matches = sorted(glob.glob(full)) if glob.has_magic(pattern) else [full]
        for match in matches:
            p = Path(match)
            if glob.has_magic(pattern) and not p.is_dir():
                continue
            p = p.absolute()
            if p not in seen:
                seen.add(p)
                paths.append(p)
    return paths


def discover_targets(patterns: Iterable[str], base: Path | None = None) -> list[BuildTarget]:
    return [detect_target(p) for p in expand_target_paths(patterns, base)]
