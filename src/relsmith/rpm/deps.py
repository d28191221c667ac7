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

"""Dependency metadata store for RPM builds.

Loads the declarative ``dependencies.yaml`` mapping of per-package
requires/obsoletes/release rules once per run and exposes read-only lookup.
A package without an entry is valid: it simply uses what its own build
descriptor states.

Example file:

    pupmod-acme-web:
      requires:
        - pupmod-acme-base >= 1.2.0
      obsoletes:
        - pupmod-old-web
      release: '2'
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from relsmith.core.exceptions import MissingDependencyRulesError

logger = logging.getLogger(__name__)

RPM_METADATA_DIR = Path("build") / "rpm_metadata"


@dataclass(frozen=True)
class DependencyRule:
    """Rules for a single package."""

    requires: tuple[str, ...] = ()
    obsoletes: tuple[str, ...] = ()
    release: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DependencyRule:
        obsoletes = data.get("obsoletes") or ()
        if isinstance(obsoletes, Mapping):
            # name => version form
            obsoletes = [f"{name} < {ver}" if ver else str(name) for name, ver in obsoletes.items()]
        release = data.get("release")
        return cls(
            requires=tuple(str(r) for r in data.get("requires") or ()),
            obsoletes=tuple(str(o) for o in obsoletes),
            release=str(release) if release is not None else None,
        )


@dataclass(frozen=True)
class DependencyRules:
    """Read-only mapping of package name to DependencyRule."""

    rules: Mapping[str, DependencyRule] = field(default_factory=dict)
    source: Path | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))

    def get(self, package: str) -> DependencyRule | None:
        return self.rules.get(package)

    def release_for(self, package: str) -> str | None:
        """Return the release-qualifier override for a package, if any."""
        rule = self.rules.get(package)
        return rule.release if rule else None

    def __contains__(self, package: object) -> bool:
        return package in self.rules

    def __iter__(self) -> Iterator[str]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def __reduce__(self) -> tuple[Any, ...]:
        # MappingProxyType cannot be pickled; worker processes need copies.
        return (DependencyRules, (dict(self.rules), self.source))


class DependencyMetadataStore:
    """Loads DependencyRules from persisted configuration."""

    @staticmethod
    def load(path: Path, required: bool = False) -> DependencyRules:
        """Load rules from a YAML file.

        Args:
            path: Path to the dependencies YAML file.
            required: Raise when the file is missing instead of returning
                empty rules.

        Raises:
            MissingDependencyRulesError: If the file is missing and required,
                or cannot be parsed.
        """
        if not path.exists():
            if required:
                raise MissingDependencyRulesError(
                    message=f"Could not find RPM dependency file '{path}'",
                    path=path,
                )
            logger.info("No dependency rules at %s; using build descriptors only", path)
            return DependencyRules(source=None)

        try:
            raw = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise MissingDependencyRulesError(
                message=f"Could not parse RPM dependency file '{path}': {e}",
                path=path,
            ) from e

        if not isinstance(raw, Mapping):
            raise MissingDependencyRulesError(
                message=f"RPM dependency file '{path}' must contain a mapping",
                path=path,
            )

        rules: dict[str, DependencyRule] = {}
        for name, entry in raw.items():
            if not isinstance(entry, Mapping):
                logger.warning("Ignoring malformed dependency entry for %s in %s", name, path)
                continue
            rules[str(name)] = DependencyRule.from_dict(entry)

        return DependencyRules(rules=rules, source=path)


def module_requires(metadata: Mapping[str, Any]) -> list[str]:
    """Translate metadata.json dependencies into RPM Requires lines."""
    requires: list[str] = []
    for dep in metadata.get("dependencies") or []:
        name = str(dep.get("name", "")).replace("/", "-")
        if not name:
            continue
        pkg = f"pupmod-{name}"
        bounds = split_constraint(str(dep.get("version_requirement", "")))
        if not bounds:
            requires.append(pkg)
        for op, ver in bounds:
            requires.append(f"{pkg} {op} {ver}")
    return requires


def split_constraint(constraint: str) -> list[tuple[str, str]]:
    """Split a constraint like ``>= 1.0.0 < 2.0.0`` into (op, version) pairs."""
    tokens = constraint.replace(",", " ").split()
    pairs: list[tuple[str, str]] = []
    i = 0
    while i < len(tokens) - 1:
        op, ver = tokens[i], tokens[i + 1]
        if op in {">=", "<=", ">", "<", "="}:
            pairs.append((op, ver))
            i += 2
        else:
            i += 1
    return pairs


def write_rpm_meta_files(
    target_dir: Path,
    package: str,
    rules: DependencyRules,
    module_metadata: Mapping[str, Any] | None = None,
) -> list[Path]:
    """Write ``build/rpm_metadata`` files consumed by the module build.

    The ``requires`` file is always written and merges requirements from the
    dependency rules with those declared by the module itself. The
    ``release`` file is only written when the rules carry a release
    qualifier; a stale one is removed otherwise.

    Returns:
        Paths that were written.
    """
    meta_dir = target_dir / RPM_METADATA_DIR
    meta_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []

    rule = rules.get(package)
    lines: list[str] = []
    requires = list(module_requires(module_metadata or {}))
    if rule:
        requires.extend(r for r in rule.requires if r not in requires)
        lines.extend(f"Obsoletes: {o}" for o in rule.obsoletes)
    lines = [f"Requires: {r}" for r in requires] + lines

    requires_file = meta_dir / "requires"
    requires_file.write_text("\n".join(lines) + ("\n" if lines else ""))
    written.append(requires_file)

    release_file = meta_dir / "release"
    if rule and rule.release:
        release_file.write_text(f"{rule.release}\n")
        written.append(release_file)
    elif release_file.exists():
        release_file.unlink()

    return written
