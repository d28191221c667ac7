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

"""Package metadata derived from a target's build descriptor.

Two descriptor shapes are supported:

- ``metadata.json`` (module-shaped targets). The RPM name is the module name
  prefixed with ``pupmod-``; modules are architecture independent.
- ``build/*.spec`` (build-file targets). Name, Version, Release, BuildArch
  and ``%package`` sections are read after expanding ``%global``/``%define``
  macros.

A release override from DependencyRules always wins over the descriptor.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from relsmith.rpm.deps import DependencyRules

logger = logging.getLogger(__name__)

MODULE_PREFIX = "pupmod-"
DEFAULT_RELEASE = "1"
DEFAULT_ARCH = "noarch"

_MACRO_DEF_RE = re.compile(r"^%(?:global|define)\s+(\w+)\s+(.+?)\s*$")
_TAG_RE = re.compile(r"^(Name|Version|Release|BuildArch)\s*:\s*(.+?)\s*$", re.IGNORECASE)
_PACKAGE_RE = re.compile(r"^%package\s+(.+?)\s*$")
_MACRO_REF_RE = re.compile(r"%\{(\??)(!?)([\w]+)\}|%(\w+)")
_SECTION_END = ("%description", "%prep", "%build", "%install", "%files", "%changelog", "%check")


class DescriptorError(Exception):
    """A build descriptor is missing or cannot be read."""


@dataclass(frozen=True)
class PackageMetadata:
    """Metadata for the package(s) produced by one target.

    Attributes:
        name: Main package name.
        packages: Every package produced, main package first.
        version: Upstream version string.
        release: RPM release string.
        arch: Target architecture.
        origin: Source-control origin URL, if the descriptor names one.
    """

    name: str
    packages: tuple[str, ...]
    version: str
    release: str = DEFAULT_RELEASE
    arch: str = DEFAULT_ARCH
    origin: str | None = None

    def nvr(self, package: str | None = None) -> str:
        return f"{package or self.name}-{self.version}-{self.release}"


def module_package_name(module_name: str) -> str:
    """Return the RPM name for a module, e.g. ``acme-web`` -> ``pupmod-acme-web``."""
    return MODULE_PREFIX + module_name.replace("/", "-")


def read_module_descriptor(path: Path) -> dict[str, Any]:
    """Load and minimally validate a ``metadata.json`` file."""
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise DescriptorError(f"Could not read {path}: {e}") from e
    if not isinstance(data, dict):
        raise DescriptorError(f"{path} must contain a JSON object")
    for key in ("name", "version"):
        if not data.get(key):
            raise DescriptorError(f"{path} is missing '{key}'")
    return data


def expand_macros(value: str, macros: dict[str, str], depth: int = 0) -> str:
    """Expand ``%{name}``, ``%name`` and ``%{?name}`` references.

    Undefined conditional references expand to nothing; undefined plain
    references are left as-is.
    """
    if depth > 10 or "%" not in value:
        return value

    def replace(match: re.Match[str]) -> str:
        conditional, negated, braced, bare = match.groups()
        key = braced or bare
        if key in macros:
            return "" if negated else macros[key]
        if conditional:
            return ""
        return match.group(0)

    expanded = _MACRO_REF_RE.sub(replace, value)
    if expanded == value:
        return expanded
    return expand_macros(expanded, macros, depth + 1)


def parse_spec_text(text: str, source: str = "<spec>") -> PackageMetadata:
    """Parse the subset of an RPM spec file needed for build decisions."""
    macros: dict[str, str] = {}
    tags: dict[str, str] = {}
    subpackages: list[str] = []
    in_preamble = True

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        if m := _MACRO_DEF_RE.match(line):
            macros[m.group(1)] = expand_macros(m.group(2), macros)
            continue

        if line.startswith(_SECTION_END):
            in_preamble = False
            continue

        if m := _PACKAGE_RE.match(line):
            in_preamble = False
            args = expand_macros(m.group(1), macros).split()
            if "-n" in args:
                idx = args.index("-n")
                if idx + 1 < len(args):
                    subpackages.append(args[idx + 1])
            elif args:
                subpackages.append(f"{{main}}-{args[0]}")
            continue

        if in_preamble and (m := _TAG_RE.match(line)):
            key = m.group(1).lower()
            if key not in tags:
                tags[key] = m.group(2)
                if key in ("name", "version", "release"):
                    macros[key] = expand_macros(m.group(2), macros)

    for key in ("name", "version"):
        if key not in tags:
            raise DescriptorError(f"{source} has no {key.capitalize()} tag")

    name = expand_macros(tags["name"], macros)
    version = expand_macros(tags["version"], macros)
    release = expand_macros(tags.get("release", DEFAULT_RELEASE), macros) or DEFAULT_RELEASE
    arch = expand_macros(tags.get("buildarch", DEFAULT_ARCH), macros)

    packages = [name]
    for sub in subpackages:
        full = sub.replace("{main}", name)
        if full not in packages:
            packages.append(full)

    return PackageMetadata(
        name=name,
        packages=tuple(packages),
        version=version,
        release=release,
        arch=arch,
    )


def find_spec_file(target: Path) -> Path:
    specs = sorted((target / "build").glob("*.spec"))
    if not specs:
        raise DescriptorError(f"No spec file found in {target / 'build'}")
    return specs[0]


def load_package_metadata(target: Path, rules: DependencyRules | None = None) -> PackageMetadata:
    """Derive PackageMetadata for a target directory.

    Raises:
        DescriptorError: If neither descriptor shape is usable.
    """
    descriptor = target / "metadata.json"
    if descriptor.exists():
        data = read_module_descriptor(descriptor)
        name = module_package_name(str(data["name"]))
        release = rules.release_for(name) if rules else None
        source = data.get("source")
        return PackageMetadata(
            name=name,
            packages=(name,),
            version=str(data["version"]),
            release=release or DEFAULT_RELEASE,
            arch=DEFAULT_ARCH,
            origin=str(source) if source else None,
        )

    spec_file = find_spec_file(target)
    logger.debug("Using spec file %s", spec_file)
    meta = parse_spec_text(spec_file.read_text(), source=str(spec_file))
    release = rules.release_for(meta.name) if rules else None
    if release:
        return PackageMetadata(
            name=meta.name,
            packages=meta.packages,
            version=meta.version,
            release=release,
            arch=meta.arch,
            origin=meta.origin,
        )
    return meta
