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

"""Per-target build records.

After a target is built or fetched, the artifacts in its ``dist/``
directory are validated and described in ``last_rpm_build_metadata.yaml``
in the target directory. The file is rewritten on every successful build
and is what repository population reads later.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from relsmith.rpm.header import is_signed, parse_rpm_filename, rpm_arch

RECORD_FILENAME = "last_rpm_build_metadata.yaml"
DIST_DIR = "dist"


class RecordOrigin(str, Enum):
    BUILT = "built"
    FETCHED = "fetched"


class ArtifactValidationError(Exception):
    """The dist directory does not hold a usable set of artifacts."""


@dataclass(frozen=True)
class ArtifactDescriptor:
    """One produced package file."""

    path: str
    arch: str
    signature: bool

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "arch": self.arch, "signature": self.signature}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArtifactDescriptor:
        return cls(
            path=str(data.get("path", "")),
            arch=str(data.get("arch", "noarch")),
            signature=bool(data.get("signature", False)),
        )


@dataclass
class BuildRecord:
    """Artifacts produced for one target, split into binary and source packages."""

    target: Path
    origin: RecordOrigin = RecordOrigin.BUILT
    rpms: dict[str, ArtifactDescriptor] = field(default_factory=dict)
    srpms: dict[str, ArtifactDescriptor] = field(default_factory=dict)
    recorded_utc: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def path(self) -> Path:
        return self.target / RECORD_FILENAME

    def resolve(self, descriptor: ArtifactDescriptor) -> Path:
        """Absolute path of an artifact named in this record."""
        p = Path(descriptor.path)
        return p if p.is_absolute() else self.target / p

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": str(self.target),
            "origin": self.origin.value,
            "recorded_utc": self.recorded_utc,
            "rpms": {name: d.to_dict() for name, d in sorted(self.rpms.items())},
            "srpms": {name: d.to_dict() for name, d in sorted(self.srpms.items())},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], target: Path | None = None) -> BuildRecord:
        return cls(
            target=target or Path(data["target"]),
            origin=RecordOrigin(data.get("origin", "built")),
            rpms={k: ArtifactDescriptor.from_dict(v) for k, v in (data.get("rpms") or {}).items()},
            srpms={k: ArtifactDescriptor.from_dict(v) for k, v in (data.get("srpms") or {}).items()},
            recorded_utc=str(data.get("recorded_utc", "")),
        )

    def write(self) -> Path:
        """Write the record atomically, replacing any previous one."""
        tmp = self.path.with_name(f".{RECORD_FILENAME}.{os.getpid()}.tmp")
        tmp.write_text(yaml.safe_dump(self.to_dict(), sort_keys=False))
        tmp.replace(self.path)
        return self.path


def load_record(path: Path) -> BuildRecord:
    """Load a record file. The target is the directory holding it."""
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a build record")
    return BuildRecord.from_dict(data, target=path.parent)


def find_records(root: Path) -> list[Path]:
    """Find every record file below root, in sorted order."""
    return sorted(p for p in root.rglob(RECORD_FILENAME) if p.is_file() and not p.is_symlink())


def validate_dist(dist_dir: Path) -> list[Path]:
    """Validate a target's output directory and return its binary RPMs.

    Raises:
        ArtifactValidationError: When no binary RPM was produced or any RPM
            or tarball is empty.
    """
    if not dist_dir.is_dir():
        raise ArtifactValidationError(f"No output directory {dist_dir}")

    for artifact in sorted([*dist_dir.glob("*.rpm"), *dist_dir.glob("*.tar.gz")]):
        if artifact.stat().st_size == 0:
            raise ArtifactValidationError(f"Empty artifact '{artifact.name}' generated")

    rpms = sorted(p for p in dist_dir.glob("*.rpm") if not p.name.endswith(".src.rpm"))
    if not rpms:
        raise ArtifactValidationError(f"No RPMs generated in {dist_dir}")
    return rpms


def describe_artifacts(
    target: Path,
    files: list[Path],
    origin: RecordOrigin,
) -> BuildRecord:
    """Build a record for the given artifact files of a target.

    Source packages are filed under the architecture of the target's first
    binary package, since a ``.src.rpm`` name carries no build arch.
    """
    record = BuildRecord(target=target, origin=origin)
    sources: list[tuple[Path, str]] = []
    for f in sorted(files):
        try:
            rel = str(f.relative_to(target))
        except ValueError:
            rel = str(f)
        parsed = parse_rpm_filename(f.name)
        if parsed is not None and parsed.is_source:
            sources.append((f, rel))
            continue
        record.rpms[f.name] = ArtifactDescriptor(path=rel, arch=rpm_arch(f.name), signature=is_signed(f))

    binaries = [record.rpms[name] for name in sorted(record.rpms)]
    source_arch = binaries[0].arch if binaries else "noarch"
    for f, rel in sources:
        record.srpms[f.name] = ArtifactDescriptor(path=rel, arch=source_arch, signature=is_signed(f))
    return record


def record_dist(target: Path, origin: RecordOrigin = RecordOrigin.BUILT) -> BuildRecord:
    """Validate ``<target>/dist`` and write a record for every RPM in it."""
    dist_dir = target / DIST_DIR
    validate_dist(dist_dir)
    record = describe_artifacts(target, sorted(dist_dir.glob("*.rpm")), origin)
    record.write()
    return record


def refresh_signatures(record: BuildRecord) -> BuildRecord:
    """Re-read signature presence for every artifact and rewrite the record."""
    for table in (record.rpms, record.srpms):
        for name, descriptor in list(table.items()):
            table[name] = ArtifactDescriptor(
                path=descriptor.path,
                arch=descriptor.arch,
                signature=is_signed(record.resolve(descriptor)),
            )
    record.write()
    return record
