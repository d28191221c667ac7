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

"""Copy recorded build artifacts into an arch-partitioned repository tree.

Binary packages go to ``<rpm_dir>/<arch>/`` and source packages to the
sibling ``SRPMS/<arch>/`` directory. When a target produced a signed binary
package, its unsigned source packages are not copied.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from relsmith.build.record import find_records, load_record
from relsmith.core.exceptions import PopulateError
from relsmith.core.run import activity
from relsmith.rpm.deps import DependencyMetadataStore

logger = logging.getLogger(__name__)


@dataclass
class PopulateResult:
    """Files copied and skipped by a population run."""

    copied: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    records: int = 0


def _copy(src: Path, dest_dir: Path) -> Path:
    if not src.is_file():
        raise PopulateError(message=f"Recorded artifact '{src}' does not exist")
    dest_dir.mkdir(parents=True, exist_ok=True)
    return Path(shutil.copy2(src, dest_dir))


def populate_rpm_dir(
    rpm_dir: Path,
    src_dir: Path,
    dependency_file: Path,
    *,
    record_files: list[Path] | None = None,
    verbose: bool = False,
) -> PopulateResult:
    """Populate rpm_dir from every build record found under src_dir.

    ``record_files`` restricts population to the given records instead.

    Raises:
        MissingDependencyRulesError: If dependency_file does not exist.
        PopulateError: If there are no records, a record lists no binary
            packages, or a recorded file is missing.
    """
    # Population is only meaningful for a release built with its rules.
    DependencyMetadataStore.load(dependency_file, required=True)

    srpm_dir = rpm_dir.parent / "SRPMS"
    rpm_dir.mkdir(parents=True, exist_ok=True)
    srpm_dir.mkdir(parents=True, exist_ok=True)

    if record_files is None:
        record_files = find_records(src_dir)
    if not record_files:
        raise PopulateError(message=f"No build records found under {src_dir}")

    result = PopulateResult()
    for record_file in record_files:
        try:
            record = load_record(record_file)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise PopulateError(message=f"Could not read build record {record_file}: {e}") from e

        if not record.rpms:
            raise PopulateError(message=f"No RPMs listed in build record {record_file}")

        have_signed_rpm = False
        for name, descriptor in sorted(record.rpms.items()):
            if verbose:
                activity("populate", f"Copying {name} to {rpm_dir / descriptor.arch}")
            result.copied.append(_copy(record.resolve(descriptor), rpm_dir / descriptor.arch))
            have_signed_rpm = have_signed_rpm or descriptor.signature

        for name, descriptor in sorted(record.srpms.items()):
            if have_signed_rpm and not descriptor.signature:
                if verbose:
                    activity("populate", f"Found signed RPM - skipping copy of '{name}'")
                result.skipped.append(record.resolve(descriptor))
                continue
            if verbose:
                activity("populate", f"Copying '{name}' to {srpm_dir / descriptor.arch}")
            result.copied.append(_copy(record.resolve(descriptor), srpm_dir / descriptor.arch))

        result.records += 1

    logger.info("Populated %s from %d build records", rpm_dir, result.records)
    return result
