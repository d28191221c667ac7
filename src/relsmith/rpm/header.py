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

"""RPM file inspection: signature presence and file-name parsing.

Only the lead and the signature header are read. The signature header
lists its tags in a fixed-size index, so signature presence can be decided
without rpm(8) being installed.
"""

from __future__ import annotations

import re
import struct
from dataclasses import dataclass
from pathlib import Path

LEAD_SIZE = 96
HEADER_MAGIC = b"\x8e\xad\xe8\x01"
INDEX_ENTRY_SIZE = 16

# DSA/RSA header, OpenPGP, PGP, GPG, PGP5
SIGNATURE_TAGS = frozenset({267, 268, 276, 1002, 1005, 1006})

_RPM_NAME_RE = re.compile(r"^(?P<name>.+)-(?P<version>[^-]+)-(?P<release>[^-]+)\.(?P<arch>[^.]+)\.rpm$")


class RpmHeaderError(Exception):
    """The file is not a readable RPM package."""


def read_signature_tags(path: Path) -> set[int]:
    """Return the tags present in an RPM's signature header.

    Raises:
        RpmHeaderError: If the file is truncated or not an RPM.
    """
    try:
        with path.open("rb") as f:
            lead = f.read(LEAD_SIZE)
            if len(lead) < LEAD_SIZE or lead[:4] != b"\xed\xab\xee\xdb":
                raise RpmHeaderError(f"{path} is not an RPM package")
            intro = f.read(16)
            if len(intro) < 16 or intro[:4] != HEADER_MAGIC:
                raise RpmHeaderError(f"{path} has no signature header")
            nindex, _hsize = struct.unpack(">II", intro[8:16])
            index = f.read(nindex * INDEX_ENTRY_SIZE)
    except OSError as e:
        raise RpmHeaderError(f"Could not read {path}: {e}") from e

    if len(index) < nindex * INDEX_ENTRY_SIZE:
        raise RpmHeaderError(f"{path} has a truncated signature header")

    tags: set[int] = set()
    for i in range(nindex):
        (tag,) = struct.unpack_from(">I", index, i * INDEX_ENTRY_SIZE)
        tags.add(tag)
    return tags


def is_signed(path: Path) -> bool:
    """Return True when the RPM carries a GPG/PGP signature.

    Unreadable files count as unsigned so they get a signing attempt.
    """
    try:
        return bool(read_signature_tags(path) & SIGNATURE_TAGS)
    except RpmHeaderError:
        return False


@dataclass(frozen=True)
class RpmFileName:
    """Fields encoded in a canonical ``name-version-release.arch.rpm`` name."""

    name: str
    version: str
    release: str
    arch: str

    @property
    def is_source(self) -> bool:
        return self.arch in ("src", "nosrc")


def parse_rpm_filename(filename: str) -> RpmFileName | None:
    """Parse an RPM file name, returning None when it is not canonical.

    Examples:
        >>> parse_rpm_filename("pupmod-acme-web-1.2.0-2.noarch.rpm").arch
        'noarch'
    """
    match = _RPM_NAME_RE.match(Path(filename).name)
    if not match:
        return None
    return RpmFileName(**match.groupdict())


def rpm_arch(filename: str) -> str:
    parsed = parse_rpm_filename(filename)
    return parsed.arch if parsed else "noarch"
