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

"""Version, release and tag comparison for RPM packages.

Versions are compared semantically (major.minor.patch with pre-release
handling) using packaging.version; the RPM release is reduced to its leading
integer and only used as a tie-breaker when versions are equal.

Git tags are normalized through a fixed table of legacy prefixes and
suffixes before they are compared. Adding a prefix is a data change to
DEFAULT_TAG_RULES (or the ``tags`` config section), not a code change.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from packaging.version import InvalidVersion, Version

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

_RELEASE_NUMBER_RE = re.compile(r"^(\d+)")
_TAG_RELEASE_RE = re.compile(r"-(\d+)$")


@dataclass(frozen=True)
class TagRule:
    """A legacy tag decoration to strip before comparison.

    Exactly one of ``prefix`` or ``suffix`` is expected to be set.
    """

    prefix: str = ""
    suffix: str = ""

    def apply(self, tag: str) -> str:
        if self.prefix and tag.startswith(self.prefix):
            tag = tag[len(self.prefix) :]
        if self.suffix and tag.endswith(self.suffix):
            tag = tag[: -len(self.suffix)]
        return tag


DEFAULT_TAG_RULES: tuple[TagRule, ...] = (
    TagRule(prefix="v"),
    TagRule(prefix="simp-"),
    TagRule(prefix="simp6.0.0-"),
    TagRule(suffix="-post1"),
)


def tag_rules_from_config(
    prefixes: Iterable[str] = (),
    suffixes: Iterable[str] = (),
) -> tuple[TagRule, ...]:
    """Build a tag rule table from configured prefix and suffix lists."""
    rules = [TagRule(prefix=p) for p in prefixes if p]
    rules.extend(TagRule(suffix=s) for s in suffixes if s)
    return tuple(rules)


def parse_version(version: str) -> Version:
    """Parse a version string for semantic comparison.

    Raises:
        InvalidVersion: If the string is not a recognizable version.
    """
    return Version(version.strip())


def release_number(release: str | None) -> int | None:
    """Return the leading integer of an RPM release string.

    Examples:
        >>> release_number("2.el8")
        2
        >>> release_number("alpha") is None
        True
    """
    if not release:
        return None
    match = _RELEASE_NUMBER_RE.match(release.strip())
    return int(match.group(1)) if match else None


def compare_version_release(
    version_a: str,
    release_a: str | None,
    version_b: str,
    release_b: str | None,
) -> int:
    """Compare two version/release pairs.

    Versions are compared semantically first; release numbers only break
    ties. A missing release number compares as 0.

    Returns:
        -1 if a < b, 0 if a == b, 1 if a > b.

    Raises:
        InvalidVersion: If either version cannot be parsed.
    """
    va = parse_version(version_a)
    vb = parse_version(version_b)
    if va < vb:
        return -1
    if va > vb:
        return 1

    ra = release_number(release_a) or 0
    rb = release_number(release_b) or 0
    if ra < rb:
        return -1
    if ra > rb:
        return 1
    return 0


def normalize_tag(tag: str, rules: Sequence[TagRule] = DEFAULT_TAG_RULES) -> str:
    """Strip legacy decorations from a git tag."""
    normalized = tag.strip()
    for rule in rules:
        normalized = rule.apply(normalized)
    return normalized


def split_tag(tag: str) -> tuple[str, int | None]:
    """Split a normalized tag into (version, release number).

    A trailing ``-N`` is treated as an RPM-style release. It is split off
    because packaging would otherwise read ``1.2.3-4`` as a post-release.
    """
    match = _TAG_RELEASE_RE.search(tag)
    if match:
        return tag[: match.start()], int(match.group(1))
    return tag, None


@dataclass(frozen=True)
class TagStatus:
    """Advisory result of comparing a package against its latest git tag.

    Attributes:
        latest_tag: The raw latest tag, or None when the repo has no tags.
        tag_version: Normalized tag version.
        tag_release: Release number encoded in the tag, if any.
        release_tag_required: The local version/release is ahead of the tag.
        release_unverified: The local package has a release number but the
            tag does not, so the release could not be compared.
        error: Why the tag could not be compared, if it could not.
    """

    latest_tag: str | None
    tag_version: str = ""
    tag_release: int | None = None
    release_tag_required: bool = False
    release_unverified: bool = False
    error: str = ""


def compare_tag(
    version: str,
    release: str | None,
    latest_tag: str | None,
    rules: Sequence[TagRule] = DEFAULT_TAG_RULES,
) -> TagStatus:
    """Decide whether a new release tag is owed for a local package.

    The result is advisory and never forces a rebuild.
    """
    if not latest_tag or not latest_tag.strip():
        return TagStatus(latest_tag=None, release_tag_required=True)

    normalized = normalize_tag(latest_tag, rules)
    tag_version_str, tag_release = split_tag(normalized)

    try:
        local_version = parse_version(version)
    except InvalidVersion:
        return TagStatus(
            latest_tag=latest_tag,
            tag_version=tag_version_str,
            tag_release=tag_release,
            error=f"could not determine package version from '{version}'",
        )

    try:
        tag_version = parse_version(tag_version_str)
    except InvalidVersion:
        return TagStatus(
            latest_tag=latest_tag,
            tag_version=tag_version_str,
            tag_release=tag_release,
            error=f"invalid git tag version '{latest_tag}'",
        )

    local_release = release_number(release)
    required = False
    unverified = False

    if local_version > tag_version:
        required = True
    elif local_version == tag_version:
        if tag_release is not None and local_release is not None:
            required = local_release > tag_release
        elif local_release is not None and tag_release is None:
            # Undefined so far; surfaced but never acted upon.
            unverified = True

    return TagStatus(
        latest_tag=latest_tag,
        tag_version=tag_version_str,
        tag_release=tag_release,
        release_tag_required=required,
        release_unverified=unverified,
    )
