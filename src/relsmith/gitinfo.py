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

"""Source-control tag state for build targets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import git

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TagInfo:
    """Latest reachable tag and origin of a target's git checkout.

    ``latest_tag`` is None when the repository has no reachable tags.
    """

    latest_tag: str | None
    origin: str | None = None


def read_tag_info(path: Path) -> TagInfo | None:
    """Read tag state for a target directory.

    Returns None when the directory is not the top of a git checkout, so a
    target vendored inside another repository never picks up that
    repository's tags.
    """
    if not (path / ".git").exists():
        return None

    try:
        repo = git.Repo(path)
    except (git.InvalidGitRepositoryError, git.NoSuchPathError) as e:
        logger.debug("Not a git repository: %s (%s)", path, e)
        return None

    origin = None
    for remote_name in ("origin", "upstream"):
        try:
            origin = repo.remote(remote_name).url
            break
        except ValueError:
            continue

    try:
        latest_tag = repo.git.describe("--abbrev=0", "--tags").strip() or None
    except git.GitCommandError:
        # No names found; the repository has no tags yet.
        latest_tag = None

    return TagInfo(latest_tag=latest_tag, origin=origin)
