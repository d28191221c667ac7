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


from __future__ import annotations

from pathlib import Path

import git
import pytest

from relsmith.gitinfo import TagInfo, read_tag_info


@pytest.fixture
def repo(tmp_path: Path) -> git.Repo:
    """A git repository with one commit."""
    path = tmp_path / "acme-web"
    path.mkdir()
    r = git.Repo.init(path)
    with r.config_writer() as cw:
        cw.set_value("user", "name", "Test User")
        cw.set_value("user", "email", "test@example.com")
    (path / "metadata.json").write_text("{}")
    r.index.add(["metadata.json"])
    r.index.commit("Initial commit")
    return r


class TestReadTagInfo:
    """Tests for reading tag state from a target checkout."""

    def test_not_a_checkout(self, tmp_path: Path) -> None:
        assert read_tag_info(tmp_path) is None

    def test_nested_directory_ignored(self, repo: git.Repo) -> None:
        """Test that a subdirectory of a checkout does not pick up its tags."""
        sub = Path(repo.working_dir) / "sub"
        sub.mkdir()
        assert read_tag_info(sub) is None

    def test_no_tags(self, repo: git.Repo) -> None:
        assert read_tag_info(Path(repo.working_dir)) == TagInfo(latest_tag=None, origin=None)

    def test_latest_tag_and_origin(self, repo: git.Repo) -> None:
        repo.create_tag("1.0.0")
        (Path(repo.working_dir) / "CHANGELOG").write_text("1.1.0")
        repo.index.add(["CHANGELOG"])
        repo.index.commit("Release 1.1.0")
        repo.create_tag("v1.1.0")
        repo.create_remote("origin", "https://git.example.com/acme/web.git")

        info = read_tag_info(Path(repo.working_dir))
        assert info == TagInfo(latest_tag="v1.1.0", origin="https://git.example.com/acme/web.git")
