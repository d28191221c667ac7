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

import json
from pathlib import Path

import pytest

from relsmith.rpm.deps import DependencyRule, DependencyRules
from relsmith.rpm.spec import (
    DescriptorError,
    expand_macros,
    load_package_metadata,
    module_package_name,
    parse_spec_text,
)

SPEC_TEXT = """\
%global pkgname acme-tools
%define relnum 3

Name: %{pkgname}
Version: 2.1.0
Release: %{relnum}%{?dist}
BuildArch: x86_64
Summary: Acme release tools

%package -n %{pkgname}-doc
Summary: Documentation

%package selinux
Summary: SELinux policy

%description
Name: ignored-after-preamble

%files
"""


class TestParseSpecText:
    """Tests for reading the spec file preamble."""

    def test_preamble_and_subpackages(self) -> None:
        meta = parse_spec_text(SPEC_TEXT)
        assert meta.name == "acme-tools"
        assert meta.version == "2.1.0"
        assert meta.release == "3"
        assert meta.arch == "x86_64"
        assert meta.packages == ("acme-tools", "acme-tools-doc", "acme-tools-selinux")

    def test_defaults(self) -> None:
        meta = parse_spec_text("Name: simple\nVersion: 1.0\n")
        assert meta.release == "1"
        assert meta.arch == "noarch"
        assert meta.packages == ("simple",)

    def test_missing_version(self) -> None:
        with pytest.raises(DescriptorError, match="Version"):
            parse_spec_text("Name: simple\n", source="simple.spec")


class TestExpandMacros:
    def test_forms(self) -> None:
        macros = {"name": "acme", "ver": "1.0"}
        assert expand_macros("%{name}-%ver", macros) == "acme-1.0"
        assert expand_macros("1%{?dist}", macros) == "1"
        assert expand_macros("%{undefined}", macros) == "%{undefined}"

    def test_nested(self) -> None:
        assert expand_macros("%{a}", {"a": "%{b}", "b": "deep"}) == "deep"


class TestLoadPackageMetadata:
    """Tests for deriving PackageMetadata from a target directory."""

    def test_module_descriptor(self, tmp_path: Path) -> None:
        (tmp_path / "metadata.json").write_text(
            json.dumps({"name": "acme-web", "version": "1.2.0", "source": "https://git.example.com/acme/web"})
        )
        meta = load_package_metadata(tmp_path)
        assert meta.name == "pupmod-acme-web"
        assert meta.packages == ("pupmod-acme-web",)
        assert meta.release == "1"
        assert meta.arch == "noarch"
        assert meta.origin == "https://git.example.com/acme/web"
        assert meta.nvr() == "pupmod-acme-web-1.2.0-1"

    def test_release_override_wins(self, tmp_path: Path) -> None:
        (tmp_path / "build").mkdir()
        (tmp_path / "build" / "acme-tools.spec").write_text(SPEC_TEXT)
        rules = DependencyRules(rules={"acme-tools": DependencyRule(release="7")})
        meta = load_package_metadata(tmp_path, rules)
        assert meta.release == "7"
        assert meta.version == "2.1.0"

    def test_module_release_override(self, tmp_path: Path) -> None:
        (tmp_path / "metadata.json").write_text(json.dumps({"name": "acme-web", "version": "1.2.0"}))
        rules = DependencyRules(rules={"pupmod-acme-web": DependencyRule(release="4")})
        assert load_package_metadata(tmp_path, rules).release == "4"

    def test_invalid_module_descriptor(self, tmp_path: Path) -> None:
        (tmp_path / "metadata.json").write_text(json.dumps({"name": "acme-web"}))
        with pytest.raises(DescriptorError, match="version"):
            load_package_metadata(tmp_path)

    def test_no_descriptor(self, tmp_path: Path) -> None:
        with pytest.raises(DescriptorError, match="No spec file"):
            load_package_metadata(tmp_path)

    def test_module_package_name(self) -> None:
        assert module_package_name("acme/web") == "pupmod-acme-web"
