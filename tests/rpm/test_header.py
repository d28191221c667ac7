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

from collections.abc import Callable
from pathlib import Path

import pytest

from relsmith.rpm.header import (
    RpmHeaderError,
    is_signed,
    parse_rpm_filename,
    read_signature_tags,
    rpm_arch,
)


class TestSignatureDetection:
    """Tests for reading the signature header."""

    def test_signed(self, tmp_path: Path, make_rpm: Callable[..., Path]) -> None:
        rpm = make_rpm(tmp_path / "a-1.0-1.noarch.rpm", signed=True)
        assert 268 in read_signature_tags(rpm)
        assert is_signed(rpm) is True

    def test_unsigned(self, tmp_path: Path, make_rpm: Callable[..., Path]) -> None:
        rpm = make_rpm(tmp_path / "a-1.0-1.noarch.rpm")
        assert read_signature_tags(rpm) == {1000, 1004}
        assert is_signed(rpm) is False

    def test_not_an_rpm(self, tmp_path: Path) -> None:
        path = tmp_path / "bogus.rpm"
        path.write_bytes(b"not an rpm at all" * 10)
        with pytest.raises(RpmHeaderError):
            read_signature_tags(path)
        assert is_signed(path) is False

    def test_truncated_index(self, tmp_path: Path, make_rpm: Callable[..., Path]) -> None:
        rpm = make_rpm(tmp_path / "a-1.0-1.noarch.rpm", signed=True)
        rpm.write_bytes(rpm.read_bytes()[:120])
        with pytest.raises(RpmHeaderError, match="truncated"):
            read_signature_tags(rpm)

    def test_missing_file(self, tmp_path: Path) -> None:
        assert is_signed(tmp_path / "missing.rpm") is False


class TestRpmFileName:
    def test_parse(self) -> None:
        parsed = parse_rpm_filename("pupmod-acme-web-1.2.0-2.el9.noarch.rpm")
        assert parsed is not None
        assert parsed.name == "pupmod-acme-web"
        assert parsed.version == "1.2.0"
        assert parsed.release == "2.el9"
        assert parsed.arch == "noarch"
        assert parsed.is_source is False

    def test_source(self) -> None:
        parsed = parse_rpm_filename("acme-tools-2.1.0-3.src.rpm")
        assert parsed is not None and parsed.is_source

    def test_not_canonical(self) -> None:
        assert parse_rpm_filename("random.rpm") is None
        assert rpm_arch("random.rpm") == "noarch"
        assert rpm_arch("acme-1.0-1.x86_64.rpm") == "x86_64"
