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


"""Pytest fixtures and configuration for Relsmith tests."""

from __future__ import annotations

import concurrent.futures
import json
import os
import struct
import sys
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import responses

RPM_LEAD_MAGIC = b"\xed\xab\xee\xdb"
RPM_HEADER_MAGIC = b"\x8e\xad\xe8\x01"

# RSA header signature, plus size and md5 entries every package carries.
SIGNED_TAGS = (1000, 1004, 268)
UNSIGNED_TAGS = (1000, 1004)

FAKE_BUILD_SCRIPT = """\
import json
import shutil
import sys
from pathlib import Path

if Path("FAIL").exists():
    print("simulated build failure", file=sys.stderr)
    sys.exit(1)

info = json.loads(Path("pkginfo.json").read_text())
dist = Path("dist")
dist.mkdir(exist_ok=True)
for name, template in info["files"].items():
    shutil.copy(template, dist / name)
count = Path("build_count")
count.write_text(str(int(count.read_text()) + 1 if count.exists() else 1))
"""


def fake_rpm_bytes(signed: bool = False) -> bytes:
    """Return the lead and signature header of a minimal RPM package."""
    lead = RPM_LEAD_MAGIC + b"\x03\x00" + b"\x00" * (96 - 6)
    tags = SIGNED_TAGS if signed else UNSIGNED_TAGS
    intro = RPM_HEADER_MAGIC + b"\x00" * 4 + struct.pack(">II", len(tags), 16)
    index = b"".join(struct.pack(">IIII", tag, 4, 0, 1) for tag in tags)
    return lead + intro + index + b"\x00" * 16 + b"payload"


def write_fake_rpm(path: Path, signed: bool = False) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(fake_rpm_bytes(signed))
    return path


@pytest.fixture
def temp_home(monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Create a temporary home directory and set HOME/XDG paths."""
    with tempfile.TemporaryDirectory() as tmpdir:
        home = Path(tmpdir)
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
        monkeypatch.setenv("XDG_CACHE_HOME", str(home / ".cache"))
        monkeypatch.setattr(Path, "home", lambda: home)
        for name in list(os.environ):
            if name.startswith("RELSMITH_"):
                monkeypatch.delenv(name)
        yield home


@pytest.fixture
def mock_config(temp_home: Path) -> Path:
    """Create a minimal config file in the temp home."""
    config_dir = temp_home / ".config" / "relsmith"
    config_dir.mkdir(parents=True, exist_ok=True)
    config_file = config_dir / "config.yaml"
    config_file.write_text("""
paths:
  cache_root: "~/.cache/relsmith"
  index_cache: "~/.cache/relsmith/index"
  build_keys_dir: "~/.cache/relsmith/gpgkeys"
  runs_root: "~/.cache/relsmith/runs"

index:
  base_urls: []
  timeout: 5

run:
  concurrency: 2
""")
    return config_file


@pytest.fixture
def mock_responses() -> Generator[responses.RequestsMock, None, None]:
    """Activate responses mock for HTTP requests."""
    with responses.RequestsMock() as rsps:
        yield rsps


@pytest.fixture
def thread_executor() -> Callable[[int], concurrent.futures.Executor]:
    """Executor factory that runs jobs in threads instead of processes."""
    return lambda workers: concurrent.futures.ThreadPoolExecutor(max_workers=workers)


@pytest.fixture
def rpm_templates(tmp_path: Path) -> dict[str, Path]:
    """Unsigned and signed RPM files to copy build output from."""
    templates = tmp_path / "templates"
    return {
        "unsigned": write_fake_rpm(templates / "unsigned.rpm"),
        "signed": write_fake_rpm(templates / "signed.rpm", signed=True),
    }


@pytest.fixture
def fake_build_script(tmp_path: Path) -> Path:
    """A build command that copies the files named in pkginfo.json into dist/."""
    script = tmp_path / "fake_build.py"
    script.write_text(FAKE_BUILD_SCRIPT)
    return script


@pytest.fixture
def fake_build_commands(fake_build_script: Path):
    """BuildCommands running the fake build script for every strategy."""
    from relsmith.build.procedures import BuildCommands

    command = (sys.executable, str(fake_build_script))
    return BuildCommands(module=command, build_file=command, recovery=(sys.executable, "-c", "pass"), timeout=60)


@pytest.fixture
def make_module_target(tmp_path: Path, rpm_templates: dict[str, Path]) -> Callable[..., Path]:
    """Factory for module targets (metadata.json) whose build emits fake RPMs."""

    def _make(
        name: str,
        version: str = "1.0.0",
        release: str = "1",
        *,
        signed: bool = False,
        root: Path | None = None,
    ) -> Path:
        target = (root or tmp_path / "modules") / name
        target.mkdir(parents=True, exist_ok=True)
        (target / "metadata.json").write_text(
            json.dumps({"name": f"acme-{name}", "version": version, "dependencies": []})
        )
        template = str(rpm_templates["signed" if signed else "unsigned"])
        package = f"pupmod-acme-{name}"
        (target / "pkginfo.json").write_text(
            json.dumps(
                {
                    "files": {
                        f"{package}-{version}-{release}.noarch.rpm": template,
                        f"{package}-{version}-{release}.src.rpm": template,
                    }
                }
            )
        )
        return target

    return _make


@pytest.fixture
def make_rpm() -> Callable[..., Path]:
    """Factory writing a minimal RPM file, with or without a signature."""
    return write_fake_rpm
