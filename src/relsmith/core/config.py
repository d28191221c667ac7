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

"""Configuration utilities for Relsmith."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "paths": {
        "cache_root": "~/.cache/relsmith",
        "index_cache": "~/.cache/relsmith/index",
        "build_keys_dir": "~/.cache/relsmith/gpgkeys",
        "runs_root": "~/.cache/relsmith/runs",
    },
    "index": {
        "base_urls": [],
        "timeout": 30,
    },
    "build": {
        "default_targets": ["src/puppet/modules/*", "src/assets/*"],
        "dependency_file": "build/rpm/dependencies.yaml",
        "module_command": ["rake", "pkg:rpm"],
        "build_file_command": ["rake", "pkg:rpm"],
        "recovery_command": ["bundle", "install", "--with", "development"],
        "clean_command": ["rake", "clean"],
        "clobber_command": ["rake", "clobber"],
        "command_timeout": 3600,
    },
    "signing": {
        "digest_algorithm": "sha256",
        "default_key": "dev",
    },
    "run": {
        "verbose": False,
        "concurrency": None,
        "sign_timeout": 60,
        "require_rebuild": "unset",
        "fetch_published": None,
        "index_refresh": True,
        "download_retries": 3,
    },
    "tags": {
        "legacy_prefixes": ["v", "simp-", "simp6.0.0-"],
        "legacy_suffixes": ["-post1"],
    },
}


def get_config_path() -> Path:
    """Return the path to the config file."""
    return Path.home() / ".config" / "relsmith" / "config.yaml"


def ensure_config_exists() -> None:
    """Create the config file with defaults if it does not exist."""
    cfg_path = get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    if not cfg_path.exists():
        cfg_path.write_text(yaml.safe_dump(DEFAULT_CONFIG))


def load_config() -> dict[str, Any]:
    """Load configuration from disk and merge with defaults.

    The returned dictionary is a per-section merge of DEFAULT_CONFIG and the
    values stored in the on-disk config file.
    """
    ensure_config_exists()
    cfg_path = get_config_path()
    try:
        raw = yaml.safe_load(cfg_path.read_text()) or {}
    except yaml.YAMLError:
        raw = {}

    merged: dict[str, Any] = {}
    for key, val in DEFAULT_CONFIG.items():
        if key in raw and isinstance(raw[key], dict):
            merged[key] = {**val, **raw[key]}
        elif isinstance(val, dict):
            merged[key] = dict(val)
        else:
            merged[key] = raw.get(key, val)

    for pkey, pval in merged.get("paths", {}).items():
        merged["paths"][pkey] = str(Path(pval).expanduser())

    return merged


def write_config(data: dict[str, Any]) -> None:
    """Write the provided data as YAML to the config path."""
    cfg_path = get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    cfg_path.write_text(yaml.safe_dump(data))


if __name__ == "__main__":
    print(json.dumps(load_config(), indent=2))
