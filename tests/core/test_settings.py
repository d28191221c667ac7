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

import pytest

from relsmith.core.context import (
    BuildRequest,
    HousekeepingRequest,
    RebuildPolicy,
    RunSettings,
    SignRequest,
)
from relsmith.core.exceptions import ConfigError


class TestRunSettingsFromEnviron:
    """Tests for parsing run parameters from the environment."""

    def test_defaults(self) -> None:
        """Test that an empty environment yields the documented defaults."""
        settings = RunSettings.from_environ({})
        assert settings.verbose is False
        assert settings.concurrency >= 1
        assert settings.sign_timeout == 60
        assert settings.require_rebuild is RebuildPolicy.UNSET
        assert settings.fetch_published is None
        assert settings.refresh_index is True
        assert settings.download_retries == 3

    def test_all_values(self) -> None:
        """Test that every RELSMITH_* variable is honoured."""
        settings = RunSettings.from_environ(
            {
                "RELSMITH_VERBOSE": "yes",
                "RELSMITH_CONCURRENCY": "4",
                "RELSMITH_SIGN_TIMEOUT": "15",
                "RELSMITH_REQUIRE_REBUILD": "always",
                "RELSMITH_FETCH_PUBLISHED": "no",
                "RELSMITH_INDEX_REFRESH": "no",
                "RELSMITH_DOWNLOAD_RETRIES": "5",
            }
        )
        assert settings.verbose is True
        assert settings.concurrency == 4
        assert settings.sign_timeout == 15
        assert settings.require_rebuild is RebuildPolicy.ALWAYS
        assert settings.fetch_published is False
        assert settings.refresh_index is False
        assert settings.download_retries == 5

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("yes", RebuildPolicy.ALWAYS), ("no", RebuildPolicy.NEVER), ("unset", RebuildPolicy.UNSET)],
    )
    def test_rebuild_policy_aliases(self, value: str, expected: RebuildPolicy) -> None:
        """Test yes/no spellings of the forced-rebuild override."""
        settings = RunSettings.from_environ({"RELSMITH_REQUIRE_REBUILD": value})
        assert settings.require_rebuild is expected

    def test_blank_value_is_unset(self) -> None:
        """Test that an empty variable falls back to the default."""
        settings = RunSettings.from_environ({"RELSMITH_SIGN_TIMEOUT": "  "})
        assert settings.sign_timeout == 60

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("RELSMITH_CONCURRENCY", "0"),
            ("RELSMITH_CONCURRENCY", "many"),
            ("RELSMITH_VERBOSE", "perhaps"),
            ("RELSMITH_REQUIRE_REBUILD", "sometimes"),
        ],
    )
    def test_invalid_values_rejected(self, name: str, value: str) -> None:
        """Test that bad values raise ConfigError instead of being ignored."""
        with pytest.raises(ConfigError):
            RunSettings.from_environ({name: value})


class TestRunSettingsFromSources:
    """Tests for merging the config file with the environment."""

    def test_config_values_used(self) -> None:
        """Test that the run section of the config supplies settings."""
        cfg = {"run": {"concurrency": 3, "fetch_published": "yes", "verbose": None}}
        settings = RunSettings.from_sources(cfg, environ={})
        assert settings.concurrency == 3
        assert settings.fetch_published is True
        assert settings.verbose is False

    def test_environment_wins(self) -> None:
        """Test that environment variables override config values."""
        cfg = {"run": {"concurrency": 3}}
        settings = RunSettings.from_sources(cfg, environ={"RELSMITH_CONCURRENCY": "7", "OTHER": "x"})
        assert settings.concurrency == 7

    def test_config_bool_values(self) -> None:
        """Test that YAML booleans are accepted."""
        settings = RunSettings.from_sources({"run": {"index_refresh": False}}, environ={})
        assert settings.refresh_index is False


class TestShouldFetch:
    """Tests for the fetch default resolution."""

    def test_unset_uses_default(self) -> None:
        assert RunSettings(concurrency=1).should_fetch(True) is True
        assert RunSettings(concurrency=1).should_fetch(False) is False

    def test_explicit_value_wins(self) -> None:
        assert RunSettings(concurrency=1, fetch_published=False).should_fetch(True) is False


class TestRequests:
    """Tests for the frozen request dataclasses."""

    def test_build_request_defaults(self) -> None:
        """Test BuildRequest defaults."""
        request = BuildRequest(targets=(Path("/src/a"),))
        assert request.fetch is True
        assert request.key is None
        assert request.rpm_dir is None

    def test_requests_are_frozen(self) -> None:
        """Test that requests cannot be mutated."""
        request = SignRequest(artifact_root=Path("/out"))
        with pytest.raises(AttributeError):
            request.force = True  # type: ignore[misc]

    def test_housekeeping_default_command(self) -> None:
        assert HousekeepingRequest(directories=()).command == ("rake", "clean")

    def test_settings_validation(self) -> None:
        """Test that direct construction validates too."""
        with pytest.raises(ConfigError):
            RunSettings(concurrency=0)
