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

"""Error reporting helpers shared by command phases.

Every phase reports twice: a human-readable activity line and a structured
event in the run's ``events.jsonl``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from relsmith.core.run import activity

if TYPE_CHECKING:
    from relsmith.core.exceptions import RelsmithError
    from relsmith.core.run import RunContext


def log_phase_event(
    run: RunContext,
    phase: str,
    message: str,
    event_key: str,
    **event_data: Any,
) -> None:
    """Log a phase activity message and structured event together.

    Example:
        log_phase_event(run, "sign", "Signed 12 packages", "sign.done", signed=12)
    """
    activity(phase, message)
    run.log_event({"event": event_key, **event_data})


def phase_error(
    run: RunContext,
    phase: str,
    message: str,
    exit_code: int,
    *,
    event_key: str | None = None,
    **event_data: Any,
) -> int:
    """Log a phase error, write the failed summary and return the exit code.

    Example:
        return phase_error(run, "build", str(e), EXIT_BUILD_FAILED, failures=e.failures)
    """
    activity(phase, f"ERROR: {message}")
    run.log_event(
        {
            "event": event_key or f"{phase}.error",
            "message": message,
            "exit_code": exit_code,
            **event_data,
        }
    )
    run.write_summary(status="failed", error=message, exit_code=exit_code)
    return exit_code


def phase_warning(
    run: RunContext,
    phase: str,
    message: str,
    *,
    event_key: str | None = None,
    **event_data: Any,
) -> None:
    """Log a phase warning without affecting exit status."""
    activity(phase, f"Warning: {message}")
    run.log_event({"event": event_key or f"{phase}.warning", "message": message, **event_data})


def report_error(run: RunContext, phase: str, error: RelsmithError, **event_data: Any) -> int:
    """phase_error for a RelsmithError, using its message and exit code."""
    return phase_error(run, phase, error.message, error.exit_code, **event_data)


# Exit codes; each RelsmithError subclass carries the matching default.
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_BUILD_FAILED = 7
EXIT_HOUSEKEEPING_FAILED = 8
EXIT_SIGNING_TOTAL_FAILURE = 9
EXIT_SIGNING_PARTIAL_FAILURE = 10
EXIT_MISSING_DEPENDENCY_RULES = 11
EXIT_SIGNING_KEY_ERROR = 12
EXIT_INDEX_UNAVAILABLE = 13
EXIT_POPULATE_FAILED = 14
