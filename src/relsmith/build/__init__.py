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


"""Build module for Relsmith.

Provides the parallel build pass, the housekeeping sweep, local build
procedures and per-target build records.
"""

# Error handling and exit codes
from relsmith.build.errors import (
    EXIT_BUILD_FAILED,
    EXIT_CONFIG_ERROR,
    EXIT_HOUSEKEEPING_FAILED,
    EXIT_INDEX_UNAVAILABLE,
    EXIT_MISSING_DEPENDENCY_RULES,
    EXIT_POPULATE_FAILED,
    EXIT_SIGNING_KEY_ERROR,
    EXIT_SIGNING_PARTIAL_FAILURE,
    EXIT_SIGNING_TOTAL_FAILURE,
    EXIT_SUCCESS,
    log_phase_event,
    phase_error,
    phase_warning,
    report_error,
)

# Housekeeping
from relsmith.build.housekeeping import SweepJob, sweep, sweep_directory

# Local procedures
from relsmith.build.procedures import (
    BuildCommands,
    CommandResult,
    clean_toolchain_env,
    run_command,
    run_local_build,
)

# Build records
from relsmith.build.record import (
    RECORD_FILENAME,
    ArtifactDescriptor,
    ArtifactValidationError,
    BuildRecord,
    RecordOrigin,
    find_records,
    load_record,
    record_dist,
    refresh_signatures,
    validate_dist,
)

# Scheduler
from relsmith.build.scheduler import (
    BuildJob,
    BuildPassResult,
    BuildScheduler,
    TargetResult,
    TargetStatus,
    build_target_job,
)

__all__ = [
    # Exit codes
    "EXIT_BUILD_FAILED",
    "EXIT_CONFIG_ERROR",
    "EXIT_HOUSEKEEPING_FAILED",
    "EXIT_INDEX_UNAVAILABLE",
    "EXIT_MISSING_DEPENDENCY_RULES",
    "EXIT_POPULATE_FAILED",
    "EXIT_SIGNING_KEY_ERROR",
    "EXIT_SIGNING_PARTIAL_FAILURE",
    "EXIT_SIGNING_TOTAL_FAILURE",
    "EXIT_SUCCESS",
    "RECORD_FILENAME",
    # Records
    "ArtifactDescriptor",
    "ArtifactValidationError",
    # Procedures
    "BuildCommands",
    # Scheduler
    "BuildJob",
    "BuildPassResult",
    "BuildRecord",
    "BuildScheduler",
    "CommandResult",
    "RecordOrigin",
    # Housekeeping
    "SweepJob",
    "TargetResult",
    "TargetStatus",
    "build_target_job",
    "clean_toolchain_env",
    "find_records",
    "load_record",
    # Error helpers
    "log_phase_event",
    "phase_error",
    "phase_warning",
    "record_dist",
    "refresh_signatures",
    "report_error",
    "run_command",
    "run_local_build",
    "sweep",
    "sweep_directory",
    "validate_dist",
]
