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


"""CLI application definition for Relsmith."""

from __future__ import annotations

from typer import Typer

from relsmith.commands.build import build, single
from relsmith.commands.check_published import check_published
from relsmith.commands.clean import clean, clobber
from relsmith.commands.populate import populate
from relsmith.commands.sign import sign

app: Typer = Typer(
    name="relsmith",
    help="A tool for building and signing RPM release sets.",
    add_completion=False,
)

# Register commands
app.command(name="build")(build)
app.command(name="single")(single)
app.command(name="sign")(sign)
app.command(name="clean")(clean)
app.command(name="clobber")(clobber)
app.command(name="check-published")(check_published)
app.command(name="populate")(populate)
