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

"""Signing key references.

A key directory is a GPG home directory under the build keys directory
(``<build_keys_dir>/<key>``). It must contain at least one exported
``RPM-GPG-KEY-*`` public key and a secret key gpg can list. Creating or
bootstrapping key directories is handled elsewhere.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from relsmith.core.exceptions import SigningKeyError

logger = logging.getLogger(__name__)

GPG_LIST_TIMEOUT = 30


@dataclass(frozen=True)
class SigningKey:
    """A usable signing key.

    Attributes:
        key_dir: GPG home directory holding the key.
        name: Key identity passed to rpmsign as ``%_gpg_name``.
        fingerprint: Fingerprint of the secret key.
        public_keys: Exported ``RPM-GPG-KEY-*`` files.
    """

    key_dir: Path
    name: str
    fingerprint: str
    public_keys: tuple[Path, ...]


def parse_secret_keys(colons_output: str) -> list[tuple[str, str]]:
    """Parse ``gpg --with-colons --list-secret-keys`` output.

    Returns:
        (fingerprint, first uid) pairs for every secret key, in listing order.
        The uid is empty when the key has none.
    """
    keys: list[tuple[str, str]] = []
    fingerprint = ""
    uid = ""
    in_sec = False
    for line in colons_output.splitlines():
        fields = line.split(":")
        record = fields[0]
        if record == "sec":
            if in_sec and fingerprint:
                keys.append((fingerprint, uid))
            in_sec, fingerprint, uid = True, "", ""
        elif record == "ssb":
            # Subkey fingerprints follow; the primary key's is already known.
            if in_sec and fingerprint:
                keys.append((fingerprint, uid))
            in_sec = False
        elif in_sec and record == "fpr" and not fingerprint and len(fields) > 9:
            fingerprint = fields[9]
        elif in_sec and record == "uid" and not uid and len(fields) > 9:
            uid = fields[9]
    if in_sec and fingerprint:
        keys.append((fingerprint, uid))
    return keys


def load_signing_key(key_dir: Path, gpg: str = "gpg") -> SigningKey:
    """Resolve a key directory into a SigningKey.

    Raises:
        SigningKeyError: If the directory, public key export or secret key
            is missing, or gpg cannot be run.
    """
    if not key_dir.is_dir():
        raise SigningKeyError(message=f"Could not find GPG keydir '{key_dir}'", key_dir=key_dir)

    public_keys = tuple(sorted(key_dir.glob("RPM-GPG-KEY-*")))
    if not public_keys:
        raise SigningKeyError(
            message=f"Could not find any RPM-GPG-KEY-* files in '{key_dir}'",
            key_dir=key_dir,
        )

    cmd = [gpg, "--homedir", str(key_dir), "--batch", "--with-colons", "--list-secret-keys"]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=GPG_LIST_TIMEOUT, check=False)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise SigningKeyError(message=f"Could not list keys in '{key_dir}': {e}", key_dir=key_dir) from e

    if result.returncode != 0:
        raise SigningKeyError(
            message=f"gpg could not read '{key_dir}': {result.stderr.strip()}",
            key_dir=key_dir,
        )

    keys = parse_secret_keys(result.stdout)
    if not keys:
        raise SigningKeyError(message=f"No secret signing key found in '{key_dir}'", key_dir=key_dir)

    fingerprint, uid = keys[0]
    if len(keys) > 1:
        logger.warning("Multiple secret keys in %s; using %s", key_dir, fingerprint)
    return SigningKey(key_dir=key_dir, name=uid or fingerprint, fingerprint=fingerprint, public_keys=public_keys)
