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

"""Remote package index client for yum-style repositories.

The index answers two questions for the decision engine: "what is the newest
published build of package P?" and "fetch that build into a directory".
Every transport or availability failure is raised as PackageIndexError with
a transient/permanent classification so callers can decide whether a retry
is worth it.

Repository metadata (``repodata/repomd.xml`` and the ``primary`` XML it
points at) is cached on disk and refreshed with conditional requests.
"""

from __future__ import annotations

import gzip
import hashlib
import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import requests
from packaging.version import InvalidVersion

from relsmith.core.exceptions import IndexUnavailableError, PackageIndexError
from relsmith.rpm.version import compare_version_release

if TYPE_CHECKING:
    from relsmith.core.context import RunSettings

logger = logging.getLogger(__name__)

REPO_NS = "{http://linux.duke.edu/metadata/repo}"
COMMON_NS = "{http://linux.duke.edu/metadata/common}"


@dataclass(frozen=True)
class RemotePackage:
    """A published package in the remote index."""

    name: str
    version: str
    release: str
    arch: str
    location: str
    base_url: str = ""

    @property
    def filename(self) -> str:
        """Canonical identifier ``name-version-release.arch.rpm``."""
        return f"{self.name}-{self.version}-{self.release}.{self.arch}.rpm"

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.location.lstrip('/')}"


class PackageIndexClient(Protocol):
    """Collaborator interface used by the decision engine and fetch step."""

    def available(self, name: str) -> RemotePackage | None: ...

    def download(self, name: str, target_dir: Path) -> Path: ...


def _newer(candidate: RemotePackage, current: RemotePackage) -> bool:
    try:
        return compare_version_release(
            candidate.version, candidate.release, current.version, current.release
        ) > 0
    except InvalidVersion:
        return False


def parse_primary_xml(data: bytes, base_url: str = "") -> dict[str, RemotePackage]:
    """Parse a yum ``primary`` XML document, keeping the newest build per name.

    Source packages are ignored.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise PackageIndexError(f"Malformed primary metadata from {base_url}: {e}") from e

    packages: dict[str, RemotePackage] = {}
    for pkg in root.iter(f"{COMMON_NS}package"):
        name = pkg.findtext(f"{COMMON_NS}name")
        arch = pkg.findtext(f"{COMMON_NS}arch") or "noarch"
        version_el = pkg.find(f"{COMMON_NS}version")
        location_el = pkg.find(f"{COMMON_NS}location")
        if not name or version_el is None or location_el is None or arch in ("src", "nosrc"):
            continue
        remote = RemotePackage(
            name=name,
            version=version_el.get("ver", ""),
            release=version_el.get("rel", ""),
            arch=arch,
            location=location_el.get("href", ""),
            base_url=base_url,
        )
        existing = packages.get(name)
        if existing is None or _newer(remote, existing):
            packages[name] = remote
    return packages


def primary_location(repomd: bytes) -> str:
    """Return the href of the ``primary`` data entry in repomd.xml."""
    try:
        root = ET.fromstring(repomd)
    except ET.ParseError as e:
        raise PackageIndexError(f"Malformed repomd.xml: {e}") from e
    for data in root.iter(f"{REPO_NS}data"):
        if data.get("type") == "primary":
            location = data.find(f"{REPO_NS}location")
            if location is not None and location.get("href"):
                return str(location.get("href"))
    raise PackageIndexError("repomd.xml has no primary metadata entry")


class YumRepoIndexClient:
    """PackageIndexClient backed by one or more yum repositories over HTTP(S)."""

    def __init__(
        self,
        base_urls: list[str],
        cache_dir: Path,
        session: requests.Session | None = None,
        timeout: int = 30,
        refresh: bool = True,
    ) -> None:
        self.base_urls = [u.rstrip("/") for u in base_urls]
        self.cache_dir = cache_dir
        self.session = session or requests.Session()
        self.timeout = timeout
        self.refresh = refresh
        self._packages: dict[str, RemotePackage] = {}
        self._loaded = False

    def _get(self, url: str, headers: dict[str, str] | None = None, stream: bool = False) -> requests.Response:
        try:
            resp = self.session.get(url, headers=headers or {}, timeout=self.timeout, stream=stream)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise PackageIndexError(f"Could not reach {url}: {e}", transient=True) from e
        except requests.RequestException as e:
            raise PackageIndexError(f"Request for {url} failed: {e}") from e

        if resp.status_code >= 500:
            raise PackageIndexError(f"HTTP {resp.status_code} from {url}", transient=True)
        if resp.status_code >= 400:
            raise PackageIndexError(f"HTTP {resp.status_code} from {url}")
        return resp

    def _repo_cache(self, base_url: str) -> Path:
        digest = hashlib.sha256(base_url.encode()).hexdigest()[:16]
        return self.cache_dir / digest

    def _fetch_cached(self, url: str, dest: Path) -> bytes:
        """Fetch url into dest, reusing the cached copy when unchanged."""
        meta_path = dest.with_name(dest.name + ".meta.json")
        meta: dict[str, Any] = {}
        if meta_path.exists():
            try:
                meta = json.loads(meta_path.read_text())
            except json.JSONDecodeError:
                meta = {}

        if dest.exists() and not self.refresh:
            return dest.read_bytes()

        headers: dict[str, str] = {}
        if dest.exists():
            if meta.get("etag"):
                headers["If-None-Match"] = meta["etag"]
            if meta.get("last_modified"):
                headers["If-Modified-Since"] = meta["last_modified"]

        resp = self._get(url, headers=headers)
        if resp.status_code == 304 and dest.exists():
            logger.debug("%s not modified; using cache", url)
            return dest.read_bytes()

        content = resp.content
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(content)
        meta_path.write_text(
            json.dumps(
                {
                    "url": url,
                    "etag": resp.headers.get("ETag"),
                    "last_modified": resp.headers.get("Last-Modified"),
                },
                indent=2,
            )
        )
        return content

    def load(self) -> None:
        """Load the index from every configured repository.

        Raises:
            PackageIndexError: If any repository's metadata cannot be loaded.
        """
        packages: dict[str, RemotePackage] = {}
        for base_url in self.base_urls:
            cache = self._repo_cache(base_url)
            repomd = self._fetch_cached(f"{base_url}/repodata/repomd.xml", cache / "repomd.xml")
            href = primary_location(repomd)
            raw = self._fetch_cached(f"{base_url}/{href}", cache / Path(href).name)
            if href.endswith(".gz"):
                try:
                    raw = gzip.decompress(raw)
                except (OSError, EOFError) as e:
                    raise PackageIndexError(f"Corrupt primary metadata from {base_url}: {e}") from e
            for name, remote in parse_primary_xml(raw, base_url).items():
                existing = packages.get(name)
                if existing is None or _newer(remote, existing):
                    packages[name] = remote
        self._packages = packages
        self._loaded = True
        logger.info("Loaded %d packages from %d repositories", len(packages), len(self.base_urls))

    def available(self, name: str) -> RemotePackage | None:
        if not self._loaded:
            self.load()
        return self._packages.get(name)

    def download(self, name: str, target_dir: Path) -> Path:
        """Download the newest published build of ``name`` into target_dir."""
        remote = self.available(name)
        if remote is None:
            raise PackageIndexError(f"{name} is not available in the remote index")

        dest = target_dir / remote.filename
        resp = self._get(remote.url, stream=True)
        target_dir.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(dest.name + ".part")
        try:
            with partial.open("wb") as f:
                for chunk in resp.iter_content(chunk_size=65536):
                    f.write(chunk)
        except requests.RequestException as e:
            partial.unlink(missing_ok=True)
            raise PackageIndexError(f"Download of {remote.url} interrupted: {e}", transient=True) from e
        partial.replace(dest)
        return dest


def create_index_client(
    settings: RunSettings,
    cfg: dict[str, Any],
    *,
    require: bool = False,
    session: requests.Session | None = None,
) -> YumRepoIndexClient | None:
    """Construct and load the index client.

    Returns None when no repository is configured or loading fails, so every
    decision degrades to a local build. With ``require`` set that becomes an
    IndexUnavailableError instead.
    """
    index_cfg = cfg.get("index", {})
    base_urls = [str(u) for u in index_cfg.get("base_urls") or []]
    cache_dir = Path(cfg.get("paths", {}).get("index_cache", "~/.cache/relsmith/index")).expanduser()

    if not base_urls:
        reason = "no remote index configured"
    else:
        client = YumRepoIndexClient(
            base_urls,
            cache_dir,
            session=session,
            timeout=int(index_cfg.get("timeout", 30)),
            refresh=settings.refresh_index,
        )
        try:
            client.load()
            return client
        except PackageIndexError as e:
            reason = str(e)

    if require:
        raise IndexUnavailableError(message=f"Remote package index unavailable: {reason}")
    logger.warning("Remote package index unavailable (%s); building everything locally", reason)
    return None
