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

import gzip
import json
from pathlib import Path

import pytest
import requests
import responses

from relsmith.core.context import RunSettings
from relsmith.core.exceptions import IndexUnavailableError, PackageIndexError
from relsmith.index.client import (
    RemotePackage,
    YumRepoIndexClient,
    create_index_client,
    parse_primary_xml,
    primary_location,
)

BASE = "https://repo.example.com/el9/x86_64"

REPOMD = b"""<?xml version="1.0" encoding="UTF-8"?>
<repomd xmlns="http://linux.duke.edu/metadata/repo">
  <data type="filelists"><location href="repodata/filelists.xml.gz"/></data>
  <data type="primary"><location href="repodata/primary.xml.gz"/></data>
</repomd>
"""

PRIMARY = b"""<?xml version="1.0" encoding="UTF-8"?>
<metadata xmlns="http://linux.duke.edu/metadata/common" packages="4">
  <package type="rpm">
    <name>pupmod-acme-web</name><arch>noarch</arch>
    <version epoch="0" ver="1.2.0" rel="1"/>
    <location href="Packages/p/pupmod-acme-web-1.2.0-1.noarch.rpm"/>
  </package>
  <package type="rpm">
    <name>pupmod-acme-web</name><arch>noarch</arch>
    <version epoch="0" ver="1.2.0" rel="2"/>
    <location href="Packages/p/pupmod-acme-web-1.2.0-2.noarch.rpm"/>
  </package>
  <package type="rpm">
    <name>pupmod-acme-web</name><arch>src</arch>
    <version epoch="0" ver="9.9.9" rel="1"/>
    <location href="Packages/p/pupmod-acme-web-9.9.9-1.src.rpm"/>
  </package>
  <package type="rpm">
    <name>acme-tools</name><arch>x86_64</arch>
    <version epoch="0" ver="2.1.0" rel="3.el9"/>
    <location href="Packages/a/acme-tools-2.1.0-3.el9.x86_64.rpm"/>
  </package>
</metadata>
"""


def _add_repo(rsps: responses.RequestsMock, etag: str = '"v1"') -> None:
    rsps.add(responses.GET, f"{BASE}/repodata/repomd.xml", body=REPOMD, headers={"ETag": etag})
    rsps.add(responses.GET, f"{BASE}/repodata/primary.xml.gz", body=gzip.compress(PRIMARY))


class TestParsing:
    """Tests for repository metadata parsing."""

    def test_primary_location(self) -> None:
        assert primary_location(REPOMD) == "repodata/primary.xml.gz"

    def test_primary_location_missing(self) -> None:
        with pytest.raises(PackageIndexError, match="no primary"):
            primary_location(b'<repomd xmlns="http://linux.duke.edu/metadata/repo"/>')

    def test_newest_build_kept(self) -> None:
        """Test that only the newest binary build of each name is kept."""
        packages = parse_primary_xml(PRIMARY, BASE)
        assert set(packages) == {"pupmod-acme-web", "acme-tools"}
        web = packages["pupmod-acme-web"]
        assert (web.version, web.release) == ("1.2.0", "2")
        assert web.filename == "pupmod-acme-web-1.2.0-2.noarch.rpm"
        assert web.url == f"{BASE}/Packages/p/pupmod-acme-web-1.2.0-2.noarch.rpm"

    def test_malformed(self) -> None:
        with pytest.raises(PackageIndexError, match="Malformed"):
            parse_primary_xml(b"<metadata", BASE)


class TestYumRepoIndexClient:
    """Tests for the HTTP index client."""

    def test_available(self, tmp_path: Path, mock_responses: responses.RequestsMock) -> None:
        _add_repo(mock_responses)
        client = YumRepoIndexClient([BASE], tmp_path / "cache")
        remote = client.available("acme-tools")
        assert remote == RemotePackage(
            name="acme-tools",
            version="2.1.0",
            release="3.el9",
            arch="x86_64",
            location="Packages/a/acme-tools-2.1.0-3.el9.x86_64.rpm",
            base_url=BASE,
        )
        assert client.available("pupmod-unknown") is None

    def test_conditional_refresh(self, tmp_path: Path, mock_responses: responses.RequestsMock) -> None:
        """Test that cached metadata is revalidated with its ETag."""
        _add_repo(mock_responses)
        YumRepoIndexClient([BASE], tmp_path / "cache").load()

        mock_responses.reset()
        mock_responses.add(responses.GET, f"{BASE}/repodata/repomd.xml", status=304)
        mock_responses.add(responses.GET, f"{BASE}/repodata/primary.xml.gz", status=304)
        client = YumRepoIndexClient([BASE], tmp_path / "cache")
        assert client.available("pupmod-acme-web") is not None
        assert mock_responses.calls[0].request.headers["If-None-Match"] == '"v1"'

    def test_no_refresh_uses_cache(self, tmp_path: Path, mock_responses: responses.RequestsMock) -> None:
        _add_repo(mock_responses)
        YumRepoIndexClient([BASE], tmp_path / "cache").load()
        calls = len(mock_responses.calls)

        client = YumRepoIndexClient([BASE], tmp_path / "cache", refresh=False)
        assert client.available("acme-tools") is not None
        assert len(mock_responses.calls) == calls

    def test_cache_metadata_written(self, tmp_path: Path, mock_responses: responses.RequestsMock) -> None:
        _add_repo(mock_responses)
        client = YumRepoIndexClient([BASE], tmp_path / "cache")
        client.load()
        meta = json.loads((client._repo_cache(BASE) / "repomd.xml.meta.json").read_text())
        assert meta["etag"] == '"v1"'

    def test_server_error_is_transient(self, tmp_path: Path, mock_responses: responses.RequestsMock) -> None:
        mock_responses.add(responses.GET, f"{BASE}/repodata/repomd.xml", status=503)
        with pytest.raises(PackageIndexError) as exc_info:
            YumRepoIndexClient([BASE], tmp_path / "cache").load()
        assert exc_info.value.transient is True

    def test_not_found_is_permanent(self, tmp_path: Path, mock_responses: responses.RequestsMock) -> None:
        mock_responses.add(responses.GET, f"{BASE}/repodata/repomd.xml", status=404)
        with pytest.raises(PackageIndexError) as exc_info:
            YumRepoIndexClient([BASE], tmp_path / "cache").load()
        assert exc_info.value.transient is False

    def test_connection_error_is_transient(self, tmp_path: Path, mock_responses: responses.RequestsMock) -> None:
        mock_responses.add(
            responses.GET, f"{BASE}/repodata/repomd.xml", body=requests.ConnectionError("refused")
        )
        with pytest.raises(PackageIndexError) as exc_info:
            YumRepoIndexClient([BASE], tmp_path / "cache").load()
        assert exc_info.value.transient is True

    def test_download(self, tmp_path: Path, mock_responses: responses.RequestsMock) -> None:
        _add_repo(mock_responses)
        mock_responses.add(
            responses.GET, f"{BASE}/Packages/a/acme-tools-2.1.0-3.el9.x86_64.rpm", body=b"rpm-bytes"
        )
        client = YumRepoIndexClient([BASE], tmp_path / "cache")
        path = client.download("acme-tools", tmp_path / "dist")
        assert path == tmp_path / "dist" / "acme-tools-2.1.0-3.el9.x86_64.rpm"
        assert path.read_bytes() == b"rpm-bytes"
        assert not list((tmp_path / "dist").glob("*.part"))

    def test_download_unknown(self, tmp_path: Path, mock_responses: responses.RequestsMock) -> None:
        _add_repo(mock_responses)
        client = YumRepoIndexClient([BASE], tmp_path / "cache")
        with pytest.raises(PackageIndexError, match="not available"):
            client.download("pupmod-unknown", tmp_path / "dist")


class TestCreateIndexClient:
    """Tests for client construction and degradation."""

    def _cfg(self, tmp_path: Path, base_urls: list[str]) -> dict:
        return {"index": {"base_urls": base_urls, "timeout": 5}, "paths": {"index_cache": str(tmp_path / "c")}}

    def test_no_urls(self, tmp_path: Path) -> None:
        assert create_index_client(RunSettings(concurrency=1), self._cfg(tmp_path, [])) is None

    def test_no_urls_required(self, tmp_path: Path) -> None:
        with pytest.raises(IndexUnavailableError) as exc_info:
            create_index_client(RunSettings(concurrency=1), self._cfg(tmp_path, []), require=True)
        assert exc_info.value.exit_code == 13

    def test_unreachable_degrades(self, tmp_path: Path, mock_responses: responses.RequestsMock) -> None:
        """Test that an unreachable index yields None instead of an error."""
        mock_responses.add(responses.GET, f"{BASE}/repodata/repomd.xml", status=500)
        assert create_index_client(RunSettings(concurrency=1), self._cfg(tmp_path, [BASE])) is None

    def test_loaded(self, tmp_path: Path, mock_responses: responses.RequestsMock) -> None:
        _add_repo(mock_responses)
        client = create_index_client(RunSettings(concurrency=1), self._cfg(tmp_path, [BASE]))
        assert client is not None
        assert client.available("acme-tools") is not None
