# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Tests for the PyPI adapter."""

from __future__ import annotations

import functools
from pathlib import Path

import httpx
import pytest
import tomlkit
from sampo.adapters import pypi
from sampo.adapters.pypi import PypiAdapter, compute_dependency_spec, dependency_name
from sampo.backends._run import CommandResult
from sampo.errors import E, SampoError
from sampo.logging import configure_logging

configure_logging(quiet=True)


def _project(path: Path, name: str, version: str = '0.1.0', deps: tuple[str, ...] = (), extra: str = '') -> Path:
    path.mkdir(parents=True, exist_ok=True)
    listed = ', '.join(f'"{dep}"' for dep in deps)
    manifest = path / 'pyproject.toml'
    manifest.write_text(
        f'[project]\nname = "{name}"\nversion = "{version}"\ndependencies = [{listed}]\n{extra}', encoding='utf-8'
    )
    return manifest


class TestSpecs:
    """Tests for requirement rewriting."""

    @pytest.mark.parametrize(
        ('spec', 'expected'),
        [
            ('my-core>=0.1.0', 'my-core>=0.2.0'),
            ('my-core ~= 0.1.0', 'my-core ~=0.2.0'),
            ("my-core[cli]==0.1.0; python_version>'3.10'", "my-core[cli]==0.2.0; python_version>'3.10'"),
            ('my-core>=0.1,<0.3', None),
            ('my-core @ file:///src/core', None),
            ('my-core', None),
            ('my-core==0.2.0', None),
        ],
    )
    def test_compute(self, spec: str, expected: str | None) -> None:
        """Single clauses are rewritten; everything else is left alone."""
        assert compute_dependency_spec(spec, '0.2.0') == expected

    def test_dependency_name(self) -> None:
        """Names come from PEP 508, with a lenient fallback."""
        assert dependency_name('My_Core[cli]>=1') == 'My_Core'
        assert dependency_name('weird name >= ???') == 'weird'


class TestDiscover:
    """Tests for uv workspace discovery."""

    def test_uv_workspace(self, tmp_path: Path) -> None:
        """Members are found by glob, normalized names link, excludes apply."""
        _project(
            tmp_path,
            'root-app',
            deps=('My_Core>=0.1.0',),
            extra='[tool.uv.workspace]\nmembers = ["packages/*"]\nexclude = ["packages/old"]\n',
        )
        _project(tmp_path / 'packages' / 'core', 'my-core')
        _project(tmp_path / 'packages' / 'cli', 'my-cli', deps=('my-core>=0.1.0', 'my-cli[extra]'))
        _project(tmp_path / 'packages' / 'old', 'old')

        adapter = PypiAdapter()
        assert adapter.find_root(tmp_path / 'packages' / 'cli') == tmp_path
        members = {info.name: info for info in adapter.discover(tmp_path)}

        assert sorted(members) == ['my-cli', 'my-core', 'root-app']
        assert members['root-app'].internal_deps == frozenset({'pypi/my-core'})
        assert members['my-cli'].internal_deps == frozenset({'pypi/my-core'})

    def test_normalized_duplicates(self, tmp_path: Path) -> None:
        """Two members with the same PEP 503 name are a workspace error."""
        (tmp_path / 'pyproject.toml').write_text('[tool.uv.workspace]\nmembers = ["a", "b"]\n', encoding='utf-8')
        _project(tmp_path / 'a', 'My.Pkg')
        _project(tmp_path / 'b', 'my-pkg')
        with pytest.raises(SampoError, match='same PEP 503 name') as excinfo:
            PypiAdapter().discover(tmp_path)
        assert excinfo.value.code is E.INVALID_WORKSPACE


class TestManifestRewrite:
    """Tests for update_manifest_versions()."""

    def test_version_and_optional_dependencies(self, tmp_path: Path) -> None:
        """project.version and matching specs in every group change."""
        manifest = _project(
            tmp_path,
            'my-cli',
            deps=('My_Core>=0.1.0', 'httpx>=0.27'),
            extra='\n[project.optional-dependencies]\ntest = ["my-core==0.1.0"]\n',
        )
        text, applied = PypiAdapter().update_manifest_versions(
            manifest, manifest.read_text(encoding='utf-8'), '0.2.0', {'my-core': '0.3.0'}
        )

        project = tomlkit.parse(text).unwrap()['project']
        assert project['version'] == '0.2.0'
        assert project['dependencies'] == ['My_Core>=0.3.0', 'httpx>=0.27']
        assert project['optional-dependencies']['test'] == ['my-core==0.3.0']
        assert applied == [('my-core', '0.3.0')]

    def test_dynamic_version_is_left_alone(self, tmp_path: Path) -> None:
        """A project without a static version keeps its layout."""
        text = '[project]\nname = "x"\ndynamic = ["version"]\n'
        assert PypiAdapter().update_manifest_versions(tmp_path / 'pyproject.toml', text, '1.0.0', {}) == (text, [])


class TestRegistryAndPublish:
    """Tests for the PyPI probe and the uv publish flow."""

    def test_version_exists(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The normalized JSON endpoint is queried and releases are checked."""
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return httpx.Response(200, json={'releases': {'1.0.0': []}})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        monkeypatch.setattr(pypi, 'registry_get', functools.partial(pypi.registry_get, client=client, min_interval=0))

        assert PypiAdapter().version_exists('My_Core', '1.0.0')
        assert not PypiAdapter().version_exists('My_Core', '1.1.0')
        assert paths == ['/pypi/my-core/json', '/pypi/my-core/json']

    def test_dry_run_builds_only(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Dry runs clean dist/ and build without uploading."""
        calls: list[list[str]] = []
        monkeypatch.setattr(
            pypi, 'run_command', lambda cmd, **_: calls.append(cmd) or CommandResult(command=cmd, return_code=0)
        )
        manifest = _project(tmp_path, 'x', '1.0.0')
        (tmp_path / 'dist').mkdir()
        (tmp_path / 'dist' / 'stale.whl').write_text('', encoding='utf-8')

        PypiAdapter().publish(manifest, True, ['--token', 'abc'])
        assert calls == [['uv', 'build']]
        assert not (tmp_path / 'dist').exists()

        PypiAdapter().publish(manifest, False, ['--token', 'abc'])
        assert calls[1:] == [['uv', 'build'], ['uv', 'publish', '--token', 'abc']]

    def test_publishable(self, tmp_path: Path) -> None:
        """A static name and version are required."""
        assert PypiAdapter().is_publishable(_project(tmp_path / 'a', 'a'))
        (tmp_path / 'b').mkdir()
        (tmp_path / 'b' / 'pyproject.toml').write_text(
            '[project]\nname = "b"\ndynamic = ["version"]\n', encoding='utf-8'
        )
        assert not PypiAdapter().is_publishable(tmp_path / 'b' / 'pyproject.toml')
