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

"""PyPI ecosystem adapter (PEP 621 projects and uv workspaces).

Workspace structure::

    repo/
    ├── pyproject.toml          # [tool.uv.workspace] members = ["packages/*"]
    ├── uv.lock
    └── packages/
        ├── core/pyproject.toml # [project] name = "my-core"
        └── cli/pyproject.toml  # dependencies = ["my-core>=0.1.0"]

Names are compared after PEP 503 normalization, so ``My_Core`` and
``my-core`` are the same package. Two members that normalize to the
same name are a workspace error.

Dependency rewriting::

    "my-core>=0.1.0"                      → "my-core>=0.2.0"
    "my-core[cli]==0.1.0; python_version>'3.10'"
                                          → "my-core[cli]==0.2.0; python_version>'3.10'"
    "my-core>=0.1,<0.3"                   → untouched (multiple clauses)
    "my-core @ file:///src/core"          → untouched (direct reference)
    "my-core"                             → untouched (no version)
"""

from __future__ import annotations

import re
import shutil
from collections.abc import Mapping, MutableMapping, MutableSequence
from pathlib import Path
from typing import Any

import tomlkit
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from sampo.adapters._io import clean_path, expand_glob_dirs, is_glob, parse_toml, read_toml
from sampo.backends._run import run_command
from sampo.errors import E, SampoError
from sampo.logging import get_logger
from sampo.net import registry_get
from sampo.types import PackageInfo, PackageKind, make_identifier

log = get_logger('sampo.adapters.pypi')

MANIFEST = 'pyproject.toml'
LOCKFILE = 'uv.lock'
PYPI_API = 'https://pypi.org/pypi'
# Longest first so ">=" is not read as ">".
VERSION_OPERATORS: tuple[str, ...] = ('>=', '<=', '==', '~=', '!=', '>', '<')
_NAME_END_RE = re.compile(r'[<>=!~\[;\s@]')
_VERSION_TOKEN_RE = re.compile(r'^[A-Za-z0-9._+*-]+$')


def normalize_name(name: str) -> str:
    """PEP 503 normalized form of ``name``."""
    return canonicalize_name(name)


def dependency_name(spec: str) -> str | None:
    """Return the distribution name of a PEP 508 requirement string."""
    try:
        return Requirement(spec).name
    except InvalidRequirement:
        name = _NAME_END_RE.split(spec.strip(), maxsplit=1)[0].strip()
        return name or None


def _project(data: Mapping[str, Any]) -> Mapping[str, Any]:
    project = data.get('project')
    return project if isinstance(project, Mapping) else {}


def _dependency_specs(data: Mapping[str, Any]) -> list[str]:
    project = _project(data)
    specs = [s for s in project.get('dependencies', []) if isinstance(s, str)]
    optional = project.get('optional-dependencies', {})
    if isinstance(optional, Mapping):
        for group in optional.values():
            if isinstance(group, list):
                specs.extend(s for s in group if isinstance(s, str))
    return specs


def _uv_workspace(data: Mapping[str, Any]) -> Mapping[str, Any] | None:
    tool = data.get('tool')
    uv = tool.get('uv') if isinstance(tool, Mapping) else None
    workspace = uv.get('workspace') if isinstance(uv, Mapping) else None
    return workspace if isinstance(workspace, Mapping) else None


def _expand(root: Path, pattern: str, *, strict: bool) -> list[Path]:
    if is_glob(pattern):
        return [clean_path(p) for p in expand_glob_dirs(root, pattern, MANIFEST)]
    candidate = clean_path(root / pattern)
    if (candidate / MANIFEST).is_file():
        return [candidate]
    if strict:
        raise SampoError(
            E.INVALID_WORKSPACE,
            f"workspace member '{pattern}' does not contain pyproject.toml",
            path=root / MANIFEST,
        )
    return []


def compute_dependency_spec(spec: str, new_version: str) -> str | None:
    """Replace the version of a single-clause requirement, keeping extras and markers.

    Returns ``None`` when the requirement should be left alone.
    """
    text = spec.strip()
    requirement_part, sep, markers = text.partition(';')
    try:
        requirement = Requirement(text)
    except InvalidRequirement:
        return None
    if requirement.url is not None or len(requirement.specifier) != 1:
        return None
    clause = next(iter(requirement.specifier))
    if clause.operator not in VERSION_OPERATORS or clause.version == new_version:
        return None
    if not _VERSION_TOKEN_RE.match(clause.version):
        return None

    pattern = re.compile(rf'{re.escape(clause.operator)}\s*{re.escape(clause.version)}')
    match = pattern.search(requirement_part)
    if match is None:
        return None
    updated = requirement_part[: match.start()] + f'{clause.operator}{new_version}' + requirement_part[match.end() :]
    return f'{updated}{sep}{markers}' if sep else updated


def _rewrite_array(
    array: MutableSequence[Any],
    by_name: Mapping[str, tuple[str, str]],
    applied: list[tuple[str, str]],
) -> None:
    for index, item in enumerate(array):
        if not isinstance(item, str):
            continue
        name = dependency_name(str(item))
        if name is None or normalize_name(name) not in by_name:
            continue
        original, new_version = by_name[normalize_name(name)]
        new_spec = compute_dependency_spec(str(item), new_version)
        if new_spec is None:
            continue
        array[index] = new_spec
        if (original, new_version) not in applied:
            applied.append((original, new_version))


class PypiAdapter:
    """Releases Python distributions from PEP 621 projects or uv workspaces."""

    kind = PackageKind.PYPI
    registry = 'PyPI registry'

    def can_discover(self, root: Path) -> bool:
        """A ``pyproject.toml`` marks a Python project."""
        return (root / MANIFEST).is_file()

    def find_root(self, start: Path) -> Path | None:
        """Prefer the nearest uv workspace root, else the nearest project."""
        nearest = None
        for current in (start, *start.parents):
            manifest = current / MANIFEST
            if not manifest.is_file():
                continue
            if _uv_workspace(read_toml(manifest)) is not None:
                return current
            nearest = nearest or current
        return nearest

    def discover(self, root: Path) -> list[PackageInfo]:
        """Discover the root project and any ``[tool.uv.workspace]`` members."""
        root_data = read_toml(root / MANIFEST)

        dirs: set[Path] = set()
        if isinstance(_project(root_data).get('name'), str):
            dirs.add(clean_path(root))
        workspace = _uv_workspace(root_data)
        if workspace is not None:
            for pattern in workspace.get('members', []):
                dirs.update(_expand(root, pattern, strict=True))
            for pattern in workspace.get('exclude', []):
                dirs.difference_update(_expand(root, pattern, strict=False))

        members: list[tuple[str, str, Path, list[str]]] = []
        seen: dict[str, tuple[str, Path]] = {}
        for package_dir in sorted(dirs):
            manifest = package_dir / MANIFEST
            data = root_data if package_dir == clean_path(root) else read_toml(manifest)
            project = _project(data)
            name = project.get('name')
            if not isinstance(name, str) or not name:
                raise SampoError(E.INVALID_MANIFEST, f'missing project.name in {manifest}', path=manifest)
            normalized = normalize_name(name)
            if normalized in seen:
                other, other_dir = seen[normalized]
                raise SampoError(
                    E.INVALID_WORKSPACE,
                    f"packages '{other}' (at {other_dir}) and '{name}' (at {package_dir}) normalize "
                    f"to the same PEP 503 name '{normalized}'",
                    path=manifest,
                )
            seen[normalized] = (name, package_dir)
            version = project.get('version')
            members.append((name, version if isinstance(version, str) else '', package_dir, _dependency_specs(data)))

        packages = []
        for name, version, path, specs in members:
            internal = set()
            for spec in specs:
                dep = dependency_name(spec)
                if dep is None or normalize_name(dep) not in seen:
                    continue
                target = seen[normalize_name(dep)][0]
                # Self-references such as ``pkg[extra]`` are not edges.
                if target != name:
                    internal.add(make_identifier(PackageKind.PYPI, target))
            packages.append(
                PackageInfo(
                    name=name,
                    version=version,
                    path=path,
                    kind=PackageKind.PYPI,
                    internal_deps=frozenset(internal),
                )
            )
        log.debug('discovered', ecosystem='pypi', root=str(root), count=len(packages))
        return packages

    def manifest_path(self, package_dir: Path) -> Path:
        """Return ``<package_dir>/pyproject.toml``."""
        return package_dir / MANIFEST

    def workspace_manifests(self, root: Path) -> list[Path]:
        """uv workspace roots pin no member versions."""
        return []

    def is_publishable(self, manifest: Path) -> bool:
        """PyPI needs a static ``project.name`` and ``project.version``."""
        project = _project(read_toml(manifest))
        name, version = project.get('name'), project.get('version')
        return isinstance(name, str) and bool(name.strip()) and isinstance(version, str) and bool(version.strip())

    def version_exists(self, name: str, version: str, manifest: Path | None = None) -> bool:
        """Look for ``version`` in the project's ``releases`` on PyPI."""
        normalized = normalize_name(name)
        response = registry_get(
            f'{PYPI_API}/{normalized}/json',
            registry=self.registry,
            package=normalized,
            version=version,
        )
        if response is None:
            return False
        try:
            payload = response.json()
        except ValueError as exc:
            raise SampoError(E.PUBLISH, f'invalid JSON from PyPI: {exc}') from exc
        releases = payload.get('releases') if isinstance(payload, dict) else None
        return isinstance(releases, dict) and version in releases

    def publish(self, manifest: Path, dry_run: bool, extra_args: list[str]) -> None:
        """Build with ``uv build``; upload with ``uv publish`` unless ``dry_run``."""
        project = _project(read_toml(manifest))
        name = project.get('name')
        if not isinstance(name, str) or not name.strip():
            raise SampoError(E.PUBLISH, f'Manifest {manifest} is missing a project.name field', path=manifest)
        version = project.get('version')
        if not isinstance(version, str) or not version.strip():
            raise SampoError(E.PUBLISH, f'Manifest {manifest} is missing a project.version field', path=manifest)

        package_dir = manifest.parent
        dist = package_dir / 'dist'
        if dist.exists():
            try:
                shutil.rmtree(dist)
            except OSError as exc:
                raise SampoError(E.PUBLISH, f'failed to clean dist directory: {exc}', path=dist) from exc

        build = run_command(['uv', 'build'], cwd=package_dir, error_code=E.PUBLISH)
        if not build.ok:
            raise SampoError(
                E.PUBLISH,
                f"uv build failed for {manifest} (package '{name}') with status {build.return_code}: "
                f'{build.failure_detail()}',
                ecosystem=self.kind.value,
            )
        if dry_run:
            log.info('dry_run_skip_upload', package=name, version=version)
            return

        upload = run_command(['uv', 'publish', *extra_args], cwd=package_dir, error_code=E.PUBLISH)
        if not upload.ok:
            raise SampoError(
                E.PUBLISH,
                f"uv publish failed for {manifest} (package '{name}') with status {upload.return_code}: "
                f'{upload.failure_detail()}',
                ecosystem=self.kind.value,
            )

    def lockfile_exists(self, root: Path) -> bool:
        """Return ``True`` if ``uv.lock`` sits at ``root``."""
        return (root / LOCKFILE).is_file()

    def regenerate_lockfile(self, root: Path) -> None:
        """Run ``uv lock``."""
        if not (root / MANIFEST).is_file():
            raise SampoError(E.RELEASE, f'cannot regenerate lockfile; {MANIFEST} not found in {root}')
        log.info('regenerating_lockfile', ecosystem='pypi', path=str(root / LOCKFILE))
        result = run_command(['uv', 'lock'], cwd=root, error_code=E.RELEASE)
        if not result.ok:
            raise SampoError(
                E.RELEASE,
                f'uv lock failed with status {result.return_code}: {result.failure_detail()}',
            )

    def update_manifest_versions(
        self,
        manifest: Path,
        text: str,
        new_pkg_version: str | None,
        new_versions: Mapping[str, str],
    ) -> tuple[str, list[tuple[str, str]]]:
        """Rewrite ``project.version`` and matching dependency specifiers."""
        doc = parse_toml(text, manifest)
        project = doc.get('project')
        applied: list[tuple[str, str]] = []
        if not isinstance(project, MutableMapping):
            return tomlkit.dumps(doc), applied

        if new_pkg_version is not None and 'version' in project:
            if project['version'] != new_pkg_version:
                project['version'] = new_pkg_version

        by_name = {normalize_name(name): (name, version) for name, version in new_versions.items()}
        dependencies = project.get('dependencies')
        if isinstance(dependencies, MutableSequence):
            _rewrite_array(dependencies, by_name, applied)
        optional = project.get('optional-dependencies')
        if isinstance(optional, MutableMapping):
            for group in optional.values():
                if isinstance(group, MutableSequence):
                    _rewrite_array(group, by_name, applied)

        return tomlkit.dumps(doc), applied


__all__ = [
    'PypiAdapter',
    'compute_dependency_spec',
    'dependency_name',
    'normalize_name',
]
