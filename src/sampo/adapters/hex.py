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

"""Hex ecosystem adapter (Mix projects and umbrellas).

Workspace structure::

    umbrella/
    ├── mix.exs            # apps_path: "apps"
    ├── mix.lock
    └── apps/
        ├── core/mix.exs   # app: :core
        └── web/mix.exs    # {:core, in_umbrella: true}

A repository without ``apps_path`` is a single Mix project at the root.

Requirement rewriting::

    "~> 1.2"     → "~> 1.3"        (shorthand length kept)
    "~> 1.2.3"   → "~> 1.3.0"
    "== 1.2.3"   → "== 1.3.0"
    "1.2.3"      → "1.3.0"
    ">= 1.0.0"   → untouched
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from sampo.adapters._io import read_text
from sampo.adapters._mix import MixProject, parse_mix_project
from sampo.backends._run import run_command
from sampo.errors import E, SampoError
from sampo.logging import get_logger
from sampo.net import registry_get
from sampo.types import PackageInfo, PackageKind, make_identifier
from sampo.versions import is_semver, parse_version

log = get_logger('sampo.adapters.hex')

MANIFEST = 'mix.exs'
LOCKFILE = 'mix.lock'
HEX_API = 'https://hex.pm/api'
# Hex allows 100 anonymous requests per minute.
HEX_MIN_INTERVAL = 0.6


def load_project(manifest: Path) -> MixProject:
    """Read and scan ``manifest``."""
    return parse_mix_project(read_text(manifest))


def compute_requirement(old: str, new_version: str) -> str | None:
    """Return the rewritten Hex requirement, or ``None`` to leave it alone."""
    requirement = old.strip()
    if not requirement or ' and ' in requirement.lower() or ' or ' in requirement.lower():
        return None

    if requirement.startswith('~>'):
        target = requirement[2:].strip()
        segments = target.split('.')
        if len(segments) == 2 and all(s.isdigit() for s in segments) and '-' not in new_version:
            parsed = parse_version(new_version)
            resolved = f'~> {parsed.major}.{parsed.minor}'
        elif is_semver(target) or (len(segments) == 2 and all(s.isdigit() for s in segments)):
            resolved = f'~> {new_version}'
        else:
            return None
    elif requirement.startswith('=='):
        if not is_semver(requirement[2:].strip()):
            return None
        resolved = f'== {new_version}'
    elif is_semver(requirement):
        resolved = new_version
    else:
        return None
    return None if resolved == requirement else resolved


def _member_dirs(root: Path, project: MixProject) -> list[Path]:
    if project.apps_path is None:
        return [root]
    apps_dir = root / project.apps_path
    if not apps_dir.is_dir():
        raise SampoError(
            E.INVALID_WORKSPACE,
            f"apps_path '{project.apps_path}' does not exist",
            path=root / MANIFEST,
        )
    return sorted(p for p in apps_dir.iterdir() if p.is_dir() and (p / MANIFEST).is_file())


class HexAdapter:
    """Releases Elixir packages from Mix projects to hex.pm."""

    kind = PackageKind.HEX
    registry = 'Hex registry'

    def can_discover(self, root: Path) -> bool:
        """A ``mix.exs`` marks a Mix project."""
        return (root / MANIFEST).is_file()

    def find_root(self, start: Path) -> Path | None:
        """Return the outermost umbrella above ``start``, else the nearest project."""
        nearest = None
        umbrella = None
        for current in (start, *start.parents):
            manifest = current / MANIFEST
            if not manifest.is_file():
                continue
            nearest = nearest or current
            if load_project(manifest).apps_path is not None:
                umbrella = current
        return umbrella or nearest

    def discover(self, root: Path) -> list[PackageInfo]:
        """Discover the umbrella apps, or the single project at ``root``."""
        root_project = load_project(root / MANIFEST)

        members: list[tuple[str, str, Path, MixProject]] = []
        for app_dir in _member_dirs(root, root_project):
            manifest = app_dir / MANIFEST
            project = root_project if app_dir == root else load_project(manifest)
            if project.app is None:
                raise SampoError(E.INVALID_MANIFEST, f'missing app: in {manifest}', path=manifest)
            version = project.version.value if project.version else ''
            members.append((project.app, version, app_dir, project))

        names = {name for name, _, _, _ in members}
        packages = [
            PackageInfo(
                name=name,
                version=version,
                path=path,
                kind=PackageKind.HEX,
                internal_deps=frozenset(
                    make_identifier(PackageKind.HEX, dep.name) for dep in project.deps if dep.name in names
                ),
            )
            for name, version, path, project in members
        ]
        log.debug('discovered', ecosystem='hex', root=str(root), count=len(packages))
        return packages

    def manifest_path(self, package_dir: Path) -> Path:
        """Return ``<package_dir>/mix.exs``."""
        return package_dir / MANIFEST

    def workspace_manifests(self, root: Path) -> list[Path]:
        """Umbrella roots pin no versions."""
        return []

    def is_publishable(self, manifest: Path) -> bool:
        """Hex needs both ``app:`` and ``version:``."""
        project = load_project(manifest)
        return project.app is not None and project.version is not None and bool(project.version.value.strip())

    def version_exists(self, name: str, version: str, manifest: Path | None = None) -> bool:
        """Ask hex.pm whether the release exists."""
        name = name.strip()
        if not name:
            raise SampoError(E.PUBLISH, 'Package name cannot be empty when checking Hex registry')
        response = registry_get(
            f'{HEX_API}/packages/{name}/releases/{version}',
            registry=self.registry,
            package=name,
            version=version,
            min_interval=HEX_MIN_INTERVAL,
        )
        return response is not None

    def publish(self, manifest: Path, dry_run: bool, extra_args: list[str]) -> None:
        """Run ``mix hex.publish --yes`` in the project directory."""
        cmd = ['mix', 'hex.publish', '--yes']
        if dry_run:
            cmd.append('--dry-run')
        cmd.extend(extra_args)
        result = run_command(cmd, cwd=manifest.parent, error_code=E.PUBLISH)
        if not result.ok:
            raise SampoError(
                E.PUBLISH,
                f'mix hex.publish failed for {manifest} with status {result.return_code}: {result.failure_detail()}',
                ecosystem=self.kind.value,
            )

    def lockfile_exists(self, root: Path) -> bool:
        """Return ``True`` if ``mix.lock`` sits at ``root``."""
        return (root / LOCKFILE).is_file()

    def regenerate_lockfile(self, root: Path) -> None:
        """Run ``mix deps.get`` to refresh ``mix.lock``."""
        log.info('regenerating_lockfile', ecosystem='hex', path=str(root / LOCKFILE))
        result = run_command(['mix', 'deps.get'], cwd=root, error_code=E.RELEASE)
        if not result.ok:
            raise SampoError(
                E.RELEASE,
                f'mix deps.get failed with status {result.return_code}: {result.failure_detail()}',
            )

    def update_manifest_versions(
        self,
        manifest: Path,
        text: str,
        new_pkg_version: str | None,
        new_versions: Mapping[str, str],
    ) -> tuple[str, list[tuple[str, str]]]:
        """Rewrite the project version and dependency requirements in place."""
        project = parse_mix_project(text)
        replacements: list[tuple[int, int, str]] = []

        if new_pkg_version is not None:
            if project.version is None:
                raise SampoError(E.RELEASE, f'Manifest {manifest} is missing a version field', path=manifest)
            if project.version.value != new_pkg_version:
                replacements.append((project.version.start, project.version.end, f'"{new_pkg_version}"'))

        applied: list[tuple[str, str]] = []
        for dep in project.deps:
            new_version = new_versions.get(dep.name)
            if new_version is None or dep.requirement is None:
                continue
            resolved = compute_requirement(dep.requirement.value, new_version)
            if resolved is None:
                continue
            replacements.append((dep.requirement.start, dep.requirement.end, f'"{resolved}"'))
            if (dep.name, new_version) not in applied:
                applied.append((dep.name, new_version))

        output = text
        for start, end, replacement in sorted(replacements, reverse=True):
            output = output[:start] + replacement + output[end:]
        return output, sorted(applied)


__all__ = [
    'HexAdapter',
    'compute_requirement',
    'load_project',
]
