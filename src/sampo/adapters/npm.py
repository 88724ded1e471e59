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

"""npm ecosystem adapter (npm, pnpm, yarn and bun workspaces).

Workspace structure::

    monorepo/
    ├── package.json             # "workspaces": ["packages/*"]
    ├── pnpm-workspace.yaml      # optional, packages: ["packages/*"]
    ├── pnpm-lock.yaml           # or yarn.lock / package-lock.json / bun.lockb
    └── packages/
        ├── core/package.json
        └── utils/package.json

Dependency specifier rewriting::

    "workspace:*"       → untouched
    "workspace:^1.0.0"  → "workspace:^1.1.0"
    "^1.0.0"            → "^1.1.0"
    "1.0.0"             → "1.1.0"
    ">=1.0.0"           → untouched
    "file:../core"      → untouched

``package.json`` edits replace only the byte span of each changed JSON
string, so indentation and trailing newlines stay exactly as written.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from sampo.adapters._io import (
    clean_path,
    expand_glob_dirs,
    is_glob,
    json_object_spans,
    read_json_object,
    read_text,
)
from sampo.backends._run import run_command
from sampo.errors import E, SampoError
from sampo.logging import get_logger
from sampo.types import PackageInfo, PackageKind, make_identifier

log = get_logger('sampo.adapters.npm')

MANIFEST = 'package.json'
PNPM_WORKSPACE = 'pnpm-workspace.yaml'
DEPENDENCY_SECTIONS: tuple[str, ...] = (
    'dependencies',
    'devDependencies',
    'peerDependencies',
    'optionalDependencies',
)
NON_NUMERIC_PREFIXES: tuple[str, ...] = ('file:', 'link:', 'npm:', 'git:', 'http:', 'https:')


class PackageManager(Enum):
    """JavaScript package managers sampo can drive."""

    NPM = 'npm'
    PNPM = 'pnpm'
    YARN = 'yarn'
    BUN = 'bun'


# Checked in order; the first lockfile present wins.
_LOCKFILES: tuple[tuple[str, PackageManager], ...] = (
    ('pnpm-lock.yaml', PackageManager.PNPM),
    ('bun.lockb', PackageManager.BUN),
    ('yarn.lock', PackageManager.YARN),
    ('package-lock.json', PackageManager.NPM),
    ('npm-shrinkwrap.json', PackageManager.NPM),
)

_LOCKFILE_COMMANDS: dict[PackageManager, list[str]] = {
    PackageManager.NPM: ['npm', 'install', '--package-lock-only'],
    PackageManager.PNPM: ['pnpm', 'install', '--lockfile-only'],
    PackageManager.YARN: ['yarn', 'install', '--mode', 'update-lockfile'],
    PackageManager.BUN: ['bun', 'install', '--frozen-lockfile=false'],
}


@dataclass(frozen=True)
class PublishConfig:
    """The ``publishConfig`` fields sampo forwards to ``publish``."""

    registry: str | None = None
    access: str | None = None
    tag: str | None = None


@dataclass(frozen=True)
class ManifestInfo:
    """The parts of ``package.json`` that matter for publishing."""

    name: str
    version: str | None
    private: bool
    package_manager: str | None
    publish_config: PublishConfig


def _trimmed(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def validate_package_name(name: str) -> str | None:
    """Return why ``name`` is not a valid npm package name, or ``None``."""
    if len(name) > 214:
        return 'package name must be 214 characters or fewer'
    if name.startswith(('.', '_')):
        return "package name must not start with '.' or '_'"
    if ' ' in name:
        return 'package name must not contain spaces'
    if name != name.lower():
        return 'package name must be lowercase'

    scope, package = '', name
    if name.startswith('@'):
        scope, sep, package = name.partition('/')
        if not sep:
            return "scoped packages must use the form '@scope/name'"
        scope = scope[1:]
        if not scope:
            return 'scope name must not be empty'

    allowed = set('abcdefghijklmnopqrstuvwxyz0123456789-_.')
    for label, part in (('scope', scope), ('name', package)):
        if not part:
            continue
        if part.startswith(('.', '_')):
            return f"{label} must not start with '.' or '_'"
        if not set(part) <= allowed:
            return f"{label} may only contain lowercase letters, digits, '-', '_', or '.'"
    return None


def parse_manifest_info(manifest: Path, data: Mapping[str, Any]) -> ManifestInfo:
    """Validate the publish-relevant fields of a ``package.json``.

    Raises:
        SampoError: ``PUBLISH`` for a missing or invalid name, or a
            public package without a version.
    """
    name = _trimmed(data.get('name'))
    if name is None:
        raise SampoError(E.PUBLISH, f"Manifest {manifest} is missing a non-empty 'name' field", path=manifest)
    problem = validate_package_name(name)
    if problem is not None:
        raise SampoError(E.PUBLISH, f"Manifest {manifest} has invalid package name '{name}': {problem}", path=manifest)

    version = _trimmed(data.get('version'))
    private = data.get('private') is True
    if not private and version is None:
        raise SampoError(E.PUBLISH, f"Manifest {manifest} is missing a non-empty 'version' field", path=manifest)

    raw_config = data.get('publishConfig')
    publish_config = PublishConfig()
    if isinstance(raw_config, Mapping):
        publish_config = PublishConfig(
            registry=_trimmed(raw_config.get('registry')),
            access=_trimmed(raw_config.get('access')),
            tag=_trimmed(raw_config.get('tag')),
        )
    return ManifestInfo(
        name=name,
        version=version,
        private=private,
        package_manager=_trimmed(data.get('packageManager')),
        publish_config=publish_config,
    )


def parse_package_manager_field(field: str) -> PackageManager | None:
    """Parse ``"pnpm@9.1.0"`` style ``packageManager`` values."""
    tool = field.strip().partition('@')[0]
    try:
        return PackageManager(tool)
    except ValueError:
        return None


def _lockfile_manager(directory: Path) -> PackageManager | None:
    for filename, manager in _LOCKFILES:
        if (directory / filename).is_file():
            return manager
    return None


def detect_package_manager(package_dir: Path, info: ManifestInfo) -> PackageManager:
    """Pick the manager for publishing: ``packageManager``, then the nearest lockfile."""
    if info.package_manager is not None:
        manager = parse_package_manager_field(info.package_manager)
        if manager is not None:
            return manager
    for directory in (package_dir, *package_dir.parents):
        manager = _lockfile_manager(directory)
        if manager is not None:
            return manager
    return PackageManager.NPM


def detect_workspace_package_manager(root: Path) -> PackageManager:
    """Pick the manager for lockfile regeneration at the workspace root.

    Raises:
        SampoError: ``RELEASE`` when neither a lockfile nor a
            ``packageManager`` field identifies one.
    """
    manager = _lockfile_manager(root)
    if manager is not None:
        return manager
    manifest = root / MANIFEST
    if manifest.is_file():
        field = _trimmed(read_json_object(manifest).get('packageManager'))
        if field is not None:
            parsed = parse_package_manager_field(field)
            if parsed is not None:
                return parsed
    raise SampoError(
        E.RELEASE,
        'cannot detect package manager for npm workspace; '
        'no lockfile found and no packageManager field in package.json',
    )


def has_flag(args: list[str], flag: str) -> bool:
    """Return ``True`` if ``flag`` or ``flag=value`` is already in ``args``."""
    return any(arg == flag or arg.startswith(f'{flag}=') for arg in args)


def compute_dependency_specifier(old_spec: str, new_version: str) -> str | None:
    """Return the rewritten specifier, or ``None`` to leave it alone."""
    spec = old_spec.strip()
    if not spec:
        return new_version

    if spec.startswith('workspace:'):
        suffix = spec.removeprefix('workspace:')
        if suffix == '*':
            return None
        if suffix.startswith('^'):
            return f'workspace:^{new_version}'
        if suffix.startswith('~'):
            return f'workspace:~{new_version}'
        return f'workspace:{new_version}'

    if spec == '*' or spec.startswith(NON_NUMERIC_PREFIXES):
        return None

    for prefix in ('^', '~'):
        if spec.startswith(prefix):
            if spec[1:] == new_version:
                return None
            return f'{prefix}{new_version}'

    if spec == new_version or spec.startswith(('>', '<')):
        return None
    return new_version


def _expand_member_patterns(root: Path, patterns: list[str]) -> list[Path]:
    include = [p for p in patterns if not p.startswith('!')]
    exclude = [p[1:] for p in patterns if p.startswith('!')]

    found: set[Path] = set()
    for pattern in include:
        if is_glob(pattern):
            found.update(clean_path(d) for d in expand_glob_dirs(root, pattern, MANIFEST))
            continue
        candidate = clean_path(root / pattern)
        if not (candidate / MANIFEST).is_file():
            raise SampoError(
                E.INVALID_WORKSPACE,
                f"workspace member '{pattern}' does not contain package.json",
                path=root / MANIFEST,
            )
        found.add(candidate)

    excluded: set[Path] = set()
    for pattern in exclude:
        excluded.update(clean_path(d) for d in expand_glob_dirs(root, pattern, MANIFEST))
    return sorted(found - excluded)


def _workspace_patterns(data: Mapping[str, Any], manifest: Path) -> list[str]:
    workspaces = data.get('workspaces')
    if workspaces is None:
        return []
    if isinstance(workspaces, Mapping):
        workspaces = workspaces.get('packages')
        if workspaces is None:
            return []
        if not isinstance(workspaces, list):
            raise SampoError(E.INVALID_WORKSPACE, 'workspaces.packages must be an array of strings', path=manifest)
    if not isinstance(workspaces, list):
        raise SampoError(E.INVALID_WORKSPACE, 'workspaces field must be an array or object', path=manifest)
    if not all(isinstance(item, str) for item in workspaces):
        raise SampoError(E.INVALID_WORKSPACE, 'workspaces entries must be strings', path=manifest)
    return list(workspaces)


def load_pnpm_patterns(path: Path) -> list[str]:
    """Read the ``packages:`` list from ``pnpm-workspace.yaml``, if present."""
    if not path.is_file():
        return []
    try:
        data = yaml.safe_load(read_text(path))
    except yaml.YAMLError as exc:
        raise SampoError(E.INVALID_MANIFEST, f'Failed to parse {path}: {exc}', path=path) from exc
    if not isinstance(data, Mapping):
        return []
    packages = data.get('packages')
    if packages is None:
        return []
    if not isinstance(packages, list) or not all(isinstance(item, str) for item in packages):
        raise SampoError(
            E.INVALID_WORKSPACE,
            'pnpm-workspace.yaml packages field must be a sequence of strings',
            path=path,
        )
    return list(packages)


def _internal_deps(data: Mapping[str, Any], names: set[str]) -> frozenset[str]:
    internal: set[str] = set()
    for section in DEPENDENCY_SECTIONS:
        deps = data.get(section)
        if isinstance(deps, Mapping):
            internal.update(make_identifier(PackageKind.NPM, n) for n in deps if n in names)
    bundled = data.get('bundledDependencies', data.get('bundleDependencies'))
    if isinstance(bundled, list):
        internal.update(make_identifier(PackageKind.NPM, n) for n in bundled if isinstance(n, str) and n in names)
    return frozenset(internal)


class NpmAdapter:
    """Releases JavaScript packages from npm, pnpm, yarn or bun workspaces."""

    kind = PackageKind.NPM
    registry = 'npm'

    def can_discover(self, root: Path) -> bool:
        """``package.json`` or ``pnpm-workspace.yaml`` marks an npm workspace."""
        return (root / MANIFEST).is_file() or (root / PNPM_WORKSPACE).is_file()

    def find_root(self, start: Path) -> Path | None:
        """Prefer the nearest directory declaring workspaces, else the nearest ``package.json``."""
        nearest = None
        for current in (start, *start.parents):
            if (current / PNPM_WORKSPACE).is_file():
                return current
            manifest = current / MANIFEST
            if manifest.is_file():
                if 'workspaces' in read_json_object(manifest):
                    return current
                nearest = nearest or current
        return nearest

    def discover(self, root: Path) -> list[PackageInfo]:
        """Expand ``workspaces`` and pnpm ``packages`` patterns under ``root``."""
        manifest = root / MANIFEST
        root_data = read_json_object(manifest) if manifest.is_file() else None

        patterns = sorted({
            *(_workspace_patterns(root_data, manifest) if root_data is not None else []),
            *load_pnpm_patterns(root / PNPM_WORKSPACE),
        })
        dirs = set(_expand_member_patterns(root, patterns)) if patterns else set()
        if root_data is not None and (not patterns or _trimmed(root_data.get('name')) is not None):
            dirs.add(clean_path(root))

        members: list[tuple[str, str, Path, dict[str, Any]]] = []
        for package_dir in sorted(dirs):
            member_manifest = package_dir / MANIFEST
            data = read_json_object(member_manifest)
            name = data.get('name')
            if not isinstance(name, str) or not name:
                raise SampoError(
                    E.INVALID_WORKSPACE,
                    f'missing name field in {member_manifest}',
                    path=member_manifest,
                )
            version = data.get('version')
            members.append((name, version if isinstance(version, str) else '', package_dir, data))

        names = {name for name, _, _, _ in members}
        packages = [
            PackageInfo(
                name=name,
                version=version,
                path=path,
                kind=PackageKind.NPM,
                internal_deps=_internal_deps(data, names),
            )
            for name, version, path, data in members
        ]
        log.debug('discovered', ecosystem='npm', root=str(root), count=len(packages))
        return packages

    def manifest_path(self, package_dir: Path) -> Path:
        """Return ``<package_dir>/package.json``."""
        return package_dir / MANIFEST

    def workspace_manifests(self, root: Path) -> list[Path]:
        """npm workspaces pin nothing at the root."""
        return []

    def is_publishable(self, manifest: Path) -> bool:
        """Private packages are never published."""
        data = read_json_object(manifest)
        return not parse_manifest_info(manifest, data).private

    def version_exists(self, name: str, version: str, manifest: Path | None = None) -> bool:
        """npm rejects republishing by itself, so no probe is made."""
        return False

    def publish(self, manifest: Path, dry_run: bool, extra_args: list[str]) -> None:
        """Run ``<manager> publish`` in the package directory."""
        info = parse_manifest_info(manifest, read_json_object(manifest))
        if info.private:
            raise SampoError(
                E.PUBLISH,
                f"Package '{info.name}' is marked as private and cannot be published",
                ecosystem=self.kind.value,
            )

        manager = detect_package_manager(manifest.parent, info)
        cmd = [manager.value, 'publish']
        if dry_run and not has_flag(extra_args, '--dry-run'):
            cmd.append('--dry-run')
        config = info.publish_config
        if config.registry and not has_flag(extra_args, '--registry'):
            cmd.extend(['--registry', config.registry])
        if not has_flag(extra_args, '--access'):
            if config.access:
                cmd.extend(['--access', config.access])
            elif info.name.startswith('@'):
                cmd.extend(['--access', 'public'])
        if config.tag and not has_flag(extra_args, '--tag'):
            cmd.extend(['--tag', config.tag])
        cmd.extend(extra_args)

        result = run_command(cmd, cwd=manifest.parent, error_code=E.PUBLISH)
        if not result.ok:
            raise SampoError(
                E.PUBLISH,
                f"{manager.value} publish failed for {manifest} (package '{info.name}') "
                f'with status {result.return_code}: {result.failure_detail()}',
                ecosystem=self.kind.value,
            )

    def lockfile_exists(self, root: Path) -> bool:
        """Return ``True`` when any known JavaScript lockfile is at ``root``."""
        return _lockfile_manager(root) is not None

    def regenerate_lockfile(self, root: Path) -> None:
        """Refresh the lockfile with the detected manager's lockfile-only install."""
        manager = detect_workspace_package_manager(root)
        cmd = _LOCKFILE_COMMANDS[manager]
        log.info('regenerating_lockfile', ecosystem='npm', manager=manager.value, root=str(root))
        result = run_command(cmd, cwd=root, error_code=E.RELEASE)
        if not result.ok:
            raise SampoError(
                E.RELEASE,
                f'{manager.value} failed with status {result.return_code}: {result.failure_detail()}',
            )

    def update_manifest_versions(
        self,
        manifest: Path,
        text: str,
        new_pkg_version: str | None,
        new_versions: Mapping[str, str],
    ) -> tuple[str, list[tuple[str, str]]]:
        """Rewrite ``version`` and internal dependency specifiers in place."""
        try:
            data = json.loads(text)
            spans = json_object_spans(text, 0)
        except ValueError as exc:
            raise SampoError(E.RELEASE, f'Failed to parse package.json {manifest}: {exc}', path=manifest) from exc
        if not isinstance(data, dict):
            raise SampoError(E.RELEASE, f'{manifest} is not a JSON object', path=manifest)

        replacements: list[tuple[int, int, str]] = []
        if new_pkg_version is not None:
            if 'version' not in data:
                raise SampoError(E.RELEASE, f'Manifest {manifest} is missing a version field', path=manifest)
            current = data['version']
            if not isinstance(current, str):
                raise SampoError(E.RELEASE, f'Version field in {manifest} is not a string', path=manifest)
            if current != new_pkg_version:
                start, end = spans['version']
                replacements.append((start, end, json.dumps(new_pkg_version)))

        section_spans: dict[str, dict[str, tuple[int, int]]] = {}
        for section in DEPENDENCY_SECTIONS:
            if isinstance(data.get(section), dict):
                section_spans[section] = json_object_spans(text, spans[section][0])

        applied: list[tuple[str, str]] = []
        for dep_name, new_version in sorted(new_versions.items()):
            updated = False
            for section, dep_spans in section_spans.items():
                if dep_name not in dep_spans:
                    continue
                current_spec = data[section][dep_name]
                if not isinstance(current_spec, str):
                    raise SampoError(
                        E.RELEASE,
                        f"Dependency specifier for '{dep_name}' in {manifest}.{section} is not a string",
                        path=manifest,
                    )
                new_spec = compute_dependency_specifier(current_spec, new_version)
                if new_spec is not None and new_spec != current_spec:
                    start, end = dep_spans[dep_name]
                    replacements.append((start, end, json.dumps(new_spec)))
                    updated = True
            if updated:
                applied.append((dep_name, new_version))

        output = text
        for start, end, replacement in sorted(replacements, reverse=True):
            output = output[:start] + replacement + output[end:]
        return output, applied


__all__ = [
    'ManifestInfo',
    'NpmAdapter',
    'PackageManager',
    'PublishConfig',
    'compute_dependency_specifier',
    'detect_package_manager',
    'detect_workspace_package_manager',
    'has_flag',
    'load_pnpm_patterns',
    'parse_manifest_info',
    'validate_package_name',
]
