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

"""Cargo ecosystem adapter.

Workspace structure::

    repo/
    ├── Cargo.toml              # [workspace] members = ["crates/*"]
    ├── Cargo.lock
    └── crates/
        ├── core/Cargo.toml     # [package] name = "my-core"
        └── cli/Cargo.toml      # my-core = { path = "../core", version = "0.1" }

Internal dependency detection::

    my-core = { path = "../core" }      → internal (path resolves to a member)
    my-core = { workspace = true }      → internal (name is a member)
    serde = "1"                         → external

Manifest rewriting goes through ``tomlkit`` so comments and layout
survive. Dependencies declared with ``workspace = true`` are left alone
in member manifests; their requirement lives in the root
``[workspace.dependencies]`` table, which keeps its shorthand length
(``"0.1"`` stays two components).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, MutableMapping
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.items import InlineTable, Table

from sampo.adapters._io import clean_path, parse_toml, read_toml
from sampo.backends._run import run_command
from sampo.errors import E, SampoError
from sampo.logging import get_logger
from sampo.net import registry_get
from sampo.types import PackageInfo, PackageKind, make_identifier
from sampo.versions import is_semver, parse_version

log = get_logger('sampo.adapters.cargo')

MANIFEST = 'Cargo.toml'
LOCKFILE = 'Cargo.lock'
CRATES_IO_API = 'https://crates.io/api/v1'
DEPENDENCY_SECTIONS: tuple[str, ...] = ('dependencies', 'dev-dependencies', 'build-dependencies')


def _plain(value: Any) -> Any:  # noqa: ANN401 - TOML values are untyped
    """Unwrap a tomlkit item into a plain Python value."""
    unwrap = getattr(value, 'unwrap', None)
    return unwrap() if callable(unwrap) else value


def find_workspace_root(start: Path) -> tuple[Path, dict[str, Any]]:
    """Walk up from ``start`` to the nearest ``Cargo.toml`` with ``[workspace]``."""
    for current in (start, *start.parents):
        manifest = current / MANIFEST
        if manifest.is_file():
            data = read_toml(manifest)
            if 'workspace' in data:
                return current, data
    raise SampoError(
        E.NOT_FOUND,
        f'no Cargo.toml with a [workspace] section found above {start}',
        ecosystem=PackageKind.CARGO.value,
    )


def _member_dirs(root: Path, workspace: Mapping[str, Any]) -> list[Path]:
    members = workspace.get('members')
    if not isinstance(members, list):
        raise SampoError(E.INVALID_WORKSPACE, "missing 'members' in [workspace]", path=root / MANIFEST)
    excluded = {clean_path(root / entry) for entry in workspace.get('exclude', []) if isinstance(entry, str)}

    dirs: list[Path] = []
    for pattern in members:
        if not isinstance(pattern, str):
            raise SampoError(E.INVALID_WORKSPACE, 'non-string member in workspace.members', path=root / MANIFEST)
        if '*' in pattern:
            dirs.extend(p for p in sorted(root.glob(pattern)) if (p / MANIFEST).is_file())
            continue
        member = clean_path(root / pattern)
        if not (member / MANIFEST).is_file():
            raise SampoError(
                E.INVALID_WORKSPACE,
                f"member '{pattern}' does not contain Cargo.toml",
                path=root / MANIFEST,
            )
        dirs.append(member)
    return [d for d in dirs if clean_path(d) not in excluded]


def _iter_dependency_tables(data: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
    for section in DEPENDENCY_SECTIONS:
        table = data.get(section)
        if isinstance(table, Mapping):
            yield table
    targets = data.get('target')
    if isinstance(targets, Mapping):
        for target in targets.values():
            if isinstance(target, Mapping):
                for section in DEPENDENCY_SECTIONS:
                    table = target.get(section)
                    if isinstance(table, Mapping):
                        yield table


def _internal_deps(crate_dir: Path, data: Mapping[str, Any], name_to_dir: Mapping[str, Path]) -> frozenset[str]:
    member_dirs = set(name_to_dir.values())
    internal: set[str] = set()
    for table in _iter_dependency_tables(data):
        for key, spec in table.items():
            if not isinstance(spec, Mapping):
                continue
            dep_name = spec.get('package', key)
            path = spec.get('path')
            if isinstance(path, str):
                dep_dir = clean_path(crate_dir / path)
                for name, member_dir in name_to_dir.items():
                    if member_dir == dep_dir and dep_dir in member_dirs:
                        internal.add(make_identifier(PackageKind.CARGO, name))
                continue
            if spec.get('workspace') is True and dep_name in name_to_dir:
                internal.add(make_identifier(PackageKind.CARGO, dep_name))
    return frozenset(internal)


def compute_workspace_dependency_version(existing: str, new_version: str) -> str | None:
    """Return the new requirement for a ``[workspace.dependencies]`` entry.

    Exact versions are replaced; ``"*"`` is left alone; numeric
    shorthands keep their length (``"0.1"`` → ``"0.2"``, ``"1"`` → ``"2"``).
    Returns ``None`` when nothing should change.
    """
    current = existing.strip()
    if current == '*':
        return None
    if is_semver(current):
        return None if current == new_version else new_version
    segments = current.split('.')
    if len(segments) > 2 or not all(segment.isdigit() for segment in segments):
        return None
    try:
        parsed = parse_version(new_version)
    except SampoError:
        return None
    resolved = str(parsed.major) if len(segments) == 1 else f'{parsed.major}.{parsed.minor}'
    return None if resolved == current else resolved


def _update_dependency_item(container: MutableMapping[str, Any], key: str, new_version: str) -> bool:
    item = container[key]
    if isinstance(item, (InlineTable, Table)):
        if _plain(item.get('workspace')) is True:
            return False
        if _plain(item.get('version')) == new_version:
            return False
        item['version'] = new_version
        return True
    if isinstance(item, str):
        if item == new_version:
            return False
        container[key] = new_version
        return True
    return False


def _dependency_keys(table: Mapping[str, Any], dep_name: str) -> list[str]:
    """Keys in ``table`` that refer to ``dep_name``, including renames."""
    keys = []
    for key, item in table.items():
        if isinstance(item, Mapping) and 'package' in item:
            if _plain(item['package']) == dep_name:
                keys.append(key)
        elif key == dep_name:
            keys.append(key)
    return keys


def _iter_mutable_dependency_tables(doc: MutableMapping[str, Any]) -> Iterator[MutableMapping[str, Any]]:
    for section in DEPENDENCY_SECTIONS:
        table = doc.get(section)
        if isinstance(table, MutableMapping):
            yield table
    targets = doc.get('target')
    if isinstance(targets, MutableMapping):
        for target in targets.values():
            if isinstance(target, MutableMapping):
                for section in DEPENDENCY_SECTIONS:
                    table = target.get(section)
                    if isinstance(table, MutableMapping):
                        yield table


def _update_workspace_dependency(doc: MutableMapping[str, Any], dep_name: str, new_version: str) -> bool:
    workspace = doc.get('workspace')
    if not isinstance(workspace, MutableMapping):
        return False
    deps = workspace.get('dependencies')
    if not isinstance(deps, MutableMapping):
        return False

    changed = False
    for key in _dependency_keys(deps, dep_name):
        item = deps[key]
        if isinstance(item, (InlineTable, Table)):
            existing = _plain(item.get('version'))
            if not isinstance(existing, str):
                continue
            resolved = compute_workspace_dependency_version(existing, new_version)
            if resolved is not None:
                item['version'] = resolved
                changed = True
        elif isinstance(item, str):
            resolved = compute_workspace_dependency_version(item, new_version)
            if resolved is not None:
                deps[key] = resolved
                changed = True
    return changed


class CargoAdapter:
    """Releases Rust crates from a Cargo workspace to crates.io."""

    kind = PackageKind.CARGO
    registry = 'crates.io'

    def can_discover(self, root: Path) -> bool:
        """A ``Cargo.toml`` marks a Cargo workspace."""
        return (root / MANIFEST).is_file()

    def find_root(self, start: Path) -> Path | None:
        """Return the nearest ancestor whose ``Cargo.toml`` declares ``[workspace]``."""
        for current in (start, *start.parents):
            manifest = current / MANIFEST
            if manifest.is_file() and 'workspace' in read_toml(manifest):
                return current
        return None

    def discover(self, root: Path) -> list[PackageInfo]:
        """Discover every crate listed in the nearest ``[workspace]``."""
        ws_root, root_data = find_workspace_root(root)
        workspace = root_data['workspace']
        if not isinstance(workspace, Mapping):
            raise SampoError(E.INVALID_WORKSPACE, '[workspace] must be a table', path=ws_root / MANIFEST)
        ws_package = workspace.get('package', {})
        ws_version = ws_package.get('version') if isinstance(ws_package, Mapping) else None

        crates: list[tuple[str, str, Path, dict[str, Any]]] = []
        for member_dir in _member_dirs(ws_root, workspace):
            manifest = member_dir / MANIFEST
            data = read_toml(manifest)
            package = data.get('package')
            if not isinstance(package, Mapping):
                raise SampoError(E.INVALID_MANIFEST, f'missing [package] in {manifest}', path=manifest)
            name = package.get('name')
            if not isinstance(name, str) or not name:
                raise SampoError(E.INVALID_MANIFEST, f'missing package.name in {manifest}', path=manifest)
            version = package.get('version', '')
            if isinstance(version, Mapping) and version.get('workspace') is True:
                if not isinstance(ws_version, str):
                    raise SampoError(
                        E.INVALID_TOML,
                        f'{manifest} inherits version.workspace but [workspace.package].version is missing',
                        path=manifest,
                    )
                version = ws_version
            crates.append((name, str(version) if isinstance(version, str) else '', member_dir, data))

        name_to_dir = {name: path for name, _, path, _ in crates}
        packages = [
            PackageInfo(
                name=name,
                version=version,
                path=path,
                kind=PackageKind.CARGO,
                internal_deps=_internal_deps(path, data, name_to_dir),
            )
            for name, version, path, data in crates
        ]
        log.debug('discovered', ecosystem='cargo', root=str(ws_root), count=len(packages))
        return packages

    def manifest_path(self, package_dir: Path) -> Path:
        """Return ``<package_dir>/Cargo.toml``."""
        return package_dir / MANIFEST

    def workspace_manifests(self, root: Path) -> list[Path]:
        """The root manifest, whose ``[workspace.dependencies]`` pin members."""
        manifest = root / MANIFEST
        return [manifest] if manifest.is_file() else []

    def is_publishable(self, manifest: Path) -> bool:
        """Apply Cargo's ``publish`` rules (``false`` or a registry allow-list)."""
        package = read_toml(manifest).get('package')
        if not isinstance(package, Mapping):
            return False
        publish = package.get('publish', True)
        if publish is False:
            return False
        if isinstance(publish, list):
            return 'crates-io' in publish
        return True

    def version_exists(self, name: str, version: str, manifest: Path | None = None) -> bool:
        """Ask crates.io whether ``name@version`` is already published."""
        response = registry_get(
            f'{CRATES_IO_API}/crates/{name}/{version}',
            registry=self.registry,
            package=name,
            version=version,
        )
        return response is not None

    def publish(self, manifest: Path, dry_run: bool, extra_args: list[str]) -> None:
        """Run ``cargo publish``; ``CARGO_REGISTRY_TOKEN`` passes through the environment."""
        cmd = ['cargo', 'publish', '--manifest-path', str(manifest)]
        if dry_run:
            cmd.append('--dry-run')
        cmd.extend(extra_args)
        result = run_command(cmd, cwd=manifest.parent, error_code=E.PUBLISH)
        if not result.ok:
            raise SampoError(
                E.PUBLISH,
                f'cargo publish failed for {manifest} with status {result.return_code}: {result.failure_detail()}',
                ecosystem=self.kind.value,
            )

    def lockfile_exists(self, root: Path) -> bool:
        """Return ``True`` if ``Cargo.lock`` sits at the workspace root."""
        return (root / LOCKFILE).is_file()

    def regenerate_lockfile(self, root: Path) -> None:
        """Run ``cargo generate-lockfile`` at ``root``."""
        log.info('regenerating_lockfile', ecosystem='cargo', path=str(root / LOCKFILE))
        result = run_command(['cargo', 'generate-lockfile'], cwd=root, error_code=E.RELEASE)
        if not result.ok:
            raise SampoError(
                E.RELEASE,
                f'cargo generate-lockfile failed with status {result.return_code}: {result.failure_detail()}',
            )

    def update_manifest_versions(
        self,
        manifest: Path,
        text: str,
        new_pkg_version: str | None,
        new_versions: Mapping[str, str],
    ) -> tuple[str, list[tuple[str, str]]]:
        """Rewrite the crate version and internal dependency requirements.

        Args:
            manifest: Path of the manifest (for error messages).
            text: Current manifest contents.
            new_pkg_version: New ``package.version``, or ``None`` to leave it.
            new_versions: Crate name to new version for released crates.

        Returns:
            The new text and the ``(dependency, version)`` pairs applied.
        """
        doc = parse_toml(text, manifest)

        if new_pkg_version is not None:
            package = doc.get('package')
            if not isinstance(package, MutableMapping):
                raise SampoError(E.RELEASE, f'Manifest {manifest} is missing a [package] section', path=manifest)
            if _plain(package.get('version')) != new_pkg_version:
                package['version'] = new_pkg_version

        applied: list[tuple[str, str]] = []
        for dep_name, new_version in sorted(new_versions.items()):
            changed = _update_workspace_dependency(doc, dep_name, new_version)
            for table in _iter_mutable_dependency_tables(doc):
                for key in _dependency_keys(table, dep_name):
                    changed |= _update_dependency_item(table, key, new_version)
            if changed:
                applied.append((dep_name, new_version))

        return tomlkit.dumps(doc), applied


__all__ = [
    'CargoAdapter',
    'compute_workspace_dependency_version',
    'find_workspace_root',
]
