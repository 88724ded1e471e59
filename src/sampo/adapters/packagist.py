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

"""Packagist ecosystem adapter (Composer).

Composer has no workspace concept, so a repository holds exactly one
package: the ``composer.json`` at the root. Packagist itself is fed by
VCS tags, which means "publishing" is ``composer validate`` followed by
the tag sampo pushes; ``git.short_tags`` gives Composer the ``vX.Y.Z``
tags it recognizes.

Constraint rewriting in ``require`` / ``require-dev``::

    ""            → "^1.3.0"
    "^1.2.0"      → "^1.3.0"
    "~1.2.0"      → "~1.3.0"
    "1.2.0"       → "^1.3.0"
    ">=1.0"       → untouched
    "1.0.*"       → untouched
    "^1 || ^2"    → untouched
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path

from sampo.adapters._composer import ConstraintCheck, check_dependency_constraint
from sampo.adapters._io import json_object_spans, read_json_object
from sampo.backends._run import run_command
from sampo.errors import E, SampoError
from sampo.logging import get_logger
from sampo.net import registry_get
from sampo.types import PackageInfo, PackageKind

log = get_logger('sampo.adapters.packagist')

MANIFEST = 'composer.json'
LOCKFILE = 'composer.lock'
PACKAGIST_API = 'https://packagist.org/packages'
REQUIRE_SECTIONS: tuple[str, ...] = ('require', 'require-dev')


def compute_dependency_constraint(old_spec: str, new_version: str) -> str | None:
    """Return the rewritten Composer constraint, or ``None`` to leave it alone."""
    spec = old_spec.strip()
    if not spec:
        return f'^{new_version}'
    if '||' in spec or (' ' in spec and not spec.startswith('^')):
        return None
    for prefix in ('^', '~'):
        if spec.startswith(prefix):
            if spec[1:] == new_version:
                return None
            return f'{prefix}{new_version}'
    if spec == new_version:
        return None
    if spec.startswith(('>', '<', '!', '=')) or '*' in spec:
        return None
    return f'^{new_version}'


def _package_name(manifest: Path, data: Mapping[str, object]) -> str:
    name = data.get('name')
    if not isinstance(name, str) or not name.strip():
        raise SampoError(E.PUBLISH, f"Manifest {manifest} is missing a 'name' field", path=manifest)
    name = name.strip()
    if '/' not in name:
        raise SampoError(
            E.PUBLISH,
            f"Manifest {manifest} has invalid package name '{name}': must be in 'vendor/package' format",
            path=manifest,
        )
    return name


class PackagistAdapter:
    """Releases a single Composer package through Packagist."""

    kind = PackageKind.PACKAGIST
    registry = 'Packagist registry'

    def can_discover(self, root: Path) -> bool:
        """A ``composer.json`` marks a Composer package."""
        return (root / MANIFEST).is_file()

    def find_root(self, start: Path) -> Path | None:
        """Return the nearest directory holding ``composer.json``."""
        for current in (start, *start.parents):
            if self.can_discover(current):
                return current
        return None

    def discover(self, root: Path) -> list[PackageInfo]:
        """Return the root package."""
        manifest = root / MANIFEST
        data = read_json_object(manifest)
        name = data.get('name')
        if not isinstance(name, str) or not name:
            raise SampoError(E.INVALID_MANIFEST, f'missing name field in {manifest}', path=manifest)
        if '/' not in name:
            raise SampoError(
                E.INVALID_MANIFEST,
                f"package name '{name}' in {manifest} must be in 'vendor/package' format",
                path=manifest,
            )
        version = data.get('version')
        return [
            PackageInfo(
                name=name,
                version=version if isinstance(version, str) else '',
                path=root,
                kind=PackageKind.PACKAGIST,
            )
        ]

    def manifest_path(self, package_dir: Path) -> Path:
        """Return ``<package_dir>/composer.json``."""
        return package_dir / MANIFEST

    def workspace_manifests(self, root: Path) -> list[Path]:
        """Composer has no workspace manifest."""
        return []

    def is_publishable(self, manifest: Path) -> bool:
        """A named package with a version that is not ``abandoned``."""
        data = read_json_object(manifest, code=E.PUBLISH)
        _package_name(manifest, data)
        version = data.get('version')
        if not isinstance(version, str) or not version.strip():
            return False
        abandoned = data.get('abandoned')
        return not (abandoned is True or isinstance(abandoned, str))

    def version_exists(self, name: str, version: str, manifest: Path | None = None) -> bool:
        """Look for ``version`` or ``v<version>`` in the package's Packagist metadata."""
        name = name.strip()
        if not name:
            raise SampoError(E.PUBLISH, 'Package name cannot be empty when checking Packagist registry')
        response = registry_get(
            f'{PACKAGIST_API}/{name}.json',
            registry=self.registry,
            package=name,
            version=version,
        )
        if response is None:
            return False
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise SampoError(E.PUBLISH, f'invalid JSON from Packagist: {exc}') from exc
        versions = payload.get('package', {}).get('versions') if isinstance(payload, dict) else None
        if not isinstance(versions, dict):
            raise SampoError(E.PUBLISH, f"Packagist response for '{name}' is missing package.versions object")
        return version in versions or f'v{version}' in versions

    def publish(self, manifest: Path, dry_run: bool, extra_args: list[str]) -> None:
        """Run ``composer validate``; Packagist picks the release up from the tag."""
        name = _package_name(manifest, read_json_object(manifest, code=E.PUBLISH))
        result = run_command(['composer', 'validate', *extra_args], cwd=manifest.parent, error_code=E.PUBLISH)
        if not result.ok:
            raise SampoError(
                E.PUBLISH,
                f"composer validate failed for {manifest} (package '{name}') "
                f'with status {result.return_code}: {result.failure_detail()}',
                ecosystem=self.kind.value,
            )
        log.info('composer_validated', package=name, dry_run=dry_run)

    def lockfile_exists(self, root: Path) -> bool:
        """Return ``True`` if ``composer.lock`` sits at ``root``."""
        return (root / LOCKFILE).is_file()

    def regenerate_lockfile(self, root: Path) -> None:
        """Run ``composer update --lock``."""
        if not (root / MANIFEST).is_file():
            raise SampoError(E.RELEASE, f'cannot regenerate lockfile; {MANIFEST} not found in {root}')
        log.info('regenerating_lockfile', ecosystem='packagist', path=str(root / LOCKFILE))
        result = run_command(['composer', 'update', '--lock'], cwd=root, error_code=E.RELEASE)
        if not result.ok:
            raise SampoError(
                E.RELEASE,
                f'composer update --lock failed with status {result.return_code}: {result.failure_detail()}',
            )

    def check_dependency_constraint(self, manifest: Path, dep_name: str, new_version: str) -> ConstraintCheck:
        """Would ``manifest``'s constraint on ``dep_name`` accept ``new_version``?"""
        return check_dependency_constraint(manifest, dep_name, new_version)

    def update_manifest_versions(
        self,
        manifest: Path,
        text: str,
        new_pkg_version: str | None,
        new_versions: Mapping[str, str],
    ) -> tuple[str, list[tuple[str, str]]]:
        """Rewrite ``version`` (when present) and ``require`` constraints in place."""
        try:
            data = json.loads(text)
            spans = json_object_spans(text, 0)
        except ValueError as exc:
            raise SampoError(E.RELEASE, f'Failed to parse composer.json {manifest}: {exc}', path=manifest) from exc

        replacements: list[tuple[int, int, str]] = []
        if new_pkg_version is not None and 'version' in data:
            if not isinstance(data['version'], str):
                raise SampoError(E.RELEASE, f'Version field in {manifest} is not a string', path=manifest)
            if data['version'] != new_pkg_version:
                start, end = spans['version']
                replacements.append((start, end, json.dumps(new_pkg_version)))

        section_spans = {
            section: json_object_spans(text, spans[section][0])
            for section in REQUIRE_SECTIONS
            if isinstance(data.get(section), dict)
        }

        applied: list[tuple[str, str]] = []
        for dep_name, new_version in sorted(new_versions.items()):
            updated = False
            for section, dep_spans in section_spans.items():
                if dep_name not in dep_spans:
                    continue
                current = data[section][dep_name]
                if not isinstance(current, str):
                    raise SampoError(
                        E.RELEASE,
                        f"Dependency specifier for '{dep_name}' in {manifest}.{section} is not a string",
                        path=manifest,
                    )
                new_spec = compute_dependency_constraint(current, new_version)
                if new_spec is not None and new_spec != current:
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
    'PackagistAdapter',
    'compute_dependency_constraint',
]
