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

"""Pre-release controller: move packages in and out of pre-release versions.

``enter`` rewrites ``1.2.3`` (or ``1.2.3-beta.2``) to ``1.2.3-<label>``;
``exit`` strips the label back to ``1.2.3``. Both go through the same
manifest rewrite as a release, so dependents pick up the new version
requirement, and regenerate the affected lockfiles afterwards.

While any package is in pre-release, released changesets are parked in
``.sampo/prerelease/``. Once ``exit`` leaves no member in pre-release,
parked changesets return to the changesets directory so the next stable
release reports them.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from sampo.changesets import restore_preserved_changesets
from sampo.config import changesets_dir, load_config, prerelease_dir
from sampo.errors import E, SampoError
from sampo.logging import get_logger
from sampo.release import apply_version_updates, regenerate_lockfiles
from sampo.types import PackageInfo, PackageSpecifier, Workspace
from sampo.versions import is_prerelease, strip_prerelease, validate_prerelease_label, with_prerelease_label
from sampo.workspace import discover_workspace

log = get_logger('sampo.prerelease')


@dataclass(frozen=True)
class VersionChange:
    """A version rewritten by ``enter`` or ``exit``."""

    name: str
    identifier: str
    old_version: str
    new_version: str


def resolve_targets(workspace: Workspace, packages: Sequence[str]) -> list[PackageInfo]:
    """Resolve package references, dropping duplicates.

    Raises:
        SampoError: ``PRERELEASE`` for an empty list or an unparsable
            reference, ``NOT_FOUND`` for unknown packages,
            ``INVALID_DATA`` for ambiguous names.
    """
    if not packages:
        raise SampoError(E.PRERELEASE, 'At least one package must be specified.')
    targets: list[PackageInfo] = []
    seen: set[str] = set()
    for raw in packages:
        try:
            spec = PackageSpecifier.parse(raw)
        except SampoError as exc:
            raise SampoError(E.PRERELEASE, f"Invalid package reference '{raw}': {exc.message}") from exc
        if not workspace.match_specifier(spec):
            raise SampoError(E.NOT_FOUND, f"Package '{spec.canonical}' not found in workspace")
        info = workspace.resolve(spec)
        if info.identifier not in seen:
            seen.add(info.identifier)
            targets.append(info)
    return targets


def _plan(targets: Iterable[PackageInfo], transform: Callable[[str], str | None]) -> list[VersionChange]:
    changes = []
    for info in targets:
        try:
            new_version = transform(info.version)
        except SampoError as exc:
            raise SampoError(
                E.PRERELEASE,
                f"Invalid semantic version for package '{info.name}': {exc.message}",
                path=info.path,
            ) from exc
        if new_version is None or new_version == info.version:
            continue
        changes.append(VersionChange(info.name, info.identifier, info.version, new_version))
    return changes


def _apply(workspace: Workspace, changes: list[VersionChange]) -> None:
    try:
        apply_version_updates(workspace, {change.identifier: change.new_version for change in changes})
        regenerate_lockfiles(workspace, {workspace.find_by_identifier(c.identifier).kind for c in changes})
    except SampoError as exc:
        if exc.code is E.PRERELEASE:
            raise
        raise SampoError(E.PRERELEASE, exc.message, exc.hint, path=exc.path, ecosystem=exc.ecosystem) from exc
    for change in changes:
        log.info('version_changed', package=change.identifier, old=change.old_version, new=change.new_version)


def enter_prerelease(root: Path, packages: Sequence[str], label: str) -> list[VersionChange]:
    """Put ``packages`` on the ``label`` pre-release channel.

    Packages already on ``label`` are left alone; packages on another
    label keep their base version and switch labels.
    """
    workspace = discover_workspace(root)
    targets = resolve_targets(workspace, packages)
    channel = validate_prerelease_label(label)
    changes = _plan(targets, lambda version: with_prerelease_label(version, channel))
    if changes:
        _apply(workspace, changes)
    return changes


def exit_prerelease(root: Path, packages: Sequence[str]) -> list[VersionChange]:
    """Return ``packages`` to their stable versions.

    When no workspace member remains in pre-release afterwards, parked
    changesets are restored for the next stable release.
    """
    workspace = discover_workspace(root)
    targets = resolve_targets(workspace, packages)
    changes = _plan(targets, lambda version: strip_prerelease(version) if is_prerelease(version) else None)
    if changes:
        _apply(workspace, changes)

    changed = {change.identifier for change in changes}
    still_pre = [
        info.identifier for info in workspace.members if info.identifier not in changed and is_prerelease(info.version)
    ]
    if still_pre:
        log.info('prerelease_still_active', packages=still_pre)
        return changes

    config = load_config(workspace.root)
    restore_preserved_changesets(prerelease_dir(workspace.root), changesets_dir(workspace.root, config))
    return changes


__all__ = [
    'VersionChange',
    'enter_prerelease',
    'exit_prerelease',
    'resolve_targets',
]
