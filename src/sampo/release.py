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

"""The release engine: changesets in, versions, manifests and changelogs out.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                            │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Direct bump             │ A changeset said "bump foo by minor". The   │
    │                         │ highest level across changesets wins.       │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Cascade                 │ If foo changes, everything depending on foo │
    │                         │ gets at least a patch bump, transitively.   │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Fixed group             │ If any member moves, all members move, at   │
    │                         │ the group's highest level.                  │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Linked group            │ Members that move anyway share the group's  │
    │                         │ highest level. Idle members stay idle.      │
    └─────────────────────────┴─────────────────────────────────────────────┘

Pipeline::

    load changesets ──► aggregate direct bumps (skip ignored packages)
                              │
                              ▼
                 cascade ◄──► fixed groups   (until nothing changes)
                              │
                              ▼
                        linked groups ──► new versions      ── dry run stops here
                              │
                              ▼
    manifests (every member) ──► changelogs ──► lockfiles ──► tags ──► consume changesets

Consumed changesets are deleted, or parked in ``.sampo/prerelease/``
when the release produced a pre-release version. A later stable release
brings parked changesets back so their notes land in the final
changelog.
"""

from __future__ import annotations

import os
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from sampo.adapters import EcosystemAdapter, adapter_for
from sampo.adapters._io import read_text, write_text
from sampo.backends.git import GitRepo
from sampo.changelog import release_date_display, update_changelog
from sampo.changesets import (
    Changeset,
    consume_changesets,
    load_changesets,
    restore_preserved_changesets,
)
from sampo.config import Config, changesets_dir, load_config, prerelease_dir
from sampo.enrichment import detect_repo_slug, enrich_message, github_token
from sampo.errors import E, SampoError
from sampo.filters import ensure_release_branch, should_ignore_package
from sampo.graph import dependents_map
from sampo.logging import get_logger
from sampo.types import Bump, PackageInfo, PackageKind, PackageSpecifier, ReleasedPackage, ReleaseOutput, Workspace
from sampo.versions import bump_version, is_prerelease
from sampo.workspace import discover_workspace

log = get_logger('sampo.release')

DEPENDENCY_NOTE_PREFIX = 'Updated dependencies: '
FIXED_POLICY_NOTE = 'Bumped due to fixed dependency group policy'

# (message, changeset path or None) -> decorated message
Enricher = Callable[[str, Path], str]


@dataclass(frozen=True)
class Note:
    """One changelog bullet for a package.

    Attributes:
        message: Text of the bullet.
        bump: Level section the bullet belongs to.
        source: Changeset the note came from, if any.
    """

    message: str
    bump: Bump
    source: Path | None = None


@dataclass(frozen=True)
class PlannedRelease:
    """A package the plan will release."""

    info: PackageInfo
    old_version: str
    new_version: str
    bump: Bump

    @property
    def identifier(self) -> str:
        """``<kind>/<name>`` of the package."""
        return self.info.identifier


@dataclass
class ReleasePlan:
    """Everything a release needs, computed before any file is touched.

    Attributes:
        releases: Identifier to planned release, sorted by identifier.
        notes: Identifier to changeset and policy notes, in order.
        dependency_updates: Identifier to ``{dep name: new version}``
            for released internal dependencies.
        consumed: Changesets that contributed at least one applicable entry.
    """

    releases: dict[str, PlannedRelease] = field(default_factory=dict)
    notes: dict[str, list[Note]] = field(default_factory=dict)
    dependency_updates: dict[str, dict[str, str]] = field(default_factory=dict)
    consumed: list[Path] = field(default_factory=list)

    def is_prerelease(self) -> bool:
        """Return ``True`` when any new version carries a pre-release label."""
        return any(is_prerelease(release.new_version) for release in self.releases.values())

    def released_packages(self) -> list[ReleasedPackage]:
        """Return the plan as :class:`ReleasedPackage` records."""
        return [
            ReleasedPackage(
                name=release.info.name,
                identifier=release.identifier,
                old_version=release.old_version,
                new_version=release.new_version,
                bump=release.bump,
            )
            for release in self.releases.values()
        ]

    def changelog_notes(self, identifier: str) -> list[tuple[str, Bump]]:
        """Return ``(message, level)`` pairs for a released package's changelog."""
        pairs = [(note.message, note.bump) for note in self.notes.get(identifier, [])]
        updates = self.dependency_updates.get(identifier)
        if updates:
            listed = ', '.join(f'{name}@{version}' for name, version in updates.items())
            pairs.append((f'{DEPENDENCY_NOTE_PREFIX}{listed}', Bump.PATCH))
        return pairs


def resolve_groups(workspace: Workspace, groups: Iterable[Iterable[str]], kind: str) -> list[list[str]]:
    """Resolve configured group members to identifiers.

    Raises:
        SampoError: ``RELEASE`` for members missing from the workspace,
            ``INVALID_DATA`` for ambiguous unqualified names.
    """
    resolved: list[list[str]] = []
    for index, group in enumerate(groups, start=1):
        members: list[str] = []
        for reference in group:
            spec = PackageSpecifier.parse(reference)
            if not workspace.match_specifier(spec):
                available = ', '.join(sorted(info.identifier for info in workspace.members))
                raise SampoError(
                    E.RELEASE,
                    f"Package '{reference}' in group does not exist in the workspace "
                    f'({kind} group {index}). Available packages: [{available}]',
                )
            members.append(workspace.resolve(spec).identifier)
        resolved.append(members)
    return resolved


def aggregate_bumps(
    workspace: Workspace,
    changesets: Iterable[Changeset],
    ignored: set[str],
) -> tuple[dict[str, Bump], dict[str, list[Note]], list[Path]]:
    """Collect the highest direct bump and the notes per package.

    Entries aimed at ignored packages are skipped; a changeset counts as
    consumed when at least one of its entries applies.
    """
    direct: dict[str, Bump] = {}
    notes: dict[str, list[Note]] = {}
    consumed: list[Path] = []
    for changeset in changesets:
        applied = False
        for entry in changeset.entries:
            info = workspace.resolve(entry.spec)
            if info.identifier in ignored:
                log.debug('changeset_entry_ignored', package=info.identifier, changeset=changeset.path.name)
                continue
            applied = True
            current = direct.get(info.identifier)
            direct[info.identifier] = entry.bump if current is None else max(current, entry.bump)
            notes.setdefault(info.identifier, []).append(Note(changeset.message, entry.bump, changeset.path))
        if applied:
            consumed.append(changeset.path)
    return direct, notes, consumed


def _cascade(bumps: dict[str, Bump], dependents: Mapping[str, set[str]], ignored: set[str], cascaded: set[str]) -> None:
    queue = deque(sorted(bumps))
    while queue:
        current = queue.popleft()
        for dependent in sorted(dependents.get(current, ())):
            if dependent in ignored:
                continue
            cascaded.add(dependent)
            if dependent not in bumps:
                bumps[dependent] = Bump.PATCH
                queue.append(dependent)


def _apply_fixed(bumps: dict[str, Bump], groups: list[list[str]], ignored: set[str], promoted: set[str]) -> bool:
    changed = False
    for group in groups:
        members = [member for member in group if member not in ignored]
        levels = [bumps[member] for member in members if member in bumps]
        if not levels:
            continue
        top = max(levels)
        for member in members:
            if bumps.get(member) == top:
                continue
            if member not in bumps:
                promoted.add(member)
            bumps[member] = top
            changed = True
    return changed


def _apply_linked(bumps: dict[str, Bump], groups: list[list[str]]) -> None:
    for group in groups:
        present = [member for member in group if member in bumps]
        if not present:
            continue
        top = max(bumps[member] for member in present)
        for member in present:
            bumps[member] = top


def compute_bumps(
    direct: Mapping[str, Bump],
    dependents: Mapping[str, set[str]],
    *,
    fixed: list[list[str]],
    linked: list[list[str]],
    ignored: set[str],
) -> tuple[dict[str, Bump], set[str], set[str]]:
    """Cascade direct bumps and apply group policies.

    Returns:
        ``(bumps, cascaded, fixed_only)`` where ``cascaded`` holds
        packages reached through a dependency and ``fixed_only`` those
        released purely because of a fixed group.
    """
    bumps = dict(direct)
    cascaded: set[str] = set()
    promoted: set[str] = set()
    _cascade(bumps, dependents, ignored, cascaded)
    while _apply_fixed(bumps, fixed, ignored, promoted):
        _cascade(bumps, dependents, ignored, cascaded)
    _apply_linked(bumps, linked)
    fixed_only = {member for member in promoted if member not in cascaded and member not in direct}
    return bumps, cascaded, fixed_only


def _new_version(info: PackageInfo, bump: Bump) -> tuple[str, str]:
    old = info.version or '0.0.0'
    try:
        return old, bump_version(old, bump)
    except SampoError as exc:
        raise SampoError(
            E.RELEASE,
            f"Cannot bump {info.identifier} from '{old}': {exc.message}",
            path=info.path,
        ) from exc


def compute_plan(workspace: Workspace, config: Config, changesets: Iterable[Changeset]) -> ReleasePlan | None:
    """Turn changesets into a :class:`ReleasePlan`, or ``None`` if nothing applies."""
    ignored = {info.identifier for info in workspace.members if should_ignore_package(config, workspace, info)}
    fixed = resolve_groups(workspace, config.fixed, 'fixed')
    linked = resolve_groups(workspace, config.linked, 'linked')

    direct, notes, consumed = aggregate_bumps(workspace, changesets, ignored)
    if not direct:
        return None

    active = [info for info in workspace.members if info.identifier not in ignored]
    dependents = dependents_map(active)
    bumps, cascaded, fixed_only = compute_bumps(direct, dependents, fixed=fixed, linked=linked, ignored=ignored)

    plan = ReleasePlan(notes=notes, consumed=consumed)
    for identifier in sorted(bumps):
        info = workspace.find_by_identifier(identifier)
        if info is None:
            continue
        old, new = _new_version(info, bumps[identifier])
        plan.releases[identifier] = PlannedRelease(info=info, old_version=old, new_version=new, bump=bumps[identifier])
        reason = 'changeset' if identifier in direct else 'fixed group' if identifier in fixed_only else 'dependency'
        log.debug('package_planned', package=identifier, old=old, new=new, bump=bumps[identifier].value, reason=reason)

    for identifier in sorted(fixed_only):
        plan.notes.setdefault(identifier, []).append(Note(FIXED_POLICY_NOTE, bumps[identifier]))

    for identifier, release in plan.releases.items():
        updates = {
            plan.releases[dep].info.name: plan.releases[dep].new_version
            for dep in sorted(release.info.internal_deps)
            if dep in plan.releases and dep != identifier
        }
        if updates:
            plan.dependency_updates[identifier] = updates
    return plan


def apply_version_updates(workspace: Workspace, new_versions: Mapping[str, str]) -> dict[str, list[tuple[str, str]]]:
    """Rewrite every member manifest for ``identifier → new version`` updates.

    Members receive their own new version (when listed) and new
    requirements on every updated package of their ecosystem. Root
    manifests reported by :meth:`~sampo.adapters.EcosystemAdapter.workspace_manifests`
    are rewritten as well.

    Returns:
        Identifier to the ``(dependency, version)`` changes applied to
        that member's manifest.
    """
    by_kind: dict[PackageKind, dict[str, str]] = {}
    for identifier, version in new_versions.items():
        info = workspace.find_by_identifier(identifier)
        if info is not None:
            by_kind.setdefault(info.kind, {})[info.name] = version

    applied: dict[str, list[tuple[str, str]]] = {}
    for kind, versions in by_kind.items():
        adapter = adapter_for(kind)
        handled: set[Path] = set()
        for info in workspace.members:
            if info.kind is not kind:
                continue
            manifest = adapter.manifest_path(info.path)
            changes = _rewrite(adapter, manifest, new_versions.get(info.identifier), versions)
            handled.add(manifest.resolve())
            if changes:
                applied[info.identifier] = changes
        for manifest in adapter.workspace_manifests(workspace.root):
            if manifest.resolve() not in handled:
                _rewrite(adapter, manifest, None, versions)
    return applied


def _rewrite(
    adapter: EcosystemAdapter,
    manifest: Path,
    own_version: str | None,
    versions: Mapping[str, str],
) -> list[tuple[str, str]]:
    text = read_text(manifest)
    updated, changes = adapter.update_manifest_versions(manifest, text, own_version, versions)
    if updated != text:
        write_text(manifest, updated)
        log.debug('manifest_updated', path=str(manifest), version=own_version, dependencies=len(changes))
    return changes


def regenerate_lockfiles(workspace: Workspace, kinds: Iterable[PackageKind]) -> list[PackageKind]:
    """Regenerate the lockfile of each ecosystem in ``kinds`` that has one at the root."""
    regenerated = []
    for kind in sorted(set(kinds), key=lambda k: k.value):
        adapter = adapter_for(kind)
        if adapter.lockfile_exists(workspace.root):
            adapter.regenerate_lockfile(workspace.root)
            regenerated.append(kind)
    return regenerated


def tag_releases(workspace: Workspace, config: Config, plan: ReleasePlan) -> list[str]:
    """Create one annotated tag per released package; skipped outside git."""
    repo = GitRepo(workspace.root)
    if not repo.is_repo():
        log.debug('tagging_skipped_no_git', root=str(workspace.root))
        return []
    single = len(plan.releases) == 1
    created = []
    for release in plan.releases.values():
        tag = config.build_tag_name(release.info.name, release.new_version, single_release=single)
        if repo.tag_exists(tag):
            log.info('tag_exists', tag=tag)
            continue
        repo.create_tag(tag, f'Release {release.info.name} {release.new_version}')
        created.append(tag)
    return created


def default_enricher(workspace: Workspace, config: Config, env: Mapping[str, str] | None = None) -> Enricher:
    """Build the note enricher for ``workspace`` from config and environment."""
    repo = GitRepo(workspace.root)
    if not repo.is_repo():
        return lambda message, _path: message
    slug = detect_repo_slug(workspace.root, config.github_repository, env)
    token = github_token(env)
    enriched: dict[tuple[str, Path], str] = {}

    def enrich(message: str, path: Path) -> str:
        key = (message, path)
        if key not in enriched:
            enriched[key] = _decorate(message, repo.last_commit_for(path))
        return enriched[key]

    def _decorate(message: str, commit: str | None) -> str:
        return enrich_message(
            message,
            commit,
            workspace.root,
            slug,
            token,
            show_commit_hash=config.changelog_show_commit_hash,
            show_acknowledgments=config.changelog_show_acknowledgments,
        )

    return enrich


def _enrich_notes(plan: ReleasePlan, enrich: Enricher) -> None:
    for identifier, notes in plan.notes.items():
        plan.notes[identifier] = [
            Note(enrich(note.message, note.source), note.bump, note.source) if note.source is not None else note
            for note in notes
        ]


def apply_plan(
    workspace: Workspace,
    config: Config,
    plan: ReleasePlan,
    *,
    enrich: Enricher | None = None,
) -> None:
    """Write manifests, changelogs and lockfiles, tag, and consume changesets."""
    new_versions = {identifier: release.new_version for identifier, release in plan.releases.items()}
    applied = apply_version_updates(workspace, new_versions)
    for identifier, changes in applied.items():
        if identifier not in plan.releases:
            continue
        own = plan.releases[identifier].info.name
        updates = plan.dependency_updates.setdefault(identifier, {})
        for name, version in changes:
            if name != own and name not in updates:
                updates[name] = version

    _enrich_notes(plan, enrich or default_enricher(workspace, config))

    release_date = release_date_display(config)
    for identifier, release in plan.releases.items():
        update_changelog(
            release.info.path,
            release.info.name,
            release.old_version,
            release.new_version,
            plan.changelog_notes(identifier),
            release_date,
        )

    regenerate_lockfiles(workspace, (release.info.kind for release in plan.releases.values()))
    tag_releases(workspace, config, plan)

    preserve = prerelease_dir(workspace.root) if plan.is_prerelease() else None
    consume_changesets(plan.consumed, preserve_dir=preserve)
    if preserve is not None:
        log.info('changesets_preserved', count=len(plan.consumed), path=str(preserve))
    else:
        log.info('changesets_consumed', count=len(plan.consumed))


def run_release(
    root: Path,
    *,
    dry_run: bool = False,
    env: Mapping[str, str] | None = None,
    enrich: Enricher | None = None,
) -> ReleaseOutput:
    """Run a release for the workspace containing ``root``.

    Args:
        root: Any directory inside the workspace.
        dry_run: Compute and return the plan without touching files.
        env: Environment for branch overrides and GitHub credentials.
        enrich: Replacement note enricher (defaults to git + GitHub).

    Raises:
        SampoError: On a disallowed branch, a bad group, an unknown or
            ambiguous changeset target, or any failing release step.
    """
    environ = os.environ if env is None else env
    workspace = discover_workspace(root)
    config = load_config(workspace.root)
    ensure_release_branch(config, workspace.root, purpose='releases', env=environ)

    pending_dir = changesets_dir(workspace.root, config)
    parked_dir = prerelease_dir(workspace.root)
    current = load_changesets(pending_dir, allowed_tags=config.allowed_tags)
    parked = load_changesets(parked_dir, allowed_tags=config.allowed_tags)

    if not current.changesets and not parked.changesets:
        log.info('no_changesets', path=str(pending_dir))
        return ReleaseOutput(released_packages=[], dry_run=dry_run)

    plan = compute_plan(workspace, config, current.changesets) if current.changesets else None
    use_parked = False
    if parked.changesets:
        if current.changesets:
            use_parked = plan is None or not plan.is_prerelease()
        else:
            candidate = compute_plan(workspace, config, parked.changesets)
            use_parked = candidate is not None and not candidate.is_prerelease()

    if use_parked:
        if dry_run:
            plan = compute_plan(workspace, config, [*current.changesets, *parked.changesets])
        else:
            restore_preserved_changesets(parked_dir, pending_dir)
            restored = load_changesets(pending_dir, allowed_tags=config.allowed_tags)
            plan = compute_plan(workspace, config, restored.changesets)

    if plan is None:
        log.info('no_applicable_packages')
        return ReleaseOutput(released_packages=[], dry_run=dry_run)

    for release in plan.releases.values():
        log.info(
            'release_planned',
            package=release.identifier,
            old=release.old_version,
            new=release.new_version,
            bump=release.bump.value,
        )

    if dry_run:
        return ReleaseOutput(released_packages=plan.released_packages(), dry_run=True)

    apply_plan(workspace, config, plan, enrich=enrich or default_enricher(workspace, config, environ))
    return ReleaseOutput(released_packages=plan.released_packages(), dry_run=False)


__all__ = [
    'DEPENDENCY_NOTE_PREFIX',
    'FIXED_POLICY_NOTE',
    'Note',
    'PlannedRelease',
    'ReleasePlan',
    'aggregate_bumps',
    'apply_plan',
    'apply_version_updates',
    'compute_bumps',
    'compute_plan',
    'default_enricher',
    'regenerate_lockfiles',
    'resolve_groups',
    'run_release',
    'tag_releases',
]
