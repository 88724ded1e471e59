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

"""Publish orchestrator: push every publishable package in dependency order.

Flow::

    publishable ∖ ignored ──► every internal dep also publishable? ──no──► PUBLISH error
                                        │ yes
                                        ▼
                                 topological order
                                        │
                                        ▼
                  probe registry ── exists ──► skip (no tag)
                                        │ missing / probe failed
                                        ▼
              dry-run every target (real runs only) ──► publish ──► tag <name>-v<version>

A failing registry probe is logged as a warning and the publish is
attempted anyway; the registry then gets the final word. Any failing
publish command aborts the run.
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from sampo.adapters import EcosystemAdapter, adapter_for
from sampo.backends.git import GitRepo
from sampo.config import Config, load_config
from sampo.errors import E, SampoError
from sampo.filters import ensure_release_branch, should_ignore_package
from sampo.graph import build_graph, topo_order
from sampo.logging import get_logger
from sampo.types import PackageInfo, Workspace
from sampo.workspace import discover_workspace

log = get_logger('sampo.publish')


class PublishStatus(str, Enum):
    """Outcome of one publish target."""

    PUBLISHED = 'published'
    SKIPPED = 'skipped'
    DRY_RUN = 'dry-run'


@dataclass(frozen=True)
class PublishTarget:
    """A package queued for publishing."""

    info: PackageInfo
    adapter: EcosystemAdapter
    manifest: Path


@dataclass(frozen=True)
class PublishResult:
    """What happened to one package.

    Attributes:
        identifier: ``<kind>/<name>`` of the package.
        version: The version that was (or would be) published.
        status: Published, skipped because the registry has it, or dry run.
        tag: Git tag created after publishing, if any.
    """

    identifier: str
    version: str
    status: PublishStatus
    tag: str | None = None


@dataclass
class PublishOutput:
    """Summary of a publish run, in publish order."""

    results: list[PublishResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def published(self) -> list[PublishResult]:
        """Targets that reached the registry."""
        return [r for r in self.results if r.status is PublishStatus.PUBLISHED]

    @property
    def skipped(self) -> list[PublishResult]:
        """Targets whose version the registry already had."""
        return [r for r in self.results if r.status is PublishStatus.SKIPPED]


def publishable_members(workspace: Workspace, config: Config) -> list[PublishTarget]:
    """Return the non-ignored members their adapter considers publishable."""
    targets = []
    for info in workspace.members:
        if should_ignore_package(config, workspace, info):
            log.debug('publish_ignored', package=info.identifier)
            continue
        adapter = adapter_for(info.kind)
        manifest = adapter.manifest_path(info.path)
        if not adapter.is_publishable(manifest):
            log.debug('publish_not_publishable', package=info.identifier)
            continue
        targets.append(PublishTarget(info=info, adapter=adapter, manifest=manifest))
    return targets


def validate_internal_dependencies(workspace: Workspace, targets: Sequence[PublishTarget]) -> None:
    """Ensure no publish target depends on a workspace member left out of the set.

    Raises:
        SampoError: ``PUBLISH`` listing every violation.
    """
    selected = {target.info.identifier for target in targets}
    members = {info.identifier for info in workspace.members}
    violations = [
        f"package '{target.info.name}' depends on internal package '{dep}' which is not publishable"
        for target in targets
        for dep in sorted(target.info.internal_deps)
        if dep in members and dep not in selected
    ]
    if violations:
        for violation in violations:
            log.error('publish_dependency_violation', detail=violation)
        raise SampoError(
            E.PUBLISH,
            'cannot publish due to non-publishable internal dependencies: ' + '; '.join(violations),
            hint='Make the dependency publishable, or stop ignoring it in packages.ignore.',
        )


def _probe(target: PublishTarget) -> bool:
    info = target.info
    try:
        return target.adapter.version_exists(info.name, info.version, target.manifest)
    except SampoError as exc:
        log.warning(
            'registry_probe_failed',
            package=info.identifier,
            version=info.version,
            registry=target.adapter.registry,
            error=exc.message,
        )
        return False


def tag_published(root: Path, name: str, version: str) -> str | None:
    """Create ``<name>-v<version>``; return the tag, or ``None`` when skipped."""
    if not (root / '.git').exists():
        return None
    repo = GitRepo(root)
    tag = f'{name}-v{version}'
    if repo.tag_exists(tag):
        log.info('tag_exists', tag=tag)
        return None
    repo.create_tag(tag, f'Release {name} {version}')
    log.info('tag_created', tag=tag)
    return tag


def run_publish(
    root: Path,
    *,
    dry_run: bool = False,
    extra_args: Sequence[str] = (),
    env: Mapping[str, str] | None = None,
) -> PublishOutput:
    """Publish every publishable package of the workspace containing ``root``.

    Args:
        root: Any directory inside the workspace.
        dry_run: Validate with each tool's dry-run mode; never tag.
        extra_args: Arguments forwarded verbatim to every publish command.
        env: Environment used for release-branch detection.

    Raises:
        SampoError: ``RELEASE`` on a disallowed branch, ``PUBLISH`` for
            dependency violations, cycles, or failing publish commands.
    """
    environ = os.environ if env is None else env
    workspace = discover_workspace(root)
    config = load_config(workspace.root)
    ensure_release_branch(config, workspace.root, purpose='publishing', env=environ)

    output = PublishOutput(dry_run=dry_run)
    targets = publishable_members(workspace, config)
    if not targets:
        log.info('nothing_to_publish')
        return output

    validate_internal_dependencies(workspace, targets)
    by_id = {target.info.identifier: target for target in targets}
    ordered = [by_id[info.identifier] for info in topo_order(build_graph(t.info for t in targets))]
    log.info('publish_plan', order=[target.info.identifier for target in ordered])

    pending: list[PublishTarget] = []
    for target in ordered:
        if _probe(target):
            log.info(
                'publish_skipped_exists',
                package=target.info.identifier,
                version=target.info.version,
                registry=target.adapter.registry,
            )
            output.results.append(PublishResult(target.info.identifier, target.info.version, PublishStatus.SKIPPED))
        else:
            pending.append(target)

    args = list(extra_args)
    if not dry_run:
        for target in pending:
            try:
                target.adapter.publish(target.manifest, True, args)
            except SampoError as exc:
                raise SampoError(
                    exc.code,
                    f'Dry-run publish failed for {target.info.display_name(include_kind=True)}: {exc.message}',
                    exc.hint,
                    path=target.manifest,
                    ecosystem=target.info.kind.value,
                ) from exc
        log.info('publish_validation_passed', count=len(pending))

    for target in pending:
        info = target.info
        target.adapter.publish(target.manifest, dry_run, args)
        if dry_run:
            output.results.append(PublishResult(info.identifier, info.version, PublishStatus.DRY_RUN))
            continue
        try:
            tag = tag_published(workspace.root, info.name, info.version)
        except SampoError as exc:
            log.warning('tag_failed', package=info.identifier, version=info.version, error=exc.message)
            tag = None
        output.results.append(PublishResult(info.identifier, info.version, PublishStatus.PUBLISHED, tag))
        log.info('package_published', package=info.identifier, version=info.version)
    return output


__all__ = [
    'PublishOutput',
    'PublishResult',
    'PublishStatus',
    'PublishTarget',
    'publishable_members',
    'run_publish',
    'tag_published',
    'validate_internal_dependencies',
]
