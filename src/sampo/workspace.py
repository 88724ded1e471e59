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

"""Workspace discovery across every supported ecosystem.

The driver asks each adapter, in the fixed order of
:data:`~sampo.adapters.ADAPTERS`, where its workspace root would be for
the starting directory; the first answer wins. Every adapter whose
signature file sits at that root then contributes its members::

    repo/
    ├── Cargo.toml          → cargo/core, cargo/cli
    ├── package.json        → npm/web
    └── pyproject.toml      → pypi/sdk

    discover_workspace(Path('repo/crates/cli'))
      → Workspace(root=repo, members=(cargo/core, cargo/cli, npm/web, pypi/sdk))
"""

from __future__ import annotations

from pathlib import Path

from sampo.adapters import ADAPTERS, EcosystemAdapter
from sampo.errors import E, SampoError
from sampo.logging import get_logger
from sampo.types import PackageInfo, PackageSpecifier, Workspace

log = get_logger('sampo.workspace')


def find_workspace_root(start: Path, adapters: tuple[EcosystemAdapter, ...] = ADAPTERS) -> Path:
    """Return the first workspace root any adapter finds from ``start``.

    Raises:
        SampoError: ``NOT_FOUND`` when no ecosystem recognises the tree.
    """
    start = start.resolve()
    for adapter in adapters:
        root = adapter.find_root(start)
        if root is not None:
            log.debug('workspace_root', ecosystem=adapter.kind.value, root=str(root))
            return root
    raise SampoError(
        E.NOT_FOUND,
        f'no supported workspace found from {start}',
        hint='Run sampo inside a Cargo, npm, Mix, Composer or Python project.',
    )


def discover_workspace(start: Path, adapters: tuple[EcosystemAdapter, ...] = ADAPTERS) -> Workspace:
    """Discover every package reachable from ``start``.

    Raises:
        SampoError: ``NOT_FOUND`` when nothing is found, or whatever
            error an adapter raises for a malformed workspace.
    """
    root = find_workspace_root(start, adapters)
    members: list[PackageInfo] = []
    seen: set[str] = set()
    for adapter in adapters:
        if not adapter.can_discover(root):
            continue
        for info in adapter.discover(root):
            if info.identifier in seen:
                raise SampoError(
                    E.INVALID_WORKSPACE,
                    f"duplicate package '{info.identifier}' in workspace",
                    path=info.path,
                )
            seen.add(info.identifier)
            members.append(info)

    if not members:
        raise SampoError(E.NOT_FOUND, f'no packages found in workspace at {root}')
    log.info('workspace_discovered', root=str(root), packages=len(members))
    return Workspace(root=root, members=tuple(members))


def resolve_reference(workspace: Workspace, reference: str) -> PackageInfo:
    """Resolve a user-supplied ``[kind/]name`` reference to one member.

    Raises:
        SampoError: ``INVALID_DATA`` for empty or ambiguous references,
            ``NOT_FOUND`` when nothing matches.
    """
    return workspace.resolve(PackageSpecifier.parse(reference))


__all__ = [
    'discover_workspace',
    'find_workspace_root',
    'resolve_reference',
]
