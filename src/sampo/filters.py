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

"""Package and branch filtering for sampo.

Two config knobs hide packages from releases and publishes::

    [packages]
    ignore_unpublished = true            # skip what the ecosystem would not publish
    ignore = ["internal-*", "examples/*"]

Ignore patterns only understand ``*`` (any run of characters, ``/``
included). A package is ignored when a pattern matches either its bare
name or its directory relative to the workspace root::

    pattern          name           relative path     ignored?
    internal-*       internal-tool  tools/internal    yes (name)
    examples/*       examples-lib   examples/lib      yes (path)
    internal-*       normal         crates/normal     no

Release and publish runs are limited to the branches in
``git.default_branch`` and ``git.release_branches``, which use the same
``*`` wildcard (``release/*``).

Usage::

    from sampo.filters import should_ignore_package

    if should_ignore_package(config, workspace, info):
        log.info('package_ignored', package=info.identifier)
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

from sampo.adapters import adapter_for
from sampo.backends.git import detect_release_branch
from sampo.config import Config
from sampo.errors import E, SampoError
from sampo.logging import get_logger
from sampo.types import PackageInfo, Workspace

log = get_logger('sampo.filters')


@lru_cache(maxsize=256)
def _wildcard_regex(pattern: str) -> re.Pattern[str]:
    return re.compile('.*'.join(re.escape(part) for part in pattern.split('*')), re.DOTALL)


def wildcard_match(pattern: str, text: str) -> bool:
    """Return ``True`` if ``text`` matches ``pattern`` where ``*`` is the only wildcard."""
    if '*' not in pattern:
        return pattern == text
    return _wildcard_regex(pattern).fullmatch(text) is not None


def relative_path(workspace: Workspace, info: PackageInfo) -> str:
    """Return ``info.path`` relative to the workspace root, ``/``-separated."""
    try:
        rel = info.path.relative_to(workspace.root)
    except ValueError:
        rel = info.path
    return rel.as_posix()


def matches_ignore_patterns(config: Config, workspace: Workspace, info: PackageInfo) -> bool:
    """Return ``True`` when a ``packages.ignore`` pattern hits the name or path."""
    if not config.ignore:
        return False
    rel = relative_path(workspace, info)
    return any(wildcard_match(pattern, info.name) or wildcard_match(pattern, rel) for pattern in config.ignore)


def should_ignore_package(config: Config, workspace: Workspace, info: PackageInfo) -> bool:
    """Return ``True`` if releases and publishes should skip ``info``."""
    if config.ignore_unpublished:
        adapter = adapter_for(info.kind)
        if not adapter.is_publishable(adapter.manifest_path(info.path)):
            return True
    return matches_ignore_patterns(config, workspace, info)


def filter_members(workspace: Workspace, config: Config) -> list[PackageInfo]:
    """Return the members that are not ignored, in discovery order."""
    return [info for info in workspace.members if not should_ignore_package(config, workspace, info)]


def list_visible_packages(workspace: Workspace, config: Config) -> list[str]:
    """Return the sorted, de-duplicated names of non-ignored members."""
    return sorted({info.name for info in filter_members(workspace, config)})


def is_release_branch(config: Config, branch: str) -> bool:
    """Return ``True`` if ``branch`` matches a configured release branch or pattern."""
    return any(wildcard_match(pattern, branch) for pattern in config.release_branches)


def ensure_release_branch(
    config: Config,
    root: Path,
    *,
    purpose: str,
    env: Mapping[str, str] | None = None,
) -> str:
    """Return the current branch, or fail when it may not run ``purpose``.

    Args:
        config: Loaded configuration.
        root: Repository root used to ask git for the branch.
        purpose: ``releases`` or ``publishing``; used in the message.
        env: Environment consulted for branch overrides.

    Raises:
        SampoError: ``RELEASE`` when the branch is not allowed.
    """
    branch = detect_release_branch(root, os.environ if env is None else env)
    if not is_release_branch(config, branch):
        allowed = sorted(config.release_branches)
        raise SampoError(
            E.RELEASE,
            f"Branch '{branch}' is not configured for {purpose} (allowed: {allowed})",
            hint='Add the branch to git.release_branches in .sampo/config.toml.',
        )
    log.debug('release_branch_ok', branch=branch, purpose=purpose)
    return branch


__all__ = [
    'ensure_release_branch',
    'filter_members',
    'is_release_branch',
    'list_visible_packages',
    'matches_ignore_patterns',
    'relative_path',
    'should_ignore_package',
    'wildcard_match',
]
