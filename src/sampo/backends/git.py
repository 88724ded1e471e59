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

"""Git helpers for sampo.

:class:`GitRepo` wraps the handful of ``git`` invocations sampo needs:
annotated tags, the current branch, and per-file commit lookups used by
changelog enrichment. Everything delegates to :func:`run_command`.

Release-branch detection honours CI overrides before asking git::

    SAMPO_RELEASE_BRANCH  →  GITHUB_REF_NAME  →  git rev-parse --abbrev-ref HEAD
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from sampo.backends._run import CommandResult, run_command
from sampo.errors import E, SampoError
from sampo.logging import get_logger

log = get_logger('sampo.backends.git')

# Environment variables consulted (in order) before asking git.
BRANCH_ENV_VARS: tuple[str, ...] = ('SAMPO_RELEASE_BRANCH', 'GITHUB_REF_NAME')


@dataclass(frozen=True)
class CommitInfo:
    """Identity of a single commit.

    Attributes:
        sha: Full commit hash.
        short_sha: Abbreviated hash as printed by git.
        author_name: The commit author's display name.
    """

    sha: str
    short_sha: str
    author_name: str


class GitRepo:
    """Thin wrapper over the ``git`` CLI rooted at ``repo_root``."""

    def __init__(self, repo_root: Path) -> None:
        """Initialize with the repository root."""
        self._root = repo_root

    @property
    def root(self) -> Path:
        """The repository root."""
        return self._root

    def _git(self, *args: str) -> CommandResult:
        return run_command(['git', *args], cwd=self._root, error_code=E.GIT)

    def is_repo(self) -> bool:
        """Return ``True`` when ``repo_root`` holds a ``.git`` entry."""
        return (self._root / '.git').exists()

    def tag_exists(self, tag_name: str) -> bool:
        """Return ``True`` if ``tag_name`` already exists locally."""
        result = self._git('tag', '--list', tag_name)
        return result.ok and result.stdout.strip() == tag_name

    def create_tag(self, tag_name: str, message: str) -> None:
        """Create an annotated tag on HEAD.

        Raises:
            SampoError: ``GIT`` when git refuses to create the tag.
        """
        result = self._git('tag', '-a', tag_name, '-m', message)
        if not result.ok:
            raise SampoError(E.GIT, f"failed to create tag '{tag_name}': {result.failure_detail()}")
        log.info('tag_created', tag=tag_name)

    def abbrev_head(self) -> str:
        """Return ``git rev-parse --abbrev-ref HEAD`` without a ``refs/heads/`` prefix."""
        result = self._git('rev-parse', '--abbrev-ref', 'HEAD')
        if not result.ok:
            raise SampoError(E.RELEASE, 'Unable to determine current git branch (git rev-parse failed)')
        return result.stdout.strip().removeprefix('refs/heads/')

    def last_commit_for(self, path: Path) -> str | None:
        """Return the hash of the last commit touching ``path``, if any."""
        result = self._git('log', '-1', '--format=%H', '--', str(path))
        sha = result.stdout.strip()
        return sha if result.ok and sha else None

    def commit_info(self, sha: str) -> CommitInfo | None:
        """Return hash, short hash and author name for ``sha``."""
        result = self._git('show', '--no-patch', '--format=%H%x1f%h%x1f%an', sha)
        if not result.ok:
            return None
        parts = result.stdout.strip().split('\x1f')
        if len(parts) != 3:
            return None
        return CommitInfo(sha=parts[0], short_sha=parts[1], author_name=parts[2])

    def remote_url(self, remote: str = 'origin') -> str | None:
        """Return the fetch URL of ``remote`` or ``None`` when unset."""
        result = self._git('remote', 'get-url', remote)
        url = result.stdout.strip()
        return url if result.ok and url else None


def detect_release_branch(root: Path, env: Mapping[str, str] | None = None) -> str:
    """Return the branch a release or publish is running on.

    Args:
        root: Repository root used when falling back to git.
        env: Environment to consult (defaults to :data:`os.environ`).

    Raises:
        SampoError: ``RELEASE`` when the branch cannot be determined,
            including a detached HEAD.
    """
    environ = os.environ if env is None else env
    for key in BRANCH_ENV_VARS:
        value = environ.get(key, '').strip()
        if value:
            log.debug('branch_from_env', variable=key, branch=value)
            return value

    branch = GitRepo(root).abbrev_head()
    if not branch or branch == 'HEAD':
        raise SampoError(E.RELEASE, 'Unable to determine current git branch (detached HEAD)')
    return branch


__all__ = [
    'BRANCH_ENV_VARS',
    'CommitInfo',
    'GitRepo',
    'detect_release_branch',
]
