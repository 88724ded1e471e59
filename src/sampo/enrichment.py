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

"""Changelog note decoration with commit links and acknowledgements.

Turns a raw changeset message into the bullet that lands in
``CHANGELOG.md``::

    Add streaming support.
        │
        ▼  show_commit_hash, slug known
    [abc1234](https://github.com/o/r/commit/abc1234…) Add streaming support.
        │
        ▼  show_acknowledgments
    … Add streaming support. — Thanks @octocat!

Acknowledgement fallbacks, first match wins::

    GitHub login, first contribution  → " — Thanks @login for your first contribution 🎉!"
    GitHub login                      → " — Thanks @login!"
    git author name                   → " — Thanks Jane Doe!"

The GitHub lookups run on :class:`httpx.AsyncClient` inside a short
:func:`asyncio.run`, so callers stay synchronous. Any failure (no
network, non-2xx, rate limit) just drops that decoration; enrichment
never fails a release.
"""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import httpx

from sampo.backends.git import CommitInfo, GitRepo
from sampo.logging import get_logger
from sampo.net import GITHUB_TIMEOUT, async_http_client

log = get_logger('sampo.enrichment')

GITHUB_API = 'https://api.github.com'
TOKEN_ENV_VARS: tuple[str, ...] = ('GITHUB_TOKEN', 'GH_TOKEN')
# Pages of the contributors listing scanned for a first-contribution check.
CONTRIBUTOR_PAGES = 5
_SLUG_RE = re.compile(
    r'^(?:https?://github\.com/|git@github\.com:|ssh://git@github\.com/)'
    r'(?P<slug>[^/\s]+/[^/\s]+?)(?:\.git)?/?$'
)


@dataclass(frozen=True)
class GitHubUser:
    """A commit author resolved on GitHub."""

    login: str
    first_contribution: bool = False


def parse_github_slug(url: str) -> str | None:
    """Return ``owner/repo`` from a GitHub HTTPS or SSH remote URL."""
    match = _SLUG_RE.match(url.strip())
    return match['slug'] if match else None


def detect_repo_slug(
    root: Path,
    configured: str | None = None,
    env: Mapping[str, str] | None = None,
) -> str | None:
    """Return the repository slug from config, ``GITHUB_REPOSITORY``, or ``origin``."""
    if configured:
        return configured
    environ = os.environ if env is None else env
    from_env = environ.get('GITHUB_REPOSITORY', '').strip()
    if from_env and '/' in from_env:
        return from_env
    repo = GitRepo(root)
    if not repo.is_repo():
        return None
    url = repo.remote_url('origin')
    return parse_github_slug(url) if url else None


def github_token(env: Mapping[str, str] | None = None) -> str | None:
    """Return ``GITHUB_TOKEN`` or ``GH_TOKEN``, whichever is set first."""
    environ = os.environ if env is None else env
    for key in TOKEN_ENV_VARS:
        value = environ.get(key, '').strip()
        if value:
            return value
    return None


def commit_prefix(commit: CommitInfo, repo_slug: str | None) -> str:
    """Return the commit link (or bare short hash) placed before a note."""
    if repo_slug:
        return f'[{commit.short_sha}](https://github.com/{repo_slug}/commit/{commit.sha}) '
    return f'{commit.short_sha} '


def acknowledgement_suffix(commit: CommitInfo, user: GitHubUser | None) -> str:
    """Return the ``— Thanks …!`` suffix for a note."""
    if user is not None:
        if user.first_contribution:
            return f' — Thanks @{user.login} for your first contribution 🎉!'
        return f' — Thanks @{user.login}!'
    if commit.author_name:
        return f' — Thanks {commit.author_name}!'
    return ''


def attach_suffix(message: str, suffix: str) -> str:
    """Append ``suffix``, on its own line when ``message`` ends in a code fence."""
    if not suffix:
        return message
    if message.rstrip().endswith('```'):
        return f'{message.rstrip()}\n{suffix.lstrip()}'
    return f'{message}{suffix}'


async def _get_json(client: httpx.AsyncClient, url: str, **params: str | int) -> object | None:
    try:
        response = await client.get(url, params=params)
    except httpx.HTTPError as exc:
        log.debug('github_request_failed', url=url, error=str(exc))
        return None
    if not response.is_success:
        log.debug('github_request_skipped', url=url, status=response.status_code)
        return None
    try:
        return response.json()
    except ValueError:
        return None


async def _is_first_contribution(client: httpx.AsyncClient, repo_slug: str, login: str) -> bool:
    for page in range(1, CONTRIBUTOR_PAGES + 1):
        payload = await _get_json(client, f'{GITHUB_API}/repos/{repo_slug}/contributors', per_page=100, page=page)
        if not isinstance(payload, list):
            return False
        for entry in payload:
            if isinstance(entry, dict) and entry.get('login') == login:
                return entry.get('contributions') == 1
        if len(payload) < 100:
            return False
    return False


async def lookup_github_user(
    repo_slug: str,
    sha: str,
    token: str | None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> GitHubUser | None:
    """Map a commit to its author's GitHub login.

    The first-contribution check needs a token; without one the login
    is still looked up anonymously.
    """
    headers = {'Accept': 'application/vnd.github+json'}
    if token:
        headers['Authorization'] = f'Bearer {token}'
    async with async_http_client(timeout=GITHUB_TIMEOUT, headers=headers, transport=transport) as client:
        payload = await _get_json(client, f'{GITHUB_API}/repos/{repo_slug}/commits/{sha}')
        author = payload.get('author') if isinstance(payload, dict) else None
        login = author.get('login') if isinstance(author, dict) else None
        if not isinstance(login, str) or not login:
            return None
        first = await _is_first_contribution(client, repo_slug, login) if token else False
        return GitHubUser(login=login, first_contribution=first)


def enrich_message(
    message: str,
    commit_hash: str | None,
    workspace_root: Path,
    repo_slug: str | None = None,
    token: str | None = None,
    *,
    show_commit_hash: bool = True,
    show_acknowledgments: bool = True,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Decorate ``message`` for the changelog.

    Returns ``message`` unchanged whenever an input is missing (no
    commit, git unavailable, both flags off).
    """
    if not commit_hash or not (show_commit_hash or show_acknowledgments):
        return message
    commit = GitRepo(workspace_root).commit_info(commit_hash)
    if commit is None:
        return message

    prefix = commit_prefix(commit, repo_slug) if show_commit_hash else ''
    suffix = ''
    if show_acknowledgments:
        user = None
        if repo_slug:
            user = asyncio.run(lookup_github_user(repo_slug, commit.sha, token, transport=transport))
        suffix = acknowledgement_suffix(commit, user)
    return attach_suffix(f'{prefix}{message}', suffix)


__all__ = [
    'GitHubUser',
    'acknowledgement_suffix',
    'attach_suffix',
    'commit_prefix',
    'detect_repo_slug',
    'enrich_message',
    'github_token',
    'lookup_github_user',
    'parse_github_slug',
]
