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

"""Configuration reader for sampo.

Reads ``.sampo/config.toml`` from the workspace root and returns a
validated, frozen :class:`Config`. A missing file means defaults.

Key Concepts (ELI5)::

    ┌─────────────────────────┬────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                           │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ Config                  │ The knobs for releases: which branches may │
    │                         │ release, what to ignore, which packages    │
    │                         │ move together.                             │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ Fixed group             │ Packages that always release together at   │
    │                         │ the same bump level.                       │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ Linked group            │ Packages that share a bump level, but only │
    │                         │ when they are released anyway.             │
    └─────────────────────────┴────────────────────────────────────────────┘

Supported keys::

    version = 1

    [github]
    repository = "owner/repo"

    [changelog]
    show_commit_hash = true
    show_acknowledgments = true
    show_release_date = true
    release_date_format = "%Y-%m-%d"
    release_date_timezone = "UTC"        # "local", "+02:00", "Europe/Paris"

    [changesets]
    dir = "changesets"                   # relative to .sampo/

    [tags]
    allowed = ["feat", "fix"]

    [git]
    default_branch = "main"
    release_branches = ["release/*"]
    short_tags = true

    [packages]
    ignore_unpublished = false
    ignore = ["internal-*", "examples/*"]
    fixed = [["cargo/a", "cargo/b"]]
    linked = [["npm/x", "npm/y"]]

Usage::

    from sampo.config import load_config

    cfg = load_config(Path('/path/to/repo'))
    print(cfg.release_branches)  # frozenset({'main'})
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from sampo.errors import E, SampoError
from sampo.logging import get_logger

log = get_logger('sampo.config')

# Directory holding config, changesets and preserved pre-release changesets.
CONFIG_DIRNAME = '.sampo'
CONFIG_FILENAME = 'config.toml'
DEFAULT_CHANGESETS_DIRNAME = 'changesets'
PRERELEASE_DIRNAME = 'prerelease'

_GROUP_HINT = 'Use [["a", "b"]] instead of ["a", "b"]'


@dataclass(frozen=True)
class Config:
    """Validated contents of ``.sampo/config.toml``.

    Attributes:
        version: Schema version.
        github_repository: ``owner/repo`` slug used for commit links.
        changelog_show_commit_hash: Prefix notes with a commit link.
        changelog_show_acknowledgments: Append a "Thanks" to notes.
        changelog_show_release_date: Add a date to release headers.
        changelog_release_date_format: ``strftime`` format for the date.
        changelog_release_date_timezone: Zone for the date (``None`` = local).
        changesets_dir: Changeset directory, relative to ``.sampo/``.
        allowed_tags: Whitelist for ``[tag]`` suffixes (empty = none allowed).
        fixed: Fixed dependency groups.
        linked: Linked dependency groups.
        ignore_unpublished: Skip packages their ecosystem would not publish.
        ignore: ``*`` patterns matched on name or relative path.
        git_default_branch: Default branch, always a release branch.
        git_release_branches: Extra release branches or patterns.
        git_short_tags: Use ``v<version>`` when one package is released.
    """

    version: int = 1
    github_repository: str | None = None
    changelog_show_commit_hash: bool = True
    changelog_show_acknowledgments: bool = True
    changelog_show_release_date: bool = True
    changelog_release_date_format: str = '%Y-%m-%d'
    changelog_release_date_timezone: str | None = None
    changesets_dir: str = DEFAULT_CHANGESETS_DIRNAME
    allowed_tags: tuple[str, ...] = ()
    fixed: tuple[tuple[str, ...], ...] = ()
    linked: tuple[tuple[str, ...], ...] = ()
    ignore_unpublished: bool = False
    ignore: tuple[str, ...] = ()
    git_default_branch: str = 'main'
    git_release_branches: tuple[str, ...] = ()
    git_short_tags: bool = False

    @property
    def release_branches(self) -> frozenset[str]:
        """The default branch plus every configured release branch."""
        return frozenset({self.git_default_branch, *self.git_release_branches})

    def build_tag_name(self, package_name: str, version: str, *, single_release: bool = False) -> str:
        """Return the git tag for ``package_name`` at ``version``.

        ``v<version>`` is used only when short tags are enabled and the
        release contains exactly one package.
        """
        if self.git_short_tags and single_release:
            return f'v{version}'
        return f'{package_name}-v{version}'


def config_dir(root: Path) -> Path:
    """Return ``<root>/.sampo``."""
    return root / CONFIG_DIRNAME


def changesets_dir(root: Path, config: Config) -> Path:
    """Return the directory changesets are read from."""
    return config_dir(root) / config.changesets_dir


def prerelease_dir(root: Path) -> Path:
    """Return the directory consumed pre-release changesets are kept in."""
    return config_dir(root) / PRERELEASE_DIRNAME


def _config_error(message: str, path: Path, hint: str = '') -> SampoError:
    return SampoError(E.CONFIG, message, hint, path=path)


def _table(data: Mapping[str, Any], key: str, path: Path) -> Mapping[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, Mapping):
        raise _config_error(f'{key} must be a table', path)
    return value


def _bool(table: Mapping[str, Any], dotted: str, default: bool, path: Path) -> bool:
    value = table.get(dotted.rsplit('.', 1)[-1], default)
    if not isinstance(value, bool):
        raise _config_error(f'{dotted} must be a boolean, got {type(value).__name__}', path)
    return value


def _str(table: Mapping[str, Any], dotted: str, path: Path) -> str | None:
    value = table.get(dotted.rsplit('.', 1)[-1])
    if value is None:
        return None
    if not isinstance(value, str):
        raise _config_error(f'{dotted} must be a string, got {type(value).__name__}', path)
    return value.strip() or None


def _str_list(table: Mapping[str, Any], dotted: str, path: Path) -> tuple[str, ...]:
    value = table.get(dotted.rsplit('.', 1)[-1], [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise _config_error(f'{dotted} must be an array of strings', path)
    return tuple(item.strip() for item in value if item.strip())


def _groups(table: Mapping[str, Any], kind: str, path: Path) -> tuple[tuple[str, ...], ...]:
    value = table.get(kind, [])
    dotted = f'packages.{kind}'
    if not isinstance(value, list):
        raise _config_error(f'{dotted} must be an array of arrays', path, _GROUP_HINT)
    if not all(isinstance(item, list) for item in value):
        if any(isinstance(item, list) for item in value):
            stray = next(item for item in value if not isinstance(item, list))
            raise _config_error(
                f'{dotted} must be an array of arrays, found mixed format with: {stray!r}',
                path,
                _GROUP_HINT,
            )
        raise _config_error(f'{dotted} must be an array of arrays', path, _GROUP_HINT)

    groups: list[tuple[str, ...]] = []
    seen: set[str] = set()
    for inner in value:
        if not all(isinstance(item, str) for item in inner):
            raise _config_error(f'{dotted} groups must contain package names', path)
        for package in inner:
            if package in seen:
                raise _config_error(
                    f"Package '{package}' appears in multiple {kind} dependency groups. "
                    'Each package can only belong to one group.',
                    path,
                )
            seen.add(package)
        groups.append(tuple(inner))
    return tuple(groups)


def parse_config(text: str, path: Path) -> Config:
    """Parse and validate config TOML ``text`` read from ``path``.

    Raises:
        SampoError: ``CONFIG`` on syntax errors, wrong types, or
            inconsistent dependency groups.
    """
    try:
        data: dict[str, Any] = tomlkit.parse(text).unwrap()
    except tomlkit.exceptions.ParseError as exc:
        raise _config_error(f'invalid config.toml: {exc}', path) from exc

    version = data.get('version', 1)
    if not isinstance(version, int) or isinstance(version, bool) or version < 0:
        raise _config_error('version must be a non-negative integer', path)

    github = _table(data, 'github', path)
    changelog = _table(data, 'changelog', path)
    changesets = _table(data, 'changesets', path)
    tags = _table(data, 'tags', path)
    git = _table(data, 'git', path)
    packages = _table(data, 'packages', path)

    fixed = _groups(packages, 'fixed', path)
    linked = _groups(packages, 'linked', path)
    fixed_members = {name for group in fixed for name in group}
    for group in linked:
        for package in group:
            if package in fixed_members:
                raise _config_error(
                    f"Package '{package}' cannot appear in both packages.fixed and packages.linked",
                    path,
                )

    date_format = changelog.get('release_date_format', '%Y-%m-%d')
    if not isinstance(date_format, str):
        raise _config_error('changelog.release_date_format must be a string', path)

    return Config(
        version=version,
        github_repository=_str(github, 'github.repository', path),
        changelog_show_commit_hash=_bool(changelog, 'changelog.show_commit_hash', True, path),
        changelog_show_acknowledgments=_bool(changelog, 'changelog.show_acknowledgments', True, path),
        changelog_show_release_date=_bool(changelog, 'changelog.show_release_date', True, path),
        changelog_release_date_format=date_format,
        changelog_release_date_timezone=_str(changelog, 'changelog.release_date_timezone', path),
        changesets_dir=_str(changesets, 'changesets.dir', path) or DEFAULT_CHANGESETS_DIRNAME,
        allowed_tags=_str_list(tags, 'tags.allowed', path),
        fixed=fixed,
        linked=linked,
        ignore_unpublished=_bool(packages, 'packages.ignore_unpublished', False, path),
        ignore=_str_list(packages, 'packages.ignore', path),
        git_default_branch=_str(git, 'git.default_branch', path) or 'main',
        git_release_branches=_str_list(git, 'git.release_branches', path),
        git_short_tags=_bool(git, 'git.short_tags', False, path),
    )


def load_config(root: Path) -> Config:
    """Load ``<root>/.sampo/config.toml``, or defaults when it is absent."""
    path = config_dir(root) / CONFIG_FILENAME
    if not path.is_file():
        log.debug('config_defaults', path=str(path))
        return Config()
    try:
        text = path.read_text(encoding='utf-8')
    except OSError as exc:
        raise _config_error(f'failed to read {path}: {exc}', path) from exc
    config = parse_config(text, path)
    log.debug('config_loaded', path=str(path))
    return config


__all__ = [
    'CONFIG_DIRNAME',
    'CONFIG_FILENAME',
    'Config',
    'changesets_dir',
    'config_dir',
    'load_config',
    'parse_config',
    'prerelease_dir',
]
