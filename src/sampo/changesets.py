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

"""Changeset files: parse, render, load, and move.

A changeset is a markdown file in ``.sampo/changesets/`` whose
frontmatter names the packages to bump. Two frontmatter forms are
accepted::

    ---                                 ---
    cargo/foo: minor                    packages:
    bar: patch [feat]                     - cargo/foo
    ---                                   - bar
                                        release: minor
    Add streaming support.              ---

                                        Add streaming support.

The left (per-entry) form is what :func:`render_changeset` writes. A
``[tag]`` suffix is only accepted when ``tags.allowed`` lists it.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ Plain-English                               │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Changeset file          │ A note saying "bump these packages by this  │
    │                         │ much, and here is why".                     │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Consume                 │ After a release the file is deleted, or     │
    │                         │ parked in ``.sampo/prerelease/`` while a    │
    │                         │ pre-release cycle is running.               │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Restore                 │ Parked changesets move back once the        │
    │                         │ stable release is cut.                      │
    └─────────────────────────┴─────────────────────────────────────────────┘

Usage::

    from sampo.changesets import load_changesets

    loaded = load_changesets(Path('.sampo/changesets'), allowed_tags=('feat',))
    for changeset in loaded.changesets:
        print(changeset.path.name, [str(e.spec) for e in changeset.entries])
    for error in loaded.errors:
        print(error)
"""

from __future__ import annotations

import re
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from sampo.errors import E, SampoError
from sampo.logging import get_logger
from sampo.types import Bump, PackageSpecifier, strip_wrapping_quotes

log = get_logger('sampo.changesets')

CHANGESET_SUFFIX = '.md'
FRONTMATTER_DELIMITER = '---'

# "<spec>: <bump>" with an optional trailing "[tag]".
_ENTRY_VALUE_RE = re.compile(r'^(?P<bump>[A-Za-z]+)\s*(?:\[(?P<tag>[^\]]*)\])?$')


@dataclass(frozen=True)
class ChangesetEntry:
    """One ``<package>: <bump>`` line of a changeset.

    Attributes:
        spec: The package reference as written (possibly unqualified).
        bump: Requested bump level.
        tag: Optional ``[tag]`` suffix.
    """

    spec: PackageSpecifier
    bump: Bump
    tag: str | None = None


@dataclass(frozen=True)
class Changeset:
    """A parsed changeset file."""

    path: Path
    entries: tuple[ChangesetEntry, ...]
    message: str


@dataclass
class LoadedChangesets:
    """Result of loading a changeset directory.

    Attributes:
        changesets: Files that parsed cleanly, sorted by file name.
        errors: One error per file that failed to parse.
    """

    changesets: list[Changeset] = field(default_factory=list)
    errors: list[SampoError] = field(default_factory=list)


def _error(path: Path, message: str) -> SampoError:
    return SampoError(
        E.CHANGESET,
        message,
        hint="Changesets start with a '---' block of '<package>: <patch|minor|major>' lines.",
        path=path,
    )


def _split_frontmatter(text: str, path: Path) -> tuple[list[str], str]:
    lines = text.removeprefix('\ufeff').splitlines()
    index = 0
    while index < len(lines) and not lines[index].strip():
        index += 1
    if index >= len(lines) or lines[index].strip() != FRONTMATTER_DELIMITER:
        raise _error(path, "changeset must start with a '---' frontmatter block")
    for end in range(index + 1, len(lines)):
        if lines[end].strip() == FRONTMATTER_DELIMITER:
            return lines[index + 1 : end], '\n'.join(lines[end + 1 :]).strip()
    raise _error(path, "changeset frontmatter is missing its closing '---'")


def _parse_bump(value: str, package: str, path: Path) -> Bump:
    bump = Bump.parse(value)
    if bump is None:
        raise _error(
            path,
            f"unsupported change type '{value}' for package '{package}'. "
            "Only 'patch', 'minor', and 'major' are supported.",
        )
    return bump


def _parse_spec(raw: str, path: Path) -> PackageSpecifier:
    try:
        return PackageSpecifier.parse(raw)
    except SampoError as exc:
        raise _error(path, f"invalid package reference '{raw.strip()}': {exc.message}") from exc


def _inline_list(value: str) -> list[str]:
    inner = value.strip()
    if inner.startswith('[') and inner.endswith(']'):
        inner = inner[1:-1]
    return [strip_wrapping_quotes(item.strip()) for item in inner.split(',') if item.strip()]


def parse_changeset(text: str, path: Path, *, allowed_tags: Iterable[str] = ()) -> Changeset:
    """Parse changeset ``text`` read from ``path``.

    Args:
        text: File contents.
        path: Where the text came from; kept on the result.
        allowed_tags: Tags a ``[tag]`` suffix may use.

    Raises:
        SampoError: ``CHANGESET`` for a missing frontmatter block, bad
            lines, unknown bump levels, tags outside ``allowed_tags``, no
            entries, or an empty message.
    """
    front, message = _split_frontmatter(text, path)
    allowed = set(allowed_tags)

    entries: list[ChangesetEntry] = []
    legacy_packages: list[str] = []
    legacy_release: str | None = None
    in_packages = False

    for raw_line in front:
        line = raw_line.strip()
        if not line or line.startswith('#'):
            continue
        if in_packages and line.startswith('- '):
            legacy_packages.append(strip_wrapping_quotes(line[2:].strip()))
            continue
        in_packages = False

        key, sep, value = line.rpartition(':')
        if not sep or not key.strip():
            raise _error(path, f"invalid frontmatter line '{line}'")
        key = strip_wrapping_quotes(key.strip())
        value = value.strip()

        if key == 'packages':
            in_packages = not value
            legacy_packages.extend(_inline_list(value) if value else [])
            continue
        if key == 'release':
            legacy_release = strip_wrapping_quotes(value)
            continue

        match = _ENTRY_VALUE_RE.match(value)
        if match is None:
            raise _error(path, f"invalid frontmatter line '{line}'")
        tag = match['tag'].strip() if match['tag'] is not None else None
        if tag is not None and tag not in allowed:
            allowed_list = ', '.join(sorted(allowed)) or 'none'
            raise _error(path, f"tag '{tag}' for package '{key}' is not allowed (allowed: {allowed_list})")
        entries.append(ChangesetEntry(_parse_spec(key, path), _parse_bump(match['bump'], key, path), tag))

    if legacy_packages:
        if legacy_release is None:
            raise _error(path, "legacy changeset lists 'packages' without a 'release' level")
        for package in legacy_packages:
            entries.append(ChangesetEntry(_parse_spec(package, path), _parse_bump(legacy_release, package, path)))
    elif legacy_release is not None:
        raise _error(path, "legacy changeset sets 'release' without listing 'packages'")

    if not entries:
        raise _error(path, 'changeset does not name any package')
    if not message:
        raise _error(path, 'changeset message is empty')
    return Changeset(path=path, entries=tuple(entries), message=message)


def render_changeset(entries: Iterable[ChangesetEntry], message: str) -> str:
    """Render entries and a message in the per-entry frontmatter form."""
    lines = [FRONTMATTER_DELIMITER]
    for entry in entries:
        suffix = f' [{entry.tag}]' if entry.tag else ''
        lines.append(f'{entry.spec.canonical}: {entry.bump.value}{suffix}')
    lines.append(FRONTMATTER_DELIMITER)
    lines.append('')
    lines.append(message.strip())
    return '\n'.join(lines) + '\n'


def load_changesets(directory: Path, *, allowed_tags: Iterable[str] = ()) -> LoadedChangesets:
    """Load every ``*.md`` changeset in ``directory``.

    A file that fails to parse is recorded in ``errors``; its siblings
    still load. A missing directory loads nothing.

    Raises:
        SampoError: ``IO`` when the directory itself cannot be listed.
    """
    loaded = LoadedChangesets()
    if not directory.is_dir():
        log.debug('changeset_dir_not_found', path=str(directory))
        return loaded

    allowed = tuple(allowed_tags)
    try:
        paths = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == CHANGESET_SUFFIX)
    except OSError as exc:
        raise SampoError(E.IO, f'failed to list {directory}: {exc}', path=directory) from exc

    for path in paths:
        try:
            text = path.read_text(encoding='utf-8')
        except OSError as exc:
            loaded.errors.append(SampoError(E.IO, f'failed to read changeset: {exc}', path=path))
            continue
        try:
            loaded.changesets.append(parse_changeset(text, path, allowed_tags=allowed))
        except SampoError as exc:
            log.warning('changeset_invalid', path=str(path), error=exc.message)
            loaded.errors.append(exc)

    log.debug('changesets_loaded', path=str(directory), count=len(loaded.changesets), errors=len(loaded.errors))
    return loaded


def unique_destination(directory: Path, file_name: str) -> Path:
    """Return ``directory/file_name``, or ``stem-N.ext`` for the first free ``N``."""
    candidate = directory / file_name
    if not candidate.exists():
        return candidate
    stem, suffix = Path(file_name).stem, Path(file_name).suffix
    counter = 1
    while True:
        candidate = directory / f'{stem}-{counter}{suffix}'
        if not candidate.exists():
            return candidate
        counter += 1


def move_changeset(source: Path, directory: Path) -> Path:
    """Move ``source`` into ``directory`` without overwriting anything.

    Raises:
        SampoError: ``IO`` when the move fails.
    """
    if not source.exists():
        return source
    if source.parent.resolve() == directory.resolve():
        return source
    try:
        directory.mkdir(parents=True, exist_ok=True)
        destination = unique_destination(directory, source.name)
        shutil.move(str(source), str(destination))
    except OSError as exc:
        raise SampoError(E.IO, f'failed to move changeset into {directory}: {exc}', path=source) from exc
    log.debug('changeset_moved', source=str(source), destination=str(destination))
    return destination


def restore_preserved_changesets(preserved_dir: Path, changesets_dir: Path) -> list[Path]:
    """Move every ``*.md`` file from ``preserved_dir`` back into ``changesets_dir``."""
    if not preserved_dir.is_dir():
        return []
    restored = [
        move_changeset(path, changesets_dir)
        for path in sorted(preserved_dir.iterdir())
        if path.is_file() and path.suffix == CHANGESET_SUFFIX
    ]
    if restored:
        log.info('changesets_restored', count=len(restored), path=str(changesets_dir))
    return restored


def consume_changesets(paths: Iterable[Path], *, preserve_dir: Path | None = None) -> list[Path]:
    """Delete consumed changesets, or park them in ``preserve_dir``.

    Raises:
        SampoError: ``IO`` when a file cannot be removed or moved.
    """
    handled: list[Path] = []
    for path in paths:
        if not path.exists():
            continue
        if preserve_dir is not None:
            handled.append(move_changeset(path, preserve_dir))
            continue
        try:
            path.unlink()
        except OSError as exc:
            raise SampoError(E.IO, f'failed to remove changeset: {exc}', path=path) from exc
        handled.append(path)
        log.debug('changeset_consumed', path=str(path))
    return handled


__all__ = [
    'CHANGESET_SUFFIX',
    'Changeset',
    'ChangesetEntry',
    'LoadedChangesets',
    'consume_changesets',
    'load_changesets',
    'move_changeset',
    'parse_changeset',
    'render_changeset',
    'restore_preserved_changesets',
    'unique_destination',
]
