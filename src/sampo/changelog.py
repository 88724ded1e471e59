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

"""CHANGELOG.md rendering and in-place merging.

Each released package gets a new top section in its ``CHANGELOG.md``::

    # my-package                     ← intro (kept; created when missing)

    ## 1.3.0 — 2026-10-18            ← new section
    ### Minor changes
    - Add streaming support.
    ### Patch changes
    - Updated dependencies: core@0.2.0

    ## 1.2.0                         ← previous release (kept untouched)

When the existing top section is *not* the previous release (it was
written by a release that never shipped), its bullets are merged into
the new section and the stale header is dropped, so re-running a
release never produces two sections for one version.

Notes are de-duplicated by exact text, keeping first-seen order.
Multi-line notes render as one list item with continuation lines
indented two spaces.
"""

from __future__ import annotations

import re
import zoneinfo
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path

from sampo.config import Config
from sampo.errors import E, SampoError
from sampo.logging import get_logger
from sampo.types import Bump

log = get_logger('sampo.changelog')

CHANGELOG_FILENAME = 'CHANGELOG.md'

# Render order of the per-level subsections.
SECTION_HEADINGS: tuple[tuple[Bump, str], ...] = (
    (Bump.MAJOR, 'Major changes'),
    (Bump.MINOR, 'Minor changes'),
    (Bump.PATCH, 'Patch changes'),
)
_HEADING_TO_BUMP = {title.lower(): bump for bump, title in SECTION_HEADINGS}
_OFFSET_RE = re.compile(r'^(?P<sign>[+-])(?P<hours>\d{1,2})(?::?(?P<minutes>\d{2}))?$')


def format_markdown_list_item(message: str) -> str:
    """Render ``message`` as one ``- `` list item ending in a newline."""
    lines = message.split('\n')
    out = [f'- {lines[0]}']
    out.extend(f'  {line}' if line else '' for line in lines[1:])
    return '\n'.join(out) + '\n'


def split_intro_and_versions(body: str) -> tuple[str, str]:
    """Split ``body`` at the first line starting with ``## ``."""
    offset = 0
    while offset < len(body):
        if body.startswith('## ', offset):
            return body[:offset], body[offset:]
        newline = body.find('\n', offset)
        if newline < 0:
            break
        offset = newline + 1
    return body, ''


def header_matches_release_version(header_text: str, version: str) -> bool:
    """Return ``True`` for ``<version>`` optionally followed by ``— date`` or ``- date``."""
    if header_text == version:
        return True
    if not header_text.startswith(version):
        return False
    tail = header_text[len(version) :]
    # '1.0.0-rc.1' and '1.0.01' are other versions.
    if not tail[0].isspace() and tail[0] != '—':
        return False
    rest = tail.lstrip()
    return not rest or rest.startswith(('—', '-'))


def parse_section_notes(section: str) -> list[tuple[str, Bump]]:
    """Return the bullets of one ``## `` section with their levels.

    Continuation lines indented by two spaces stay part of their bullet.
    Bullets outside a known ``### `` subsection are dropped.
    """
    notes: list[tuple[str, Bump]] = []
    current: Bump | None = None
    item: list[str] | None = None

    def flush() -> None:
        if item is not None and current is not None:
            notes.append(('\n'.join(item).rstrip(), current))

    for line in section.split('\n'):
        stripped = line.strip()
        if line.startswith('### '):
            flush()
            item = None
            current = _HEADING_TO_BUMP.get(stripped[4:].strip().lower())
            continue
        if line.startswith('- '):
            flush()
            item = [line[2:].strip()]
            continue
        if item is not None and (line.startswith('  ') or not stripped):
            item.append(line[2:] if line.startswith('  ') else '')
            continue
        if stripped.startswith('## '):
            continue
        flush()
        item = None
    flush()
    return notes


def _push_unique(bucket: list[str], message: str) -> None:
    if message not in bucket:
        bucket.append(message)


def render_section(version: str, notes: Iterable[tuple[str, Bump]], release_date: str | None = None) -> str:
    """Render a ``## <version>`` section; empty subsections are omitted."""
    buckets: dict[Bump, list[str]] = {bump: [] for bump, _ in SECTION_HEADINGS}
    for message, bump in notes:
        _push_unique(buckets[bump], message)

    date = (release_date or '').strip()
    parts = [f'## {version} — {date}\n\n' if date else f'## {version}\n\n']
    for bump, title in SECTION_HEADINGS:
        if not buckets[bump]:
            continue
        parts.append(f'### {title}\n\n')
        parts.extend(format_markdown_list_item(message) for message in buckets[bump])
        parts.append('\n')
    return ''.join(parts)


def _ensure_blank_line(text: str) -> str:
    if not text or text.endswith('\n\n'):
        return text
    return text + ('\n' if text.endswith('\n') else '\n\n')


def merge_changelog(
    existing: str,
    package: str,
    old_version: str,
    new_version: str,
    notes: Iterable[tuple[str, Bump]],
    release_date: str | None = None,
) -> str:
    """Return ``existing`` with a new top section for ``new_version``.

    Args:
        existing: Current file contents (may be empty).
        package: Package name, used for a fresh ``# <name>`` header.
        old_version: Version before the release; a top section with
            this header is a published release and stays untouched.
        new_version: Version being released.
        notes: ``(message, level)`` pairs for the new section.
        release_date: Date shown in the header, if any.
    """
    cleaned = existing.removeprefix('\ufeff')
    intro, versions = split_intro_and_versions(cleaned)
    if not intro.strip():
        intro = f'# {package}\n\n'

    merged = list(notes)
    top = versions.lstrip()
    if top.startswith('## '):
        header_line = top.split('\n', 1)[0]
        header_text = header_line[3:].strip()
        if not header_matches_release_version(header_text, old_version):
            next_section = top.find('\n## ', len(header_line))
            if next_section < 0:
                section, versions = top, ''
            else:
                section, versions = top[: next_section + 1], top[next_section + 1 :]
            merged.extend(parse_section_notes(section))
            log.debug('changelog_merged_unreleased', package=package, header=header_text)

    combined = _ensure_blank_line(intro) + render_section(new_version, merged, release_date)
    if versions.strip():
        combined = _ensure_blank_line(combined) + versions
    return combined


def update_changelog(
    package_dir: Path,
    package: str,
    old_version: str,
    new_version: str,
    notes: Iterable[tuple[str, Bump]],
    release_date: str | None = None,
) -> Path:
    """Rewrite ``<package_dir>/CHANGELOG.md`` in place and return its path.

    Raises:
        SampoError: ``IO`` when the file cannot be read or written.
    """
    path = package_dir / CHANGELOG_FILENAME
    try:
        existing = path.read_text(encoding='utf-8') if path.exists() else ''
        path.write_text(
            merge_changelog(existing, package, old_version, new_version, notes, release_date),
            encoding='utf-8',
        )
    except OSError as exc:
        raise SampoError(E.IO, f'failed to update changelog: {exc}', path=path) from exc
    log.info('changelog_written', package=package, version=new_version, path=str(path))
    return path


def parse_release_date_timezone(spec: str) -> tzinfo | None:
    """Resolve a ``changelog.release_date_timezone`` value.

    Returns ``None`` for the local zone (empty or ``local``).

    Raises:
        SampoError: ``CONFIG`` for values that are neither ``UTC``,
            ``local``, a ``±HH[:MM]`` offset nor an IANA zone name.
    """
    trimmed = spec.strip()
    if not trimmed or trimmed.lower() == 'local':
        return None
    if trimmed.lower() in ('utc', 'z'):
        return timezone.utc

    match = _OFFSET_RE.match(trimmed)
    if match is not None:
        hours, minutes = int(match['hours']), int(match['minutes'] or 0)
        if hours > 23 or minutes > 59:
            raise SampoError(
                E.CONFIG,
                f"Unsupported changelog.release_date_timezone value '{trimmed}'. "
                'Hours must be <= 23 and minutes <= 59.',
            )
        offset = timedelta(hours=hours, minutes=minutes)
        return timezone(-offset if match['sign'] == '-' else offset)

    try:
        return zoneinfo.ZoneInfo(trimmed)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as exc:
        raise SampoError(
            E.CONFIG,
            f"Unsupported changelog.release_date_timezone value '{trimmed}'. Use 'UTC', 'local', "
            "a fixed offset like '+02:00', or an IANA timezone name such as 'Europe/Paris'.",
        ) from exc


def release_date_display(config: Config, now: datetime | None = None) -> str | None:
    """Return the formatted release date, or ``None`` when dates are off."""
    if not config.changelog_show_release_date:
        return None
    fmt = config.changelog_release_date_format.strip()
    if not fmt:
        return None

    moment = now or datetime.now(timezone.utc)
    zone = parse_release_date_timezone(config.changelog_release_date_timezone or '')
    localized = moment.astimezone(zone) if zone is not None else moment.astimezone()
    rendered = localized.strftime(fmt).strip()
    return rendered or None


__all__ = [
    'CHANGELOG_FILENAME',
    'SECTION_HEADINGS',
    'format_markdown_list_item',
    'header_matches_release_version',
    'merge_changelog',
    'parse_release_date_timezone',
    'parse_section_notes',
    'release_date_display',
    'render_section',
    'split_intro_and_versions',
    'update_changelog',
]
