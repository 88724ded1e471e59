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

"""Semantic version arithmetic.

Implements the version math used by releases and pre-release mode::

    stable  1.2.3          + patch → 1.2.4
                           + minor → 1.3.0
                           + major → 2.0.0

    pre     1.3.0-alpha.2  implied level = minor (patch == 0)
                           + patch/minor → 1.3.0-alpha.3   (bump the counter)
                           + major       → 2.0.0-alpha     (new base, same label)

Versions with one or two numeric components are padded (``1.2`` →
``1.2.0``) before parsing. All failures raise :class:`SampoError` with
the ``INVALID_DATA`` code; callers re-raise with their own kind where
the context calls for it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from sampo.errors import E, SampoError
from sampo.types import Bump

_NUM = r'0|[1-9]\d*'
_IDENT = r'(?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*)'
SEMVER_RE = re.compile(
    rf'^(?P<major>{_NUM})\.(?P<minor>{_NUM})\.(?P<patch>{_NUM})'
    rf'(?:-(?P<pre>{_IDENT}(?:\.{_IDENT})*))?'
    r'(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$'
)
_PRERELEASE_RE = re.compile(rf'^{_IDENT}(?:\.{_IDENT})*$')


@dataclass(frozen=True)
class Version:
    """A parsed semantic version."""

    major: int
    minor: int
    patch: int
    pre: str = ''
    build: str = ''

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse a strict ``MAJOR.MINOR.PATCH[-pre][+build]`` string."""
        match = SEMVER_RE.match(text.strip())
        if match is None:
            raise SampoError(E.INVALID_DATA, f"Invalid semantic version '{text}'")
        return cls(
            major=int(match['major']),
            minor=int(match['minor']),
            patch=int(match['patch']),
            pre=match['pre'] or '',
            build=match['build'] or '',
        )

    @property
    def base(self) -> str:
        """``MAJOR.MINOR.PATCH`` without pre-release or build metadata."""
        return f'{self.major}.{self.minor}.{self.patch}'

    def __str__(self) -> str:
        text = self.base
        if self.pre:
            text += f'-{self.pre}'
        if self.build:
            text += f'+{self.build}'
        return text


def is_semver(text: str) -> bool:
    """Return ``True`` for a strict semantic version string."""
    return SEMVER_RE.match(text.strip()) is not None


def normalize_version_input(text: str) -> str:
    """Pad a version with one to three numeric components to three.

    ``1`` → ``1.0.0``, ``1.2-beta`` → ``1.2.0-beta``.
    """
    trimmed = text.strip()
    if not trimmed:
        raise SampoError(E.INVALID_DATA, 'Version string cannot be empty')
    boundary = len(trimmed)
    for index, ch in enumerate(trimmed):
        if ch in '-+':
            boundary = index
            break
    core, rest = trimmed[:boundary], trimmed[boundary:]
    parts = core.split('.') if core else []
    if not parts or len(parts) > 3:
        raise SampoError(
            E.INVALID_DATA,
            f"Invalid semantic version '{text}': expected one to three numeric components",
        )
    if any(not part for part in parts):
        raise SampoError(E.INVALID_DATA, f"Invalid semantic version '{text}': found empty numeric component")
    parts += ['0'] * (3 - len(parts))
    return '.'.join(parts) + rest


def parse_version(text: str) -> Version:
    """Normalize and parse ``text``."""
    normalized = normalize_version_input(text)
    try:
        return Version.parse(normalized)
    except SampoError as exc:
        raise SampoError(E.INVALID_DATA, f"Invalid semantic version '{text}'") from exc


def implied_prerelease_bump(version: Version) -> Bump:
    """Return the level a pre-release is already heading towards.

    ``2.0.0-rc`` implies major, ``1.3.0-rc`` minor, ``1.2.4-rc`` patch.
    """
    if not version.pre:
        raise SampoError(E.INVALID_DATA, 'Version does not contain a pre-release identifier')
    if version.minor == 0 and version.patch == 0:
        return Bump.MAJOR
    if version.patch == 0:
        return Bump.MINOR
    return Bump.PATCH


def increment_prerelease(pre: str) -> str:
    """Increment the trailing numeric identifier, or append ``.1``."""
    if not pre:
        raise SampoError(E.INVALID_DATA, 'Pre-release identifier missing')
    parts = pre.split('.')
    if parts[-1].isdigit():
        parts[-1] = str(int(parts[-1]) + 1)
    else:
        parts.append('1')
    return '.'.join(parts)


def strip_trailing_numeric_identifiers(pre: str) -> str:
    """Drop trailing numeric identifiers: ``alpha.3`` → ``alpha``."""
    parts = pre.split('.') if pre else []
    while parts and parts[-1].isdigit():
        parts.pop()
    return '.'.join(parts)


def apply_base_bump(version: Version, bump: Bump) -> Version:
    """Bump the numeric base and clear pre-release and build metadata."""
    if bump is Bump.MAJOR:
        return Version(version.major + 1, 0, 0)
    if bump is Bump.MINOR:
        return Version(version.major, version.minor + 1, 0)
    return Version(version.major, version.minor, version.patch + 1)


def bump_version(old: str, bump: Bump) -> str:
    """Return ``old`` bumped by ``bump``, honouring pre-release labels.

    An empty ``old`` is treated as ``0.0.0``.
    """
    version = parse_version(old or '0.0.0')
    if not version.pre:
        return str(apply_base_bump(version, bump))

    if bump <= implied_prerelease_bump(version):
        return str(replace(version, pre=increment_prerelease(version.pre), build=''))

    label = strip_trailing_numeric_identifiers(version.pre)
    if not label:
        raise SampoError(
            E.INVALID_DATA,
            f"Pre-release version '{old}' must include a non-numeric identifier before the counter",
        )
    return str(replace(apply_base_bump(version, bump), pre=label))


def is_prerelease(version: str) -> bool:
    """Return ``True`` if ``version`` carries a pre-release identifier."""
    try:
        return bool(parse_version(version).pre)
    except SampoError:
        return False


def validate_prerelease_label(label: str) -> str:
    """Validate and return a trimmed pre-release label.

    Raises:
        SampoError: ``PRERELEASE`` for empty, purely numeric, or
            syntactically invalid labels.
    """
    trimmed = label.strip()
    if not trimmed:
        raise SampoError(E.PRERELEASE, 'Pre-release label cannot be empty.')
    if all(segment.isdigit() for segment in trimmed.split('.')):
        raise SampoError(E.PRERELEASE, 'Pre-release label must contain at least one non-numeric identifier.')
    if _PRERELEASE_RE.match(trimmed) is None:
        raise SampoError(E.PRERELEASE, f"Invalid pre-release label '{trimmed}'")
    return trimmed


def with_prerelease_label(version: str, label: str) -> str:
    """Return ``version``'s base with ``-label`` attached."""
    return f'{parse_version(version).base}-{label}'


def strip_prerelease(version: str) -> str:
    """Return ``version`` without pre-release and build metadata."""
    return parse_version(version).base


__all__ = [
    'SEMVER_RE',
    'Version',
    'apply_base_bump',
    'bump_version',
    'implied_prerelease_bump',
    'increment_prerelease',
    'is_prerelease',
    'is_semver',
    'normalize_version_input',
    'parse_version',
    'strip_prerelease',
    'strip_trailing_numeric_identifiers',
    'validate_prerelease_label',
    'with_prerelease_label',
]
