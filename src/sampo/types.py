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

"""Core data model shared across sampo.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ PackageKind         │ Which ecosystem a package lives in: cargo,     │
    │                     │ npm, hex, packagist or pypi.                   │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ PackageSpecifier    │ What a human wrote to name a package, e.g.     │
    │                     │ ``cargo/foo`` or just ``foo``.                 │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ identifier          │ The unambiguous key ``<kind>/<name>``. Two     │
    │                     │ ecosystems may both ship a ``foo``.            │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Bump                │ patch < minor < major.                         │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Workspace           │ The repo root plus every discovered package.   │
    └─────────────────────┴────────────────────────────────────────────────┘
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from sampo.errors import E, SampoError


class PackageKind(Enum):
    """The ecosystems sampo knows how to release."""

    CARGO = 'cargo'
    NPM = 'npm'
    HEX = 'hex'
    PACKAGIST = 'packagist'
    PYPI = 'pypi'

    @property
    def display_name(self) -> str:
        """Human-friendly ecosystem name."""
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: str) -> PackageKind | None:
        """Parse a kind tag case-insensitively, or return ``None``."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


_DISPLAY_NAMES: dict[PackageKind, str] = {
    PackageKind.CARGO: 'Cargo',
    PackageKind.NPM: 'npm',
    PackageKind.HEX: 'Hex',
    PackageKind.PACKAGIST: 'Packagist',
    PackageKind.PYPI: 'PyPI',
}

_BUMP_RANK: dict[str, int] = {'patch': 1, 'minor': 2, 'major': 3}


class Bump(Enum):
    """Semantic version bump level, totally ordered ``PATCH < MINOR < MAJOR``."""

    PATCH = 'patch'
    MINOR = 'minor'
    MAJOR = 'major'

    @property
    def rank(self) -> int:
        """Numeric rank used for ordering."""
        return _BUMP_RANK[self.value]

    @classmethod
    def parse(cls, value: str) -> Bump | None:
        """Parse ``patch``/``minor``/``major`` case-insensitively."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Bump):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Bump):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Bump):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Bump):
            return NotImplemented
        return self.rank >= other.rank


def make_identifier(kind: PackageKind, name: str) -> str:
    """Return the canonical ``<kind>/<name>`` identifier."""
    return f'{kind.value}/{name}'


def strip_wrapping_quotes(value: str) -> str:
    """Strip one pair of matching single or double quotes."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in '"\'':
        return value[1:-1]
    return value


@dataclass(frozen=True)
class PackageSpecifier:
    """A user-provided package reference.

    Attributes:
        name: Package name (may itself contain ``/``, e.g. ``@scope/bar``).
        kind: Ecosystem, or ``None`` when the reference is unqualified.
    """

    name: str
    kind: PackageKind | None = None

    @classmethod
    def parse(cls, raw: str) -> PackageSpecifier:
        """Parse ``<kind>/<name>`` or a bare ``<name>``.

        The prefix before the first ``/`` only counts as a kind when it
        names a known ecosystem, so ``@scope/bar`` and ``vendor/pkg``
        stay unqualified.

        Raises:
            SampoError: ``INVALID_DATA`` for empty references.
        """
        text = strip_wrapping_quotes(raw.strip()).strip()
        if not text:
            raise SampoError(E.INVALID_DATA, 'package reference cannot be empty')
        prefix, sep, rest = text.partition('/')
        kind = PackageKind.parse(prefix) if sep else None
        if kind is None:
            return cls(name=text)
        if not rest:
            raise SampoError(E.INVALID_DATA, f"package reference '{text}' is missing a name after '/'")
        return cls(name=rest, kind=kind)

    @property
    def canonical(self) -> str:
        """Canonical string form used when persisting the specifier."""
        if self.kind is None:
            return self.name
        return make_identifier(self.kind, self.name)

    def __str__(self) -> str:
        return self.canonical


@dataclass(frozen=True)
class PackageInfo:
    """A package discovered in the workspace.

    Attributes:
        name: Ecosystem-native package name.
        version: Current version string from the manifest.
        path: Absolute package directory.
        kind: Owning ecosystem.
        internal_deps: Identifiers of workspace members this package
            depends on.
    """

    name: str
    version: str
    path: Path
    kind: PackageKind
    internal_deps: frozenset[str] = frozenset()

    @property
    def identifier(self) -> str:
        """``<kind>/<name>``."""
        return make_identifier(self.kind, self.name)

    def display_name(self, include_kind: bool = False) -> str:
        """Package name, with the ecosystem appended when asked."""
        if include_kind:
            return f'{self.name} ({self.kind.display_name})'
        return self.name


@dataclass(frozen=True)
class Workspace:
    """The workspace root and its discovered members."""

    root: Path
    members: tuple[PackageInfo, ...] = ()

    def find_by_identifier(self, identifier: str) -> PackageInfo | None:
        """Return the member with ``identifier``, if any."""
        for info in self.members:
            if info.identifier == identifier:
                return info
        return None

    def match_specifier(self, spec: PackageSpecifier) -> list[PackageInfo]:
        """Return every member the specifier could refer to."""
        return [
            info for info in self.members if info.name == spec.name and (spec.kind is None or info.kind == spec.kind)
        ]

    def resolve(self, spec: PackageSpecifier) -> PackageInfo:
        """Resolve ``spec`` to exactly one member.

        Raises:
            SampoError: ``NOT_FOUND`` when nothing matches,
                ``INVALID_DATA`` when an unqualified name matches more
                than one ecosystem.
        """
        matches = self.match_specifier(spec)
        if not matches:
            raise SampoError(E.NOT_FOUND, f"package '{spec.canonical}' not found in the workspace")
        if len(matches) > 1:
            options = ', '.join(info.identifier for info in matches)
            raise SampoError(
                E.INVALID_DATA,
                f"package '{spec.name}' is ambiguous; candidates: {options}",
                hint=f"Qualify the name, e.g. '{matches[0].identifier}'.",
            )
        return matches[0]

    def has_multiple_kinds(self) -> bool:
        """Return ``True`` when members span more than one ecosystem."""
        return len({info.kind for info in self.members}) > 1


@dataclass(frozen=True)
class ReleasedPackage:
    """One package in a release plan or a completed release."""

    name: str
    identifier: str
    old_version: str
    new_version: str
    bump: Bump


@dataclass(frozen=True)
class ReleaseOutput:
    """What a release run did (or would do, for ``dry_run``)."""

    released_packages: list[ReleasedPackage] = field(default_factory=list)
    dry_run: bool = False


__all__ = [
    'Bump',
    'PackageInfo',
    'PackageKind',
    'PackageSpecifier',
    'ReleaseOutput',
    'ReleasedPackage',
    'Workspace',
    'make_identifier',
    'strip_wrapping_quotes',
]
