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

"""Composer version-constraint evaluation.

Answers one question: would a dependent's existing constraint still
accept the version we are about to release?

Supported syntax::

    ^1.2.3          >=1.2.3 <2.0.0      (^0.2.3 → <0.3.0, ^0.0.3 → <0.0.4)
    ~1.2            >=1.2.0 <2.0.0
    ~1.2.3          >=1.2.3 <1.3.0
    =1.2.3 / ==1.2.3
    >=, >, <=, <, !=
    1.*, 1.0.*, *
    a,b  or  a b    AND
    a || b          OR

Pinned bare versions, pre-release versions or constraints, and
stability flags (``@dev``) are reported as skipped rather than guessed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from sampo.adapters._io import read_json_object

Triple = tuple[int, int, int]

_OPERATOR_SPACE_RE = re.compile(r'(>=|<=|!=|==|[\^~<>=])\s+')
_NUMERIC_RE = re.compile(r'^\d+(\.\d+){0,2}$')
_PRERELEASE_RE = re.compile(r'\d-[0-9A-Za-z]')


class ConstraintStatus(Enum):
    """Outcome of a constraint check."""

    SATISFIED = 'satisfied'
    NOT_SATISFIED = 'not_satisfied'
    SKIPPED = 'skipped'


@dataclass(frozen=True)
class ConstraintCheck:
    """Result of :func:`check_constraint`."""

    status: ConstraintStatus
    constraint: str = ''
    new_version: str = ''
    reason: str = ''

    @classmethod
    def satisfied(cls) -> ConstraintCheck:
        """The constraint accepts the new version."""
        return cls(ConstraintStatus.SATISFIED)

    @classmethod
    def not_satisfied(cls, constraint: str, new_version: str) -> ConstraintCheck:
        """The constraint rejects the new version."""
        return cls(ConstraintStatus.NOT_SATISFIED, constraint=constraint, new_version=new_version)

    @classmethod
    def skipped(cls, reason: str) -> ConstraintCheck:
        """The constraint could not be evaluated."""
        return cls(ConstraintStatus.SKIPPED, reason=reason)


def parse_partial(text: str) -> tuple[int, int | None, int | None] | None:
    """Parse ``1``, ``1.2`` or ``1.2.3`` (an optional leading ``v`` is allowed)."""
    text = text.strip().removeprefix('v')
    if not _NUMERIC_RE.match(text):
        return None
    parts = [int(p) for p in text.split('.')]
    return (parts[0], parts[1] if len(parts) > 1 else None, parts[2] if len(parts) > 2 else None)


def parse_triple(text: str) -> Triple | None:
    """Parse a version, padding missing components with zero."""
    partial = parse_partial(text)
    if partial is None:
        return None
    major, minor, patch = partial
    return (major, minor or 0, patch or 0)


def _caret(target: str, version: Triple) -> bool | None:
    partial = parse_partial(target)
    if partial is None:
        return None
    major, minor, patch = partial
    lower = (major, minor or 0, patch or 0)
    if major > 0 or minor is None:
        upper = (major + 1, 0, 0)
    elif minor > 0 or patch is None:
        upper = (0, minor + 1, 0)
    else:
        upper = (0, 0, (patch or 0) + 1)
    return lower <= version < upper


def _tilde(target: str, version: Triple) -> bool | None:
    partial = parse_partial(target)
    if partial is None:
        return None
    major, minor, patch = partial
    lower = (major, minor or 0, patch or 0)
    upper = (major + 1, 0, 0) if patch is None else (major, (minor or 0) + 1, 0)
    return lower <= version < upper


def _wildcard(pattern: str, version: Triple) -> bool | None:
    if pattern in ('*', 'x', 'X'):
        return True
    head = pattern.removesuffix('.*').removesuffix('.x').removesuffix('.X')
    partial = parse_partial(head)
    if partial is None:
        return None
    major, minor, _ = partial
    if minor is None:
        return version[0] == major
    return version[:2] == (major, minor)


def satisfies_comparator(comparator: str, version: Triple) -> bool | None:
    """Evaluate one comparator; ``None`` when it cannot be parsed."""
    if '*' in comparator or comparator.endswith(('.x', '.X')) or comparator in ('x', 'X'):
        return _wildcard(comparator, version)
    if comparator.startswith('^'):
        return _caret(comparator[1:], version)
    if comparator.startswith('~'):
        return _tilde(comparator[1:], version)
    for operator in ('>=', '<=', '!=', '==', '>', '<', '='):
        if comparator.startswith(operator):
            target = parse_triple(comparator[len(operator) :])
            if target is None:
                return None
            return {
                '>=': version >= target,
                '<=': version <= target,
                '!=': version != target,
                '==': version == target,
                '>': version > target,
                '<': version < target,
                '=': version == target,
            }[operator]
    target = parse_triple(comparator)
    return None if target is None else version == target


def version_satisfies(constraint: str, version: Triple) -> bool | None:
    """Evaluate a full constraint with ``||`` and AND groups."""
    normalized = _OPERATOR_SPACE_RE.sub(r'\1', constraint.strip())
    for alternative in normalized.split('||'):
        comparators = [c for c in re.split(r'[\s,]+', alternative.strip()) if c]
        if not comparators:
            return None
        results = [satisfies_comparator(c, version) for c in comparators]
        if any(result is None for result in results):
            return None
        if all(results):
            return True
    return False


def check_constraint(constraint: str, new_version: str) -> ConstraintCheck:
    """Check ``constraint`` against ``new_version``."""
    trimmed = constraint.strip()
    if not trimmed:
        return ConstraintCheck.skipped('empty constraint')
    if '-' in new_version.strip():
        return ConstraintCheck.skipped('pre-release version')
    if '@' in trimmed:
        return ConstraintCheck.skipped('stability flag')
    if _PRERELEASE_RE.search(trimmed):
        return ConstraintCheck.skipped('pre-release constraint')
    if parse_triple(trimmed) is not None:
        return ConstraintCheck.skipped('pinned version')

    version = parse_triple(new_version)
    if version is None:
        return ConstraintCheck.skipped(f"unparseable version '{new_version}'")
    result = version_satisfies(trimmed, version)
    if result is None:
        return ConstraintCheck.skipped(f"unparseable constraint '{trimmed}'")
    if result:
        return ConstraintCheck.satisfied()
    return ConstraintCheck.not_satisfied(trimmed, new_version.strip())


def find_dependency_constraint(manifest: Path, dep_name: str) -> str | None:
    """Return the ``require`` (then ``require-dev``) constraint for ``dep_name``."""
    data = read_json_object(manifest)
    for section in ('require', 'require-dev'):
        table = data.get(section)
        if isinstance(table, dict) and isinstance(table.get(dep_name), str):
            return table[dep_name]
    return None


def check_dependency_constraint(manifest: Path, dep_name: str, new_version: str) -> ConstraintCheck:
    """Check the constraint ``manifest`` declares on ``dep_name``."""
    constraint = find_dependency_constraint(manifest, dep_name)
    if constraint is None:
        return ConstraintCheck.skipped(f"dependency '{dep_name}' not found in manifest")
    return check_constraint(constraint, new_version)


__all__ = [
    'ConstraintCheck',
    'ConstraintStatus',
    'check_constraint',
    'check_dependency_constraint',
    'find_dependency_constraint',
    'parse_partial',
    'parse_triple',
    'satisfies_comparator',
    'version_satisfies',
]
