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

"""Typed error kinds for sampo.

Every failure raised by sampo is a :class:`SampoError` carrying one
:class:`ErrorCode`, a human-readable message, and optional context
(the file path and ecosystem the failure relates to, plus a hint).

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ErrorCode           │ The kind of failure, e.g. "SAMPO-PUBLISH".     │
    │                     │ Stable strings that scripts can match on.      │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ SampoError          │ The exception you raise. Carries the code,     │
    │                     │ a message, and where it happened.              │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ERRORS catalog      │ One explanation card per error kind, shown by  │
    │                     │ ``sampo explain CODE``.                        │
    └─────────────────────┴────────────────────────────────────────────────┘

Error kinds::

    SAMPO-IO                 filesystem error with path context
    SAMPO-INVALID-DATA       malformed input (ambiguous names, bad versions)
    SAMPO-INVALID-MANIFEST   manifest missing required fields
    SAMPO-INVALID-TOML       TOML that cannot be parsed or resolved
    SAMPO-INVALID-WORKSPACE  workspace layout problems
    SAMPO-NOT-FOUND          referenced package or changeset target absent
    SAMPO-CHANGESET          malformed changeset frontmatter
    SAMPO-RELEASE            release-step failure
    SAMPO-PUBLISH            publish-step failure
    SAMPO-PRERELEASE         pre-release policy violation
    SAMPO-GIT                git command failure
    SAMPO-GITHUB             GitHub API failure
    SAMPO-CONFIG             configuration parse or semantic error

Usage::

    from sampo.errors import E, SampoError

    raise SampoError(
        E.PUBLISH,
        "dependency cycle detected among publishable crates",
        hint='Break the cycle or mark one of the packages unpublishable.',
    )
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape


class ErrorCode(str, Enum):
    """Enumeration of every sampo error kind."""

    IO = 'SAMPO-IO'
    INVALID_DATA = 'SAMPO-INVALID-DATA'
    INVALID_MANIFEST = 'SAMPO-INVALID-MANIFEST'
    INVALID_TOML = 'SAMPO-INVALID-TOML'
    INVALID_WORKSPACE = 'SAMPO-INVALID-WORKSPACE'
    NOT_FOUND = 'SAMPO-NOT-FOUND'
    CHANGESET = 'SAMPO-CHANGESET'
    RELEASE = 'SAMPO-RELEASE'
    PUBLISH = 'SAMPO-PUBLISH'
    PRERELEASE = 'SAMPO-PRERELEASE'
    GIT = 'SAMPO-GIT'
    GITHUB = 'SAMPO-GITHUB'
    CONFIG = 'SAMPO-CONFIG'


# Convenience alias for shorter imports.
E = ErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Metadata for a single error code.

    Attributes:
        code: The error kind.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    code: ErrorCode
    message: str
    hint: str = ''


class SampoError(Exception):
    """Base exception for all sampo errors.

    Args:
        code: The error kind from :class:`ErrorCode`.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
        path: File the error relates to, if any.
        ecosystem: Ecosystem tag (``cargo``, ``npm``...) the error relates to.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        hint: str = '',
        *,
        path: Path | str | None = None,
        ecosystem: str | None = None,
    ) -> None:
        """Initialize with an error code, message, and optional context."""
        self.info = ErrorInfo(code=code, message=message, hint=hint)
        self.path = Path(path) if path is not None else None
        self.ecosystem = ecosystem
        text = f'[{code.value}] {message}'
        if self.path is not None:
            text = f'{text} ({self.path})'
        super().__init__(text)

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def message(self) -> str:
        """The message without the code prefix."""
        return self.info.message

    @property
    def hint(self) -> str:
        """Suggestion for fixing this error, or empty string."""
        return self.info.hint


ERRORS: dict[ErrorCode, ErrorInfo] = {
    E.IO: ErrorInfo(
        code=E.IO,
        message='A file could not be read or written.',
        hint='Check that the path exists and is readable/writable.',
    ),
    E.INVALID_DATA: ErrorInfo(
        code=E.INVALID_DATA,
        message='Input data is malformed or ambiguous.',
        hint="Qualify package names with their ecosystem, e.g. 'cargo/foo'.",
    ),
    E.INVALID_MANIFEST: ErrorInfo(
        code=E.INVALID_MANIFEST,
        message='A package manifest is missing required fields.',
        hint='Every package needs a name (and usually a version) in its manifest.',
    ),
    E.INVALID_TOML: ErrorInfo(
        code=E.INVALID_TOML,
        message='A TOML file could not be parsed or resolved.',
    ),
    E.INVALID_WORKSPACE: ErrorInfo(
        code=E.INVALID_WORKSPACE,
        message='The workspace layout is invalid.',
        hint='Check that every workspace member contains a manifest.',
    ),
    E.NOT_FOUND: ErrorInfo(
        code=E.NOT_FOUND,
        message='A referenced package does not exist in the workspace.',
    ),
    E.CHANGESET: ErrorInfo(
        code=E.CHANGESET,
        message='A changeset file is malformed.',
        hint="Changesets start with a '---' frontmatter block such as 'cargo/foo: minor'.",
    ),
    E.RELEASE: ErrorInfo(
        code=E.RELEASE,
        message='A release step failed.',
    ),
    E.PUBLISH: ErrorInfo(
        code=E.PUBLISH,
        message='A publish step failed.',
        hint='Registry errors mentioning 401/403 usually mean a token is missing.',
    ),
    E.PRERELEASE: ErrorInfo(
        code=E.PRERELEASE,
        message='The pre-release request is invalid.',
        hint="Labels must be non-empty, not purely numeric, e.g. 'alpha' or 'rc.1'.",
    ),
    E.GIT: ErrorInfo(
        code=E.GIT,
        message='A git command failed.',
    ),
    E.GITHUB: ErrorInfo(
        code=E.GITHUB,
        message='A GitHub API call failed.',
        hint='Set GITHUB_TOKEN to lift anonymous rate limits.',
    ),
    E.CONFIG: ErrorInfo(
        code=E.CONFIG,
        message='.sampo/config.toml is invalid.',
    ),
}


def explain(code: str) -> str | None:
    """Return a detailed explanation for an error code.

    Args:
        code: The error code string, e.g. ``"SAMPO-PUBLISH"``.

    Returns:
        A formatted explanation string, or ``None`` if the code is unknown.
    """
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return None

    info = ERRORS[error_code]
    lines = [f'{code}: {info.message}']
    if info.hint:
        lines.append(f'  Hint: {info.hint}')
    return '\n'.join(lines)


def _render(kind: str, style: str, exc: SampoError, out: TextIO) -> None:
    if out.isatty():
        console = Console(file=out, highlight=False)
        msg = rich_escape(exc.message)
        console.print(f'[bold {style}]{kind}\\[{exc.code.value}][/bold {style}][bold]: {msg}[/bold]')
        if exc.path is not None:
            console.print(f'  [dim]-->[/dim] {rich_escape(str(exc.path))}')
        if exc.hint:
            console.print('  [dim]|[/dim]')
            console.print(f'  [dim]=[/dim] [cyan]hint[/cyan]: {rich_escape(exc.hint)}')
        console.print()
    else:
        print(f'{kind}[{exc.code.value}]: {exc.message}', file=out)  # noqa: T201 - CLI output
        if exc.path is not None:
            print(f'  --> {exc.path}', file=out)  # noqa: T201 - CLI output
        if exc.hint:
            print('  |', file=out)  # noqa: T201 - CLI output
            print(f'  = hint: {exc.hint}', file=out)  # noqa: T201 - CLI output
        print(file=out)  # noqa: T201 - CLI output


def render_error(exc: SampoError, *, file: TextIO | None = None) -> None:
    """Render an error in compiler style.

    Output format::

        error[SAMPO-CONFIG]: packages.fixed must be an array of arrays
          --> .sampo/config.toml
          |
          = hint: Use [["a", "b"]] instead of ["a", "b"]
    """
    _render('error', 'red', exc, file or sys.stderr)


def render_warning(exc: SampoError, *, file: TextIO | None = None) -> None:
    """Render a non-fatal error as a warning."""
    _render('warning', 'yellow', exc, file or sys.stderr)


__all__ = [
    'ERRORS',
    'E',
    'ErrorCode',
    'ErrorInfo',
    'SampoError',
    'explain',
    'render_error',
    'render_warning',
]
