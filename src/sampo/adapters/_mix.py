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

"""Textual scanner for ``mix.exs`` project files.

There is no Elixir parser in Python, so the scanner works on a *masked*
copy of the source: string, charlist and comment contents are blanked
out while every offset stays the same. Regexes and bracket matching on
the mask can then never be fooled by a ``]`` or ``#`` inside a string,
and the offsets they find are valid in the original text.

What the scanner extracts::

    def project do
      [
        app: :my_app,                  → app
        version: @version,             → version (via @version "1.2.3")
        apps_path: "apps",             → umbrella member directory
        deps: deps()
      ]
    end

    defp deps do
      [
        {:jason, "~> 1.4"},            → MixDep(name='jason', requirement='~> 1.4')
        {:core, path: "../core"},      → MixDep(name='core', path='../core')
        {:web, in_umbrella: true},     → MixDep(name='web', in_umbrella=True)
      ]
    end
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_IDENT_CHARS = frozenset('abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_?!')
_OPENERS = {'(': ')', '[': ']', '{': '}'}
_CLOSERS = frozenset(')]}')

_PROJECT_RE = re.compile(r'\bdef\s+project\b')
_DEPS_RE = re.compile(r'\bdefp?\s+deps\b')
_DO_RE = re.compile(r'\bdo\b')
_APP_RE = re.compile(r'(?<![\w:])app:\s*:(\w+)')
_VERSION_RE = re.compile(r'(?<![\w:])version:\s*')
_APPS_PATH_RE = re.compile(r'(?<![\w:])apps_path:\s*')
_ATTRIBUTE_REF_RE = re.compile(r'@(\w+)')
_ATOM_RE = re.compile(r':(\w+)$')
_KEYWORD_RE = re.compile(r'^(\w+):\s*(.*)$', re.DOTALL)


@dataclass(frozen=True)
class StringLiteral:
    """A double-quoted string literal and its span (quotes included)."""

    value: str
    start: int
    end: int


@dataclass(frozen=True)
class MixDep:
    """One ``{:name, ...}`` tuple from the ``deps`` list."""

    name: str
    requirement: StringLiteral | None = None
    path: str | None = None
    in_umbrella: bool = False


@dataclass(frozen=True)
class MixProject:
    """What sampo needs from a ``mix.exs``."""

    app: str | None
    version: StringLiteral | None
    apps_path: str | None
    deps: tuple[MixDep, ...]


def _skip_string(text: str, index: int, out: list[str] | None) -> int:
    """Skip the string starting at ``text[index]`` and return the index after it.

    Handles ``"``/``'`` strings, ``\"\"\"``/``'''`` heredocs, escapes and
    ``#{...}`` interpolation (which may itself contain strings). When
    ``out`` is given, the string body is written to it as spaces.
    """
    quote = text[index]
    delimiter = quote * 3 if text.startswith(quote * 3, index) else quote
    if out is not None:
        out.append(delimiter)
    i = index + len(delimiter)
    while i < len(text):
        if text.startswith(delimiter, i):
            if out is not None:
                out.append(delimiter)
            return i + len(delimiter)
        ch = text[i]
        if ch == '\\' and i + 1 < len(text):
            if out is not None:
                out.append('  ')
            i += 2
            continue
        if ch == '#' and text.startswith('#{', i):
            end = _skip_interpolation(text, i + 2)
            if out is not None:
                out.append(' ' * (end - i))
            i = end
            continue
        if out is not None:
            out.append('\n' if ch == '\n' else ' ')
        i += 1
    return i


def _skip_interpolation(text: str, index: int) -> int:
    depth = 1
    i = index
    while i < len(text) and depth:
        ch = text[i]
        if ch in '"\'':
            i = _skip_string(text, i, None)
            continue
        if ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
        i += 1
    return i


def mask(text: str) -> str:
    """Blank out string bodies, charlists and comments, keeping offsets."""
    out: list[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in '"\'':
            i = _skip_string(text, i, out)
            continue
        if ch == '#':
            end = text.find('\n', i)
            end = len(text) if end == -1 else end
            out.append(' ' * (end - i))
            i = end
            continue
        if ch == '?' and i + 1 < len(text) and (i == 0 or text[i - 1] not in _IDENT_CHARS):
            # Character literal such as ?" or ?\n.
            width = 3 if text[i + 1] == '\\' and i + 2 < len(text) else 2
            out.append('?' + ' ' * (width - 1))
            i += width
            continue
        out.append(ch)
        i += 1
    return ''.join(out)


def matching_close(masked: str, open_index: int) -> int:
    """Return the index of the bracket closing ``masked[open_index]``, or -1."""
    depth = 0
    for i in range(open_index, len(masked)):
        ch = masked[i]
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
            if depth == 0:
                return i
    return -1


def split_top_level(masked: str, start: int, end: int) -> list[tuple[int, int]]:
    """Split ``masked[start:end]`` on commas at nesting depth zero.

    Returns ``(start, end)`` spans with surrounding whitespace trimmed;
    empty elements (such as after a trailing comma) are dropped.
    """
    spans: list[tuple[int, int]] = []
    depth = 0
    element_start = start
    for i in range(start, end):
        ch = masked[i]
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
        elif ch == ',' and depth == 0:
            spans.append((element_start, i))
            element_start = i + 1
    spans.append((element_start, end))

    trimmed = []
    for s, e in spans:
        while s < e and masked[s].isspace():
            s += 1
        while e > s and masked[e - 1].isspace():
            e -= 1
        if s < e:
            trimmed.append((s, e))
    return trimmed


def string_literal_at(text: str, index: int) -> StringLiteral | None:
    """Decode the double-quoted literal starting at ``text[index]``."""
    if index >= len(text) or text[index] != '"' or text.startswith('"""', index):
        return None
    chars: list[str] = []
    i = index + 1
    while i < len(text):
        ch = text[i]
        if ch == '\\' and i + 1 < len(text):
            chars.append(text[i + 1])
            i += 2
            continue
        if ch == '"':
            return StringLiteral(value=''.join(chars), start=index, end=i + 1)
        if ch == '#' and text.startswith('#{', i):
            return None
        chars.append(ch)
        i += 1
    return None


def _block_list_span(masked: str, header: re.Pattern[str]) -> tuple[int, int] | None:
    """Find the ``[...]`` returned by the function matched by ``header``."""
    match = header.search(masked)
    if match is None:
        return None
    do = _DO_RE.search(masked, match.end())
    if do is None:
        return None
    open_index = masked.find('[', do.end())
    if open_index == -1:
        return None
    close_index = matching_close(masked, open_index)
    if close_index == -1:
        return None
    return open_index, close_index


def _resolve_value(text: str, masked: str, index: int) -> StringLiteral | None:
    """Resolve a literal or a ``@attribute`` reference at ``index``."""
    literal = string_literal_at(text, index)
    if literal is not None:
        return literal
    ref = _ATTRIBUTE_REF_RE.match(masked, index)
    if ref is None:
        return None
    definition = re.search(rf'(?m)^\s*@{re.escape(ref.group(1))}\s+(?=")', masked)
    if definition is None:
        return None
    return string_literal_at(text, definition.end())


def _parse_dep(text: str, masked: str, start: int, end: int) -> MixDep | None:
    if masked[start] != '{' or masked[end - 1] != '}':
        return None
    parts = split_top_level(masked, start + 1, end - 1)
    if not parts:
        return None
    atom = _ATOM_RE.match(masked[parts[0][0] : parts[0][1]])
    if atom is None:
        return None

    requirement = None
    path = None
    in_umbrella = False
    for part_start, part_end in parts[1:]:
        if text[part_start] == '"':
            requirement = string_literal_at(text, part_start)
            continue
        if masked[part_start] == '[':
            # Options passed as an explicit keyword list.
            inner = split_top_level(masked, part_start + 1, part_end - 1)
        else:
            inner = [(part_start, part_end)]
        for kw_start, kw_end in inner:
            keyword = _KEYWORD_RE.match(masked[kw_start:kw_end])
            if keyword is None:
                continue
            value_start = kw_start + keyword.start(2)
            if keyword.group(1) == 'path':
                literal = string_literal_at(text, value_start)
                path = literal.value if literal else None
            elif keyword.group(1) == 'in_umbrella':
                in_umbrella = keyword.group(2).strip() == 'true'
    return MixDep(name=atom.group(1), requirement=requirement, path=path, in_umbrella=in_umbrella)


def parse_mix_project(text: str) -> MixProject:
    """Extract app, version, umbrella path and deps from ``mix.exs`` source."""
    masked = mask(text)

    project_span = _block_list_span(masked, _PROJECT_RE)
    region_start, region_end = project_span if project_span else (0, len(masked))
    project_region = masked[region_start:region_end]

    app_match = _APP_RE.search(project_region)
    app = app_match.group(1) if app_match else None

    version = None
    version_match = _VERSION_RE.search(project_region)
    if version_match is not None:
        version = _resolve_value(text, masked, region_start + version_match.end())

    apps_path = None
    apps_path_match = _APPS_PATH_RE.search(project_region)
    if apps_path_match is not None:
        literal = _resolve_value(text, masked, region_start + apps_path_match.end())
        apps_path = literal.value if literal else None

    deps: list[MixDep] = []
    deps_span = _block_list_span(masked, _DEPS_RE)
    if deps_span is not None:
        for start, end in split_top_level(masked, deps_span[0] + 1, deps_span[1]):
            dep = _parse_dep(text, masked, start, end)
            if dep is not None:
                deps.append(dep)

    return MixProject(app=app, version=version, apps_path=apps_path, deps=tuple(deps))


__all__ = [
    'MixDep',
    'MixProject',
    'StringLiteral',
    'mask',
    'matching_close',
    'parse_mix_project',
    'split_top_level',
    'string_literal_at',
]
