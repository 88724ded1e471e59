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

"""Shared file helpers for ecosystem adapters.

Each helper attaches the file path to any failure so errors read like
``[SAMPO-INVALID-TOML] Failed to parse ... (crates/foo/Cargo.toml)``.
"""

from __future__ import annotations

import json
import json.decoder
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from sampo.errors import E, ErrorCode, SampoError

# Characters that turn a workspace member entry into a glob.
GLOB_CHARS = frozenset('*?[')


def read_text(path: Path, *, code: ErrorCode = E.IO) -> str:
    """Read a UTF-8 text file."""
    try:
        return path.read_text(encoding='utf-8')
    except OSError as exc:
        raise SampoError(code, f'Failed to read {path}: {exc}', path=path) from exc


def write_text(path: Path, content: str) -> None:
    """Write a UTF-8 text file."""
    try:
        path.write_text(content, encoding='utf-8')
    except OSError as exc:
        raise SampoError(E.IO, f'Failed to write {path}: {exc}', path=path) from exc


def parse_toml(text: str, path: Path) -> tomlkit.TOMLDocument:
    """Parse TOML into an editable, format-preserving document."""
    try:
        return tomlkit.parse(text)
    except tomlkit.exceptions.ParseError as exc:
        raise SampoError(E.INVALID_TOML, f'Failed to parse {path}: {exc}', path=path) from exc


def read_toml(path: Path) -> dict[str, Any]:
    """Read a TOML file into plain Python values."""
    return parse_toml(read_text(path), path).unwrap()


def parse_json_object(text: str, path: Path, *, code: ErrorCode = E.INVALID_MANIFEST) -> dict[str, Any]:
    """Parse JSON text that must hold an object."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SampoError(code, f'Failed to parse {path}: {exc}', path=path) from exc
    if not isinstance(data, dict):
        raise SampoError(code, f'{path} is not a JSON object', path=path)
    return data


def read_json_object(path: Path, *, code: ErrorCode = E.INVALID_MANIFEST) -> dict[str, Any]:
    """Read a JSON file that must hold an object."""
    return parse_json_object(read_text(path), path, code=code)


def is_glob(pattern: str) -> bool:
    """Return ``True`` if ``pattern`` contains glob metacharacters."""
    return any(ch in GLOB_CHARS for ch in pattern)


def expand_glob_dirs(root: Path, pattern: str, manifest_name: str) -> list[Path]:
    """Expand ``pattern`` under ``root`` to directories holding ``manifest_name``.

    A leading ``./`` is stripped because :meth:`Path.glob` rejects it.
    """
    pattern = pattern.removeprefix('./').rstrip('/')
    if not pattern or pattern == '.':
        return [root] if (root / manifest_name).is_file() else []
    return sorted(
        candidate
        for candidate in root.glob(pattern)
        if candidate.is_dir() and (candidate / manifest_name).is_file()
    )


def _skip_ws(text: str, index: int) -> int:
    while index < len(text) and text[index] in ' \t\r\n':
        index += 1
    return index


def json_object_spans(text: str, start: int) -> dict[str, tuple[int, int]]:
    """Map each key of the JSON object at ``text[start]`` to its value's span.

    Only the keys of this object are scanned; nested values are skipped
    with :meth:`json.JSONDecoder.raw_decode`.
    """
    decoder = json.JSONDecoder()
    spans: dict[str, tuple[int, int]] = {}
    index = _skip_ws(text, start)
    if index >= len(text) or text[index] != '{':
        raise ValueError(f'expected an object at offset {start}')
    index = _skip_ws(text, index + 1)
    if index < len(text) and text[index] == '}':
        return spans
    while True:
        if text[index] != '"':
            raise ValueError(f'expected a key at offset {index}')
        key, index = json.decoder.scanstring(text, index + 1)
        index = _skip_ws(text, index)
        if text[index] != ':':
            raise ValueError(f"expected ':' at offset {index}")
        value_start = _skip_ws(text, index + 1)
        _, value_end = decoder.raw_decode(text, value_start)
        spans[key] = (value_start, value_end)
        index = _skip_ws(text, value_end)
        if text[index] == ',':
            index = _skip_ws(text, index + 1)
            continue
        if text[index] == '}':
            return spans
        raise ValueError(f"expected ',' or '}}' at offset {index}")


def clean_path(path: Path) -> Path:
    """Collapse ``.`` and ``..`` segments without touching the filesystem."""
    parts: list[str] = []
    for part in path.parts:
        if part == '.':
            continue
        if part == '..':
            if parts and parts[-1] not in (path.anchor, '..'):
                parts.pop()
                continue
            if parts and parts[-1] == path.anchor:
                continue
        parts.append(part)
    return Path(*parts) if parts else Path('.')


__all__ = [
    'clean_path',
    'expand_glob_dirs',
    'is_glob',
    'json_object_spans',
    'parse_json_object',
    'parse_toml',
    'read_json_object',
    'read_text',
    'read_toml',
    'write_text',
]
