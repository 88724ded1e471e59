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

"""On-disk workspace builders."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path

# Branch override so releases never need git.
RELEASE_ENV: dict[str, str] = {'SAMPO_RELEASE_BRANCH': 'main'}


def write_cargo_workspace(
    root: Path,
    crates: Mapping[str, tuple[str, Sequence[str]]],
) -> Path:
    """Write a Cargo workspace of ``name -> (version, [internal deps])`` under ``crates/``."""
    (root / 'Cargo.toml').write_text('[workspace]\nmembers = ["crates/*"]\n', encoding='utf-8')
    for name, (version, deps) in crates.items():
        crate = root / 'crates' / name
        crate.mkdir(parents=True, exist_ok=True)
        lines = ['[package]', f'name = "{name}"', f'version = "{version}"', '']
        if deps:
            lines.append('[dependencies]')
            for dep in deps:
                dep_version = crates[dep][0]
                lines.append(f'{dep} = {{ path = "../{dep}", version = "{dep_version}" }}')
            lines.append('')
        (crate / 'Cargo.toml').write_text('\n'.join(lines), encoding='utf-8')
    return root


def write_config(root: Path, text: str = '') -> Path:
    """Write ``.sampo/config.toml``; release dates are off unless ``text`` enables them."""
    config = root / '.sampo' / 'config.toml'
    config.parent.mkdir(parents=True, exist_ok=True)
    if '[changelog]' not in text:
        text = '[changelog]\nshow_release_date = false\n\n' + text
    config.write_text(text, encoding='utf-8')
    return config


def write_changeset(
    root: Path,
    stem: str,
    entries: Mapping[str, str],
    message: str,
    *,
    directory: str = 'changesets',
) -> Path:
    """Write ``.sampo/<directory>/<stem>.md`` with ``package: bump`` entries."""
    path = root / '.sampo' / directory / f'{stem}.md'
    path.parent.mkdir(parents=True, exist_ok=True)
    frontmatter = '\n'.join(f'{package}: {bump}' for package, bump in entries.items())
    path.write_text(f'---\n{frontmatter}\n---\n\n{message}\n', encoding='utf-8')
    return path


__all__ = [
    'RELEASE_ENV',
    'write_cargo_workspace',
    'write_changeset',
    'write_config',
]
