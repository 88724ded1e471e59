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

"""Tests for sampo.changesets."""

from __future__ import annotations

from pathlib import Path

import pytest
from sampo.changesets import (
    ChangesetEntry,
    consume_changesets,
    load_changesets,
    move_changeset,
    parse_changeset,
    render_changeset,
    restore_preserved_changesets,
    unique_destination,
)
from sampo.errors import E, SampoError
from sampo.logging import configure_logging
from sampo.types import Bump, PackageKind, PackageSpecifier

configure_logging(quiet=True)

PATH = Path('.sampo/changesets/x.md')


class TestParse:
    """Tests for parse_changeset()."""

    def test_entry_form(self) -> None:
        """Per-entry lines with qualified, unqualified and tagged packages."""
        text = '---\ncargo/foo: minor\n"npm/@scope/bar": Patch [feat]\n---\n\nAdd streaming support.\n'
        changeset = parse_changeset(text, PATH, allowed_tags=('feat',))

        assert changeset.message == 'Add streaming support.'
        foo, bar = changeset.entries
        assert (foo.spec.kind, foo.spec.name, foo.bump, foo.tag) == (PackageKind.CARGO, 'foo', Bump.MINOR, None)
        assert (bar.spec.kind, bar.spec.name, bar.bump, bar.tag) == (PackageKind.NPM, '@scope/bar', Bump.PATCH, 'feat')

    def test_legacy_form(self) -> None:
        """packages lists (block or inline) share one release level."""
        block = parse_changeset('---\npackages:\n  - foo\n  - "bar"\nrelease: major\n---\nBreak things.\n', PATH)
        inline = parse_changeset("---\npackages: [foo, 'bar']\nrelease: major\n---\nBreak things.\n", PATH)

        assert block.entries == inline.entries
        assert [(str(e.spec), e.bump) for e in block.entries] == [('foo', Bump.MAJOR), ('bar', Bump.MAJOR)]

    def test_multiline_message_and_bom(self) -> None:
        """A BOM and leading blank lines are tolerated; the body is kept whole."""
        changeset = parse_changeset('\ufeff\n---\nfoo: patch\n---\n\nFirst line.\n\n- detail\n', PATH)
        assert changeset.message == 'First line.\n\n- detail'

    @pytest.mark.parametrize(
        ('text', 'fragment'),
        [
            ('foo: patch\n', "must start with a '---'"),
            ('---\nfoo: patch\n', "missing its closing '---'"),
            ('---\nfoo: huge\n---\nmsg\n', "unsupported change type 'huge'"),
            ('---\nfoo patch\n---\nmsg\n', 'invalid frontmatter line'),
            ('---\nfoo: minor [feat]\n---\nmsg\n', "tag 'feat' for package 'foo' is not allowed (allowed: none)"),
            ('---\n---\nmsg\n', 'does not name any package'),
            ('---\nfoo: patch\n---\n\n', 'message is empty'),
            ('---\npackages: [foo]\n---\nmsg\n', "without a 'release' level"),
            ('---\nrelease: minor\n---\nmsg\n', "without listing 'packages'"),
            ('---\ncargo/: patch\n---\nmsg\n', 'invalid package reference'),
        ],
    )
    def test_errors(self, text: str, fragment: str) -> None:
        """Every malformed file is a CHANGESET error naming the problem."""
        with pytest.raises(SampoError) as excinfo:
            parse_changeset(text, PATH)
        assert excinfo.value.code is E.CHANGESET
        assert fragment in excinfo.value.message
        assert excinfo.value.path == PATH

    def test_render_parses_back(self) -> None:
        """Rendered changesets use the entry form and parse to the same entries."""
        entries = (
            ChangesetEntry(PackageSpecifier.parse('cargo/foo'), Bump.MINOR, 'feat'),
            ChangesetEntry(PackageSpecifier.parse('bar'), Bump.PATCH),
        )
        text = render_changeset(entries, '  Fix it.\n')

        assert text == '---\ncargo/foo: minor [feat]\nbar: patch\n---\n\nFix it.\n'
        assert parse_changeset(text, PATH, allowed_tags=('feat',)).entries == entries


class TestFiles:
    """Tests for loading and moving changeset files."""

    def test_load_keeps_going_past_errors(self, tmp_path: Path) -> None:
        """Bad files are reported; good ones still load, sorted by name."""
        (tmp_path / 'b.md').write_text('---\nfoo: patch\n---\nB\n', encoding='utf-8')
        (tmp_path / 'a.md').write_text('---\nfoo: minor\n---\nA\n', encoding='utf-8')
        (tmp_path / 'broken.md').write_text('nope\n', encoding='utf-8')
        (tmp_path / 'notes.txt').write_text('ignored\n', encoding='utf-8')

        loaded = load_changesets(tmp_path)

        assert [c.path.name for c in loaded.changesets] == ['a.md', 'b.md']
        assert [e.path.name for e in loaded.errors if e.path] == ['broken.md']

    def test_missing_directory(self, tmp_path: Path) -> None:
        """A missing directory loads nothing."""
        loaded = load_changesets(tmp_path / 'absent')
        assert loaded.changesets == []
        assert loaded.errors == []

    def test_unique_destination(self, tmp_path: Path) -> None:
        """Collisions get -1, -2, ... suffixes."""
        (tmp_path / 'x.md').write_text('', encoding='utf-8')
        (tmp_path / 'x-1.md').write_text('', encoding='utf-8')
        assert unique_destination(tmp_path, 'x.md') == tmp_path / 'x-2.md'
        assert unique_destination(tmp_path, 'y.md') == tmp_path / 'y.md'

    def test_consume_and_restore(self, tmp_path: Path) -> None:
        """Parked files come back without clobbering newer ones."""
        changesets = tmp_path / 'changesets'
        parked = tmp_path / 'prerelease'
        changesets.mkdir()
        first = changesets / 'x.md'
        first.write_text('old', encoding='utf-8')

        [moved] = consume_changesets([first], preserve_dir=parked)
        assert moved == parked / 'x.md'
        assert not first.exists()

        first.write_text('new', encoding='utf-8')
        restored = restore_preserved_changesets(parked, changesets)

        assert restored == [changesets / 'x-1.md']
        assert first.read_text(encoding='utf-8') == 'new'
        assert (changesets / 'x-1.md').read_text(encoding='utf-8') == 'old'

    def test_consume_deletes(self, tmp_path: Path) -> None:
        """Without a preserve directory files are removed; missing ones are skipped."""
        path = tmp_path / 'x.md'
        path.write_text('', encoding='utf-8')
        assert consume_changesets([path, tmp_path / 'gone.md']) == [path]
        assert not path.exists()

    def test_move_into_same_directory(self, tmp_path: Path) -> None:
        """Moving a file where it already is leaves it alone."""
        path = tmp_path / 'x.md'
        path.write_text('', encoding='utf-8')
        assert move_changeset(path, tmp_path) == path
