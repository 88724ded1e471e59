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

"""Tests for sampo.release — the release engine end to end on Cargo workspaces."""

from __future__ import annotations

from pathlib import Path

import pytest
import tomlkit
from sampo.errors import E, SampoError
from sampo.logging import configure_logging
from sampo.release import (
    DEPENDENCY_NOTE_PREFIX,
    FIXED_POLICY_NOTE,
    compute_bumps,
    run_release,
)
from sampo.types import Bump

from tests._fakes import RELEASE_ENV, FakeGitRepo, write_cargo_workspace, write_changeset, write_config

configure_logging(quiet=True)


def _version(root: Path, name: str) -> str:
    doc = tomlkit.parse((root / 'crates' / name / 'Cargo.toml').read_text(encoding='utf-8'))
    return str(doc['package']['version'])


def _dependency_version(root: Path, name: str, dep: str) -> str:
    doc = tomlkit.parse((root / 'crates' / name / 'Cargo.toml').read_text(encoding='utf-8'))
    return str(doc['dependencies'][dep]['version'])


def _changelog(root: Path, name: str) -> str:
    return (root / 'crates' / name / 'CHANGELOG.md').read_text(encoding='utf-8')


def _release(root: Path, **kwargs: object):  # noqa: ANN202 - passthrough helper
    return run_release(root, env=RELEASE_ENV, **kwargs)


class TestComputeBumps:
    """Tests for cascade and group policies on identifiers."""

    def test_cascade_is_transitive_patch(self) -> None:
        """Dependents of dependents get a patch bump."""
        dependents = {'cargo/c': {'cargo/b'}, 'cargo/b': {'cargo/a'}}
        bumps, cascaded, fixed_only = compute_bumps(
            {'cargo/c': Bump.MAJOR}, dependents, fixed=[], linked=[], ignored=set()
        )
        assert bumps == {'cargo/c': Bump.MAJOR, 'cargo/b': Bump.PATCH, 'cargo/a': Bump.PATCH}
        assert cascaded == {'cargo/a', 'cargo/b'}
        assert fixed_only == set()

    def test_cascade_skips_ignored(self) -> None:
        """Ignored dependents are never bumped."""
        bumps, _, _ = compute_bumps(
            {'cargo/b': Bump.MINOR}, {'cargo/b': {'cargo/a'}}, fixed=[], linked=[], ignored={'cargo/a'}
        )
        assert bumps == {'cargo/b': Bump.MINOR}

    def test_fixed_group_promotion_cascades(self) -> None:
        """A member promoted by a fixed group bumps its own dependents."""
        bumps, cascaded, fixed_only = compute_bumps(
            {'cargo/a': Bump.MINOR},
            {'cargo/b': {'cargo/c'}},
            fixed=[['cargo/a', 'cargo/b']],
            linked=[],
            ignored=set(),
        )
        assert bumps == {'cargo/a': Bump.MINOR, 'cargo/b': Bump.MINOR, 'cargo/c': Bump.PATCH}
        assert fixed_only == {'cargo/b'}
        assert cascaded == {'cargo/c'}

    def test_linked_group_does_not_add_members(self) -> None:
        """Linked groups only level members that already move."""
        bumps, _, _ = compute_bumps(
            {'cargo/a': Bump.PATCH, 'cargo/b': Bump.MAJOR},
            {},
            fixed=[],
            linked=[['cargo/a', 'cargo/b', 'cargo/c']],
            ignored=set(),
        )
        assert bumps == {'cargo/a': Bump.MAJOR, 'cargo/b': Bump.MAJOR}


class TestDependentCascade:
    """A minor bump of b patches its dependent a."""

    def test_cascade(self, tmp_path: Path) -> None:
        """Versions, dependency requirement and both changelogs are updated."""
        write_cargo_workspace(tmp_path, {'a': ('0.1.0', ['b']), 'b': ('0.1.0', [])})
        write_config(tmp_path)
        changeset = write_changeset(tmp_path, 'b-minor', {'b': 'minor'}, 'Add streaming support.')

        output = _release(tmp_path)

        assert not output.dry_run
        summary = {p.name: (p.old_version, p.new_version, p.bump) for p in output.released_packages}
        assert summary == {'a': ('0.1.0', '0.1.1', Bump.PATCH), 'b': ('0.1.0', '0.2.0', Bump.MINOR)}
        assert _version(tmp_path, 'b') == '0.2.0'
        assert _version(tmp_path, 'a') == '0.1.1'
        assert _dependency_version(tmp_path, 'a', 'b') == '0.2.0'
        assert f'### Patch changes\n\n- {DEPENDENCY_NOTE_PREFIX}b@0.2.0\n' in _changelog(tmp_path, 'a')
        assert _changelog(tmp_path, 'b') == '# b\n\n## 0.2.0\n\n### Minor changes\n\n- Add streaming support.\n\n'
        assert not changeset.exists()

    def test_second_run_is_a_no_op(self, tmp_path: Path) -> None:
        """Consumed changesets leave nothing for a second run."""
        write_cargo_workspace(tmp_path, {'a': ('0.1.0', ['b']), 'b': ('0.1.0', [])})
        write_config(tmp_path)
        write_changeset(tmp_path, 'b-minor', {'b': 'minor'}, 'Add streaming support.')
        _release(tmp_path)
        before = _changelog(tmp_path, 'a'), (tmp_path / 'crates' / 'a' / 'Cargo.toml').read_text(encoding='utf-8')

        output = _release(tmp_path)

        assert output.released_packages == []
        after = _changelog(tmp_path, 'a'), (tmp_path / 'crates' / 'a' / 'Cargo.toml').read_text(encoding='utf-8')
        assert after == before

    def test_dry_run_touches_nothing(self, tmp_path: Path) -> None:
        """Dry run reports the plan and leaves files alone."""
        write_cargo_workspace(tmp_path, {'a': ('0.1.0', ['b']), 'b': ('0.1.0', [])})
        write_config(tmp_path)
        changeset = write_changeset(tmp_path, 'b-minor', {'b': 'minor'}, 'Add streaming support.')
        manifest = (tmp_path / 'crates' / 'b' / 'Cargo.toml').read_text(encoding='utf-8')

        output = _release(tmp_path, dry_run=True)

        assert output.dry_run
        assert [(p.identifier, p.new_version) for p in output.released_packages] == [
            ('cargo/a', '0.1.1'),
            ('cargo/b', '0.2.0'),
        ]
        assert changeset.exists()
        assert (tmp_path / 'crates' / 'b' / 'Cargo.toml').read_text(encoding='utf-8') == manifest
        assert not (tmp_path / 'crates' / 'b' / 'CHANGELOG.md').exists()


class TestGroups:
    """Fixed and linked group policies."""

    def test_fixed_group_promotes_inert_member(self, tmp_path: Path) -> None:
        """A fixed group member without changes follows at the group's level."""
        write_cargo_workspace(tmp_path, {'a': ('1.0.0', []), 'b': ('1.0.0', [])})
        write_config(tmp_path, '[packages]\nfixed = [["a", "b"]]\n')
        write_changeset(tmp_path, 'b-major', {'b': 'major'}, 'Rewrite the API.')

        _release(tmp_path)

        assert _version(tmp_path, 'a') == '2.0.0'
        assert _version(tmp_path, 'b') == '2.0.0'
        assert f'### Major changes\n\n- {FIXED_POLICY_NOTE}\n' in _changelog(tmp_path, 'a')
        assert '- Rewrite the API.' in _changelog(tmp_path, 'b')
        assert FIXED_POLICY_NOTE not in _changelog(tmp_path, 'b')

    def test_linked_group_does_not_introduce_bumps(self, tmp_path: Path) -> None:
        """Cascaded members are levelled up; idle members stay put."""
        write_cargo_workspace(tmp_path, {'a': ('1.0.0', ['b']), 'b': ('1.0.0', []), 'c': ('1.0.0', [])})
        write_config(tmp_path, '[packages]\nlinked = [["a", "b", "c"]]\n')
        write_changeset(tmp_path, 'b-minor', {'b': 'minor'}, 'Add a flag.')

        output = _release(tmp_path)

        assert {p.name for p in output.released_packages} == {'a', 'b'}
        assert _version(tmp_path, 'b') == '1.1.0'
        assert _version(tmp_path, 'a') == '1.1.0'
        assert _version(tmp_path, 'c') == '1.0.0'
        assert not (tmp_path / 'crates' / 'c' / 'CHANGELOG.md').exists()

    def test_unknown_group_member(self, tmp_path: Path) -> None:
        """Groups naming a missing package abort the release."""
        write_cargo_workspace(tmp_path, {'a': ('1.0.0', [])})
        write_config(tmp_path, '[packages]\nfixed = [["a", "ghost"]]\n')
        write_changeset(tmp_path, 'a', {'a': 'patch'}, 'Fix.')

        with pytest.raises(SampoError, match="Package 'ghost' in group does not exist") as excinfo:
            _release(tmp_path)
        assert excinfo.value.code is E.RELEASE


class TestIgnoredPackages:
    """Changesets aimed only at ignored packages survive the release."""

    def test_ignored_only_changeset_is_preserved(self, tmp_path: Path) -> None:
        """Nothing is released and the changeset stays in place."""
        write_cargo_workspace(tmp_path, {'internal-tool': ('0.1.0', []), 'app': ('0.1.0', [])})
        write_config(tmp_path, '[packages]\nignore = ["internal-*"]\n')
        changeset = write_changeset(tmp_path, 'tool', {'internal-tool': 'minor'}, 'Internal only.')

        output = _release(tmp_path)

        assert output.released_packages == []
        assert changeset.exists()
        assert _version(tmp_path, 'internal-tool') == '0.1.0'

    def test_mixed_changeset_skips_ignored_entry(self, tmp_path: Path) -> None:
        """The applicable entry is released and the file consumed."""
        write_cargo_workspace(tmp_path, {'internal-tool': ('0.1.0', []), 'app': ('0.1.0', [])})
        write_config(tmp_path, '[packages]\nignore = ["internal-*"]\n')
        changeset = write_changeset(tmp_path, 'both', {'internal-tool': 'minor', 'app': 'patch'}, 'Both.')

        output = _release(tmp_path)

        assert [p.name for p in output.released_packages] == ['app']
        assert _version(tmp_path, 'internal-tool') == '0.1.0'
        assert not changeset.exists()


class TestPrereleaseChangesets:
    """Changesets are parked during pre-releases and return for the stable release."""

    def test_prerelease_release_parks_changesets(self, tmp_path: Path) -> None:
        """A pre-release bump moves consumed changesets into .sampo/prerelease."""
        write_cargo_workspace(tmp_path, {'foo': ('1.2.3-alpha', [])})
        write_config(tmp_path)
        changeset = write_changeset(tmp_path, 'fix', {'foo': 'patch'}, 'Fix a crash.')

        _release(tmp_path)

        assert _version(tmp_path, 'foo') == '1.2.3-alpha.1'
        assert not changeset.exists()
        assert (tmp_path / '.sampo' / 'prerelease' / 'fix.md').is_file()

        # Parked changesets alone never trigger another pre-release.
        assert _release(tmp_path).released_packages == []
        assert _version(tmp_path, 'foo') == '1.2.3-alpha.1'

    def test_stable_release_merges_parked_notes(self, tmp_path: Path) -> None:
        """A stable release restores parked changesets and reports their notes."""
        write_cargo_workspace(tmp_path, {'foo': ('1.2.3', [])})
        write_config(tmp_path)
        write_changeset(tmp_path, 'early', {'foo': 'minor'}, 'Early feature.', directory='prerelease')
        write_changeset(tmp_path, 'late', {'foo': 'patch'}, 'Late fix.')

        output = _release(tmp_path)

        assert [(p.new_version, p.bump) for p in output.released_packages] == [('1.3.0', Bump.MINOR)]
        changelog = _changelog(tmp_path, 'foo')
        assert '- Early feature.' in changelog
        assert '- Late fix.' in changelog
        assert not list((tmp_path / '.sampo' / 'prerelease').glob('*.md'))
        assert not list((tmp_path / '.sampo' / 'changesets').glob('*.md'))


class TestBranchesAndTags:
    """Release-branch policy and git tagging."""

    def test_rejects_other_branches(self, tmp_path: Path) -> None:
        """Only configured branches may release."""
        write_cargo_workspace(tmp_path, {'a': ('1.0.0', [])})
        write_config(tmp_path)
        write_changeset(tmp_path, 'a', {'a': 'patch'}, 'Fix.')

        with pytest.raises(SampoError, match="Branch 'feature/x' is not configured for releases"):
            run_release(tmp_path, env={'SAMPO_RELEASE_BRANCH': 'feature/x'})

    def test_tags_each_release(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Each released package gets an annotated tag; existing tags are kept."""
        monkeypatch.setattr('sampo.release.GitRepo', FakeGitRepo)
        FakeGitRepo.reset(existing=['a-v1.0.1'])
        write_cargo_workspace(tmp_path, {'a': ('1.0.0', []), 'b': ('2.0.0', [])})
        write_config(tmp_path)
        write_changeset(tmp_path, 'both', {'a': 'patch', 'b': 'patch'}, 'Fix.')

        _release(tmp_path, enrich=lambda message, _path: message)

        assert FakeGitRepo.tags == [('a-v1.0.1', ''), ('b-v2.0.1', 'Release b 2.0.1')]

    def test_short_tag_for_single_release(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """With git.short_tags a lone release is tagged v<version>."""
        monkeypatch.setattr('sampo.release.GitRepo', FakeGitRepo)
        FakeGitRepo.reset()
        write_cargo_workspace(tmp_path, {'a': ('1.0.0', [])})
        write_config(tmp_path, '[git]\nshort_tags = true\n')
        write_changeset(tmp_path, 'a', {'a': 'minor'}, 'Feature.')

        _release(tmp_path, enrich=lambda message, _path: message)

        assert FakeGitRepo.tags == [('v1.1.0', 'Release a 1.1.0')]


class TestEnrichment:
    """Notes pass through the enricher before reaching the changelog."""

    def test_custom_enricher(self, tmp_path: Path) -> None:
        """Changeset notes are decorated; generated notes are not."""
        write_cargo_workspace(tmp_path, {'a': ('0.1.0', ['b']), 'b': ('0.1.0', [])})
        write_config(tmp_path)
        write_changeset(tmp_path, 'b', {'b': 'patch'}, 'Fix.')

        _release(tmp_path, enrich=lambda message, path: f'{message} ({path.stem})')

        assert '- Fix. (b)' in _changelog(tmp_path, 'b')
        assert f'- {DEPENDENCY_NOTE_PREFIX}b@0.1.1\n' in _changelog(tmp_path, 'a')
