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

"""Tests for sampo.publish — the publish orchestrator."""

from __future__ import annotations

from pathlib import Path

import pytest
from sampo.errors import E, SampoError
from sampo.logging import configure_logging
from sampo.publish import PublishStatus, run_publish

from tests._fakes import RELEASE_ENV, FakeAdapter, FakeGitRepo, write_cargo_workspace, write_config

configure_logging(quiet=True)


@pytest.fixture
def adapter(monkeypatch: pytest.MonkeyPatch) -> FakeAdapter:
    """Route every publish through a recording adapter and fake git."""
    fake = FakeAdapter()
    monkeypatch.setattr('sampo.publish.adapter_for', lambda kind: fake)
    monkeypatch.setattr('sampo.publish.GitRepo', FakeGitRepo)
    FakeGitRepo.reset()
    return fake


def _workspace(root: Path) -> Path:
    write_cargo_workspace(root, {'foo': ('1.0.0', []), 'bar': ('0.3.0', ['foo']), 'baz': ('0.1.0', ['bar'])})
    write_config(root)
    (root / '.git').mkdir()
    return root


class TestPublishOrder:
    """Dependency order and registry skips."""

    def test_skips_existing_version(self, tmp_path: Path, adapter: FakeAdapter) -> None:
        """A version already on the registry is skipped and not tagged."""
        _workspace(tmp_path)
        adapter.existing = {'foo@1.0.0'}

        output = run_publish(tmp_path, env=RELEASE_ENV)

        assert [(r.identifier, r.status) for r in output.results] == [
            ('cargo/foo', PublishStatus.SKIPPED),
            ('cargo/bar', PublishStatus.PUBLISHED),
            ('cargo/baz', PublishStatus.PUBLISHED),
        ]
        assert [name for name, dry_run, _ in adapter.calls if not dry_run] == ['bar', 'baz']
        assert [tag for tag, _ in FakeGitRepo.tags] == ['bar-v0.3.0', 'baz-v0.1.0']
        assert ('bar-v0.3.0', 'Release bar 0.3.0') in FakeGitRepo.tags

    def test_dry_run_validates_before_publishing(self, tmp_path: Path, adapter: FakeAdapter) -> None:
        """Real runs dry-run every target first, then publish in order with extra args."""
        _workspace(tmp_path)

        run_publish(tmp_path, extra_args=['--allow-dirty'], env=RELEASE_ENV)

        assert adapter.calls == [
            ('foo', True, ['--allow-dirty']),
            ('bar', True, ['--allow-dirty']),
            ('baz', True, ['--allow-dirty']),
            ('foo', False, ['--allow-dirty']),
            ('bar', False, ['--allow-dirty']),
            ('baz', False, ['--allow-dirty']),
        ]

    def test_dry_run_mode_never_tags(self, tmp_path: Path, adapter: FakeAdapter) -> None:
        """--dry-run publishes in dry-run mode only and creates no tags."""
        _workspace(tmp_path)

        output = run_publish(tmp_path, dry_run=True, env=RELEASE_ENV)

        assert output.dry_run
        assert {r.status for r in output.results} == {PublishStatus.DRY_RUN}
        assert all(dry_run for _, dry_run, _ in adapter.calls)
        assert FakeGitRepo.tags == []

    def test_existing_tag_is_kept(self, tmp_path: Path, adapter: FakeAdapter) -> None:
        """An existing tag is not recreated."""
        _workspace(tmp_path)
        FakeGitRepo.reset(existing=['foo-v1.0.0'])

        output = run_publish(tmp_path, env=RELEASE_ENV)

        assert output.results[0].tag is None
        assert [tag for tag, _ in FakeGitRepo.tags].count('foo-v1.0.0') == 1

    def test_probe_failure_still_publishes(self, tmp_path: Path, adapter: FakeAdapter) -> None:
        """A failing registry probe is a warning, not an error."""
        _workspace(tmp_path)
        adapter.probe_errors = {'foo'}

        output = run_publish(tmp_path, env=RELEASE_ENV)

        assert output.results[0].status is PublishStatus.PUBLISHED


class TestPublishFailures:
    """Validation and command failures."""

    def test_non_publishable_dependency(self, tmp_path: Path, adapter: FakeAdapter) -> None:
        """Depending on an unpublishable member aborts before publishing anything."""
        _workspace(tmp_path)
        adapter.unpublishable = {'foo'}

        with pytest.raises(SampoError, match='non-publishable internal dependencies') as excinfo:
            run_publish(tmp_path, env=RELEASE_ENV)
        assert excinfo.value.code is E.PUBLISH
        assert "package 'bar' depends on internal package 'cargo/foo'" in excinfo.value.message
        assert adapter.calls == []

    def test_dry_run_failure_aborts(self, tmp_path: Path, adapter: FakeAdapter) -> None:
        """A failing validation pass publishes nothing."""
        _workspace(tmp_path)
        adapter.dry_run_failing = {'bar'}

        with pytest.raises(SampoError, match='Dry-run publish failed for bar'):
            run_publish(tmp_path, env=RELEASE_ENV)
        assert not any(not dry_run for _, dry_run, _ in adapter.calls)

    def test_publish_failure_aborts(self, tmp_path: Path, adapter: FakeAdapter) -> None:
        """The first failing publish stops the run."""
        _workspace(tmp_path)
        adapter.failing = {'bar'}

        with pytest.raises(SampoError, match='publish of bar rejected'):
            run_publish(tmp_path, dry_run=True, env=RELEASE_ENV)
        assert [name for name, _, _ in adapter.calls] == ['foo', 'bar']

    def test_cycle(self, tmp_path: Path, adapter: FakeAdapter) -> None:
        """Dependency cycles among publishable packages are fatal."""
        write_cargo_workspace(tmp_path, {'a': ('1.0.0', []), 'b': ('1.0.0', ['a'])})
        (tmp_path / 'crates' / 'a' / 'Cargo.toml').write_text(
            '[package]\nname = "a"\nversion = "1.0.0"\n\n[dependencies]\nb = { path = "../b", version = "1.0.0" }\n',
            encoding='utf-8',
        )

        with pytest.raises(SampoError, match='dependency cycle detected') as excinfo:
            run_publish(tmp_path, env=RELEASE_ENV)
        assert excinfo.value.code is E.PUBLISH

    def test_branch_policy(self, tmp_path: Path, adapter: FakeAdapter) -> None:
        """Publishing from an unlisted branch is refused."""
        _workspace(tmp_path)
        with pytest.raises(SampoError, match="Branch 'dev' is not configured for publishing"):
            run_publish(tmp_path, env={'SAMPO_RELEASE_BRANCH': 'dev'})

    def test_release_branch_pattern(self, tmp_path: Path, adapter: FakeAdapter) -> None:
        """Wildcard release branches are honoured."""
        _workspace(tmp_path)
        write_config(tmp_path, '[git]\nrelease_branches = ["release/*"]\n')

        output = run_publish(tmp_path, dry_run=True, env={'SAMPO_RELEASE_BRANCH': 'release/1.x'})

        assert len(output.results) == 3
