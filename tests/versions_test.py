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

"""Tests for sampo.versions."""

from __future__ import annotations

import pytest
from sampo.errors import E, SampoError
from sampo.types import Bump
from sampo.versions import (
    Version,
    bump_version,
    implied_prerelease_bump,
    increment_prerelease,
    is_prerelease,
    normalize_version_input,
    strip_prerelease,
    validate_prerelease_label,
    with_prerelease_label,
)


class TestNormalize:
    """Tests for normalize_version_input()."""

    @pytest.mark.parametrize(
        ('raw', 'expected'),
        [('1', '1.0.0'), ('1.2', '1.2.0'), ('1.2.3', '1.2.3'), ('1.2-beta', '1.2.0-beta'), (' 2 ', '2.0.0')],
    )
    def test_padding(self, raw: str, expected: str) -> None:
        """Short versions are padded to three components."""
        assert normalize_version_input(raw) == expected

    @pytest.mark.parametrize('raw', ['', '1.2.3.4', '1..2'])
    def test_invalid(self, raw: str) -> None:
        """Empty, long or gappy versions are rejected."""
        with pytest.raises(SampoError) as excinfo:
            normalize_version_input(raw)
        assert excinfo.value.code is E.INVALID_DATA


class TestBumpVersion:
    """Tests for bump_version()."""

    @pytest.mark.parametrize(
        ('old', 'bump', 'expected'),
        [
            ('1.2.3', Bump.PATCH, '1.2.4'),
            ('1.2.3', Bump.MINOR, '1.3.0'),
            ('1.2.3', Bump.MAJOR, '2.0.0'),
            ('', Bump.MINOR, '0.1.0'),
            ('0.1', Bump.PATCH, '0.1.1'),
        ],
    )
    def test_stable(self, old: str, bump: Bump, expected: str) -> None:
        """Stable versions bump their numeric base."""
        assert bump_version(old, bump) == expected

    @pytest.mark.parametrize(
        ('old', 'bump', 'expected'),
        [
            ('1.3.0-alpha.2', Bump.PATCH, '1.3.0-alpha.3'),
            ('1.3.0-alpha.2', Bump.MINOR, '1.3.0-alpha.3'),
            ('1.3.0-alpha.2', Bump.MAJOR, '2.0.0-alpha'),
            ('2.0.0-rc', Bump.MAJOR, '2.0.0-rc.1'),
            ('1.2.4-beta.1', Bump.MINOR, '1.3.0-beta'),
            ('1.2.3-alpha+build.5', Bump.PATCH, '1.2.3-alpha.1'),
        ],
    )
    def test_prerelease(self, old: str, bump: Bump, expected: str) -> None:
        """Bumps within the implied level increment the counter; bigger ones move the base."""
        assert bump_version(old, bump) == expected

    def test_numeric_only_prerelease(self) -> None:
        """A bigger bump needs a label to re-attach."""
        with pytest.raises(SampoError, match='non-numeric identifier'):
            bump_version('1.2.3-1', Bump.MAJOR)


class TestPrereleaseHelpers:
    """Tests for the pre-release helpers."""

    def test_implied_bump(self) -> None:
        """The zeroed components decide the implied level."""
        assert implied_prerelease_bump(Version.parse('2.0.0-rc')) is Bump.MAJOR
        assert implied_prerelease_bump(Version.parse('1.3.0-rc')) is Bump.MINOR
        assert implied_prerelease_bump(Version.parse('1.2.4-rc')) is Bump.PATCH

    def test_increment(self) -> None:
        """The trailing counter increments or starts at 1."""
        assert increment_prerelease('alpha') == 'alpha.1'
        assert increment_prerelease('alpha.9') == 'alpha.10'

    def test_labels(self) -> None:
        """Labels attach to the base and strip cleanly."""
        assert with_prerelease_label('1.2.3-beta.4', 'rc') == '1.2.3-rc'
        assert strip_prerelease('1.2.3-rc.1+sha.abc') == '1.2.3'
        assert is_prerelease('1.2.3-rc.1')
        assert not is_prerelease('1.2.3')
        assert not is_prerelease('garbage')

    @pytest.mark.parametrize('label', ['', '42', '1.2', 'bad label', 'a..b'])
    def test_invalid_labels(self, label: str) -> None:
        """Empty, numeric and malformed labels are PRERELEASE errors."""
        with pytest.raises(SampoError) as excinfo:
            validate_prerelease_label(label)
        assert excinfo.value.code is E.PRERELEASE

    def test_valid_label_is_trimmed(self) -> None:
        """Labels are returned trimmed."""
        assert validate_prerelease_label('  rc.1 ') == 'rc.1'
