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

"""Tests for sampo.errors module."""

from __future__ import annotations

import dataclasses
import io
from pathlib import Path

import pytest
from sampo.errors import (
    ERRORS,
    E,
    ErrorCode,
    ErrorInfo,
    SampoError,
    explain,
    render_error,
    render_warning,
)


class TestErrorCode:
    """Tests for ErrorCode enum."""

    def test_all_codes_have_sampo_prefix(self) -> None:
        """Every error code must start with 'SAMPO-'."""
        for code in ErrorCode:
            assert code.value.startswith('SAMPO-'), f'{code.name} does not start with SAMPO-'

    def test_no_duplicate_values(self) -> None:
        """Error code values must be unique."""
        values = [c.value for c in ErrorCode]
        assert len(values) == len(set(values)), 'Duplicate error code values found'

    def test_e_alias(self) -> None:
        """E should be an alias for ErrorCode."""
        assert E is ErrorCode
        assert E.PUBLISH is ErrorCode.PUBLISH


class TestErrorInfo:
    """Tests for ErrorInfo dataclass."""

    def test_frozen(self) -> None:
        """ErrorInfo instances should be immutable."""
        assert dataclasses.is_dataclass(ErrorInfo)
        info = ErrorInfo(code=E.CONFIG, message='test')
        with pytest.raises(dataclasses.FrozenInstanceError):
            info.__setattr__('message', 'changed')

    def test_default_hint(self) -> None:
        """Hint should default to empty string."""
        assert ErrorInfo(code=E.CONFIG, message='test').hint == ''


class TestSampoError:
    """Tests for SampoError exception."""

    def test_message_includes_code(self) -> None:
        """str() renders the code in brackets before the message."""
        err = SampoError(E.RELEASE, 'lockfile regeneration failed')
        assert str(err) == '[SAMPO-RELEASE] lockfile regeneration failed'

    def test_path_is_appended(self) -> None:
        """An attached path is rendered after the message."""
        err = SampoError(E.IO, 'cannot read', path='crates/a/Cargo.toml')
        assert str(err) == '[SAMPO-IO] cannot read (crates/a/Cargo.toml)'
        assert err.path == Path('crates/a/Cargo.toml')

    def test_properties(self) -> None:
        """code, message, hint and ecosystem are exposed."""
        err = SampoError(E.PUBLISH, 'npm publish failed', hint='log in first', ecosystem='npm')
        assert err.code is E.PUBLISH
        assert err.message == 'npm publish failed'
        assert err.hint == 'log in first'
        assert err.ecosystem == 'npm'
        assert isinstance(err.info, ErrorInfo)

    def test_chaining(self) -> None:
        """Underlying causes are preserved with raise ... from."""
        with pytest.raises(SampoError) as excinfo:
            try:
                raise OSError('disk full')
            except OSError as exc:
                raise SampoError(E.IO, 'write failed') from exc
        assert isinstance(excinfo.value.__cause__, OSError)


class TestErrorCatalog:
    """Tests for the ERRORS catalog."""

    def test_every_code_has_an_entry(self) -> None:
        """Each ErrorCode is documented in the catalog."""
        assert set(ERRORS) == set(ErrorCode)

    def test_catalog_codes_match(self) -> None:
        """ErrorInfo.code should match the key in the ERRORS dict."""
        for code, info in ERRORS.items():
            assert info.code is code
            assert info.message


class TestExplain:
    """Tests for the explain() function."""

    def test_known_code(self) -> None:
        """Explain should return a message with the hint for known codes."""
        result = explain('SAMPO-CHANGESET')
        assert result is not None
        assert result.startswith('SAMPO-CHANGESET: ')
        assert 'Hint:' in result

    def test_unknown_code(self) -> None:
        """Explain should return None for unknown codes."""
        assert explain('SAMPO-NOPE') is None
        assert explain('INVALID') is None


class TestRender:
    """Tests for render_error() and render_warning() on non-TTY streams."""

    def test_render_error_plain(self) -> None:
        """Plain output carries the code, path and hint lines."""
        out = io.StringIO()
        render_error(SampoError(E.CONFIG, 'bad group', hint='use arrays', path='.sampo/config.toml'), file=out)
        text = out.getvalue()
        assert 'error[SAMPO-CONFIG]: bad group' in text
        assert '--> .sampo/config.toml' in text
        assert '= hint: use arrays' in text

    def test_render_warning_plain(self) -> None:
        """Warnings use the warning prefix and omit absent context."""
        out = io.StringIO()
        render_warning(SampoError(E.GITHUB, 'rate limited'), file=out)
        text = out.getvalue()
        assert text.startswith('warning[SAMPO-GITHUB]: rate limited')
        assert '-->' not in text
        assert 'hint' not in text
