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

"""Tests for sampo.net module."""

from __future__ import annotations

import httpx
import pytest
from sampo.errors import E, SampoError
from sampo.logging import configure_logging
from sampo.net import (
    USER_AGENT,
    RateLimiter,
    async_http_client,
    body_snippet,
    rate_limiter,
    registry_get,
)

configure_logging(quiet=True)


def _client(status: int, text: str = '', headers: dict[str, str] | None = None) -> httpx.Client:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text=text, headers=headers)

    return httpx.Client(transport=httpx.MockTransport(handler))


def _probe(client: httpx.Client) -> httpx.Response | None:
    return registry_get(
        'https://registry.test/foo/1.0.0',
        registry='test-registry',
        package='foo',
        version='1.0.0',
        min_interval=0,
        client=client,
    )


class TestRegistryGet:
    """Tests for registry_get() status mapping."""

    def test_200_returns_response(self) -> None:
        """A 200 hands the response back."""
        response = _probe(_client(200, '{"ok": true}'))
        assert response is not None
        assert response.json() == {'ok': True}

    def test_404_is_absent(self) -> None:
        """A 404 means the version does not exist."""
        assert _probe(_client(404)) is None

    def test_429_mentions_retry_after(self) -> None:
        """Rate limiting surfaces Retry-After."""
        with pytest.raises(SampoError, match='Retry-After: 30') as excinfo:
            _probe(_client(429, headers={'Retry-After': '30'}))
        assert excinfo.value.code is E.PUBLISH

    @pytest.mark.parametrize('status', [401, 403])
    def test_auth_statuses(self, status: int) -> None:
        """401/403 hint at missing authentication."""
        with pytest.raises(SampoError, match='authentication may be required'):
            _probe(_client(status))

    def test_other_status_includes_snippet(self) -> None:
        """Unexpected statuses include a trimmed body."""
        with pytest.raises(SampoError, match='returned 500') as excinfo:
            _probe(_client(500, 'internal\n\n   error'))
        assert 'body="internal error"' in excinfo.value.message

    def test_transport_error(self) -> None:
        """Connection failures become PUBLISH errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('boom', request=request)

        with pytest.raises(SampoError, match='failed to query test-registry'):
            _probe(httpx.Client(transport=httpx.MockTransport(handler)))


class TestBodySnippet:
    """Tests for body_snippet()."""

    def test_collapses_whitespace(self) -> None:
        """Runs of whitespace collapse to one space."""
        assert body_snippet('  a\n\tb   c ') == 'a b c'

    def test_truncates(self) -> None:
        """Bodies are cut at the limit."""
        assert body_snippet('x' * 500) == 'x' * 300


class TestRateLimiter:
    """Tests for the per-registry limiter."""

    def test_same_registry_shares_limiter(self) -> None:
        """One limiter per registry name."""
        assert rate_limiter('limiter-test') is rate_limiter('limiter-test')
        assert rate_limiter('limiter-test') is not rate_limiter('limiter-other')

    def test_spacing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A second call waits out the remaining interval."""
        clock = iter([10.0, 10.0, 10.05, 10.2])
        sleeps: list[float] = []
        monkeypatch.setattr('sampo.net.time.monotonic', lambda: next(clock))
        monkeypatch.setattr('sampo.net.time.sleep', sleeps.append)
        limiter = RateLimiter(0.2)
        limiter.wait()
        limiter.wait()
        assert sleeps == [pytest.approx(0.15)]


class TestAsyncHttpClient:
    """Tests for async_http_client()."""

    @pytest.mark.asyncio
    async def test_headers_and_transport(self) -> None:
        """The user agent and extra headers reach the transport."""
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(204)

        transport = httpx.MockTransport(handler)
        async with async_http_client(headers={'Authorization': 'Bearer t'}, transport=transport) as client:
            response = await client.get('https://api.github.test/')
        assert response.status_code == 204
        assert seen['user-agent'] == USER_AGENT
        assert seen['authorization'] == 'Bearer t'
