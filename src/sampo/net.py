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

"""HTTP utilities for sampo.

Two kinds of traffic leave sampo:

- **Registry probes** ("does ``foo@1.2.3`` already exist?"): blocking
  ``httpx.Client`` calls with a 10 second timeout, a ``sampo/<version>``
  user agent, and a per-registry minimum spacing between requests.
- **GitHub enrichment**: a managed :class:`httpx.AsyncClient` from
  :func:`async_http_client`, driven by a short-lived event loop.

Probe status mapping::

    200          → response returned (caller decides "exists")
    404          → None ("absent")
    401 / 403    → SampoError(PUBLISH, "... authentication may be required")
    429          → SampoError(PUBLISH, "... Retry-After: <value>")
    anything else→ SampoError(PUBLISH, '... body="<trimmed snippet>"')

Usage::

    from sampo.net import registry_get

    response = registry_get(
        'https://crates.io/api/v1/crates/serde/1.0.0',
        registry='crates.io',
        package='serde',
        version='1.0.0',
    )
    exists = response is not None
"""

from __future__ import annotations

import threading
import time
from collections.abc import AsyncGenerator, Generator
from contextlib import asynccontextmanager, contextmanager
from typing import Final

import httpx

from sampo import __version__
from sampo.errors import E, SampoError
from sampo.logging import get_logger

log = get_logger('sampo.net')

USER_AGENT: Final[str] = f'sampo/{__version__}'
PROBE_TIMEOUT: Final[float] = 10.0
GITHUB_TIMEOUT: Final[float] = 30.0
DEFAULT_MIN_INTERVAL: Final[float] = 0.2
SNIPPET_LIMIT: Final[int] = 300


class RateLimiter:
    """Keep successive calls at least ``interval`` seconds apart.

    Thread-safe: the lock is held while sleeping so concurrent callers
    queue up behind each other.
    """

    def __init__(self, interval: float) -> None:
        """Initialize with the minimum spacing in seconds."""
        self.interval = interval
        self._lock = threading.Lock()
        self._last: float | None = None

    def wait(self) -> None:
        """Block until the next call is allowed, then record it."""
        with self._lock:
            now = time.monotonic()
            if self._last is not None:
                remaining = self.interval - (now - self._last)
                if remaining > 0:
                    time.sleep(remaining)
            self._last = time.monotonic()


_LIMITERS: dict[str, RateLimiter] = {}
_LIMITERS_LOCK = threading.Lock()


def rate_limiter(registry: str, interval: float = DEFAULT_MIN_INTERVAL) -> RateLimiter:
    """Return the process-wide limiter for ``registry``, creating it on first use."""
    with _LIMITERS_LOCK:
        limiter = _LIMITERS.get(registry)
        if limiter is None:
            limiter = RateLimiter(interval)
            _LIMITERS[registry] = limiter
        return limiter


@contextmanager
def http_client(*, timeout: float = PROBE_TIMEOUT) -> Generator[httpx.Client]:
    """Create a blocking client with sampo's user agent."""
    with httpx.Client(
        timeout=httpx.Timeout(timeout),
        headers={'User-Agent': USER_AGENT},
        follow_redirects=True,
    ) as client:
        yield client


@asynccontextmanager
async def async_http_client(
    *,
    timeout: float = GITHUB_TIMEOUT,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncGenerator[httpx.AsyncClient]:
    """Create a managed async client with sampo's user agent.

    Args:
        timeout: Request timeout in seconds.
        headers: Extra default headers (e.g. ``Authorization``).
        transport: Optional transport (tests pass ``httpx.MockTransport``).
    """
    async with httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(timeout),
        headers={'User-Agent': USER_AGENT, **(headers or {})},
        follow_redirects=True,
    ) as client:
        yield client


def body_snippet(text: str, limit: int = SNIPPET_LIMIT) -> str:
    """Trim ``text`` to ``limit`` characters and collapse whitespace."""
    return ' '.join(text.strip()[:limit].split())


def registry_get(
    url: str,
    *,
    registry: str,
    package: str,
    version: str,
    min_interval: float = DEFAULT_MIN_INTERVAL,
    client: httpx.Client | None = None,
) -> httpx.Response | None:
    """Probe a registry endpoint for ``package@version``.

    Args:
        url: Endpoint to GET.
        registry: Human-readable registry name; also keys the rate limiter.
        package: Package name, for messages.
        version: Version, for messages.
        min_interval: Minimum spacing between calls to this registry.
        client: Optional client to reuse (tests inject a mock transport).

    Returns:
        The response on HTTP 200, ``None`` on HTTP 404.

    Raises:
        SampoError: ``PUBLISH`` on transport errors and any other status.
    """
    rate_limiter(registry, min_interval).wait()
    log.debug('registry_probe', registry=registry, package=package, version=version, url=url)
    try:
        if client is not None:
            response = client.get(url)
        else:
            with http_client() as owned:
                response = owned.get(url)
    except httpx.HTTPError as exc:
        raise SampoError(
            E.PUBLISH,
            f"failed to query {registry} for '{package}': {exc}",
        ) from exc

    status = response.status_code
    if status == 200:
        return response
    if status == 404:
        return None
    if status == 429:
        retry_after = response.headers.get('Retry-After')
        suffix = f' Retry-After: {retry_after}' if retry_after else ''
        raise SampoError(
            E.PUBLISH,
            f"{registry} returned 429 Too Many Requests for '{package}@{version}'.{suffix}",
        )
    if status in (401, 403):
        raise SampoError(
            E.PUBLISH,
            f"{registry} returned {status} for '{package}@{version}'; authentication may be required",
        )
    snippet = body_snippet(response.text)
    body_part = f' body="{snippet}"' if snippet else ''
    raise SampoError(E.PUBLISH, f"{registry} returned {status} for '{package}@{version}'{body_part}")


__all__ = [
    'DEFAULT_MIN_INTERVAL',
    'GITHUB_TIMEOUT',
    'PROBE_TIMEOUT',
    'RateLimiter',
    'USER_AGENT',
    'async_http_client',
    'body_snippet',
    'http_client',
    'rate_limiter',
    'registry_get',
]
