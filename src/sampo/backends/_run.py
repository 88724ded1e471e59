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

"""Subprocess wrapper shared by every ecosystem adapter.

All external tool calls go through :func:`run_command`, which gives:

- Structured logging of every invocation (environment overrides are
  logged by name only, so registry tokens never reach the log).
- A single :class:`CommandResult` type across adapters.
- Translation of a missing executable into a :class:`SampoError` of the
  caller's choosing.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ run_command         │ Runs ``cargo publish``, ``uv lock``, ``git``.  │
    │                     │ One door for every external tool.              │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ CommandResult       │ The receipt: exit code, output, duration.      │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ error_code          │ Which error kind a missing tool becomes        │
    │                     │ (PUBLISH while publishing, RELEASE for locks). │
    └─────────────────────┴────────────────────────────────────────────────┘
"""

from __future__ import annotations

import os
import subprocess  # noqa: S404 - subprocess is the core purpose of this module
import time
from dataclasses import dataclass, field
from pathlib import Path

from sampo.errors import E, ErrorCode, SampoError
from sampo.logging import get_logger

log = get_logger('sampo.backends.run')

# Default timeout for subprocess calls (30 minutes; publishes can be slow).
DEFAULT_TIMEOUT_SECONDS = 1800


@dataclass(frozen=True)
class CommandResult:
    """Result of a subprocess invocation.

    Attributes:
        command: The command that was executed.
        return_code: Process exit code (0 = success).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration: Wall-clock duration in milliseconds.
        env_overrides: Names of environment variables set for the child.
    """

    command: list[str]
    return_code: int
    stdout: str = ''
    stderr: str = ''
    duration: float = 0.0
    env_overrides: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Whether the command succeeded."""
        return self.return_code == 0

    @property
    def command_str(self) -> str:
        """The command as a single shell-style string."""
        return ' '.join(self.command)

    def failure_detail(self) -> str:
        """Return the most useful output for an error message."""
        text = self.stderr.strip() or self.stdout.strip()
        return text[-2000:]


def run_command(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
    timeout: int = DEFAULT_TIMEOUT_SECONDS,
    capture: bool = True,
    error_code: ErrorCode = E.IO,
) -> CommandResult:
    """Execute a subprocess command with logging.

    Args:
        cmd: Command and arguments as a list of strings.
        cwd: Working directory for the command.
        env: Extra environment variables (merged with the current env).
        timeout: Maximum seconds to wait before killing the process.
        capture: If ``True``, capture stdout and stderr.
        error_code: Error kind raised when the executable is missing or
            the command times out.

    Returns:
        A :class:`CommandResult`. Non-zero exits are returned, not raised;
        callers decide which error kind a failure maps to.

    Raises:
        SampoError: If the executable cannot be found or times out.
    """
    cmd_str = ' '.join(cmd)
    env_names = sorted(env or {})
    log.debug('run_command', cmd=cmd_str, cwd=str(cwd or '.'), env=env_names)

    full_env: dict[str, str] | None = None
    if env:
        full_env = {**os.environ, **env}

    start = time.monotonic()
    try:
        result = subprocess.run(  # noqa: S603 -- argv lists built by adapters
            cmd,
            cwd=cwd,
            env=full_env,
            capture_output=capture,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise SampoError(
            error_code,
            f'failed to run {cmd[0]}: executable not found',
            hint=f'Install {cmd[0]} and make sure it is on PATH.',
        ) from exc
    except subprocess.TimeoutExpired as exc:
        duration = (time.monotonic() - start) * 1000
        log.error('command_timeout', cmd=cmd_str, timeout=timeout, duration=duration)
        raise SampoError(error_code, f'{cmd_str} timed out after {timeout}s') from exc

    duration = (time.monotonic() - start) * 1000
    cmd_result = CommandResult(
        command=cmd,
        return_code=result.returncode,
        stdout=result.stdout if capture else '',
        stderr=result.stderr if capture else '',
        duration=duration,
        env_overrides=env_names,
    )

    if result.returncode != 0:
        log.warning(
            'command_failed',
            cmd=cmd_str,
            return_code=result.returncode,
            stderr=result.stderr[:500] if capture else '',
            duration=duration,
        )
    else:
        log.debug('command_ok', cmd=cmd_str, duration=duration)

    return cmd_result


__all__ = [
    'CommandResult',
    'DEFAULT_TIMEOUT_SECONDS',
    'run_command',
]
