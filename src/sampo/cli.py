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

"""CLI entry point for sampo.

Subcommands::

    sampo release [--dry-run]              Apply pending changesets
    sampo publish [--dry-run] [-- ARGS]    Publish packages in dependency order
    sampo pre enter LABEL PKG...           Switch packages to a pre-release label
    sampo pre exit PKG...                  Return packages to stable versions
    sampo explain CODE                     Explain an error code

Usage::

    # Preview the next release:
    sampo release --dry-run

    # Publish, forwarding flags to every publish command:
    sampo publish -- --allow-dirty

    # Explain an error:
    sampo explain SAMPO-PUBLISH

Logs go to stderr; the release plan and publish summary go to stdout.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from rich_argparse import RichHelpFormatter

from sampo import __version__
from sampo.errors import SampoError, explain, render_error
from sampo.logging import configure_logging, get_logger
from sampo.prerelease import VersionChange, enter_prerelease, exit_prerelease
from sampo.publish import PublishStatus, run_publish
from sampo.release import run_release

log = get_logger('sampo.cli')


def _cmd_release(args: argparse.Namespace) -> int:
    """Handle the ``release`` subcommand."""
    output = run_release(Path.cwd(), dry_run=args.dry_run)
    if not output.released_packages:
        print('No packages to release.')  # noqa: T201 - CLI output
        return 0
    print('Dry-run: planned releases:' if output.dry_run else 'Released:')  # noqa: T201 - CLI output
    for package in output.released_packages:
        print(  # noqa: T201 - CLI output
            f'  - {package.identifier}: {package.old_version} -> {package.new_version} ({package.bump.value})'
        )
    return 0


def _cmd_publish(args: argparse.Namespace) -> int:
    """Handle the ``publish`` subcommand."""
    extra = [arg for arg in args.extra if arg != '--']
    output = run_publish(Path.cwd(), dry_run=args.dry_run, extra_args=extra)
    if not output.results:
        print('No publishable packages were found in the workspace.')  # noqa: T201 - CLI output
        return 0
    for result in output.results:
        if result.status is PublishStatus.SKIPPED:
            line = f'Skipping {result.identifier}@{result.version} (already published)'
        elif result.status is PublishStatus.DRY_RUN:
            line = f'Dry-run: {result.identifier}@{result.version}'
        else:
            line = f'Published {result.identifier}@{result.version}'
            if result.tag:
                line += f' (tag {result.tag})'
        print(line)  # noqa: T201 - CLI output
    print('Dry-run complete.' if output.dry_run else 'Publish complete.')  # noqa: T201 - CLI output
    return 0


def _print_changes(changes: list[VersionChange]) -> None:
    if not changes:
        print('No version changes.')  # noqa: T201 - CLI output
        return
    for change in changes:
        print(f'  - {change.identifier}: {change.old_version} -> {change.new_version}')  # noqa: T201 - CLI output


def _cmd_pre(args: argparse.Namespace) -> int:
    """Handle ``pre enter`` and ``pre exit``."""
    if args.pre_command == 'enter':
        _print_changes(enter_prerelease(Path.cwd(), args.packages, args.label))
        return 0
    _print_changes(exit_prerelease(Path.cwd(), args.packages))
    return 0


def _cmd_explain(args: argparse.Namespace) -> int:
    """Handle the ``explain`` subcommand."""
    result = explain(args.code)
    if result is None:
        print(f'Unknown error code: {args.code}')  # noqa: T201 - CLI output
        return 1
    print(result)  # noqa: T201 - CLI output
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured :class:`argparse.ArgumentParser`.
    """
    RichHelpFormatter.styles['argparse.groups'] = 'bold yellow'
    parser = argparse.ArgumentParser(
        prog='sampo',
        description='Changeset-driven releases for multi-ecosystem monorepos.',
        formatter_class=RichHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging.')
    parser.add_argument('--quiet', '-q', action='store_true', help='Only log warnings and errors.')
    parser.add_argument('--json-log', action='store_true', help='Emit logs as JSON lines.')

    subparsers = parser.add_subparsers(dest='command')

    release_parser = subparsers.add_parser(
        'release',
        help='Bump versions and write changelogs from pending changesets.',
        formatter_class=RichHelpFormatter,
    )
    release_parser.add_argument('--dry-run', action='store_true', help='Show the plan without changing files.')

    publish_parser = subparsers.add_parser(
        'publish',
        help='Publish packages to their registries in dependency order.',
        formatter_class=RichHelpFormatter,
    )
    publish_parser.add_argument('--dry-run', action='store_true', help='Validate without uploading or tagging.')
    publish_parser.add_argument(
        'extra',
        nargs=argparse.REMAINDER,
        help='Arguments after -- are passed to every publish command.',
    )

    pre_parser = subparsers.add_parser(
        'pre',
        help='Enter or exit pre-release versions.',
        formatter_class=RichHelpFormatter,
    )
    pre_sub = pre_parser.add_subparsers(dest='pre_command', required=True)
    enter_parser = pre_sub.add_parser('enter', help='Switch packages to a pre-release label.')
    enter_parser.add_argument('label', help="Pre-release label, e.g. 'alpha' or 'rc'.")
    enter_parser.add_argument('packages', nargs='+', metavar='PACKAGE', help='Package names or kind/name.')
    exit_parser = pre_sub.add_parser('exit', help='Return packages to stable versions.')
    exit_parser.add_argument('packages', nargs='+', metavar='PACKAGE', help='Package names or kind/name.')

    explain_parser = subparsers.add_parser('explain', help='Explain an error code.')
    explain_parser.add_argument('code', help='Error code to explain (e.g., SAMPO-PUBLISH).')
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, quiet=args.quiet, json_log=args.json_log)

    try:
        command = args.command
        if command == 'release':
            return _cmd_release(args)
        if command == 'publish':
            return _cmd_publish(args)
        if command == 'pre':
            return _cmd_pre(args)
        if command == 'explain':
            return _cmd_explain(args)

        parser.print_help()  # noqa: T201 - CLI output
        print(f'\n{parser.prog}: error: please provide a command', file=sys.stderr)  # noqa: T201 - CLI output
        return 2

    except SampoError as exc:
        render_error(exc)
        return 1
    except KeyboardInterrupt:
        log.info('interrupted')
        return 130


def _main() -> None:
    """Wrapper for the ``sampo`` console script."""
    sys.exit(main())


__all__ = [
    'build_parser',
    'main',
]
