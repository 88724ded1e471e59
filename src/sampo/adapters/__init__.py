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

"""Ecosystem adapters for sampo.

The :class:`EcosystemAdapter` protocol is the only thing the release
engine, the publish orchestrator and the pre-release controller know
about an ecosystem. Implementations:

- :class:`~sampo.adapters.cargo.CargoAdapter` for Cargo workspaces and crates.io
- :class:`~sampo.adapters.npm.NpmAdapter` for npm, pnpm, yarn and bun workspaces
- :class:`~sampo.adapters.hex.HexAdapter` for Mix projects and umbrellas on Hex
- :class:`~sampo.adapters.packagist.PackagistAdapter` for Composer packages
- :class:`~sampo.adapters.pypi.PypiAdapter` for PEP 621 projects and uv workspaces

Adapters are stateless. :data:`ADAPTERS` fixes the order in which
workspaces are discovered and, through it, the order of members.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Protocol, runtime_checkable

from sampo.adapters.cargo import CargoAdapter as CargoAdapter
from sampo.adapters.hex import HexAdapter as HexAdapter
from sampo.adapters.npm import NpmAdapter as NpmAdapter
from sampo.adapters.packagist import PackagistAdapter as PackagistAdapter
from sampo.adapters.pypi import PypiAdapter as PypiAdapter
from sampo.types import PackageInfo, PackageKind

__all__ = [
    'ADAPTERS',
    'CargoAdapter',
    'EcosystemAdapter',
    'HexAdapter',
    'NpmAdapter',
    'PackagistAdapter',
    'PypiAdapter',
    'adapter_for',
]


@runtime_checkable
class EcosystemAdapter(Protocol):
    """Protocol every ecosystem adapter implements."""

    kind: PackageKind
    registry: str

    def can_discover(self, root: Path) -> bool:
        """Return ``True`` if ``root`` holds this ecosystem's signature file."""
        ...

    def find_root(self, start: Path) -> Path | None:
        """Return the workspace root this ecosystem would use for ``start``."""
        ...

    def discover(self, root: Path) -> list[PackageInfo]:
        """Return every package of this ecosystem under ``root``.

        Raises:
            SampoError: ``INVALID_WORKSPACE``, ``INVALID_MANIFEST``,
                ``INVALID_TOML`` or ``IO``.
        """
        ...

    def manifest_path(self, package_dir: Path) -> Path:
        """Return the manifest file for a package directory."""
        ...

    def workspace_manifests(self, root: Path) -> list[Path]:
        """Return root manifests that pin member versions and need rewriting too."""
        ...

    def is_publishable(self, manifest: Path) -> bool:
        """Return ``True`` if the ecosystem would publish this manifest."""
        ...

    def version_exists(self, name: str, version: str, manifest: Path | None = None) -> bool:
        """Return ``True`` if ``name@version`` is already on the registry.

        Raises:
            SampoError: ``PUBLISH`` for rate limits, auth failures and
                unexpected statuses.
        """
        ...

    def publish(self, manifest: Path, dry_run: bool, extra_args: list[str]) -> None:
        """Publish the package, or only validate it when ``dry_run``.

        Raises:
            SampoError: ``PUBLISH`` when the ecosystem tool fails.
        """
        ...

    def lockfile_exists(self, root: Path) -> bool:
        """Return ``True`` if the ecosystem lockfile sits at ``root``."""
        ...

    def regenerate_lockfile(self, root: Path) -> None:
        """Refresh the lockfile after manifests changed.

        Raises:
            SampoError: ``RELEASE`` when the ecosystem tool fails.
        """
        ...

    def update_manifest_versions(
        self,
        manifest: Path,
        text: str,
        new_pkg_version: str | None,
        new_versions: Mapping[str, str],
    ) -> tuple[str, list[tuple[str, str]]]:
        """Rewrite versions in ``text`` and return it with the applied dependency changes.

        Args:
            manifest: Path the text was read from, for error messages.
            text: Current manifest contents.
            new_pkg_version: The package's own new version, if it is released.
            new_versions: Native package name to new version for every
                released package of this ecosystem.
        """
        ...


ADAPTERS: tuple[EcosystemAdapter, ...] = (
    CargoAdapter(),
    NpmAdapter(),
    HexAdapter(),
    PackagistAdapter(),
    PypiAdapter(),
)


def adapter_for(kind: PackageKind) -> EcosystemAdapter:
    """Return the adapter handling ``kind``."""
    for adapter in ADAPTERS:
        if adapter.kind is kind:
            return adapter
    raise KeyError(kind)
