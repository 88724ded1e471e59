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

"""Shared test fakes for sampo.

Provides on-disk workspace builders, a recording ecosystem adapter and
a git stand-in so individual test modules don't need to duplicate
boilerplate.

Usage::

    from tests._fakes import FakeAdapter, write_cargo_workspace, write_changeset

    write_cargo_workspace(tmp_path, {'a': ('0.1.0', ['b']), 'b': ('0.1.0', [])})
    write_changeset(tmp_path, 'b-minor', {'b': 'minor'}, 'Add things.')
"""

from tests._fakes._adapter import FakeAdapter as FakeAdapter
from tests._fakes._git import FakeGitRepo as FakeGitRepo
from tests._fakes._workspace import (
    RELEASE_ENV as RELEASE_ENV,
    write_cargo_workspace as write_cargo_workspace,
    write_changeset as write_changeset,
    write_config as write_config,
)

__all__ = [
    'RELEASE_ENV',
    'FakeAdapter',
    'FakeGitRepo',
    'write_cargo_workspace',
    'write_changeset',
    'write_config',
]
