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

"""Internal dependency graph over workspace members.

Nodes are ecosystem-qualified identifiers (``cargo/foo``), so a Cargo
crate and an npm package that share a name never collide.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                            │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Dependency graph        │ A map of "who needs what". If package A     │
    │                         │ depends on B, draw an arrow A → B.          │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Dependents              │ The arrows flipped: who has to be bumped    │
    │                         │ when B changes.                             │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Topological order       │ Every package comes after everything it     │
    │                         │ depends on, so publishes never reference a  │
    │                         │ version the registry has not seen yet.      │
    └─────────────────────────┴─────────────────────────────────────────────┘

Edge direction::

    edges["cargo/cli"]         = ["cargo/core"]     (cli depends on core)
    reverse_edges["cargo/core"] = ["cargo/cli"]     (core is used by cli)

Only edges between nodes of the graph are kept, so building a graph from
a subset (the publishable packages) silently drops edges leaving it.

Usage::

    from sampo.graph import build_graph, topo_order

    graph = build_graph(publishable)
    for info in topo_order(graph):
        print(info.identifier)
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from sampo.errors import E, SampoError
from sampo.logging import get_logger
from sampo.types import PackageInfo

log = get_logger('sampo.graph')

CYCLE_MESSAGE = 'dependency cycle detected among publishable crates'


@dataclass
class DependencyGraph:
    """A directed graph of workspace package dependencies.

    Attributes:
        packages: Identifier to :class:`PackageInfo`.
        edges: Dependent to its dependencies.
        reverse_edges: Dependency to its dependents.
    """

    packages: dict[str, PackageInfo] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)
    reverse_edges: dict[str, list[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        """Return the number of packages in the graph."""
        return len(self.packages)


def build_graph(packages: Iterable[PackageInfo]) -> DependencyGraph:
    """Build forward and reverse edges among ``packages``."""
    graph = DependencyGraph()
    members = list(packages)
    for info in members:
        graph.packages[info.identifier] = info
        graph.edges[info.identifier] = []
        graph.reverse_edges[info.identifier] = []

    for info in members:
        for dep in sorted(info.internal_deps):
            if dep in graph.packages and dep != info.identifier:
                graph.edges[info.identifier].append(dep)
                graph.reverse_edges[dep].append(info.identifier)

    for targets in graph.reverse_edges.values():
        targets.sort()

    log.debug(
        'built_dependency_graph',
        packages=len(graph),
        edges=sum(len(deps) for deps in graph.edges.values()),
    )
    return graph


def dependents_map(packages: Iterable[PackageInfo]) -> dict[str, set[str]]:
    """Return ``dependency → {direct dependents}`` for every internal edge."""
    out: dict[str, set[str]] = {}
    for info in packages:
        for dep in info.internal_deps:
            if dep != info.identifier:
                out.setdefault(dep, set()).add(info.identifier)
    return out


def detect_cycles(graph: DependencyGraph) -> list[list[str]]:
    """Return every cycle found by a depth-first walk, or ``[]``."""
    white, gray, black = 0, 1, 2
    color = dict.fromkeys(graph.packages, white)
    parent: dict[str, str | None] = dict.fromkeys(graph.packages)
    cycles: list[list[str]] = []

    def visit(node: str) -> None:
        color[node] = gray
        for neighbor in graph.edges.get(node, []):
            if color[neighbor] == gray:
                cycle = [neighbor]
                current: str | None = node
                while current is not None and current != neighbor:
                    cycle.append(current)
                    current = parent.get(current)
                cycle.append(neighbor)
                cycle.reverse()
                cycles.append(cycle)
            elif color[neighbor] == white:
                parent[neighbor] = node
                visit(neighbor)
        color[node] = black

    for name in sorted(graph.packages):
        if color[name] == white:
            visit(name)
    return cycles


def topo_levels(graph: DependencyGraph) -> list[list[PackageInfo]]:
    """Group packages by level with Kahn's algorithm.

    Level 0 has no internal dependencies; level ``n`` depends only on
    earlier levels. Each level is sorted by identifier.

    Raises:
        SampoError: ``PUBLISH`` when the graph has a cycle.
    """
    in_degree = {name: len(deps) for name, deps in graph.edges.items()}
    queue: deque[str] = deque(sorted(name for name, degree in in_degree.items() if degree == 0))
    levels: list[list[PackageInfo]] = []
    processed = 0

    while queue:
        level_names = sorted(queue)
        queue.clear()
        levels.append([graph.packages[name] for name in level_names])
        processed += len(level_names)
        for name in level_names:
            for dependent in graph.reverse_edges.get(name, []):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

    if processed != len(graph):
        cycles = [' → '.join(cycle) for cycle in detect_cycles(graph)]
        log.warning('cycles_detected', cycles=cycles)
        raise SampoError(
            E.PUBLISH,
            CYCLE_MESSAGE,
            hint=f'Break the cycle: {"; ".join(cycles)}' if cycles else '',
        )
    return levels


def topo_order(graph: DependencyGraph) -> list[PackageInfo]:
    """Flatten :func:`topo_levels`; dependencies always come first."""
    return [info for level in topo_levels(graph) for info in level]


__all__ = [
    'CYCLE_MESSAGE',
    'DependencyGraph',
    'build_graph',
    'dependents_map',
    'detect_cycles',
    'topo_levels',
    'topo_order',
]
