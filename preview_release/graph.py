"""Dependency graph utilities.

Two walks over internal (``link:``) dependency edges:

- ``dependency_closure`` follows edges outward from one package to find
  everything it depends on, directly or transitively.
- ``topo_sort`` orders a set of packages so dependencies are published
  before the packages that depend on them.
"""

from __future__ import annotations

import heapq
from collections.abc import Iterator, Mapping

from .models import Package


class DependencyCycleError(RuntimeError):
    """Raised by topo_sort when the packages form a dependency cycle."""


def index_by_name(packages: list[Package]) -> dict[str, Package]:
    """Map package name → Package for lookups during graph walks."""
    return {pkg.name: pkg for pkg in packages}


def _internal_deps(pkg: Package, by_name: Mapping[str, Package]) -> Iterator[Package]:
    for name in pkg.internal_dependency_names():
        # Links to packages outside this snapshot were removed or are external
        dep = by_name.get(name)
        if dep is not None:
            yield dep


def dependency_closure(pkg: Package, by_name: Mapping[str, Package]) -> list[Package]:
    """Collect every internal package ``pkg`` depends on, at any depth.

    The walk is depth-first and pre-order: each dependency is emitted before
    its own dependencies, siblings in declaration order. A visited set keyed
    by name (seeded with ``pkg`` itself) makes accidental cycles such as
    a → b → a terminate, and guarantees each package is emitted at most once.

    Only dependencies are followed, never dependents: if ``ui`` links
    ``core``, the closure of ``core`` does not contain ``ui``.

    Args:
        pkg: Package to start from. Not included in the result.
        by_name: Every workspace package, keyed by name.

    Returns:
        Dependencies in discovery order.

    Example:
        If a links b and c, and b links d:
        dependency_closure(a) → [b, d, c]
    """
    closure: list[Package] = []
    visited = {pkg.name}
    # One iterator per level of the walk instead of recursion
    stack = [_internal_deps(pkg, by_name)]

    while stack:
        dep = next(stack[-1], None)
        if dep is None:
            stack.pop()
            continue
        if dep.name in visited:
            continue
        visited.add(dep.name)
        closure.append(dep)
        stack.append(_internal_deps(dep, by_name))

    return closure


def topo_sort(packages: list[Package]) -> list[Package]:
    """Topologically sort packages by their internal dependencies.

    Uses Kahn's algorithm to produce an order where dependencies come before
    dependents. Packages that are ready at the same time keep their input
    order, so an already dependency-consistent input comes back unchanged.

    Args:
        packages: Packages to order. Links to packages outside this list are
                  ignored (they are already in the registry).

    Returns:
        The same packages, dependencies first.

    Raises:
        DependencyCycleError: If a dependency cycle is detected.

    Example:
        If a depends on b, and b depends on c:
        topo_sort([a, b, c]) → [c, b, a]
    """
    position = {pkg.name: i for i, pkg in enumerate(packages)}
    # Count incoming edges (dependencies) for each package
    in_degree = {pkg.name: 0 for pkg in packages}
    # Track reverse dependencies (who depends on each package)
    reverse_deps: dict[str, list[str]] = {pkg.name: [] for pkg in packages}

    for pkg in packages:
        for dep in set(pkg.internal_dependency_names()):
            if dep in position and dep != pkg.name:
                in_degree[pkg.name] += 1
                reverse_deps[dep].append(pkg.name)

    # Heap of input positions, so ties resolve to input order
    ready = [position[name] for name, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)
    order: list[Package] = []

    while ready:
        pkg = packages[heapq.heappop(ready)]
        order.append(pkg)
        for dependent in reverse_deps[pkg.name]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, position[dependent])

    # If we didn't process all packages, there must be a cycle
    if len(order) != len(packages):
        remaining = sorted(set(position) - {pkg.name for pkg in order})
        raise DependencyCycleError(f"Dependency cycle detected involving: {remaining}")

    return order
