"""Dependency resolution for contract-deployments library."""

import heapq
from typing import Dict, Iterable, List, Optional, Sequence

from .exceptions import ConfigurationError, CyclicDependencyError, UnresolvedDependencyError
from .types import DeploymentUnit, UnitAddress, WiringAction


def validate_units(
    units: Sequence[DeploymentUnit], wiring: Sequence[WiringAction] = ()
) -> None:
    """
    Check that every name a unit or wiring action references is declared.

    Args:
        units: All deployment units
        wiring: All wiring actions

    Raises:
        ConfigurationError: On duplicate names, or a unit address argument
                            whose unit is not among the declared dependencies
        UnresolvedDependencyError: On references to undeclared units
    """
    names = set()
    for unit in units:
        if unit.name in names:
            raise ConfigurationError(f"Duplicate unit name '{unit.name}'")
        names.add(unit.name)

    for unit in units:
        for dependency in unit.dependencies:
            if dependency not in names:
                raise UnresolvedDependencyError(unit.name, dependency)

        initializer = unit.effective_initializer
        args = list(unit.constructor_args)
        if initializer is not None:
            args.extend(initializer.args)
        if unit.proxy is not None:
            args.append(unit.proxy.owner)

        for arg in args:
            if not isinstance(arg, UnitAddress):
                continue
            if arg.unit not in names:
                raise UnresolvedDependencyError(unit.name, arg.unit)
            if arg.unit not in unit.dependencies:
                raise ConfigurationError(
                    f"Unit '{unit.name}' uses the address of '{arg.unit}' "
                    "but does not declare it in 'dependencies'"
                )

    for action in wiring:
        for name in action.required_units:
            if name not in names:
                raise UnresolvedDependencyError(action.describe(), name)


def resolve_order(units: Sequence[DeploymentUnit]) -> List[DeploymentUnit]:
    """
    Order units so that each appears after all of its dependencies.

    Ties between ready units are broken by declaration order, so identical
    input always yields identical output.

    Args:
        units: All deployment units, in declaration order

    Returns:
        Units in execution order

    Raises:
        UnresolvedDependencyError: If a dependency name is not declared
        CyclicDependencyError: If dependencies contain a cycle
    """
    index = {unit.name: i for i, unit in enumerate(units)}
    for unit in units:
        for dependency in unit.dependencies:
            if dependency not in index:
                raise UnresolvedDependencyError(unit.name, dependency)

    remaining = {unit.name: len(set(unit.dependencies)) for unit in units}
    dependents: Dict[str, List[str]] = {unit.name: [] for unit in units}
    for unit in units:
        for dependency in set(unit.dependencies):
            dependents[dependency].append(unit.name)

    ready = [index[name] for name, count in remaining.items() if count == 0]
    heapq.heapify(ready)

    ordered: List[DeploymentUnit] = []
    while ready:
        unit = units[heapq.heappop(ready)]
        ordered.append(unit)
        for dependent in dependents[unit.name]:
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                heapq.heappush(ready, index[dependent])

    if len(ordered) != len(units):
        placed = {unit.name for unit in ordered}
        cycle = _find_cycle([unit for unit in units if unit.name not in placed])
        raise CyclicDependencyError(cycle)

    return ordered


def dependency_closure(
    ordered: Sequence[DeploymentUnit], requested: Iterable[str]
) -> List[DeploymentUnit]:
    """
    Restrict an ordered unit list to the requested units and everything they depend on.

    Args:
        ordered: Output of resolve_order()
        requested: Unit names to deploy

    Returns:
        Subsequence of ordered, order preserved

    Raises:
        ConfigurationError: If a requested name is not a declared unit
    """
    by_name = {unit.name: unit for unit in ordered}
    needed = set()
    stack = list(requested)
    while stack:
        name = stack.pop()
        if name not in by_name:
            raise ConfigurationError(f"Unknown unit '{name}'")
        if name in needed:
            continue
        needed.add(name)
        stack.extend(by_name[name].dependencies)

    return [unit for unit in ordered if unit.name in needed]


def _find_cycle(units: Sequence[DeploymentUnit]) -> List[str]:
    """Return the members of one dependency cycle among units, in edge order."""
    by_name = {unit.name: unit for unit in units}
    visited = set()

    for start in units:
        if start.name in visited:
            continue
        path: List[str] = []
        on_path: Dict[str, int] = {}
        cycle = _walk(start.name, by_name, visited, path, on_path)
        if cycle is not None:
            return cycle

    # Every leftover unit sits on or behind a cycle, so the walk always finds one
    return [unit.name for unit in units]


def _walk(
    name: str,
    by_name: Dict[str, DeploymentUnit],
    visited: set,
    path: List[str],
    on_path: Dict[str, int],
) -> Optional[List[str]]:
    visited.add(name)
    on_path[name] = len(path)
    path.append(name)

    for dependency in by_name[name].dependencies:
        if dependency not in by_name:
            continue
        if dependency in on_path:
            # Back-edge
            return path[on_path[dependency]:]
        if dependency not in visited:
            cycle = _walk(dependency, by_name, visited, path, on_path)
            if cycle is not None:
                return cycle

    path.pop()
    del on_path[name]
    return None
