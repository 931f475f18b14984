"""Identifier-based deduplication of cached resources.

The same clinical entity often sits in the cache several times: fetched
from two servers, or fetched again after it changed.  Copies are tied
together by business identifiers, and identity is transitive: if A shares
an identifier with B and B shares another with C, all three are one entity.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

from ..resources.dates import MIN_DATETIME
from ..resources.models import FhirResource, Identifier

R = TypeVar("R", bound=FhirResource)


def _default_identifiers(resource: FhirResource) -> Iterable[Identifier]:
    return resource.identifiers()


def identifier_components(
    resources: Sequence[R],
    identifiers: Callable[[R], Iterable[Identifier] | None] = _default_identifiers,
) -> list[list[int]]:
    """Indices of *resources* grouped into connected components.

    Two resources are connected when they share an identifier
    ``(system, value)``; identifiers missing either part are ignored.
    Components come out in order of their lowest index, and members in BFS
    order starting from that index.
    """
    by_identifier: dict[str, list[int]] = {}
    for index, resource in enumerate(resources):
        for ident in identifiers(resource) or ():
            if ident.system and ident.value:
                by_identifier.setdefault(f"{ident.system}|{ident.value}", []).append(index)

    adjacency: list[list[int]] = [[] for _ in resources]
    for indices in by_identifier.values():
        # A chain is enough to connect the whole group.
        for u, v in zip(indices, indices[1:]):
            adjacency[u].append(v)
            adjacency[v].append(u)

    visited = [False] * len(resources)
    components: list[list[int]] = []
    for start in range(len(resources)):
        if visited[start]:
            continue
        visited[start] = True
        queue = deque([start])
        component: list[int] = []
        while queue:
            current = queue.popleft()
            component.append(current)
            for neighbour in adjacency[current]:
                if not visited[neighbour]:
                    visited[neighbour] = True
                    queue.append(neighbour)
        components.append(component)
    return components


def pick_latest(resources: Sequence[R], indices: Iterable[int]) -> R:
    """Member with the newest ``lastUpdated``; the lowest index wins ties."""
    best = max(
        indices,
        key=lambda i: (resources[i].last_updated or MIN_DATETIME, -i),
    )
    return resources[best]


def deduplicate(
    resources: Iterable[R],
    identifiers: Callable[[R], Iterable[Identifier] | None] = _default_identifiers,
) -> list[R]:
    """One representative per group of resources sharing identifiers.

    Parameters
    ----------
    resources:
        Resources of a single type.
    identifiers:
        Extracts a resource's identifiers.  Defaults to the resource's own
        ``identifier`` element.

    Returns
    -------
    list
        The newest copy (by ``meta.lastUpdated``, missing counts as oldest)
        of each group, in order of each group's first appearance.  Inputs
        of length 0 or 1 are returned as-is.
    """
    items = list(resources)
    if len(items) <= 1:
        return items
    return [pick_latest(items, component) for component in identifier_components(items, identifiers)]
