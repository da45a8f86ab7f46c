"""Compute the chain of patches that moves an install to a target version."""

from __future__ import annotations

import logging

from services.versions.models import PatchEdge, PatchGraph

_LOGGER = logging.getLogger(__name__)

__all__ = ["resolve_patch_path"]


def resolve_patch_path(from_version: int, to_version: int, graph: PatchGraph) -> list[PatchEdge]:
    """Return an ordered list of transitions from ``from_version`` to ``to_version``.

    A direct edge wins outright. Otherwise the walk greedily takes the longest
    jump that does not overshoot the target. Any dead end abandons the walk in
    favour of a single full install ``(0, to_version)``. The result is feasible,
    not minimal in steps or bytes.
    """

    if from_version >= to_version:
        return []

    if graph.has_edge(from_version, to_version):
        return [PatchEdge(from_version, to_version)]

    path: list[PatchEdge] = []
    current = from_version
    while current < to_version:
        candidates = [edge for edge in graph.edges_from(current) if edge.target <= to_version]
        if not candidates:
            _LOGGER.debug(
                "No patch leaves v%s towards v%s; falling back to full install",
                current,
                to_version,
            )
            return [PatchEdge(0, to_version)]
        best = candidates[0]
        path.append(best)
        current = best.target

    _LOGGER.debug(
        "Resolved patch path %s->%s: %s",
        from_version,
        to_version,
        ", ".join(edge.key for edge in path),
    )
    return path
