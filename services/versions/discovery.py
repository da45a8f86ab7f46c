"""Discover which patch artifacts the distribution server offers.

The server has no listing endpoint, so discovery walks candidate artifact
names with existence probes:

1. **Full-install sweep.** Probe ``(0, 1)``, ``(0, 2)``, ... and stop after
   ``consecutive_misses`` misses in a row. The last hit is the newest version.
2. **Incremental sweep.** For every ``prev`` below the newest version probe
   ``(prev, prev + 1)``, ``(prev, prev + 2)``, ... stopping after the same
   number of consecutive misses or once ``target`` passes
   ``max_version + consecutive_misses``.

The stop rule assumes the server never skips more than ``consecutive_misses``
versions in a row; a wider gap hides every version after it. This is an
accepted approximation traded for a bounded number of requests. Probes run
sequentially because the miss counter depends on probe order.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from services.versions.constants import CONSECUTIVE_MISSES_TO_STOP
from services.versions.identifiers import ensure_branch
from services.versions.models import PatchGraph
from services.versions.remote import PatchSource

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveryReport:
    """Summary of one discovery run, kept for diagnostics."""

    branch: str
    probes: int
    max_version: int
    edge_count: int


class PatchGraphCache:
    """Per-branch store of discovered graphs owned by one discovery instance."""

    def __init__(self) -> None:
        self._graphs: dict[str, PatchGraph] = {}
        self._lock = threading.Lock()

    def get(self, branch: str) -> PatchGraph | None:
        with self._lock:
            return self._graphs.get(branch)

    def put(self, graph: PatchGraph) -> None:
        with self._lock:
            self._graphs[graph.branch] = graph

    def invalidate(self, branch: str | None = None) -> None:
        with self._lock:
            if branch is None:
                self._graphs.clear()
            else:
                self._graphs.pop(branch, None)


class VersionDiscovery:
    """Build :class:`PatchGraph` instances by probing a :class:`PatchSource`."""

    def __init__(
        self,
        source: PatchSource,
        *,
        consecutive_misses: int = CONSECUTIVE_MISSES_TO_STOP,
        cache: PatchGraphCache | None = None,
    ) -> None:
        if consecutive_misses <= 0:
            raise ValueError("consecutive_misses must be positive")
        self._source = source
        self._consecutive_misses = consecutive_misses
        self._cache = cache or PatchGraphCache()
        self._last_report: DiscoveryReport | None = None

    @property
    def cache(self) -> PatchGraphCache:
        return self._cache

    @property
    def last_report(self) -> DiscoveryReport | None:
        return self._last_report

    def graph_for(self, branch: str) -> PatchGraph:
        """Return the cached graph for ``branch``, discovering it on first use."""

        cached = self._cache.get(branch)
        if cached is not None:
            return cached
        return self.discover(branch)

    def discover(self, branch: str, graph: PatchGraph | None = None) -> PatchGraph:
        """Probe the server and return every edge that answered "exists".

        Passing a partially built ``graph`` resumes an interrupted run: edges
        already present stay valid and are simply probed again.
        """

        ensure_branch(branch)
        graph = graph if graph is not None else PatchGraph(branch)
        _LOGGER.info("Discovering versions for branch %s", branch)

        probes = 0
        limit = self._consecutive_misses

        max_version = 0
        misses = 0
        version = 1
        while misses < limit:
            probes += 1
            if self._exists(branch, 0, version):
                graph.add(0, version)
                max_version = version
                misses = 0
            else:
                misses += 1
            version += 1

        for prev in range(1, max_version):
            misses = 0
            target = prev + 1
            while misses < limit and target <= max_version + limit:
                probes += 1
                if self._exists(branch, prev, target):
                    graph.add(prev, target)
                    misses = 0
                else:
                    misses += 1
                target += 1

        self._cache.put(graph)
        self._last_report = DiscoveryReport(
            branch=branch,
            probes=probes,
            max_version=max_version,
            edge_count=len(graph),
        )
        if max_version == 0:
            _LOGGER.warning("No versions found for branch %s", branch)
        else:
            _LOGGER.info(
                "Found %s patch files for branch %s after %s probes (latest v%s): %s",
                len(graph),
                branch,
                probes,
                max_version,
                ", ".join(edge.key for edge in graph),
            )
        return graph

    def _exists(self, branch: str, prev: int, target: int) -> bool:
        try:
            return self._source.probe(branch, prev, target).exists
        except Exception:
            # Probe failures count as misses.
            _LOGGER.debug(
                "Probe %s->%s on %s raised; treating as absent",
                prev,
                target,
                branch,
                exc_info=True,
            )
            return False


__all__ = ["DiscoveryReport", "PatchGraphCache", "VersionDiscovery"]
