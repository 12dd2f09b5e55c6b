"""Stage dependency graph.

Holds the ``needs`` edges of a pipeline, rejects cycles and missing
dependencies, and answers the ordering questions the scheduler asks:
which stages depend on a stage, which stages are transitively downstream,
and how the graph layers into waves of mutually independent stages.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping
from enum import Enum, auto
from typing import TYPE_CHECKING

from gatedag.kernel.exceptions import (
    CyclicDependencyError,
    DuplicateStageError,
    MissingDependencyError,
)

if TYPE_CHECKING:
    from gatedag.kernel.domain.stage import StageDefinition

_EMPTY_SET: frozenset[str] = frozenset()


class Color(Enum):
    """Colors for DFS cycle detection."""

    WHITE = auto()  # Unvisited
    GRAY = auto()  # On the recursion stack
    BLACK = auto()  # Done


class StageGraph:
    """Directed acyclic graph of stage names.

    The graph is validated when it is built; an instance that exists is
    always acyclic with every dependency resolved.
    """

    def __init__(self, stages: Iterable[StageDefinition]) -> None:
        self.stages: dict[str, StageDefinition] = {}
        self._forward_edges: defaultdict[str, set[str]] = defaultdict(set)  # stage -> dependents
        self._waves_cache: list[list[str]] | None = None

        for stage in stages:
            if stage.name in self.stages:
                raise DuplicateStageError(f"Stage '{stage.name}' is defined more than once")
            self.stages[stage.name] = stage
            self._forward_edges[stage.name]

        for stage in self.stages.values():
            for dep in stage.needs:
                self._forward_edges[dep].add(stage.name)

        self._validate()

    @staticmethod
    def detect_cycle(graph: Mapping[str, Iterable[str]]) -> str | None:
        """Detect cycles in a dependency mapping using three-color DFS.

        Parameters
        ----------
        graph : Mapping[str, Iterable[str]]
            Stage name -> names it needs

        Returns
        -------
        str | None
            Cycle description if found, None otherwise

        Examples
        --------
        >>> StageGraph.detect_cycle({"a": {"b"}, "b": {"c"}, "c": {"a"}})
        'Cycle detected: a -> b -> c -> a'
        >>> StageGraph.detect_cycle({"a": {"b"}, "b": set()}) is None
        True
        """
        colors = dict.fromkeys(graph, Color.WHITE)

        def dfs(node: str, path: list[str]) -> str | None:
            if colors[node] == Color.GRAY:
                cycle = path[path.index(node) :] + [node]
                return f"Cycle detected: {' -> '.join(cycle)}"
            if colors[node] == Color.BLACK:
                return None

            colors[node] = Color.GRAY
            path.append(node)
            for dep in sorted(graph.get(node, ())):
                if dep in colors and (result := dfs(dep, path)):
                    return result
            path.pop()
            colors[node] = Color.BLACK
            return None

        for node in graph:
            if colors[node] == Color.WHITE and (result := dfs(node, [])):
                return result
        return None

    def _validate(self) -> None:
        missing = [
            f"Stage '{name}' needs undefined stage '{dep}'"
            for name, stage in self.stages.items()
            for dep in stage.needs
            if dep not in self.stages
        ]
        if missing:
            raise MissingDependencyError("; ".join(missing))

        if cycle := self.detect_cycle({name: s.needs for name, s in self.stages.items()}):
            raise CyclicDependencyError(cycle)

    def get_dependencies(self, name: str) -> frozenset[str]:
        """Return the stages *name* needs.

        Raises
        ------
        KeyError
            If the stage doesn't exist.
        """
        if name not in self.stages:
            raise KeyError(f"Stage '{name}' not found in graph")
        return frozenset(self.stages[name].needs)

    def waves(self) -> list[list[str]]:
        """Layer the graph into waves by topological sorting.

        Stages within one wave share no path and may run concurrently.

        Examples
        --------
            # lint -> sast, build -> scan -> push, iac-scan
            # [["build", "iac-scan", "lint"], ["sast", "scan"], ["push"]]
        """
        if self._waves_cache is not None:
            return self._waves_cache

        in_degrees = {name: len(stage.needs) for name, stage in self.stages.items()}
        waves: list[list[str]] = []
        while in_degrees:
            current_wave = sorted(name for name, degree in in_degrees.items() if degree == 0)
            if not current_wave:
                raise CyclicDependencyError(
                    f"No stages without pending dependencies. Remaining: {sorted(in_degrees)}"
                )
            waves.append(current_wave)
            for name in current_wave:
                del in_degrees[name]
                for dependent in self._forward_edges.get(name, _EMPTY_SET):
                    if dependent in in_degrees:
                        in_degrees[dependent] -= 1

        self._waves_cache = waves
        return waves

    def __len__(self) -> int:
        return len(self.stages)

    def __contains__(self, name: object) -> bool:
        return name in self.stages

    def __iter__(self) -> Iterator[str]:
        return iter(self.stages)

    def __repr__(self) -> str:
        return f"StageGraph(stages={len(self.stages)}, waves={len(self.waves())})"
