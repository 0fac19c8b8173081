"""Exceptions raised by the flow graph and the layout pipeline."""

from __future__ import annotations


class SankeyError(Exception):
    """Base class for every error raised by sankey_layout."""


class InvalidArgumentError(SankeyError, ValueError):
    """A graph mutation or layout parameter was rejected.

    Raised at mutation time (unknown link endpoint, duplicate id, negative
    value, ...) so a broken graph never reaches the layout pass.
    """


class CyclicGraphError(SankeyError):
    """Column assignment did not settle within its round bound.

    Attributes:
        frontier: Ids of the nodes still advancing when the bound was hit.
        cycle: One offending cycle as (source, target) pairs, or [] if none
            could be isolated.
        rounds: Number of relaxation rounds that were run.
    """

    def __init__(
        self,
        frontier: list[str],
        cycle: list[tuple[str, str]],
        rounds: int,
    ) -> None:
        self.frontier = frontier
        self.cycle = cycle
        self.rounds = rounds
        if cycle:
            path = " -> ".join([cycle[0][0]] + [tgt for _, tgt in cycle])
            detail = f"cycle {path}"
        else:
            detail = f"{len(frontier)} node(s) still advancing"
        super().__init__(f"flow graph is not acyclic after {rounds} layering rounds: {detail}")
