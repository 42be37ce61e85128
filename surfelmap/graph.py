"""Deformation graph nodes and the per-vertex weights that tie points to them."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from itertools import chain, islice

import numpy as np

LOOK_BACK = 20
"""Number of graph nodes, nearest in time, considered when weighting a point."""


def _zeros3() -> np.ndarray:
    return np.zeros(3, dtype=np.float64)


def _identity3() -> np.ndarray:
    return np.eye(3, dtype=np.float64)


@dataclass
class GraphNode:
    """A graph node with its rest position and its affine deformation."""

    id: int
    position: np.ndarray = field(default_factory=_zeros3)
    rotation: np.ndarray = field(default_factory=_identity3)
    translation: np.ndarray = field(default_factory=_zeros3)
    neighbours: list[int] = field(default_factory=list)
    enabled: bool = True

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=np.float64).reshape(3)
        self.rotation = np.asarray(self.rotation, dtype=np.float64).reshape(3, 3)
        self.translation = np.asarray(self.translation, dtype=np.float64).reshape(3)


@dataclass
class VertexWeightMap:
    """The influence of one graph node on a point."""

    weight: float
    node: int
    relative: bool = False


@dataclass
class Constraint:
    """A point pinned either to a fixed position or to another point."""

    vertex_id: int
    target_position: np.ndarray
    relative: bool
    target_id: int = -1

    @classmethod
    def absolute(cls, vertex_id: int, target) -> Constraint:
        """Pin ``vertex_id`` to the position ``target``."""
        position = np.asarray(target, dtype=np.float64).reshape(3).copy()
        return cls(vertex_id, position, False, -1)

    @classmethod
    def relative_to(cls, vertex_id: int, target_id: int) -> Constraint:
        """Pin ``vertex_id`` to wherever ``target_id`` ends up."""
        return cls(vertex_id, _zeros3(), True, target_id)


def sort_by_node_id(
    weights: Sequence[VertexWeightMap], graph: Sequence[GraphNode]
) -> list[VertexWeightMap]:
    """The weights ordered by the id of their node; equal ids keep their order."""
    return sorted(weights, key=lambda entry: graph[entry.node].id)


def connect_sequential(nodes: Sequence[GraphNode], k: int) -> None:
    """Give every node the ``k`` nodes nearest to it in sequence as neighbours."""
    count = len(nodes)
    if k < 1:
        raise ValueError("k must be at least 1")
    if count < k + 1:
        raise ValueError(f"connecting with k={k} needs at least {k + 1} nodes")

    half = k // 2

    for i in range(half):
        nodes[i].neighbours.extend(n for n in range(k + 1) if n != i)

    for i in range(half, count - half):
        for n in range(half):
            nodes[i].neighbours.append(i - (n + 1))
            nodes[i].neighbours.append(i + (n + 1))

    for i in range(count - half, count):
        nodes[i].neighbours.extend(n for n in range(count - (k + 1), count) if n != i)


def nearest_time_index(times: Sequence[int], time: int) -> int:
    """Index of the entry of the sorted ``times`` closest to ``time``."""
    if not times:
        raise ValueError("there are no times to search")

    imin = 0
    imax = len(times) - 1
    imid = (imin + imax) // 2

    while imax >= imin:
        imid = (imin + imax) // 2
        if times[imid] < time:
            imin = imid + 1
        elif times[imid] > time:
            imax = imid - 1
        else:
            break

    imin = min(imin, len(times) - 1)
    imax = max(imax, 0)

    d_min = abs(int(times[imin]) - int(time))
    d_mid = abs(int(times[imid]) - int(time))
    d_max = abs(int(times[imax]) - int(time))

    if d_min <= d_mid and d_min <= d_max:
        return imin
    if d_mid <= d_min and d_mid <= d_max:
        return imid
    return imax


def weight_position(
    times: Sequence[int],
    cloud: Sequence,
    nodes: Sequence[GraphNode],
    position,
    time: int,
    k: int,
) -> list[VertexWeightMap]:
    """Normalised weights of the ``k`` nodes nearest to a point seen at ``time``.

    Candidates are the nodes closest in time; among them the ``k`` nearest in
    space are weighted by their distance relative to the next nearest one.
    """
    if k < 1:
        raise ValueError("k must be at least 1")

    found = min(nearest_time_index(times, time), len(cloud) - 1)
    point = np.asarray(position, dtype=np.float64).reshape(3)

    candidates = islice(
        chain(range(found, -1, -1), range(found + 1, len(times))), LOOK_BACK
    )
    near = [
        (float(np.linalg.norm(np.asarray(cloud[j], dtype=np.float64) - point)), j)
        for j in candidates
    ]
    near.sort(key=lambda item: item[0])

    if len(near) <= k:
        raise ValueError(f"weighting with k={k} needs at least {k + 1} candidate nodes")

    d_max = near[k][0]

    weights = [
        VertexWeightMap(
            (1.0 - float(np.linalg.norm(point - nodes[j].position)) / d_max) ** 2, j
        )
        for _, j in near[:k]
    ]

    total = sum(entry.weight for entry in weights)
    for entry in weights:
        entry.weight /= total

    return sort_by_node_id(weights, nodes)


def compute_vertex_position(
    weights: Sequence[VertexWeightMap], graph: Sequence[GraphNode], source_position
) -> np.ndarray:
    """Where the graph moves a point that rested at ``source_position``."""
    source = np.asarray(source_position, dtype=np.float64).reshape(3)
    result = np.zeros(3, dtype=np.float64)
    for entry in weights:
        node = graph[entry.node]
        result += entry.weight * (
            node.rotation @ (source - node.position) + node.position + node.translation
        )
    return result