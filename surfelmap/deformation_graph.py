"""Embedded deformation graph that bends a point map and its camera poses."""

from __future__ import annotations

from collections.abc import MutableSequence, Sequence
from dataclasses import dataclass

import numpy as np

from .cholesky import CholeskyDecomp
from .graph import (
    Constraint,
    GraphNode,
    VertexWeightMap,
    compute_vertex_position,
    connect_sequential,
    weight_position,
)
from .sparse_system import (
    CON_ROWS,
    NUM_VARIABLES,
    REG_ROWS,
    ROT_ROWS,
    apply_delta,
    sparse_jacobian,
    sparse_residual,
)
from .stopwatch import get_stopwatch

MAX_ITERATIONS = 3


@dataclass(frozen=True)
class OptimisationResult:
    """Outcome of :meth:`DeformationGraph.optimise_graph_sparse`.

    ``error`` is the final squared residual norm, or ``None`` when the graph
    was left alone.
    """

    optimised: bool
    error: float | None
    mean_constraint_error: float


class DeformationGraph:
    """A sequential graph of affine nodes whose blend deforms points and poses."""

    def __init__(self, k: int, source_vertices: MutableSequence) -> None:
        if k < 1:
            raise ValueError("k must be at least 1")
        self.k = k
        self.source_vertices = source_vertices
        self.w_rot = 1.0
        self.w_reg = 10.0
        self.w_con = 100.0
        self._initialised = False
        self._nodes: list[GraphNode] = []
        self._graph_cloud: list[np.ndarray] = []
        self._graph_times: list[int] = []
        self.vertex_map: list[list[VertexWeightMap]] = []
        self.pose_map: list[list[VertexWeightMap]] = []
        self.constraints: list[Constraint] = []
        self._last_point_count = 0
        self._cholesky = CholeskyDecomp()

    @property
    def graph(self) -> list[GraphNode]:
        """The graph nodes in order of their ids."""
        return self._nodes

    @property
    def graph_times(self) -> list[int]:
        """The time stamp of each graph node."""
        return self._graph_times

    @property
    def is_initialised(self) -> bool:
        return self._initialised

    def _require_initialised(self) -> None:
        if not self._initialised:
            raise RuntimeError("the deformation graph has not been initialised")

    def initialise_graph(self, custom_graph: Sequence, graph_time_map: Sequence[int]) -> None:
        """Build the nodes from positions and their time stamps, then connect them."""
        cloud = [np.asarray(p, dtype=np.float64).reshape(3).copy() for p in custom_graph]
        times = [int(t) for t in graph_time_map]
        if len(cloud) != len(times):
            raise ValueError(
                f"{len(cloud)} node positions but {len(times)} node times were given"
            )
        nodes = [GraphNode(i, position=position.copy()) for i, position in enumerate(cloud)]
        connect_sequential(nodes, self.k)

        self._graph_cloud = cloud
        self._graph_times = times
        self._nodes = nodes
        self._initialised = True

    def append_vertices(self, vertex_time_map: Sequence[int], original_point_end: int) -> None:
        """Weight every point added since the last call against the graph."""
        del self.vertex_map[self._last_point_count:]
        self.vertex_map.extend(
            [] for _ in range(self._last_point_count - len(self.vertex_map))
        )
        for i in range(self._last_point_count, len(self.source_vertices)):
            self.vertex_map.append(
                weight_position(
                    self._graph_times,
                    self._graph_cloud,
                    self._nodes,
                    self.source_vertices[i],
                    int(vertex_time_map[i]),
                    self.k,
                )
            )
        self._last_point_count = original_point_end

    def set_poses_seq(self, pose_time_map: Sequence[int], poses: Sequence) -> None:
        """Weight each 4x4 pose's position against the graph, replacing earlier poses."""
        self.pose_map = []
        for time, pose in zip(pose_time_map, poses):
            position = np.asarray(pose, dtype=np.float64)[:3, 3]
            self.pose_map.append(
                weight_position(
                    self._graph_times,
                    self._graph_cloud,
                    self._nodes,
                    position,
                    int(time),
                    self.k,
                )
            )

    def apply_graph_to_poses(self, poses: Sequence[np.ndarray]) -> None:
        """Deform the 4x4 poses in place, keeping their rotations orthonormal."""
        self._require_initialised()
        if len(poses) != len(self.pose_map):
            raise ValueError(
                f"{len(poses)} poses given but {len(self.pose_map)} were weighted"
            )
        for pose, weights in zip(poses, self.pose_map):
            if not isinstance(pose, np.ndarray) or pose.shape != (4, 4):
                raise TypeError("each pose must be a 4x4 numpy array")
            translation = pose[:3, 3].astype(np.float64)
            new_position = np.zeros(3, dtype=np.float64)
            rotation = np.zeros((3, 3), dtype=np.float64)
            for entry in weights:
                node = self._nodes[entry.node]
                new_position += entry.weight * (
                    node.rotation @ (translation - node.position)
                    + node.position
                    + node.translation
                )
                rotation += entry.weight * node.rotation
            u, _, vt = np.linalg.svd(rotation @ pose[:3, :3].astype(np.float64))
            pose[:3, 3] = new_position
            pose[:3, :3] = u @ vt

    def _vertex_position(self, vertex_id: int) -> np.ndarray:
        self._require_initialised()
        return compute_vertex_position(
            self.vertex_map[vertex_id], self._nodes, self.source_vertices[vertex_id]
        )

    def apply_graph_to_vertices(self) -> None:
        """Replace every source point by its deformed position."""
        for i in range(len(self.source_vertices)):
            self.source_vertices[i] = self._vertex_position(i)

    def _set_constraint(self, constraint: Constraint) -> None:
        for index, existing in enumerate(self.constraints):
            if existing.vertex_id == constraint.vertex_id:
                self.constraints[index] = constraint
                return
        self.constraints.append(constraint)

    def add_constraint(self, vertex_id: int, target) -> None:
        """Pin a point to a position, replacing any constraint already on it."""
        self._require_initialised()
        self._set_constraint(Constraint.absolute(vertex_id, target))

    def add_relative_constraint(self, vertex_id: int, target_id: int) -> None:
        """Pin a point to another point, replacing any constraint already on it."""
        self._require_initialised()
        self._set_constraint(Constraint.relative_to(vertex_id, target_id))

    def clear_constraints(self) -> None:
        self.constraints.clear()

    def non_relative_constraint_error(self) -> float:
        """Summed distance of absolutely pinned points to their targets, over all constraints.

        Without constraints the result is NaN.
        """
        if not self.constraints:
            return float("nan")
        total = sum(
            float(np.linalg.norm(self._vertex_position(c.vertex_id) - c.target_position))
            for c in self.constraints
            if not c.relative
        )
        return total / len(self.constraints)

    def optimise_graph_sparse(
        self, fern_match: bool, last_deform_time: int
    ) -> OptimisationResult:
        """Fit the nodes newer than ``last_deform_time`` to the constraints.

        With ``fern_match`` a map that already fits closely is left alone.
        """
        self._require_initialised()

        with get_stopwatch().measure("opt"):
            mean_cons_err = self.non_relative_constraint_error()
            if fern_match and mean_cons_err < 0.06:
                return OptimisationResult(False, None, mean_cons_err)

            k = self.k
            max_rows = (ROT_ROWS + REG_ROWS * k) * len(self._nodes) + CON_ROWS * len(
                self.constraints
            )
            num_cols = 0
            back_set = len(self._nodes) * NUM_VARIABLES
            for node, time in zip(self._nodes, self._graph_times):
                node.enabled = time > last_deform_time
                if node.enabled:
                    num_cols += NUM_VARIABLES
                    back_set -= NUM_VARIABLES

            def residual_now() -> np.ndarray:
                return sparse_residual(
                    self._nodes,
                    self.constraints,
                    self.vertex_map,
                    self.source_vertices,
                    max_rows,
                    self.w_reg,
                    self.w_con,
                )

            def jacobian_for(rows: int):
                return sparse_jacobian(
                    self._nodes,
                    self.constraints,
                    self.vertex_map,
                    self.source_vertices,
                    rows,
                    num_cols,
                    back_set,
                    k,
                    self.w_reg,
                    self.w_con,
                )

            residual = residual_now()
            error = float(residual @ residual)

            if num_cols > 0:
                jacobian = jacobian_for(residual.size)
                last_error = error
                iteration = 0
                while iteration < MAX_ITERATIONS:
                    iteration += 1
                    delta = self._cholesky.solve(jacobian, -residual, iteration == 1)
                    apply_delta(self._nodes, delta)

                    residual = residual_now()
                    error = float(residual @ residual)
                    error_diff = error - last_error

                    if (
                        error > last_error
                        or float(np.linalg.norm(delta)) < 1e-2
                        or error < 1e-3
                        or abs(error_diff) < 1e-5 * error
                        or (iteration == 1 and fern_match and error > 10.0)
                    ):
                        break

                    last_error = error
                    jacobian = jacobian_for(residual.size)

                self._cholesky.free_factor()

            mean_cons_err = self.non_relative_constraint_error()

        return OptimisationResult(True, error, mean_cons_err)

    def reset_graph(self) -> None:
        """Return every node to the undeformed state."""
        for node in self._nodes:
            node.rotation = np.eye(3, dtype=np.float64)
            node.translation = np.zeros(3, dtype=np.float64)