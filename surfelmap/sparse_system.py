"""Residual and sparse Jacobian of the deformation graph's least-squares problem."""

from __future__ import annotations

from collections.abc import Sequence
from math import sqrt

import numpy as np

from .graph import (
    Constraint,
    GraphNode,
    VertexWeightMap,
    compute_vertex_position,
    sort_by_node_id,
)
from .jacobian import Jacobian, OrderedJacobianRow

NUM_VARIABLES = 12
"""Unknowns per enabled node: nine rotation entries, then three translation entries."""

ROT_ROWS = 6
REG_ROWS = 3
CON_ROWS = 3

_ROT_PAIRS = ((0, 1), (0, 2), (1, 2))


def constraint_influences(
    constraint: Constraint,
    vertex_map: Sequence[Sequence[VertexWeightMap]],
    graph: Sequence[GraphNode],
) -> bool:
    """Whether any enabled node moves the constrained point (or its relative target)."""
    if any(graph[entry.node].enabled for entry in vertex_map[constraint.vertex_id]):
        return True
    if constraint.relative:
        return any(
            graph[entry.node].enabled for entry in vertex_map[constraint.target_id]
        )
    return False


def _moved(vertex_id: int, vertex_map, graph, source_vertices) -> np.ndarray:
    return compute_vertex_position(
        vertex_map[vertex_id], graph, source_vertices[vertex_id]
    )


def sparse_residual(
    graph: Sequence[GraphNode],
    constraints: Sequence[Constraint],
    vertex_map: Sequence[Sequence[VertexWeightMap]],
    source_vertices: Sequence,
    max_rows: int,
    w_reg: float,
    w_con: float,
) -> np.ndarray:
    """Rotation, regularisation and constraint residuals stacked in that order."""
    blocks: list[np.ndarray] = []

    for node in graph:
        if node.enabled:
            c0, c1, c2 = node.rotation[:, 0], node.rotation[:, 1], node.rotation[:, 2]
            blocks.append(
                np.array(
                    [
                        c0 @ c1,
                        c0 @ c2,
                        c1 @ c2,
                        c0 @ c0 - 1.0,
                        c1 @ c1 - 1.0,
                        c2 @ c2 - 1.0,
                    ]
                )
            )

    reg_scale = sqrt(w_reg)
    for node in graph:
        for neighbour_index in node.neighbours:
            other = graph[neighbour_index]
            if other.enabled or node.enabled:
                blocks.append(
                    (
                        node.rotation @ (other.position - node.position)
                        + node.position
                        + node.translation
                        - (other.position + other.translation)
                    )
                    * reg_scale
                )

    con_scale = sqrt(w_con)
    for constraint in constraints:
        if not constraint_influences(constraint, vertex_map, graph):
            continue
        source = _moved(constraint.vertex_id, vertex_map, graph, source_vertices)
        if constraint.relative:
            target = _moved(constraint.target_id, vertex_map, graph, source_vertices)
        else:
            target = constraint.target_position
        blocks.append((source - target) * con_scale)

    residual = np.concatenate(blocks) if blocks else np.zeros(0, dtype=np.float64)
    if residual.size > max_rows:
        raise ValueError(
            f"the residual has {residual.size} rows, more than the {max_rows} allowed"
        )
    return residual


def _affine_block(rows, offset, delta, weight, scale, accumulate) -> None:
    """Fill the three rows of a point term for one node starting at column ``offset``."""
    for axis, row in enumerate(rows):
        entries = (
            (offset + axis, delta[0]),
            (offset + 3 + axis, delta[1]),
            (offset + 6 + axis, delta[2]),
            (offset + 9 + axis, weight),
        )
        for column, value in entries:
            if accumulate:
                row.add_to(column, value, scale)
            else:
                row.append(column, value * scale)


def sparse_jacobian(
    graph: Sequence[GraphNode],
    constraints: Sequence[Constraint],
    vertex_map: Sequence[list[VertexWeightMap]],
    source_vertices: Sequence,
    num_rows: int,
    num_cols: int,
    back_set: int,
    k: int,
    w_reg: float,
    w_con: float,
) -> Jacobian:
    """The Jacobian of :func:`sparse_residual` with respect to the enabled nodes.

    Relative constraints mark the weights of their target point as relative.
    """
    rows: list[OrderedJacobianRow] = []

    for node in graph:
        if not node.enabled:
            continue
        offset = node.id * NUM_VARIABLES - back_set
        rotation = node.rotation
        for a, b in _ROT_PAIRS:
            row = OrderedJacobianRow(6)
            for i in range(3):
                row.append(offset + 3 * a + i, rotation[i, b])
            for i in range(3):
                row.append(offset + 3 * b + i, rotation[i, a])
            rows.append(row)
        for a in range(3):
            row = OrderedJacobianRow(3)
            for i in range(3):
                row.append(offset + 3 * a + i, 2.0 * rotation[i, a])
            rows.append(row)

    reg_scale = sqrt(w_reg)
    for node in graph:
        col_offset = node.id * NUM_VARIABLES
        for neighbour_index in node.neighbours:
            other = graph[neighbour_index]
            if not (other.enabled or node.enabled):
                continue
            col_offset_n = other.id * NUM_VARIABLES
            if col_offset == col_offset_n:
                raise ValueError(f"node {node.id} is listed as its own neighbour")
            delta = other.position - node.position
            block = [OrderedJacobianRow(5) for _ in range(REG_ROWS)]
            for axis, row in enumerate(block):
                if col_offset_n < col_offset and other.enabled:
                    row.append(col_offset_n + 9 + axis - back_set, -reg_scale)
                if node.enabled:
                    base = col_offset + axis - back_set
                    row.append(base, delta[0] * reg_scale)
                    row.append(base + 3, delta[1] * reg_scale)
                    row.append(base + 6, delta[2] * reg_scale)
                    row.append(base + 9, reg_scale)
                if col_offset_n > col_offset and other.enabled:
                    row.append(col_offset_n + 9 + axis - back_set, -reg_scale)
            rows.extend(block)

    con_scale = sqrt(w_con)
    for constraint in constraints:
        if not constraint_influences(constraint, vertex_map, graph):
            continue
        weights = vertex_map[constraint.vertex_id]
        source_position = np.asarray(
            source_vertices[constraint.vertex_id], dtype=np.float64
        ).reshape(3)
        block = [OrderedJacobianRow(4 * k * 2) for _ in range(CON_ROWS)]

        if len(weights) >= 2 and not graph[weights[0].node].id < graph[weights[1].node].id:
            raise ValueError(
                f"the weights of point {constraint.vertex_id} are not sorted by node id"
            )

        if constraint.relative:
            target_position = np.asarray(
                source_vertices[constraint.target_id], dtype=np.float64
            ).reshape(3)
            target_weights = vertex_map[constraint.target_id]
            for entry in target_weights:
                entry.relative = True

            mixed = sort_by_node_id(list(weights) + list(target_weights), graph)
            seen: set[int] = set()
            for entry in mixed:
                node = graph[entry.node]
                if not node.enabled:
                    continue
                offset = node.id * NUM_VARIABLES - back_set
                if entry.relative:
                    delta = (node.position - target_position) * entry.weight
                    weight = -entry.weight
                else:
                    delta = (source_position - node.position) * entry.weight
                    weight = entry.weight
                _affine_block(block, offset, delta, weight, con_scale, node.id in seen)
                seen.add(node.id)
        else:
            for entry in weights:
                node = graph[entry.node]
                if not node.enabled:
                    continue
                offset = node.id * NUM_VARIABLES - back_set
                delta = (source_position - node.position) * entry.weight
                _affine_block(block, offset, delta, entry.weight, con_scale, False)

        rows.extend(block)

    if len(rows) != num_rows:
        raise ValueError(
            f"the Jacobian has {len(rows)} rows but {num_rows} were expected"
        )

    jacobian = Jacobian()
    jacobian.assign(rows, num_cols)
    return jacobian


def apply_delta(graph: Sequence[GraphNode], delta) -> None:
    """Add a step to the enabled nodes: rotation entries column by column, then translation."""
    step = np.asarray(delta, dtype=np.float64).reshape(-1)
    enabled = [node for node in graph if node.enabled]
    needed = len(enabled) * NUM_VARIABLES
    if step.size < needed:
        raise ValueError(f"the step has {step.size} entries, {needed} are needed")
    for index, node in enumerate(enabled):
        z = index * NUM_VARIABLES
        node.rotation = node.rotation + step[z : z + 9].reshape(3, 3, order="F")
        node.translation = node.translation + step[z + 9 : z + 12]