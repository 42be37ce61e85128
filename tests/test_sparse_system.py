import copy

import numpy as np
import pytest

from surfelmap.graph import (
    Constraint,
    GraphNode,
    connect_sequential,
    weight_position,
)
from surfelmap.sparse_system import (
    apply_delta,
    constraint_influences,
    sparse_jacobian,
    sparse_residual,
)

K = 2
W_REG = 10.0
W_CON = 100.0

POSITIONS = [
    [0.0, 0.0, 0.0],
    [1.0, 0.2, 0.0],
    [2.0, -0.1, 0.3],
    [3.0, 0.1, -0.2],
    [4.0, 0.3, 0.1],
    [5.0, -0.2, 0.2],
]
TIMES = [0, 10, 20, 30, 40, 50]
SOURCE = [
    np.array([0.5, 0.1, 0.05]),
    np.array([1.4, 0.0, 0.1]),
    np.array([2.6, 0.1, 0.1]),
    np.array([3.5, 0.0, 0.0]),
    np.array([4.6, 0.1, 0.1]),
]
SOURCE_TIMES = [5, 15, 28, 35, 47]


def build(disabled=1):
    nodes = [GraphNode(i, position=p) for i, p in enumerate(POSITIONS)]
    connect_sequential(nodes, K)
    vertex_map = [
        weight_position(TIMES, POSITIONS, nodes, v, t, K)
        for v, t in zip(SOURCE, SOURCE_TIMES)
    ]
    for node in nodes[:disabled]:
        node.enabled = False
    return nodes, vertex_map


def constraints_all():
    return [
        Constraint.absolute(0, [0.6, 0.2, 0.0]),
        Constraint.relative_to(2, 3),
        Constraint.absolute(4, [4.5, 0.3, 0.2]),
    ]


def max_rows(graph, constraints):
    return (6 + 3 * K) * len(graph) + 3 * len(constraints)


def residual_of(graph, constraints, vertex_map):
    return sparse_residual(
        graph, constraints, vertex_map, SOURCE, max_rows(graph, constraints), W_REG, W_CON
    )


def jacobian_of(graph, constraints, vertex_map, rows):
    enabled = sum(node.enabled for node in graph)
    num_cols = 12 * enabled
    back_set = 12 * (len(graph) - enabled)
    return sparse_jacobian(
        graph, constraints, vertex_map, SOURCE, rows, num_cols, back_set, K, W_REG, W_CON
    )


def numeric_jacobian(graph, constraints, vertex_map, num_cols, h=1e-4):
    columns = []
    for i in range(num_cols):
        step = np.zeros(num_cols)
        step[i] = h
        plus = copy.deepcopy(graph)
        apply_delta(plus, step)
        minus = copy.deepcopy(graph)
        apply_delta(minus, -step)
        columns.append(
            (residual_of(plus, constraints, vertex_map) - residual_of(minus, constraints, vertex_map))
            / (2 * h)
        )
    return np.column_stack(columns)


def test_apply_delta_fills_rotation_column_by_column():
    graph, _ = build(disabled=1)
    enabled = sum(node.enabled for node in graph)
    delta = np.zeros(12 * enabled)
    delta[:12] = np.arange(12)
    delta[12:24] = 1.0
    apply_delta(graph, delta)
    first = graph[1]
    assert first.rotation[1, 0] == 1.0
    assert first.rotation[0, 1] == 3.0
    assert first.rotation[0, 0] == 1.0
    np.testing.assert_array_equal(first.translation, [9.0, 10.0, 11.0])
    np.testing.assert_array_equal(graph[2].translation, [1.0, 1.0, 1.0])
    np.testing.assert_array_equal(graph[0].rotation, np.eye(3))
    np.testing.assert_array_equal(graph[0].translation, np.zeros(3))


def test_apply_delta_rejects_short_step():
    graph, _ = build(disabled=0)
    with pytest.raises(ValueError):
        apply_delta(graph, np.zeros(12))


def test_residual_is_zero_for_undeformed_graph_without_constraints():
    graph, vertex_map = build()
    residual = residual_of(graph, [], vertex_map)
    assert residual.size > 0
    np.testing.assert_allclose(residual, 0.0, atol=1e-12)


def test_residual_absolute_constraint_tail():
    graph, vertex_map = build()
    target = np.array([0.6, 0.2, 0.0])
    residual = residual_of(graph, [Constraint.absolute(0, target)], vertex_map)
    np.testing.assert_allclose(residual[-3:], (SOURCE[0] - target) * np.sqrt(W_CON))


def test_residual_rejects_too_many_rows():
    graph, vertex_map = build()
    with pytest.raises(ValueError):
        sparse_residual(graph, [], vertex_map, SOURCE, 3, W_REG, W_CON)


def test_translation_shows_in_regularisation_residual():
    graph, vertex_map = build()
    graph[3].translation = np.array([0.0, 0.5, 0.0])
    residual = residual_of(graph, [], vertex_map)
    assert np.abs(residual).max() > 0.1


def test_constraint_influences_depends_on_enabled_nodes():
    graph, vertex_map = build(disabled=len(POSITIONS))
    constraint = Constraint.absolute(1, [0.0, 0.0, 0.0])
    assert constraint_influences(constraint, vertex_map, graph) is False
    graph[vertex_map[1][0].node].enabled = True
    assert constraint_influences(constraint, vertex_map, graph) is True


def test_relative_constraint_influences_through_target():
    graph, vertex_map = build(disabled=0)
    for node in graph:
        node.enabled = False
    graph[vertex_map[4][0].node].enabled = True
    for entry in vertex_map[0]:
        graph[entry.node].enabled = False
    constraint = Constraint.relative_to(0, 4)
    assert constraint_influences(constraint, vertex_map, graph) is True
    absolute = Constraint.absolute(0, [0.0, 0.0, 0.0])
    assert constraint_influences(absolute, vertex_map, graph) is False


def test_constraint_without_enabled_nodes_adds_no_rows():
    graph, vertex_map = build(disabled=0)
    without = residual_of(graph, [], vertex_map)
    for entry in vertex_map[0]:
        graph[entry.node].enabled = False
    constraint = Constraint.absolute(0, [9.0, 9.0, 9.0])
    if not constraint_influences(constraint, vertex_map, graph):
        with_constraint = residual_of(graph, [constraint], vertex_map)
        assert with_constraint.size == residual_of(graph, [], vertex_map).size
    assert without.size > 0


@pytest.mark.parametrize("disabled", [0, 1, 2])
def test_jacobian_matches_finite_differences(disabled):
    graph, vertex_map = build(disabled=disabled)
    rng = np.random.default_rng(7)
    enabled = sum(node.enabled for node in graph)
    apply_delta(graph, rng.normal(scale=0.1, size=12 * enabled))
    constraints = constraints_all()
    residual = residual_of(graph, constraints, vertex_map)
    jacobian = jacobian_of(graph, constraints, vertex_map, residual.size)
    analytic = jacobian.to_csr().toarray()
    assert analytic.shape == (residual.size, 12 * enabled)
    numeric = numeric_jacobian(graph, constraints, vertex_map, 12 * enabled)
    np.testing.assert_allclose(analytic, numeric, atol=1e-6)


def test_relative_constraint_marks_target_weights():
    graph, vertex_map = build()
    constraints = [Constraint.relative_to(2, 3)]
    residual = residual_of(graph, constraints, vertex_map)
    assert not any(entry.relative for entry in vertex_map[3])
    jacobian_of(graph, constraints, vertex_map, residual.size)
    assert all(entry.relative for entry in vertex_map[3])
    assert not any(entry.relative for entry in vertex_map[2])


def test_jacobian_rejects_wrong_row_count():
    graph, vertex_map = build()
    residual = residual_of(graph, [], vertex_map)
    with pytest.raises(ValueError):
        jacobian_of(graph, [], vertex_map, residual.size + 1)


def test_jacobian_rotation_rows_at_identity():
    graph, vertex_map = build(disabled=0)
    residual = residual_of(graph, [], vertex_map)
    dense = jacobian_of(graph, [], vertex_map, residual.size).to_csr().toarray()
    # Diagonal rows of the first node: 2 on the matching rotation entry.
    assert dense[3, 0] == 2.0
    assert dense[4, 4] == 2.0
    assert dense[5, 8] == 2.0
    # Orthogonality of the first two columns couples entries (0,0) and (1,1).
    assert dense[0, 4] == 1.0
    assert dense[0, 0] == 0.0