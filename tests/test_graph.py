import numpy as np
import pytest

from surfelmap.graph import (
    LOOK_BACK,
    Constraint,
    GraphNode,
    VertexWeightMap,
    compute_vertex_position,
    connect_sequential,
    nearest_time_index,
    sort_by_node_id,
    weight_position,
)


def _line_nodes(count):
    return [GraphNode(i, position=[float(i), 0.0, 0.0]) for i in range(count)]


def test_graph_node_defaults():
    node = GraphNode(3)
    assert node.id == 3
    assert np.array_equal(node.rotation, np.eye(3))
    assert np.array_equal(node.translation, np.zeros(3))
    assert node.neighbours == []
    assert node.enabled is True


def test_constraint_absolute():
    c = Constraint.absolute(5, [1.0, 2.0, 3.0])
    assert c.vertex_id == 5
    assert c.relative is False
    assert c.target_id == -1
    assert np.array_equal(c.target_position, [1.0, 2.0, 3.0])


def test_constraint_relative():
    c = Constraint.relative_to(2, 7)
    assert c.relative is True
    assert c.target_id == 7
    assert np.array_equal(c.target_position, np.zeros(3))


def test_sort_by_node_id_orders_and_is_stable():
    graph = _line_nodes(5)
    weights = [
        VertexWeightMap(0.1, 3),
        VertexWeightMap(0.2, 1),
        VertexWeightMap(0.3, 3),
        VertexWeightMap(0.4, 0),
    ]
    result = sort_by_node_id(weights, graph)
    assert [w.node for w in result] == [0, 1, 3, 3]
    assert [w.weight for w in result if w.node == 3] == [0.1, 0.3]


@pytest.mark.parametrize("k", [2, 4, 6])
def test_connect_sequential_invariants(k):
    nodes = _line_nodes(12)
    connect_sequential(nodes, k)
    for node in nodes:
        assert len(node.neighbours) == k
        assert node.id not in node.neighbours
        assert all(0 <= n < len(nodes) for n in node.neighbours)
        assert len(set(node.neighbours)) == k


def test_connect_sequential_ends_and_middle():
    k = 4
    nodes = _line_nodes(10)
    connect_sequential(nodes, k)
    assert nodes[0].neighbours == list(range(1, k + 1))
    assert nodes[9].neighbours == list(range(10 - (k + 1), 9))
    middle = nodes[5].neighbours
    assert sorted(middle) == [3, 4, 6, 7]
    assert middle[:2] == [4, 6]


def test_connect_sequential_too_few_nodes():
    with pytest.raises(ValueError):
        connect_sequential(_line_nodes(3), 4)


@pytest.mark.parametrize("time", [0, 3, 10, 12, 15, 18, 20, 27, 40, 100])
def test_nearest_time_index_is_nearest(time):
    times = [0, 10, 20, 30, 40]
    index = nearest_time_index(times, time)
    assert abs(times[index] - time) == min(abs(t - time) for t in times)


def test_nearest_time_index_exact_and_bounds():
    times = [5, 10, 20, 30]
    assert nearest_time_index(times, 20) == 2
    assert nearest_time_index(times, 0) == 0
    assert nearest_time_index(times, 1000) == len(times) - 1


def test_nearest_time_index_empty():
    with pytest.raises(ValueError):
        nearest_time_index([], 4)


def test_weight_position_invariants():
    k = 4
    nodes = _line_nodes(30)
    cloud = [n.position for n in nodes]
    times = list(range(0, 300, 10))
    weights = weight_position(times, cloud, nodes, [12.3, 0.5, 0.0], 120, k)
    assert len(weights) == k
    assert sum(w.weight for w in weights) == pytest.approx(1.0)
    assert all(w.weight >= 0 for w in weights)
    ids = [nodes[w.node].id for w in weights]
    assert ids == sorted(ids)
    assert len(set(ids)) == k


def test_weight_position_favours_coincident_node():
    k = 3
    nodes = _line_nodes(10)
    cloud = [n.position for n in nodes]
    times = list(range(10))
    weights = weight_position(times, cloud, nodes, [4.0, 0.0, 0.0], 4, k)
    best = max(weights, key=lambda w: w.weight)
    assert best.node == 4


def test_weight_position_candidates_limited_to_look_back():
    k = 2
    count = LOOK_BACK + 15
    nodes = _line_nodes(count)
    cloud = [n.position for n in nodes]
    times = list(range(count))
    # The point sits at the far end in space but at the start in time.
    weights = weight_position(times, cloud, nodes, [float(count), 0.0, 0.0], 0, k)
    assert all(w.node < LOOK_BACK for w in weights)


def test_weight_position_needs_enough_nodes():
    nodes = _line_nodes(3)
    cloud = [n.position for n in nodes]
    with pytest.raises(ValueError):
        weight_position([0, 1, 2], cloud, nodes, [0.5, 0.0, 0.0], 1, 3)


def test_compute_vertex_position_identity():
    graph = _line_nodes(3)
    weights = [VertexWeightMap(0.5, 0), VertexWeightMap(0.3, 1), VertexWeightMap(0.2, 2)]
    result = compute_vertex_position(weights, graph, [1.5, 2.0, -1.0])
    assert np.allclose(result, [1.5, 2.0, -1.0])


def test_compute_vertex_position_translation():
    graph = _line_nodes(2)
    shift = np.array([0.5, -1.0, 2.0])
    for node in graph:
        node.translation = shift.copy()
    weights = [VertexWeightMap(0.6, 0), VertexWeightMap(0.4, 1)]
    source = np.array([0.2, 0.3, 0.4])
    assert np.allclose(compute_vertex_position(weights, graph, source), source + shift)


def test_compute_vertex_position_rotation_about_node():
    node = GraphNode(0, position=[1.0, 0.0, 0.0])
    node.rotation = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    result = compute_vertex_position([VertexWeightMap(1.0, 0)], [node], [2.0, 0.0, 0.0])
    assert np.allclose(result, [1.0, 1.0, 0.0])