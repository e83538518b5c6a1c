import math

import pytest

from app.graph.network import (
    erase_section,
    find_connection,
    find_tank_entry,
    nearest_pipeline_point,
    pipeline_segments,
    pipelines_adjacent,
    usable_nodes,
)
from app.services.models import GeoPoint, Pipeline

from tests.conftest import make_pipeline

MAIN = make_pipeline(1, [(17.0, 78.0), (17.001, 78.0), (17.002, 78.0)])


def test_segments_follow_node_order():
    segments = pipeline_segments(MAIN)
    assert [i for i, _, _ in segments] == [0, 1]
    assert segments[1][1] == GeoPoint(lat=17.001, lng=78.0)


def test_malformed_pipelines_are_inert():
    single = make_pipeline(2, [(17.0, 78.0)])
    broken = make_pipeline(3, [(17.0, 78.0), (math.nan, 78.0)])
    assert usable_nodes(single) == []
    assert usable_nodes(broken) == []
    assert len(pipeline_segments(broken)) == 0


def test_tank_entry_prefers_nodes_then_segments():
    near_node = GeoPoint(lat=17.00101, lng=78.0)
    assert find_tank_entry(near_node, MAIN.nodes, 50) == 1

    # a ~33 m del eje pero a >50 m de cualquier nodo
    beside_segment = GeoPoint(lat=17.0005, lng=78.0003)
    assert find_tank_entry(beside_segment, MAIN.nodes, 50) == 0

    far = GeoPoint(lat=17.01, lng=78.01)
    assert find_tank_entry(far, MAIN.nodes, 50) is None


def test_connection_through_shared_node():
    branch = make_pipeline(2, [(17.002, 78.0), (17.002, 78.002)])
    assert find_connection(MAIN.nodes, branch.nodes, 50) == 0
    assert find_connection(branch.nodes, MAIN.nodes, 50) == 2


def test_connection_through_node_near_segment():
    # la rama arranca junto al tramo 1, lejos de sus nodos
    branch = make_pipeline(2, [(17.0015, 78.0001), (17.0015, 78.002)])
    assert find_connection(branch.nodes, MAIN.nodes, 50) == 1
    assert find_connection(MAIN.nodes, branch.nodes, 50) == 0


def test_adjacency_is_symmetric():
    pipelines = [
        MAIN,
        make_pipeline(2, [(17.002, 78.0), (17.002, 78.002)]),
        make_pipeline(3, [(17.0015, 78.0001), (17.0015, 78.002)]),
        make_pipeline(4, [(17.1, 78.1), (17.1, 78.2)]),
        make_pipeline(5, [(17.0, 78.0)]),
    ]
    for a in pipelines:
        for b in pipelines:
            assert pipelines_adjacent(a, b, 50) == pipelines_adjacent(b, a, 50)

    assert pipelines_adjacent(pipelines[0], pipelines[2], 50)
    assert not pipelines_adjacent(pipelines[0], pipelines[3], 50)


def test_crossing_without_nearby_points_is_not_adjacent():
    cross = make_pipeline(2, [(17.001, 77.99), (17.001, 78.01)])
    # los nodos de cross están lejos, pero el nodo 1 de MAIN cae sobre cross
    assert pipelines_adjacent(MAIN, cross, 50)

    far_cross = make_pipeline(3, [(17.0005, 77.99), (17.0005, 78.01)])
    long_main = make_pipeline(4, [(16.99, 78.0), (17.01, 78.0)])
    assert not pipelines_adjacent(long_main, far_cross, 50)


def test_erase_section_keeps_both_ends():
    nodes = [GeoPoint(lat=17.0 + i * 0.001, lng=78.0) for i in range(5)]
    assert erase_section(nodes, 3, 1) == [nodes[0], nodes[1], nodes[3], nodes[4]]
    assert erase_section(nodes, 0, 4) == [nodes[0], nodes[4]]
    assert erase_section(nodes, 2, 2) == nodes


def test_erase_section_rejects_bad_input():
    nodes = [GeoPoint(lat=17.0, lng=78.0), GeoPoint(lat=17.001, lng=78.0)]
    with pytest.raises(ValueError):
        erase_section(nodes, 0, 5)
    with pytest.raises(ValueError):
        erase_section(nodes[:1], 0, 0)


def test_nearest_pipeline_point_snaps_to_closest_segment():
    other = make_pipeline(2, [(17.0, 78.01), (17.002, 78.01)])
    result = nearest_pipeline_point(GeoPoint(lat=17.0015, lng=78.0002), [other, MAIN])
    assert result.pipeline_id == 1
    assert result.segment_index == 1
    assert result.snap_point.lat == pytest.approx(17.0015)
    assert result.snap_point.lng == pytest.approx(78.0)
    assert result.distance_m == pytest.approx(21.3, abs=0.5)


def test_nearest_pipeline_point_without_pipelines():
    assert nearest_pipeline_point(GeoPoint(lat=17.0, lng=78.0), []) is None
    assert nearest_pipeline_point(GeoPoint(lat=17.0, lng=78.0), [Pipeline(id=1)]) is None
