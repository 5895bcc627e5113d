"""Tests for the global scale refinement."""

import numpy as np
import pytest


def two_plane_graph(make_region_vertex, anchors, depth1=10.0, depth2=20.0):
    """
    Region CCs on the planes x = depth1 and y = depth2 joined by one edge.
    """
    from scenerec.graph.hypotheses import PlaneHypothesis
    from scenerec.graph.mixed_graph import EdgeKind, MixedGraph, MixedGraphEdge

    graph = MixedGraph(np.eye(3), 10.0)
    v1 = graph.add_vertex(make_region_vertex(0, [1, 0, 0], PlaneHypothesis(vp_class=0, depth=depth1)))
    v2 = graph.add_vertex(make_region_vertex(1, [0, 1, 0], PlaneHypothesis(vp_class=1, depth=depth2)))
    if anchors is not None:
        graph.add_edge(v1, v2, MixedGraphEdge(EdgeKind.REGION_REGION, anchors, relation=None))
    for vertex in graph.vertices:
        vertex.determined = True
    return graph


def ratio_anchors(c=4.0):
    """Five rays with a_y / a_x == c."""
    return [[1.0, c, z] for z in (-1.0, -0.5, 0.0, 0.5, 1.0)]


class TestSampleAnchors:
    """Tests for uniform anchor subsampling."""

    def indices(self, n, limit):
        from scenerec.graph.refine import sample_anchors

        anchors = np.arange(n * 3, dtype=float).reshape(n, 3)
        return (sample_anchors(anchors, limit)[:, 0] // 3).astype(int).tolist()

    def test_keeps_all_under_limit(self):
        assert self.indices(4, 5) == [0, 1, 2, 3]
        assert self.indices(7, None) == list(range(7))

    def test_single_takes_middle(self):
        assert self.indices(10, 1) == [5]

    def test_two_takes_ends(self):
        assert self.indices(10, 2) == [0, 9]

    def test_stride(self):
        assert self.indices(10, 3) == [0, 4, 8]
        assert self.indices(10, 4) == [0, 3, 6, 9]

    def test_last_appended_when_one_short(self):
        assert self.indices(9, 4) == [0, 3, 6, 8]
        assert self.indices(5, 4) == [0, 2, 4]


class TestScaleSystem:
    """Tests for system assembly."""

    def test_shape_and_weights(self, make_region_vertex):
        from scenerec.graph.refine import build_scale_system

        graph = two_plane_graph(make_region_vertex, ratio_anchors())

        A, W, b = build_scale_system(graph, max_anchors_per_edge=None)
        assert A.shape == (6, 2)
        np.testing.assert_allclose(W.diagonal(), np.ones(6))

        A, W, b = build_scale_system(graph, max_anchors_per_edge=2)
        assert A.shape == (3, 2)
        np.testing.assert_allclose(W.diagonal(), [1.0, 2.5, 2.5])
        np.testing.assert_allclose(b, [1.0, 0.0, 0.0])

    def test_row_weight_clamped(self, make_region_vertex):
        from scenerec.graph.refine import build_scale_system

        anchors = [[1.0, 4.0, z] for z in np.linspace(-1, 1, 20)]
        graph = two_plane_graph(make_region_vertex, anchors)

        _, W, _ = build_scale_system(graph, max_anchors_per_edge=2)
        np.testing.assert_allclose(W.diagonal(), [1.0, 5.0, 5.0])


class TestOptimizeDepths:
    """Tests for solving and applying the scale correction."""

    def test_scale_pin(self, make_region_vertex):
        from scenerec.graph.refine import optimize_depths

        graph = two_plane_graph(make_region_vertex, ratio_anchors(c=3.0))
        outcome = optimize_depths(graph)

        assert outcome.raw_factors[0] == 1.0
        assert outcome.applied_factors.mean() == pytest.approx(1.0)

    def test_scale_reconciliation(self, make_region_vertex):
        """Test that inconsistent depths are reconciled by the known ratio."""
        from scenerec.graph.refine import optimize_depths

        c = 4.0
        k = c / 2.0
        graph = two_plane_graph(make_region_vertex, ratio_anchors(c))
        outcome = optimize_depths(graph, max_anchors_per_edge=None)

        raw = outcome.raw_factors
        assert raw[0] / raw[1] == pytest.approx(1.0 / k)
        assert outcome.residual == pytest.approx(0.0, abs=1e-9)

        applied = outcome.applied_factors
        np.testing.assert_allclose(applied, [2.0 / 3.0, 4.0 / 3.0])
        assert graph.vertices[0].current_value.depth == pytest.approx(10.0 * 2.0 / 3.0)
        assert graph.vertices[1].current_value.depth == pytest.approx(20.0 * 4.0 / 3.0)
        assert graph.vertices[1].correction == pytest.approx(4.0 / 3.0)

    def test_reconciled_planes_agree_on_anchors(self, make_region_vertex):
        from scenerec.geometry import intersect_ray_plane
        from scenerec.graph.refine import optimize_depths

        graph = two_plane_graph(make_region_vertex, ratio_anchors(c=4.0))
        optimize_depths(graph, max_anchors_per_edge=None)

        for anchor in ratio_anchors(c=4.0):
            p1 = intersect_ray_plane(anchor, graph.vertices[0].current_value.plane(graph.vanishing_points))
            p2 = intersect_ray_plane(anchor, graph.vertices[1].current_value.plane(graph.vanishing_points))
            np.testing.assert_allclose(p1, p2)

    def test_line_depth_factor_scaled(self, make_region_vertex):
        from scenerec.graph.hypotheses import PlaneHypothesis
        from scenerec.graph.mixed_graph import EdgeKind, MixedGraph, MixedGraphEdge, _line_cc_vertex
        from scenerec.graph.refine import optimize_depths
        from scenerec.models import LineIndex

        # plane y = 2 and a unit-scale line at y = 1: the line must double
        graph = MixedGraph(np.eye(3), 1.0)
        region = graph.add_vertex(make_region_vertex(0, [0, 1, 0], PlaneHypothesis(vp_class=1, depth=2.0)))
        line = graph.add_vertex(_line_cc_vertex(0, [LineIndex(view_id=0, handle=0)]))
        edge = MixedGraphEdge(
            EdgeKind.REGION_LINE, [[-0.5, 1.0, 0.0], [0.5, 1.0, 0.0]], relation=None,
            line_segment=(np.array([-1.0, 1.0, 0.0]), np.array([1.0, 1.0, 0.0])),
        )
        graph.add_edge(region, line, edge)

        outcome = optimize_depths(graph, max_anchors_per_edge=None)

        assert outcome.raw_factors[1] == pytest.approx(2.0)
        depth = graph.vertices[region].current_value.depth
        factor = graph.vertices[line].current_value.depth_factor
        assert factor == pytest.approx(depth)

    def test_singular_system_leaves_commitments(self, make_region_vertex):
        """Test that a failed solve raises and changes nothing."""
        from scenerec.errors import RefinementError
        from scenerec.graph.refine import optimize_depths

        graph = two_plane_graph(make_region_vertex, None)
        graph.subgraph_id = 4

        with pytest.raises(RefinementError) as excinfo:
            optimize_depths(graph)

        assert excinfo.value.subgraph_id == 4
        assert graph.vertices[0].current_value.depth == 10.0
        assert graph.vertices[1].current_value.depth == 20.0
        assert [v.correction for v in graph.vertices] == [1.0, 1.0]

    def test_non_finite_depth_fails(self, make_region_vertex):
        from scenerec.errors import RefinementError
        from scenerec.graph.refine import optimize_depths

        # parallel to the plane x = 10
        graph = two_plane_graph(make_region_vertex, [[0.0, 1.0, 0.0]])

        with pytest.raises(RefinementError):
            optimize_depths(graph)
