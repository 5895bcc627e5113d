"""Tests for post-run validation rules."""

import numpy as np


def check_by_id(report, rule_id):
    return next(c for c in report.checks if c.rule_id == rule_id)


class TestValidationRules:
    """Tests for the individual checks."""

    def test_undetermined_vertex_is_error(self, make_region_vertex):
        from scenerec.graph.mixed_graph import MixedGraph
        from scenerec.models import Severity, SubgraphReport
        from scenerec.validate.rules import run_validation

        graph = MixedGraph(np.eye(3), 1.0)
        graph.add_vertex(make_region_vertex(0, [0, 1, 0]))

        report = run_validation([graph], [SubgraphReport(subgraph_id=0)], 1.0)
        check = check_by_id(report, "full_coverage")

        assert not check.passed
        assert check.severity == Severity.ERROR
        assert check.evidence["vertices"] == ["region:0"]
        assert report.has_errors

    def test_non_finite_anchor_is_error(self):
        from scenerec.models import SubgraphReport
        from scenerec.validate.rules import run_validation

        report = run_validation([], [SubgraphReport(subgraph_id=3, non_finite_anchors=2)], 1.0)

        assert not check_by_id(report, "edge_resolution").passed
        assert report.error_count == 1

    def test_anchor_offset_is_warning(self):
        from scenerec.models import SubgraphReport
        from scenerec.validate.rules import run_validation

        reports = [
            SubgraphReport(subgraph_id=0, max_anchor_offset=1e-9),
            SubgraphReport(subgraph_id=1, max_anchor_offset=1e-3),
        ]
        report = run_validation([], reports, 2.0)
        check = check_by_id(report, "anchor_on_geometry")

        assert not check.passed
        assert list(check.evidence["max_offset_by_subgraph"]) == [1]
        assert not report.has_errors
        assert report.warning_count == 1

    def test_refinement_failure_listed(self):
        from scenerec.models import SubgraphReport
        from scenerec.validate.rules import run_validation

        reports = [SubgraphReport(subgraph_id=0, refinement_error="singular")]
        check = check_by_id(run_validation([], reports, 1.0), "refinement_failures")

        assert not check.passed
        assert check.evidence["errors"] == {0: "singular"}

    def test_non_positive_correction_flagged(self, make_region_vertex):
        from scenerec.graph.mixed_graph import MixedGraph
        from scenerec.models import SubgraphReport
        from scenerec.validate.rules import run_validation

        graph = MixedGraph(np.eye(3), 1.0)
        graph.add_vertex(make_region_vertex(0, [0, 1, 0]))
        graph.vertices[0].determined = True
        graph.vertices[0].correction = -0.5

        report = run_validation([graph], [SubgraphReport(subgraph_id=0, refined=True, pinned_factor=1.0)], 1.0)
        check = check_by_id(report, "scale_pin")

        assert not check.passed
        assert check.evidence["vertices"] == ["region:0"]
        assert check.evidence["unpinned_subgraphs"] == []
        assert check_by_id(report, "full_coverage").passed

    def test_lost_pin_flagged(self, make_region_vertex):
        """Test that a refined subgraph whose first factor is not 1.0 fails the pin check."""
        from scenerec.graph.mixed_graph import MixedGraph
        from scenerec.models import SubgraphReport
        from scenerec.validate.rules import run_validation

        graph = MixedGraph(np.eye(3), 1.0)
        graph.add_vertex(make_region_vertex(0, [0, 1, 0]))
        graph.vertices[0].determined = True
        graph.vertices[0].correction = 1.0

        pinned = run_validation([graph], [SubgraphReport(subgraph_id=0, refined=True, pinned_factor=1.0)], 1.0)
        assert check_by_id(pinned, "scale_pin").passed

        drifted = run_validation([graph], [SubgraphReport(subgraph_id=0, refined=True, pinned_factor=0.98)], 1.0)
        check = check_by_id(drifted, "scale_pin")
        assert not check.passed
        assert check.evidence["unpinned_subgraphs"] == [0]

    def test_all_checks_reported(self):
        from scenerec.validate.rules import run_validation

        report = run_validation([], [], 1.0)

        assert [c.rule_id for c in report.checks] == [
            "full_coverage",
            "edge_resolution",
            "anchor_on_geometry",
            "scale_pin",
            "refinement_failures",
        ]
        assert all(c.passed for c in report.checks)


class TestMeasureAnchorOffsets:
    """Tests for anchor offset measurement."""

    def test_offsets_against_committed_plane(self, make_region_vertex):
        from scenerec.graph.hypotheses import PlaneHypothesis
        from scenerec.graph.mixed_graph import EdgeKind, MixedGraph, MixedGraphEdge
        from scenerec.validate.rules import measure_anchor_offsets

        graph = MixedGraph(np.eye(3), 1.0)
        a = graph.add_vertex(make_region_vertex(0, [0, 1, 0], PlaneHypothesis(vp_class=1, depth=2.0)))
        b = graph.add_vertex(make_region_vertex(1, [0, 1, 0]))
        edge = MixedGraphEdge(EdgeKind.REGION_REGION, [[0.0, 2.0, 0.0], [1.0, 2.5, 0.0], [np.inf, 0, 0]], None)
        graph.add_edge(a, b, edge)
        edge.determined = True
        edge.resolved_by = a

        max_offset, non_finite = measure_anchor_offsets(graph)

        assert max_offset == 0.5
        assert non_finite == 1
