"""
Validation rules for Scene Rec.

Checks the invariants a finished reconstruction must satisfy: every vertex
and edge determined exactly once, resolved anchors finite and lying on the
geometry that resolved them, and refinement outcomes.
"""

import numpy as np

from scenerec.models import CheckResult, Severity, ValidationReport
from scenerec.tracer import get_tracer, trace


# anchors must sit on their resolving geometry within this fraction of scale
ANCHOR_TOLERANCE_RATIO = 1e-6


def measure_anchor_offsets(graph):
    """
    Largest distance from a resolved anchor to the geometry that resolved it.

    Must be called after spreading and before refinement rescales the
    committed values. Returns (max offset, number of non-finite anchors).
    """
    max_offset = 0.0
    non_finite = 0
    for edge in graph.edges:
        if not edge.determined or edge.resolved_by is None:
            continue
        finite = np.all(np.isfinite(edge.anchors), axis=1)
        non_finite += int(np.count_nonzero(~finite))
        anchors = edge.anchors[finite]
        if len(anchors) == 0:
            continue

        vertex = graph.vertices[edge.resolved_by]
        # line-resolved points are ray points closest to a possibly skew line
        if not vertex.is_region_cc:
            continue
        plane = vertex.current_value.plane(graph.vanishing_points)
        max_offset = max(max_offset, float(plane.distances_to(anchors).max()))

    return max_offset, non_finite


@trace(label="run_validation")
def run_validation(subgraphs, reports, scale):
    """
    Run all validation checks over the solved subgraphs.

    Returns ValidationReport with all check results.
    """
    tracer = get_tracer()

    checks = []
    checks.append(check_full_coverage(subgraphs))
    checks.append(check_edge_resolution(reports))
    checks.append(check_anchor_on_geometry(reports, scale))
    checks.append(check_scale_pin(subgraphs, reports))
    checks.append(check_refinement_failures(reports))

    report = ValidationReport(checks=checks)

    errors = sum(1 for c in checks if c.severity == Severity.ERROR and not c.passed)
    warnings = sum(1 for c in checks if c.severity == Severity.WARN and not c.passed)

    tracer.event(f"Validation complete: {errors} errors, {warnings} warnings")

    return report


def check_full_coverage(subgraphs):
    """
    Check that every vertex and edge was determined by spreading.
    """
    undetermined_vertices = []
    undetermined_edges = 0

    for graph in subgraphs:
        for vertex in graph.vertices:
            if not vertex.determined:
                undetermined_vertices.append(vertex.label)
        undetermined_edges += sum(1 for e in graph.edges if not e.determined)

    if undetermined_vertices or undetermined_edges:
        return CheckResult(
            rule_id="full_coverage",
            severity=Severity.ERROR,
            passed=False,
            message=f"{len(undetermined_vertices)} vertices and {undetermined_edges} edges left undetermined",
            evidence={"vertices": undetermined_vertices[:5], "edges": undetermined_edges},
        )

    return CheckResult(
        rule_id="full_coverage",
        severity=Severity.ERROR,
        passed=True,
        message="All vertices and edges determined",
        evidence={},
    )


def check_edge_resolution(reports):
    """
    Check that all resolved anchors are finite 3D points.
    """
    bad = {r.subgraph_id: r.non_finite_anchors for r in reports if r.non_finite_anchors}

    if bad:
        return CheckResult(
            rule_id="edge_resolution",
            severity=Severity.ERROR,
            passed=False,
            message=f"Non-finite resolved anchors in {len(bad)} subgraphs",
            evidence={"non_finite_by_subgraph": dict(list(bad.items())[:5])},
        )

    return CheckResult(
        rule_id="edge_resolution",
        severity=Severity.ERROR,
        passed=True,
        message="All resolved anchors are finite",
        evidence={},
    )


def check_anchor_on_geometry(reports, scale):
    """
    Check that region-resolved anchors lie on the committed plane.
    """
    tolerance = ANCHOR_TOLERANCE_RATIO * max(scale, 1e-12)
    offending = {r.subgraph_id: r.max_anchor_offset for r in reports if r.max_anchor_offset >= tolerance}

    if offending:
        return CheckResult(
            rule_id="anchor_on_geometry",
            severity=Severity.WARN,
            passed=False,
            message=f"Resolved anchors off their plane in {len(offending)} subgraphs",
            evidence={"tolerance": tolerance, "max_offset_by_subgraph": dict(list(offending.items())[:5])},
        )

    return CheckResult(
        rule_id="anchor_on_geometry",
        severity=Severity.WARN,
        passed=True,
        message="Resolved anchors lie on their committed planes",
        evidence={"tolerance": tolerance},
    )


def check_scale_pin(subgraphs, reports):
    """
    Check that refined subgraphs pinned their first vertex at factor 1.0
    and gave every vertex a finite, positive correction.
    """
    refined = {r.subgraph_id for r in reports if r.refined}
    unpinned = [r.subgraph_id for r in reports if r.refined and r.pinned_factor != 1.0]
    bad = []
    for graph in subgraphs:
        if graph.subgraph_id not in refined:
            continue
        for vertex in graph.vertices:
            if not np.isfinite(vertex.correction) or vertex.correction <= 0.0:
                bad.append(vertex.label)

    if unpinned or bad:
        return CheckResult(
            rule_id="scale_pin",
            severity=Severity.WARN,
            passed=False,
            message=f"{len(unpinned)} subgraphs lost their pin, {len(bad)} vertices got a non-positive correction",
            evidence={"unpinned_subgraphs": unpinned[:5], "vertices": bad[:5]},
        )

    return CheckResult(
        rule_id="scale_pin",
        severity=Severity.WARN,
        passed=True,
        message=f"Scale corrections positive in {len(refined)} refined subgraphs",
        evidence={},
    )


def check_refinement_failures(reports):
    """
    List subgraphs whose refinement aborted.
    """
    failed = {r.subgraph_id: r.refinement_error for r in reports if r.refinement_error}

    if failed:
        return CheckResult(
            rule_id="refinement_failures",
            severity=Severity.WARN,
            passed=False,
            message=f"Refinement aborted for {len(failed)} subgraphs; spreading results kept",
            evidence={"errors": dict(list(failed.items())[:5])},
        )

    return CheckResult(
        rule_id="refinement_failures",
        severity=Severity.WARN,
        passed=True,
        message="Refinement succeeded for all subgraphs",
        evidence={},
    )
