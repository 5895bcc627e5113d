"""
Main pipeline orchestrator for Scene Rec.

Partitions the scene's features into connected components, builds the mixed
graph, and solves each of its connected subgraphs by greedy spreading followed
by global scale refinement.
"""

from concurrent.futures import ThreadPoolExecutor

import numpy as np

from scenerec.components.partition import partition_lines, partition_regions
from scenerec.config import load_config
from scenerec.errors import InputError, RefinementError
from scenerec.geometry import scene_scale
from scenerec.graph.mixed_graph import build_mixed_graph, split_connected_subgraphs
from scenerec.graph.refine import optimize_depths
from scenerec.graph.spreading import spread_over
from scenerec.models import (
    LineCCResult,
    PlaneDescriptor,
    ReconstructionResult,
    RegionCCResult,
    RegionIndex,
    RegionPlane,
    SubgraphReport,
    UnitScaleLine,
)
from scenerec.tracer import get_tracer, trace
from scenerec.validate.rules import measure_anchor_offsets, run_validation


def validate_scene_input(scene):
    """
    Check that a scene is well formed before any graph is built.

    Returns a list of error messages (empty if valid).
    """
    errors = []

    for i, vp in enumerate(scene.vanishing_points):
        vec = np.asarray(vp, dtype=np.float64)
        if vec.shape != (3,):
            errors.append(f"Vanishing direction {i} must have 3 components")
        elif not np.all(np.isfinite(vec)) or np.linalg.norm(vec) == 0.0:
            errors.append(f"Vanishing direction {i} is degenerate: {vp}")

    regions = set()
    for view_id, view in enumerate(scene.views):
        if view.camera.focal <= 0.0:
            errors.append(f"View {view_id} has non-positive focal length")
        for region in view.regions:
            ri = RegionIndex(view_id=view_id, handle=region.handle)
            if ri in regions:
                errors.append(f"Duplicate region handle {region.handle} in view {view_id}")
            regions.add(ri)
        view_lines = {l.handle for l in view.lines}
        if len(view_lines) != len(view.lines):
            errors.append(f"Duplicate line handles in view {view_id}")
        for relation in view.line_relations:
            if relation.line1 not in view_lines or relation.line2 not in view_lines:
                errors.append(f"Line relation in view {view_id} references unknown line")

    known_lines = set(scene.line_indices())

    for overlap in scene.region_overlaps:
        for ri in (overlap.region1, overlap.region2):
            if ri not in regions:
                errors.append(f"Region overlap references unknown region {ri}")

    for connection in scene.region_line_connections:
        if connection.region not in regions:
            errors.append(f"Region-line connection references unknown region {connection.region}")
        if connection.line not in known_lines:
            errors.append(f"Region-line connection references unknown line {connection.line}")
        if any(len(a) != 3 for a in connection.anchors):
            errors.append(f"Region-line connection {connection.region}/{connection.line} has malformed anchors")

    for incidence in scene.interview_line_incidences:
        for li in (incidence.line1, incidence.line2):
            if li not in known_lines:
                errors.append(f"Line incidence references unknown line {li}")

    for unit_line in scene.lines:
        if unit_line.line not in known_lines:
            errors.append(f"Unit-scale line given for unknown line {unit_line.line}")

    return errors


def compute_scene_scale(scene):
    """Scene scale from the unit-scale line endpoints; 1.0 when there are none."""
    tracer = get_tracer()

    points = [p for ul in scene.lines for p in (ul.segment.first, ul.segment.second)]
    scale = scene_scale(points)
    if not np.isfinite(scale) or scale <= 0.0:
        tracer.event("No usable unit-scale lines, falling back to scene scale 1.0", level="WARN")
        return 1.0
    return scale


def plane_descriptor(hypothesis, vanishing_points):
    """PlaneDescriptor of a committed plane hypothesis."""
    plane = hypothesis.plane(vanishing_points)
    if hypothesis.orthogonal:
        return PlaneDescriptor(
            orthogonal=True,
            vp_class=hypothesis.vp_class,
            depth=float(hypothesis.depth),
            normal=plane.normal.tolist(),
            root=plane.root().tolist(),
        )
    return PlaneDescriptor(
        orthogonal=False,
        anchor=plane.anchor.tolist(),
        normal=plane.normal.tolist(),
        root=plane.root().tolist(),
    )


def solve_subgraph(graph, config, observer=None):
    """
    Spread over one connected subgraph, then refine its scale.

    A failed refinement is recorded in the returned report; the spreading
    commitments of the subgraph stay as they were.
    """
    tracer = get_tracer()

    with tracer.span(f"subgraph_{graph.subgraph_id}", module="pipeline"):
        outcome = spread_over(graph, config, observer=observer)
        max_offset, non_finite = measure_anchor_offsets(graph)

        report = SubgraphReport(
            subgraph_id=graph.subgraph_id,
            num_vertices=graph.num_vertices(),
            num_edges=graph.num_edges(),
            determined_vertices=sum(1 for v in graph.vertices if v.determined),
            determined_edges=sum(1 for e in graph.edges if e.determined),
            commit_order=[graph.vertices[v].label for v in outcome.commit_order],
            max_anchor_offset=max_offset,
            non_finite_anchors=non_finite,
        )

        if not config.refine.enabled:
            return report

        try:
            refined = optimize_depths(
                graph,
                max_anchors_per_edge=config.refine.max_anchors_per_edge,
                min_row_weight=config.refine.min_row_weight,
                max_row_weight=config.refine.max_row_weight,
            )
        except RefinementError as e:
            tracer.event(f"Refinement failed: {e}", level="WARN", subgraph=graph.subgraph_id)
            report.refinement_error = str(e)
            return report

        report.refined = True
        report.residual = refined.residual
        report.pinned_factor = float(refined.raw_factors[0])

    return report


@trace(label="reconstruct_scene")
def reconstruct_scene(scene, config=None, config_path=None, observer=None):
    """
    Reconstruct planes and line depths for a whole scene.

    Args:
        scene: SceneInput
        config: ReconstructionConfig object (optional)
        config_path: path to YAML config file (optional)
        observer: optional callable(graph, vertex) invoked after each commit

    Returns:
        ReconstructionResult
    """
    tracer = get_tracer()

    if config is None:
        config = load_config(config_path)

    # Validate inputs
    errors = validate_scene_input(scene)
    if errors:
        for error in errors:
            tracer.event(error, level="ERROR")
        raise InputError(f"Input validation failed: {errors}")

    scale = compute_scene_scale(scene)
    tracer.event(f"Scene scale: {scale:.6g}")

    with tracer.span("partition", module="pipeline"):
        region_partition = partition_regions(scene, config)
        line_partition = partition_lines(scene, config)

    with tracer.span("build_graph", module="pipeline"):
        graph = build_mixed_graph(scene, region_partition, line_partition, scale)
        subgraphs = split_connected_subgraphs(graph)

    with tracer.span("solve_subgraphs", module="pipeline"):
        workers = max(1, int(config.run.max_workers or 1))
        if workers > 1 and len(subgraphs) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                reports = list(pool.map(lambda g: solve_subgraph(g, config, observer), subgraphs))
        else:
            reports = [solve_subgraph(g, config, observer) for g in subgraphs]

    with tracer.span("validate", module="pipeline"):
        validation = run_validation(subgraphs, reports, scale)

    with tracer.span("assemble", module="pipeline"):
        result = assemble_result(scene, subgraphs, reports, line_partition, scale, validation)

    tracer.event(
        f"Reconstruction complete: {len(result.region_ccs)} region CCs, "
        f"{len(result.line_ccs)} line CCs, {len(subgraphs)} subgraphs"
    )

    return result


def assemble_result(scene, subgraphs, reports, line_partition, scale, validation):
    """Collect per-CC planes and depth factors into a ReconstructionResult."""
    region_ccs = []
    line_ccs = []
    for graph in subgraphs:
        for vertex in graph.vertices:
            if vertex.is_region_cc:
                region_ccs.append(RegionCCResult(
                    cc_id=vertex.cc_id,
                    subgraph_id=graph.subgraph_id,
                    members=vertex.members,
                    plane=plane_descriptor(vertex.current_value, graph.vanishing_points),
                    correction=vertex.correction,
                    num_candidates=vertex.num_candidates(),
                ))
            else:
                line_ccs.append(LineCCResult(
                    cc_id=vertex.cc_id,
                    subgraph_id=graph.subgraph_id,
                    members=vertex.members,
                    depth_factor=vertex.current_value.depth_factor,
                    correction=vertex.correction,
                ))

    region_ccs.sort(key=lambda r: r.cc_id)
    line_ccs.sort(key=lambda l: l.cc_id)

    region_planes = [
        RegionPlane(region=ri, plane=cc.plane)
        for cc in region_ccs
        for ri in cc.members
    ]
    region_planes.sort(key=lambda rp: rp.region.sort_key())

    depth_factors = {cc.cc_id: cc.depth_factor for cc in line_ccs}
    lines = [
        UnitScaleLine(
            line=ul.line,
            segment=ul.segment.scaled(depth_factors[line_partition.cc_of(ul.line)]),
        )
        for ul in scene.lines
    ]

    return ReconstructionResult(
        scene_scale=scale,
        region_ccs=region_ccs,
        line_ccs=line_ccs,
        region_planes=region_planes,
        lines=lines,
        subgraphs=reports,
        validation=validation,
    )
