"""
Global scale refinement of a spread mixed graph.

Each vertex gets a multiplicative depth correction x_v. Every sampled anchor
of every edge asks the two endpoints to agree on the anchor's depth:

    depth1(a) * x_v1 - depth2(a) * x_v2 = 0

and one pinning row x_0 = 1 removes the global scale ambiguity. The weighted
sparse least-squares system is solved once per subgraph; the corrections are
normalized by their mean and multiplied into the committed planes and
depth factors.
"""

import math
from dataclasses import dataclass

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import splu

from scenerec.errors import RefinementError
from scenerec.geometry import closest_point_on_ray_to_line, intersect_ray_plane
from scenerec.tracer import get_tracer, trace


@dataclass
class RefinementOutcome:
    """Solution of one subgraph's scale system."""
    raw_factors: np.ndarray  # pinned solution, raw_factors[0] == 1.0
    applied_factors: np.ndarray  # raw_factors / mean(raw_factors)
    residual: float
    num_equations: int


def sample_anchors(anchors, limit):
    """
    Uniformly subsample at most limit anchors.

    One anchor keeps the middle one, two keep both ends. Otherwise every
    ceil(n / limit)-th anchor is kept and the last one appended when the
    selection is exactly one short.
    """
    n = len(anchors)
    if limit is None or n <= limit:
        return anchors
    if limit < 1:
        raise ValueError("limit must be positive")
    if limit == 1:
        return anchors[n // 2: n // 2 + 1]
    if limit == 2:
        return anchors[[0, n - 1]]
    step = (n + limit - 1) // limit
    picked = list(range(0, n, step))
    if len(picked) == limit - 1 and picked[-1] != n - 1:
        picked.append(n - 1)
    return anchors[picked]


def _anchor_depth(graph, vertex, edge, anchor):
    """Distance from the origin to where the anchor ray meets vertex's geometry."""
    value = vertex.current_value
    if vertex.is_region_cc:
        return float(np.linalg.norm(intersect_ray_plane(anchor, value.plane(graph.vanishing_points))))
    first, second = edge.line_segment
    on_ray = closest_point_on_ray_to_line(anchor, first * value.depth_factor, second * value.depth_factor)
    return float(np.linalg.norm(on_ray))


def build_scale_system(graph, max_anchors_per_edge=None, min_row_weight=1.0, max_row_weight=5.0):
    """
    Assemble the sparse system.

    Returns (A, W, b) with A of shape (m, n), W the diagonal row weights
    as a sparse matrix, and b the right-hand side.
    """
    rows = [0]
    cols = [0]
    vals = [1.0]
    weights = [1.0]
    rhs = [1.0]
    eq = 1

    for edge in graph.edges:
        v1, v2 = edge.vertex_ids
        vertex1 = graph.vertices[v1]
        vertex2 = graph.vertices[v2]
        assert v1 != v2

        sampled = sample_anchors(edge.anchors, max_anchors_per_edge)
        if len(sampled) == 0:
            continue
        weight = min(max(len(edge.anchors) / float(len(sampled)), min_row_weight), max_row_weight)

        for anchor in sampled:
            depth1 = _anchor_depth(graph, vertex1, edge, anchor)
            depth2 = _anchor_depth(graph, vertex2, edge, anchor)
            rows.extend([eq, eq])
            cols.extend([v1, v2])
            vals.extend([depth1, -depth2])
            weights.append(weight)
            rhs.append(0.0)
            eq += 1

    n = graph.num_vertices()
    A = sparse.csr_matrix((vals, (rows, cols)), shape=(eq, n))
    W = sparse.diags(weights)
    b = np.asarray(rhs)
    return A, W, b


def solve_scale_system(A, W, b, subgraph_id=None):
    """
    Weighted least squares via the normal equations and a sparse LU.

    Raises RefinementError when the system is singular or the solution is
    not usable.
    """
    WA = (W @ A).tocsc()
    Wb = W @ b

    if not np.all(np.isfinite(WA.data)):
        raise RefinementError("scale system has non-finite coefficients", subgraph_id)

    normal = (WA.T @ WA).tocsc()
    try:
        lu = splu(normal)
    except RuntimeError as e:
        raise RefinementError(f"scale system is singular: {e}", subgraph_id) from e

    x = lu.solve(WA.T @ Wb)
    if not np.all(np.isfinite(x)):
        raise RefinementError("scale solution is not finite", subgraph_id)
    if x[0] == 0.0:
        raise RefinementError("pinned vertex collapsed to zero depth", subgraph_id)

    residual = float(np.linalg.norm(WA @ x - Wb))
    return x, residual


def apply_corrections(graph, factors):
    """Scale committed planes and depth factors of every vertex."""
    for vertex, factor in zip(graph.vertices, factors):
        factor = float(factor)
        if vertex.is_region_cc:
            vertex.current_value.scale_by(factor)
        else:
            vertex.current_value.depth_factor *= factor
        vertex.correction = factor


@trace(label="optimize_depths")
def optimize_depths(graph, max_anchors_per_edge=None, min_row_weight=1.0, max_row_weight=5.0):
    """
    Solve and apply the global scale correction for one subgraph.

    Nothing is modified when solving fails; the RefinementError propagates
    to the caller, which decides whether sibling subgraphs continue.
    """
    tracer = get_tracer()

    with tracer.span("setup_matrices", module="refine"):
        A, W, b = build_scale_system(graph, max_anchors_per_edge, min_row_weight, max_row_weight)
        tracer.event("Scale system", A=A)

    with tracer.span("solve", module="refine"):
        x, residual = solve_scale_system(A, W, b, graph.subgraph_id)

    # the pin row only fixes the null space; rescale so it holds exactly
    raw = x / x[0]
    mean = float(raw.mean())
    if not math.isfinite(mean) or mean == 0.0:
        raise RefinementError("mean scale correction is zero", graph.subgraph_id)
    applied = raw / mean

    apply_corrections(graph, applied)
    tracer.event(f"Applied scale corrections, mean(x)={mean:.4g}", residual=residual)

    return RefinementOutcome(
        raw_factors=raw,
        applied_factors=applied,
        residual=residual,
        num_equations=A.shape[0],
    )
