"""
Vertex hypothesis generation for the mixed graph.

When an edge becomes determined its anchors are concrete 3D points. The
still undetermined endpoint turns those points into candidates: planes
orthogonal to a vanishing direction for region CCs, depth factors for line
CCs. Degenerate candidates are filtered here and never raised.
"""

from collections import namedtuple
from dataclasses import dataclass

import numpy as np

from scenerec.geometry import (
    Plane,
    closest_point_on_ray_to_line,
    gaussian,
    intersect_rays_plane,
    normalize,
    visual_area_of_directions,
)


ScoredCandidate = namedtuple("ScoredCandidate", ["score", "edge_id", "hypothesis"])

# returned by best_candidate when a vertex has no candidates at all
NO_CANDIDATE = ScoredCandidate(0.0, None, None)


@dataclass
class PlaneHypothesis:
    """
    Plane candidate for a region CC.

    Orthogonal planes are stored as (vp_class, signed depth along that
    direction); skewed planes as an explicit (anchor, normal) pair.
    """
    orthogonal: bool = True
    vp_class: int = -1
    depth: float = 0.0
    anchor: np.ndarray = None
    normal: np.ndarray = None
    vote_sum: float = 0.0
    inlier_area: float = 0.0

    @classmethod
    def through_point(cls, vanishing_points, vp_class, point):
        """Plane through point whose normal is the given vanishing direction."""
        normal = vanishing_points[vp_class]
        plane = Plane(point, normal)
        return cls(orthogonal=True, vp_class=vp_class, depth=-plane.signed_distance_to(np.zeros(3)))

    @classmethod
    def skewed(cls, plane):
        return cls(orthogonal=False, anchor=plane.anchor.copy(), normal=plane.normal.copy())

    def plane(self, vanishing_points):
        if self.orthogonal:
            normal = normalize(vanishing_points[self.vp_class])
            return Plane(normal * self.depth, normal)
        return Plane(self.anchor, self.normal)

    def scale_by(self, factor):
        """Move the plane along its normal so its depth is multiplied by factor."""
        if self.orthogonal:
            self.depth *= factor
        else:
            self.anchor = self.anchor * factor

    def score(self, properties):
        if properties.convex_visual_area == 0.0:
            return 0.0
        return self.vote_sum * self.inlier_area / properties.convex_visual_area


@dataclass
class LineDepthHypothesis:
    """Depth factor candidate for a line CC, scored by mutual agreement."""
    depth_factor: float = 1.0
    votes: float = 0.0

    def score(self, properties=None):
        return self.votes


def best_candidate(vertex):
    """
    Highest scoring (edge, hypothesis) over all of a vertex's candidates.

    Candidate lists are visited in edge insertion order (the seed list, keyed
    by None, first) and the first maximum wins. Returns NO_CANDIDATE when
    the vertex has none.
    """
    best = None
    for edge_id in sorted(vertex.candidates, key=lambda e: -1 if e is None else e):
        for hypothesis in vertex.candidates[edge_id]:
            s = hypothesis.score(vertex.properties)
            if best is None or s > best.score:
                best = ScoredCandidate(s, edge_id, hypothesis)
    return best if best is not None else NO_CANDIDATE


def update_vertex_from_edge(graph, vertex_id, edge_id, config):
    """
    Regenerate a vertex's candidate list for one freshly determined edge.

    The edge's anchors must already be resolved 3D points.
    """
    vertex = graph.vertices[vertex_id]
    edge = graph.edges[edge_id]
    assert vertex_id in edge.vertex_ids

    if vertex.is_region_cc:
        vertex.candidates[edge_id] = region_plane_candidates(graph, vertex, edge, config.hypothesis)
    else:
        vertex.candidates[edge_id] = line_depth_candidates(edge)
        recompute_depth_votes(vertex, config.hypothesis.depth_vote_sigma)


def surrounding_anchors(graph, vertex):
    """All resolved anchors on determined edges incident to a vertex."""
    chunks = [graph.edges[e].anchors for e in vertex.edge_ids if graph.edges[e].determined]
    if not chunks:
        return np.zeros((0, 3))
    return np.concatenate(chunks, axis=0)


def region_plane_candidates(graph, vertex, edge, hconfig):
    """
    Orthogonal planes through each anchor of edge, one per vanishing direction.

    Planes are deduplicated by root point, then rejected when too skewed
    (root near the origin) or when an accumulated anchor would land too far
    away on them. Survivors are scored by inlier votes and inlier visual area.
    """
    scale = graph.scale
    vps = graph.vanishing_points
    accumulated = surrounding_anchors(graph, vertex)
    props = vertex.properties

    dedup_tolerance = hconfig.dedup_tolerance * scale
    dist_threshold = hconfig.inlier_ratio * scale

    roots = []
    candidates = []
    for anchor in edge.anchors:
        for vp_class in range(len(vps)):
            hypothesis = PlaneHypothesis.through_point(vps, vp_class, anchor)
            plane = hypothesis.plane(vps)
            root = plane.root()

            if any(np.linalg.norm(root - r) <= dedup_tolerance for r in roots):
                continue
            roots.append(root)

            if hconfig.ignore_too_skewed and np.linalg.norm(root) <= scale * hconfig.skew_ratio:
                continue

            if hconfig.ignore_too_far and len(accumulated):
                on_plane = intersect_rays_plane(accumulated, plane)
                # NaN projections come from non-finite anchors and never reject
                with np.errstate(invalid="ignore"):
                    too_far = np.linalg.norm(on_plane, axis=1) > scale * hconfig.far_ratio
                if np.any(too_far):
                    continue

            with np.errstate(invalid="ignore"):
                distances = plane.distances_to(accumulated)
                inlier_mask = distances <= dist_threshold
            hypothesis.vote_sum = float(np.sum(gaussian(distances[inlier_mask], dist_threshold)))
            hypothesis.inlier_area = visual_area_of_directions(
                props.tangential_plane, props.x_axis, props.y_axis,
                accumulated[inlier_mask], True,
            )
            candidates.append(hypothesis)

    return candidates


def line_depth_candidates(edge):
    """
    Depth factors that would put the edge's unit-scale line through each anchor.

    For each anchor the factor is |anchor| divided by the depth, along the
    anchor's ray, of the ray point closest to the unit-scale line.
    """
    first, second = edge.line_segment
    candidates = []
    for anchor in edge.anchors:
        on_ray = closest_point_on_ray_to_line(anchor, first, second)
        with np.errstate(divide="ignore", invalid="ignore"):
            factor = np.float64(np.linalg.norm(anchor)) / np.float64(np.linalg.norm(on_ray))
        if not np.isfinite(factor):
            continue
        candidates.append(LineDepthHypothesis(depth_factor=float(factor), votes=0.0))
    return candidates


def recompute_depth_votes(vertex, sigma):
    """
    Soft mode seeking: each candidate is voted for by every candidate
    (itself included) through a Gaussian of their depth factor difference.
    """
    everything = [h for edge_id in vertex.candidates for h in vertex.candidates[edge_id]]
    if not everything:
        return
    factors = np.array([h.depth_factor for h in everything])
    votes = gaussian(factors[:, None] - factors[None, :], sigma).sum(axis=1)
    for hypothesis, vote in zip(everything, votes):
        hypothesis.votes = float(vote)
