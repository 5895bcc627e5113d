"""
Greedy spreading over a connected mixed graph.

Vertices are committed one at a time in priority order. Committing a vertex
resolves the anchors of its undetermined edges into 3D points, which in turn
produce candidates for (and re-score) the vertices on the other side.
"""

import math
from dataclasses import dataclass, field

from scenerec.geometry import closest_point_on_ray_to_line, intersect_rays_plane
from scenerec.graph.heap import IndexedMaxHeap
from scenerec.graph.hypotheses import update_vertex_from_edge
from scenerec.tracer import get_tracer, trace


class AnchoredRatio:
    """Fraction of a vertex's incident anchors already explained."""

    __slots__ = ("numerator", "denominator")

    def __init__(self):
        self.numerator = 0.0
        self.denominator = 0.0

    def value(self, default=0.0):
        if self.denominator == 0.0:
            return default
        return self.numerator / self.denominator


@dataclass
class SpreadingOutcome:
    """Order in which vertices were committed and their priority when popped."""
    commit_order: list = field(default_factory=list)
    popped_priorities: list = field(default_factory=list)


def seed_largest_line_cc(graph):
    """The line CC with the most member lines (first one on ties)."""
    largest = None
    largest_size = 0
    for vertex in graph.vertices:
        if vertex.is_line_cc and len(vertex.members) > largest_size:
            largest = vertex.id
            largest_size = len(vertex.members)
    return largest


def seed_nothing(graph):
    return None


SEEDING_POLICIES = {
    "largest_line_cc": seed_largest_line_cc,
    "none": seed_nothing,
}


def resolve_edge_anchors(graph, edge, vertex):
    """
    Overwrite an edge's anchors with 3D points on the committed geometry
    of vertex: ray/plane intersections for region CCs, the ray points
    closest to the rescaled line for line CCs.
    """
    value = vertex.current_value
    if vertex.is_region_cc:
        plane = value.plane(graph.vanishing_points)
        edge.anchors[:] = intersect_rays_plane(edge.anchors, plane)
    else:
        assert edge.connects_region_and_line
        first, second = edge.line_segment
        first = first * value.depth_factor
        second = second * value.depth_factor
        for i, anchor in enumerate(edge.anchors):
            edge.anchors[i] = closest_point_on_ray_to_line(anchor, first, second)


class SpreadingScheduler:
    """
    Priority-driven traversal committing one hypothesis per vertex.

    Args:
        graph: a connected MixedGraph (undetermined)
        config: ReconstructionConfig
        observer: optional callable(graph, vertex) invoked after each commit
        seeding: optional callable(graph) -> vertex id forced to go first;
            defaults to the policy named in config.spreading.seeding
    """

    def __init__(self, graph, config, observer=None, seeding=None):
        self.graph = graph
        self.config = config
        self.observer = observer
        if seeding is None:
            seeding = SEEDING_POLICIES[config.spreading.seeding]
        self.seeding = seeding

        n = graph.num_vertices()
        self.with_regions = [AnchoredRatio() for _ in range(n)]
        self.with_lines = [AnchoredRatio() for _ in range(n)]
        self.line_ratios = [AnchoredRatio() for _ in range(n)]

        for edge in graph.edges:
            v1, v2 = edge.vertex_ids
            count = len(edge.anchors)
            if edge.connects_region_and_line:
                self.with_lines[v1].denominator += count
                self.line_ratios[v2].denominator += count
            else:
                self.with_regions[v1].denominator += count
                self.with_regions[v2].denominator += count

    def compute_priority(self, vertex_id):
        """
        Region CCs: weighted fraction of explained anchors plus a small visual
        area term, heavily damped when the best plane covers little of the
        region. Line CCs: fraction of explained anchors.
        """
        vertex = self.graph.vertices[vertex_id]
        sconfig = self.config.spreading

        if vertex.is_line_cc:
            return self.line_ratios[vertex_id].value(0.0)

        if not vertex.candidates:
            return 0.0
        best = vertex.best_candidate()
        if best.hypothesis is None:
            return 0.0
        props = vertex.properties
        if props.convex_visual_area == 0.0:
            return 0.0

        root_distance = float((props.tangential_plane.root() ** 2).sum())
        area_ratio = props.visual_area / (4.0 * math.pi * root_distance)

        priority = (
            self.with_regions[vertex_id].value(0.0) * sconfig.region_weight
            + self.with_lines[vertex_id].value(0.0) * sconfig.line_weight
            + area_ratio * sconfig.area_weight
        )
        if best.hypothesis.inlier_area / props.convex_visual_area <= sconfig.min_inlier_area_ratio:
            priority *= sconfig.poor_support_penalty
        return priority

    def _record_explained(self, current, other, edge):
        count = len(edge.anchors)
        if other.is_region_cc and current.is_region_cc:
            self.with_regions[other.id].numerator += count
        elif other.is_region_cc and current.is_line_cc:
            self.with_lines[other.id].numerator += count
        elif other.is_line_cc:
            self.line_ratios[other.id].numerator += count

    def run(self):
        """Commit every vertex of the graph exactly once."""
        tracer = get_tracer()
        graph = self.graph
        outcome = SpreadingOutcome()

        waiting = IndexedMaxHeap(range(graph.num_vertices()), self.compute_priority)

        seed_id = self.seeding(graph)
        if seed_id is not None:
            waiting.set_score(seed_id, math.inf)
            tracer.event("Seeded spreading", level="DEBUG", vertex=graph.vertices[seed_id].label)

        while waiting:
            current_id, priority = waiting.pop()
            current = graph.vertices[current_id]

            best = current.set_value_to_best()
            current.determined = True
            outcome.commit_order.append(current_id)
            outcome.popped_priorities.append(priority)
            tracer.event(f"Committed {current.label}", level="DEBUG", priority=priority, score=best.score)

            for edge_id in current.edge_ids:
                edge = graph.edges[edge_id]
                if edge.determined:
                    continue

                resolve_edge_anchors(graph, edge, current)
                edge.determined = True
                edge.resolved_by = current_id

                other_id = graph.other_end(edge_id, current_id)
                other = graph.vertices[other_id]
                if other.determined:
                    continue

                update_vertex_from_edge(graph, other_id, edge_id, self.config)
                self._record_explained(current, other, edge)

                if waiting.contains(other_id):
                    waiting.set_score(other_id, self.compute_priority(other_id))

            if self.observer is not None:
                self.observer(graph, current)

        return outcome


@trace(label="spread_over")
def spread_over(graph, config, observer=None, seeding=None):
    """
    Run one greedy spreading pass over a connected mixed graph.

    Returns a SpreadingOutcome.
    """
    tracer = get_tracer()
    scheduler = SpreadingScheduler(graph, config, observer=observer, seeding=seeding)
    outcome = scheduler.run()
    tracer.event(
        f"Spread over {graph.num_vertices()} vertices, {graph.num_edges()} edges",
        subgraph=graph.subgraph_id,
    )
    return outcome
