"""
Mixed graph of region CCs and line CCs.

Vertices are region or line connected components; edges carry the 3D anchor
rays shared by their two endpoints. Storage is an arena: vertices and edges
live in lists and refer to each other by integer index. Compaction happens
only when a graph is split into its connected subgraphs.
"""

from dataclasses import dataclass
from enum import Enum

import networkx as nx
import numpy as np

from scenerec.errors import InputError
from scenerec.geometry import (
    Plane,
    as_vec3,
    normalize,
    propose_xy_directions,
    visual_area_of_directions,
)
from scenerec.graph.hypotheses import (
    LineDepthHypothesis,
    PlaneHypothesis,
    best_candidate,
)
from scenerec.models import RegionIndex
from scenerec.tracer import get_tracer, trace


class VertexKind(str, Enum):
    REGION_CC = "region_cc"
    LINE_CC = "line_cc"


class EdgeKind(str, Enum):
    REGION_REGION = "region_region"
    REGION_LINE = "region_line"


@dataclass
class RegionCCProperties:
    """Tangential frame and visual areas of a region CC."""
    tangential_plane: Plane
    x_axis: np.ndarray
    y_axis: np.ndarray
    visual_area: float = 0.0
    convex_visual_area: float = 0.0


@dataclass
class LineCCProperties:
    num_lines: int = 0


class MixedGraphVertex:
    """
    One region CC or line CC.

    candidates maps an edge id (None for the seed list) to the hypotheses
    that edge produced. current_value is the committed hypothesis; it holds
    the seed until the vertex is determined.
    """

    def __init__(self, kind, cc_id, members, properties, seed):
        self.id = -1
        self.kind = kind
        self.cc_id = cc_id
        self.members = list(members)
        self.properties = properties
        self.candidates = {}
        self.current_value = seed
        self.edge_ids = []
        self.determined = False
        self.correction = 1.0

    @property
    def is_region_cc(self):
        return self.kind == VertexKind.REGION_CC

    @property
    def is_line_cc(self):
        return self.kind == VertexKind.LINE_CC

    @property
    def label(self):
        prefix = "region" if self.is_region_cc else "line"
        return f"{prefix}:{self.cc_id}"

    def num_candidates(self):
        return sum(len(c) for c in self.candidates.values())

    def best_candidate(self):
        return best_candidate(self)

    def set_value_to_best(self):
        """Commit the best candidate; keep the seed when there is none."""
        best = self.best_candidate()
        if best.hypothesis is not None:
            self.current_value = best.hypothesis
        return best

    def __repr__(self):
        return f"MixedGraphVertex({self.label}, id={self.id}, determined={self.determined})"


class MixedGraphEdge:
    """
    A region-region or region-line edge.

    anchors is an (n, 3) array: unit rays at build time, overwritten in place
    with resolved 3D points when an endpoint commits.
    """

    def __init__(self, kind, anchors, relation, line_segment=None):
        self.id = -1
        self.kind = kind
        self.vertex_ids = (-1, -1)
        self.anchors = np.asarray(anchors, dtype=np.float64).reshape(-1, 3)
        self.relation = relation
        self.line_segment = line_segment
        self.determined = False
        self.resolved_by = None

    @property
    def connects_region_and_region(self):
        return self.kind == EdgeKind.REGION_REGION

    @property
    def connects_region_and_line(self):
        return self.kind == EdgeKind.REGION_LINE

    def __repr__(self):
        return f"MixedGraphEdge({self.kind.value}, id={self.id}, vertices={self.vertex_ids}, anchors={len(self.anchors)})"


class MixedGraph:
    """Arena storage for one mixed graph plus the shared scene constants."""

    def __init__(self, vanishing_points, scale, subgraph_id=0):
        self.vanishing_points = np.asarray(vanishing_points, dtype=np.float64)
        self.scale = float(scale)
        self.subgraph_id = subgraph_id
        self.vertices = []
        self.edges = []

    def add_vertex(self, vertex):
        vertex.id = len(self.vertices)
        vertex.edge_ids = []
        self.vertices.append(vertex)
        return vertex.id

    def add_edge(self, v1, v2, edge):
        edge.id = len(self.edges)
        edge.vertex_ids = (v1, v2)
        self.edges.append(edge)
        self.vertices[v1].edge_ids.append(edge.id)
        if v2 != v1:
            self.vertices[v2].edge_ids.append(edge.id)
        return edge.id

    def other_end(self, edge_id, vertex_id):
        v1, v2 = self.edges[edge_id].vertex_ids
        return v2 if v1 == vertex_id else v1

    def num_vertices(self):
        return len(self.vertices)

    def num_edges(self):
        return len(self.edges)

    def to_networkx(self):
        """Vertex adjacency as a networkx graph (nodes are vertex ids)."""
        g = nx.Graph()
        g.add_nodes_from(range(len(self.vertices)))
        g.add_edges_from(e.vertex_ids for e in self.edges)
        return g


def _region_cc_vertex(cc_id, members, scene):
    """
    Seed a region CC: a tangential plane at unit distance along the mean
    direction of its members' centers, plus visual areas of their contours.
    """
    center_direction = np.zeros(3)
    contour_directions = []
    for ri in members:
        camera = scene.views[ri.view_id].camera
        region = scene.region_data(ri)
        center_direction += normalize(camera.spatial_direction(region.center))
        for pixel in region.contour:
            contour_directions.append(camera.spatial_direction(pixel))

    center_direction = normalize(center_direction)
    tangential_plane = Plane(center_direction, center_direction)
    x_axis, y_axis = propose_xy_directions(tangential_plane.normal)

    properties = RegionCCProperties(
        tangential_plane=tangential_plane,
        x_axis=x_axis,
        y_axis=y_axis,
        visual_area=visual_area_of_directions(tangential_plane, x_axis, y_axis, contour_directions, False),
        convex_visual_area=visual_area_of_directions(tangential_plane, x_axis, y_axis, contour_directions, True),
    )

    return MixedGraphVertex(
        VertexKind.REGION_CC, cc_id, members, properties,
        seed=PlaneHypothesis.skewed(tangential_plane),
    )


def _line_cc_vertex(cc_id, members):
    vertex = MixedGraphVertex(
        VertexKind.LINE_CC, cc_id, members,
        LineCCProperties(num_lines=len(members)),
        seed=LineDepthHypothesis(depth_factor=1.0, votes=0.0),
    )
    vertex.candidates[None] = [LineDepthHypothesis(depth_factor=1.0, votes=1e-8)]
    return vertex


@trace(label="build_mixed_graph")
def build_mixed_graph(scene, region_partition, line_partition, scale):
    """
    Build the mixed graph of a whole scene.

    Region CC vertices come first (by ccId), then line CC vertices. One
    region-region edge is added per same-view boundary between two different
    region CCs and one region-line edge per region-line connection.
    Edges without anchors carry no evidence and are skipped.
    """
    tracer = get_tracer()

    vps = np.array([normalize(as_vec3(vp)) for vp in scene.vanishing_points])
    graph = MixedGraph(vps, scale)

    with tracer.span("add_vertices", module="mixed_graph"):
        region_vertex_ids = [
            graph.add_vertex(_region_cc_vertex(cc_id, members, scene))
            for cc_id, members in enumerate(region_partition.members())
        ]
        line_vertex_ids = [
            graph.add_vertex(_line_cc_vertex(cc_id, members))
            for cc_id, members in enumerate(line_partition.members())
        ]
        tracer.event(f"Vertices: {len(region_vertex_ids)} region CCs, {len(line_vertex_ids)} line CCs")

    skipped = 0
    with tracer.span("add_edges", module="mixed_graph"):
        for view_id, view in enumerate(scene.views):
            camera = view.camera
            for boundary in view.boundaries:
                ri1 = RegionIndex(view_id=view_id, handle=boundary.region1)
                ri2 = RegionIndex(view_id=view_id, handle=boundary.region2)
                if ri1 not in region_partition.cc_ids or ri2 not in region_partition.cc_ids:
                    raise InputError(f"Boundary {boundary.handle} in view {view_id} references unknown region")
                v1 = region_vertex_ids[region_partition.cc_of(ri1)]
                v2 = region_vertex_ids[region_partition.cc_of(ri2)]
                anchors = [
                    camera.spatial_direction(p)
                    for polyline in boundary.sampled_points
                    for p in polyline
                ]
                if v1 == v2 or not anchors:
                    skipped += 1
                    continue
                graph.add_edge(v1, v2, MixedGraphEdge(EdgeKind.REGION_REGION, anchors, (ri1, ri2)))

        unit_lines = scene.unit_lines()
        for connection in scene.region_line_connections:
            if connection.region not in region_partition.cc_ids:
                raise InputError(f"Region-line connection references unknown region {connection.region}")
            if connection.line not in line_partition.cc_ids:
                raise InputError(f"Region-line connection references unknown line {connection.line}")
            if connection.line not in unit_lines:
                raise InputError(f"No unit-scale 3D line for {connection.line}")
            if not connection.anchors:
                skipped += 1
                continue
            segment = unit_lines[connection.line]
            v1 = region_vertex_ids[region_partition.cc_of(connection.region)]
            v2 = line_vertex_ids[line_partition.cc_of(connection.line)]
            edge = MixedGraphEdge(
                EdgeKind.REGION_LINE, connection.anchors, (connection.region, connection.line),
                line_segment=(as_vec3(segment.first), as_vec3(segment.second)),
            )
            graph.add_edge(v1, v2, edge)

        tracer.event(f"Edges: {graph.num_edges()}")
        if skipped:
            tracer.event(f"Skipped {skipped} edges without anchors or joining a CC to itself", level="WARN")

    return graph


@trace(label="split_connected_subgraphs")
def split_connected_subgraphs(graph):
    """
    Decompose a mixed graph into its maximal connected subgraphs.

    Subgraphs share no evidence path and therefore no scale, so each one is
    solved on its own. They are ordered by their smallest vertex id and
    compacted: vertex and edge ids restart at 0, keeping relative order.
    """
    tracer = get_tracer()

    components = sorted(
        (sorted(c) for c in nx.connected_components(graph.to_networkx())),
        key=lambda c: c[0],
    )

    subgraphs = []
    vertex_to_subgraph = {}
    old_to_new = {}
    for subgraph_id, vertex_ids in enumerate(components):
        subgraph = MixedGraph(graph.vanishing_points, graph.scale, subgraph_id=subgraph_id)
        for old_id in vertex_ids:
            old_to_new[old_id] = subgraph.add_vertex(graph.vertices[old_id])
            vertex_to_subgraph[old_id] = subgraph_id
        subgraphs.append(subgraph)

    for edge in graph.edges:
        v1, v2 = edge.vertex_ids
        subgraph_id = vertex_to_subgraph[v1]
        assert subgraph_id == vertex_to_subgraph[v2]
        subgraphs[subgraph_id].add_edge(old_to_new[v1], old_to_new[v2], edge)

    sizes = [g.num_vertices() for g in subgraphs]
    tracer.event(f"Connected subgraphs: {len(subgraphs)}", sizes=sizes)
    return subgraphs
