"""
Connected-component partitioning of elementary regions and lines.

Regions that overlap across views (above a ratio threshold) must share one
plane; lines tied by same-view junctions or inter-view incidences must share
one depth scale. Both are clustered with union-find over an adjacency
callback.
"""

from collections import defaultdict
from dataclasses import dataclass, field

from scenerec.errors import InputError
from scenerec.models import LineIndex
from scenerec.tracer import get_tracer, trace


@dataclass
class Partition:
    """Index -> ccId assignment and the resulting CC count."""
    cc_ids: dict = field(default_factory=dict)
    count: int = 0

    def members(self):
        """List of member lists, one per ccId, in partitioning order."""
        groups = [[] for _ in range(self.count)]
        for index, cc_id in self.cc_ids.items():
            groups[cc_id].append(index)
        return groups

    def cc_of(self, index):
        return self.cc_ids[index]


def connected_components(indices, neighbors_of):
    """
    Cluster indices into connected components.

    Args:
        indices: iterable of hashable indices, in the order ccIds are handed out
        neighbors_of: callable returning the indices adjacent to an index

    Returns:
        Partition mapping every index to a ccId. Isolated indices form
        singleton components. ccIds follow first appearance in indices.
    """
    indices = list(indices)
    position = {index: i for i, index in enumerate(indices)}
    parent = list(range(len(indices)))

    def find(x):
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    def union(x, y):
        px, py = find(x), find(y)
        if px == py:
            return
        # keep the earliest index as root so ids are order-stable
        if px < py:
            parent[py] = px
        else:
            parent[px] = py

    for i, index in enumerate(indices):
        for neighbor in neighbors_of(index):
            j = position.get(neighbor)
            if j is None:
                raise InputError(f"Adjacency references unknown index {neighbor}")
            union(i, j)

    root_to_cc = {}
    cc_ids = {}
    for i, index in enumerate(indices):
        root = find(i)
        if root not in root_to_cc:
            root_to_cc[root] = len(root_to_cc)
        cc_ids[index] = root_to_cc[root]

    return Partition(cc_ids=cc_ids, count=len(root_to_cc))


@trace(label="partition_regions")
def partition_regions(scene, config):
    """
    Cluster regions by overlaps with ratio at least the configured threshold.
    """
    tracer = get_tracer()
    threshold = config.partition.overlap_threshold

    adjacency = defaultdict(list)
    kept = 0
    for overlap in scene.region_overlaps:
        if overlap.ratio < threshold:
            continue
        adjacency[overlap.region1].append(overlap.region2)
        adjacency[overlap.region2].append(overlap.region1)
        kept += 1

    partition = connected_components(scene.region_indices(), lambda ri: adjacency.get(ri, ()))

    tracer.event(f"Region CCs: {partition.count}", overlaps_kept=kept)
    return partition


@trace(label="partition_lines")
def partition_lines(scene, config):
    """
    Cluster lines by same-view junctions and inter-view incidences.

    Junctions whose weight falls below the configured minimum are ignored.
    """
    tracer = get_tracer()
    min_weight = config.partition.min_junction_weight

    adjacency = defaultdict(list)
    for view_id, view in enumerate(scene.views):
        for relation in view.line_relations:
            if relation.junction_weight < min_weight:
                continue
            li1 = LineIndex(view_id=view_id, handle=relation.line1)
            li2 = LineIndex(view_id=view_id, handle=relation.line2)
            adjacency[li1].append(li2)
            adjacency[li2].append(li1)

    for incidence in scene.interview_line_incidences:
        adjacency[incidence.line1].append(incidence.line2)
        adjacency[incidence.line2].append(incidence.line1)

    partition = connected_components(scene.line_indices(), lambda li: adjacency.get(li, ()))

    tracer.event(f"Line CCs: {partition.count}")
    return partition
