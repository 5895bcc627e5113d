"""
Pydantic data models for the Scene Rec inputs and outputs.

Inputs are precomputed by upstream collaborators (feature extraction,
vanishing point estimation, calibration, unit-scale line solve) and are
treated as read-only. Outputs describe one plane per region connected
component and one depth factor per line connected component.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from scenerec.geometry import normalize


class Severity(str, Enum):
    """Severity levels for validation checks."""
    ERROR = "error"
    WARN = "warn"
    INFO = "info"


class RegionIndex(BaseModel):
    """An elementary region: (view id, region handle within that view)."""
    view_id: int
    handle: int

    model_config = ConfigDict(frozen=True)

    def sort_key(self):
        return (self.view_id, self.handle)


class LineIndex(BaseModel):
    """An elementary 2D line: (view id, line handle within that view)."""
    view_id: int
    handle: int

    model_config = ConfigDict(frozen=True)

    def sort_key(self):
        return (self.view_id, self.handle)


class PerspectiveCamera(BaseModel):
    """
    Calibrated pinhole camera.

    All views of one scene share the projection center, so spatial
    directions are rays through the origin of the scene frame.
    """
    width: int
    height: int
    focal: float
    principal_point: List[float] = Field(..., min_length=2, max_length=2)
    eye: List[float] = Field(default_factory=lambda: [0.0, 0.0, 0.0], min_length=3, max_length=3)
    center: List[float] = Field(..., min_length=3, max_length=3)
    up: List[float] = Field(default_factory=lambda: [0.0, 0.0, 1.0], min_length=3, max_length=3)

    model_config = ConfigDict(extra="forbid")

    def axes(self):
        """Camera frame (x right, y down, z forward) in world coordinates."""
        forward = normalize(np.subtract(self.center, self.eye))
        right = normalize(np.cross(forward, self.up))
        down = normalize(np.cross(forward, right))
        return right, down, forward

    def spatial_direction(self, point2d):
        """Unit 3D ray through a pixel position."""
        right, down, forward = self.axes()
        u = (float(point2d[0]) - self.principal_point[0]) / self.focal
        v = (float(point2d[1]) - self.principal_point[1]) / self.focal
        return normalize(u * right + v * down + forward)

    def screen_projection(self, point3d):
        """Pixel position of a 3D point (inverse of spatial_direction)."""
        right, down, forward = self.axes()
        rel = np.asarray(point3d, dtype=np.float64) - np.asarray(self.eye, dtype=np.float64)
        z = float(np.dot(rel, forward))
        return [
            self.principal_point[0] + self.focal * float(np.dot(rel, right)) / z,
            self.principal_point[1] + self.focal * float(np.dot(rel, down)) / z,
        ]


class Region2D(BaseModel):
    """A segmented image region."""
    handle: int
    contour: List[List[float]] = Field(default_factory=list)  # outer contour pixels
    area: float = 0.0
    center: List[float] = Field(..., min_length=2, max_length=2)

    model_config = ConfigDict(extra="forbid")


class RegionBoundary(BaseModel):
    """Shared boundary of two regions in the same view."""
    handle: int
    region1: int
    region2: int
    sampled_points: List[List[List[float]]] = Field(default_factory=list)  # polylines of pixels

    model_config = ConfigDict(extra="forbid")


class Line2D(BaseModel):
    """A classified 2D line segment."""
    handle: int
    first: List[float] = Field(..., min_length=2, max_length=2)
    second: List[float] = Field(..., min_length=2, max_length=2)
    vp_class: int = Field(..., ge=0, le=2)

    model_config = ConfigDict(extra="forbid")


class LineRelation(BaseModel):
    """Intersection or incidence between two lines in the same view."""
    line1: int
    line2: int
    junction_weight: float = 0.0

    model_config = ConfigDict(extra="forbid")


class View(BaseModel):
    """One calibrated perspective view and its 2D features."""
    camera: PerspectiveCamera
    regions: List[Region2D] = Field(default_factory=list)
    boundaries: List[RegionBoundary] = Field(default_factory=list)
    lines: List[Line2D] = Field(default_factory=list)
    line_relations: List[LineRelation] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class RegionOverlap(BaseModel):
    """Overlap ratio between two regions of different views."""
    region1: RegionIndex
    region2: RegionIndex
    ratio: float = Field(..., gt=0.0, le=1.0)

    model_config = ConfigDict(extra="forbid")


class RegionLineConnection(BaseModel):
    """Unit rays sampled where a line passes near a region."""
    region: RegionIndex
    line: LineIndex
    anchors: List[List[float]] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class InterViewLineIncidence(BaseModel):
    """Two same-class lines of different views judged coincident."""
    line1: LineIndex
    line2: LineIndex
    anchor: List[float] = Field(..., min_length=3, max_length=3)

    model_config = ConfigDict(extra="forbid")


class Line3D(BaseModel):
    """A 3D line segment."""
    first: List[float] = Field(..., min_length=3, max_length=3)
    second: List[float] = Field(..., min_length=3, max_length=3)

    model_config = ConfigDict(extra="forbid")

    def scaled(self, factor):
        return Line3D(
            first=[c * factor for c in self.first],
            second=[c * factor for c in self.second],
        )


class UnitScaleLine(BaseModel):
    """Unit-scale 3D segment of one elementary line."""
    line: LineIndex
    segment: Line3D

    model_config = ConfigDict(extra="forbid")


class SceneInput(BaseModel):
    """Everything the reconstruction core consumes."""
    views: List[View] = Field(default_factory=list)
    vanishing_points: List[List[float]] = Field(..., min_length=3, max_length=3)
    region_overlaps: List[RegionOverlap] = Field(default_factory=list)
    region_line_connections: List[RegionLineConnection] = Field(default_factory=list)
    interview_line_incidences: List[InterViewLineIncidence] = Field(default_factory=list)
    lines: List[UnitScaleLine] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    def region_indices(self):
        """All region indices sorted by (view, handle)."""
        indices = [
            RegionIndex(view_id=vid, handle=r.handle)
            for vid, view in enumerate(self.views)
            for r in view.regions
        ]
        return sorted(indices, key=RegionIndex.sort_key)

    def line_indices(self):
        """All line indices sorted by (view, handle)."""
        indices = [
            LineIndex(view_id=vid, handle=l.handle)
            for vid, view in enumerate(self.views)
            for l in view.lines
        ]
        return sorted(indices, key=LineIndex.sort_key)

    def region_data(self, ri):
        for region in self.views[ri.view_id].regions:
            if region.handle == ri.handle:
                return region
        return None

    def unit_lines(self):
        """Map LineIndex -> unit-scale Line3D."""
        return {ul.line: ul.segment for ul in self.lines}


class PlaneDescriptor(BaseModel):
    """
    A committed plane.

    Orthogonal planes carry the vanishing direction class and signed depth
    along it; skewed planes carry an explicit anchor point.
    """
    orthogonal: bool
    vp_class: Optional[int] = None
    depth: Optional[float] = None
    anchor: Optional[List[float]] = None
    normal: List[float] = Field(..., min_length=3, max_length=3)
    root: List[float] = Field(..., min_length=3, max_length=3)

    model_config = ConfigDict(extra="forbid")


class RegionCCResult(BaseModel):
    """Reconstruction of one region connected component."""
    cc_id: int
    subgraph_id: int
    members: List[RegionIndex] = Field(default_factory=list)
    plane: PlaneDescriptor
    correction: float = 1.0
    num_candidates: int = 0

    model_config = ConfigDict(extra="forbid")


class LineCCResult(BaseModel):
    """Reconstruction of one line connected component."""
    cc_id: int
    subgraph_id: int
    members: List[LineIndex] = Field(default_factory=list)
    depth_factor: float = 1.0
    correction: float = 1.0

    model_config = ConfigDict(extra="forbid")


class RegionPlane(BaseModel):
    """Plane assigned to an elementary region."""
    region: RegionIndex
    plane: PlaneDescriptor

    model_config = ConfigDict(extra="forbid")


class SubgraphReport(BaseModel):
    """Bookkeeping for one independently solved connected subgraph."""
    subgraph_id: int
    num_vertices: int = 0
    num_edges: int = 0
    determined_vertices: int = 0
    determined_edges: int = 0
    commit_order: List[str] = Field(default_factory=list)
    max_anchor_offset: float = 0.0
    non_finite_anchors: int = 0
    refined: bool = False
    refinement_error: Optional[str] = None
    residual: Optional[float] = None
    pinned_factor: Optional[float] = None

    model_config = ConfigDict(extra="forbid")


class CheckResult(BaseModel):
    """Result of a single validation check."""
    rule_id: str
    severity: Severity
    passed: bool
    message: str
    evidence: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class ValidationReport(BaseModel):
    """Collection of validation check results."""
    checks: List[CheckResult] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @property
    def has_errors(self):
        """Check if any errors exist."""
        return any(c.severity == Severity.ERROR and not c.passed for c in self.checks)

    @property
    def error_count(self):
        """Count of failed error-level checks."""
        return sum(1 for c in self.checks if c.severity == Severity.ERROR and not c.passed)

    @property
    def warning_count(self):
        """Count of failed warning-level checks."""
        return sum(1 for c in self.checks if c.severity == Severity.WARN and not c.passed)


class ReconstructionResult(BaseModel):
    """Root result of one reconstruction run."""
    scene_scale: float
    region_ccs: List[RegionCCResult] = Field(default_factory=list)
    line_ccs: List[LineCCResult] = Field(default_factory=list)
    region_planes: List[RegionPlane] = Field(default_factory=list)
    lines: List[UnitScaleLine] = Field(default_factory=list)  # rescaled to true scale
    subgraphs: List[SubgraphReport] = Field(default_factory=list)
    validation: ValidationReport = Field(default_factory=ValidationReport)

    model_config = ConfigDict(extra="forbid")

    def plane_of(self, ri):
        for rp in self.region_planes:
            if rp.region == ri:
                return rp.plane
        return None

    def depth_factor_of_cc(self, cc_id):
        for lcc in self.line_ccs:
            if lcc.cc_id == cc_id:
                return lcc.depth_factor
        return None
