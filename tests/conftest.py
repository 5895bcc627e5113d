"""Pytest fixtures for Scene Rec tests."""

import tempfile

import numpy as np
import pytest


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def default_config():
    """Create default reconstruction configuration."""
    from scenerec.config import ReconstructionConfig
    return ReconstructionConfig()


@pytest.fixture
def axis_vps():
    """Vanishing directions along the world axes."""
    return np.eye(3)


def make_camera():
    """100x100 camera at the origin looking along +y with z up."""
    from scenerec.models import PerspectiveCamera
    return PerspectiveCamera(
        width=100,
        height=100,
        focal=100.0,
        principal_point=[50.0, 50.0],
        center=[0.0, 1.0, 0.0],
    )


def pixel_ray(px, py):
    """Unit ray through a pixel of make_camera()."""
    ray = np.array([(px - 50.0) / 100.0, 1.0, -(py - 50.0) / 100.0])
    return (ray / np.linalg.norm(ray)).tolist()


def make_rect_region(handle, x0, x1, y0, y1):
    """Rectangular region with its contour and center in pixels."""
    from scenerec.models import Region2D
    return Region2D(
        handle=handle,
        contour=[[x0, y0], [x1, y0], [x1, y1], [x0, y1]],
        area=float((x1 - x0) * (y1 - y0)),
        center=[(x0 + x1) / 2.0, (y0 + y1) / 2.0],
    )


def build_wall_scene(with_second_view=False):
    """
    A wall at unit depth along +y seen by one camera.

    Region 0 and region 1 share a vertical boundary at pixel column 55.
    Line 0 is vertical in region 0 and connected to it; line 1 and region 2
    are isolated, so the mixed graph splits into three subgraphs.
    """
    from scenerec.models import (
        Line2D, Line3D, LineIndex, RegionBoundary, RegionIndex,
        RegionLineConnection, RegionOverlap, SceneInput, UnitScaleLine, View,
    )

    rows = [20, 35, 50, 65, 80]
    view0 = View(
        camera=make_camera(),
        regions=[
            make_rect_region(0, 10, 55, 20, 80),
            make_rect_region(1, 55, 90, 20, 80),
            make_rect_region(2, 10, 90, 85, 95),
        ],
        boundaries=[
            RegionBoundary(handle=0, region1=0, region2=1, sampled_points=[[[55, r] for r in rows]]),
        ],
        lines=[
            Line2D(handle=0, first=[50, 20], second=[50, 80], vp_class=2),
            Line2D(handle=1, first=[70, 85], second=[80, 85], vp_class=0),
        ],
    )

    views = [view0]
    overlaps = []
    if with_second_view:
        views.append(View(camera=make_camera(), regions=[make_rect_region(0, 10, 55, 20, 80)]))
        overlaps.append(RegionOverlap(
            region1=RegionIndex(view_id=0, handle=0),
            region2=RegionIndex(view_id=1, handle=0),
            ratio=0.8,
        ))

    return SceneInput(
        views=views,
        vanishing_points=[[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]],
        region_overlaps=overlaps,
        region_line_connections=[
            RegionLineConnection(
                region=RegionIndex(view_id=0, handle=0),
                line=LineIndex(view_id=0, handle=0),
                anchors=[pixel_ray(50, r) for r in rows],
            ),
        ],
        lines=[
            UnitScaleLine(
                line=LineIndex(view_id=0, handle=0),
                segment=Line3D(first=[0.0, 1.0, 0.3], second=[0.0, 1.0, -0.3]),
            ),
            UnitScaleLine(
                line=LineIndex(view_id=0, handle=1),
                segment=Line3D(first=[-0.1, 1.0, 0.0], second=[0.1, 1.0, 0.0]),
            ),
        ],
    )


@pytest.fixture
def wall_scene():
    """Single-view wall scene."""
    return build_wall_scene()


@pytest.fixture
def two_view_wall_scene():
    """Wall scene with a second view whose region overlaps region 0."""
    return build_wall_scene(with_second_view=True)


@pytest.fixture
def make_region_vertex():
    """Factory for standalone region CC vertices facing a given normal."""
    from scenerec.geometry import Plane, normalize, propose_xy_directions
    from scenerec.graph.hypotheses import PlaneHypothesis
    from scenerec.graph.mixed_graph import MixedGraphVertex, RegionCCProperties, VertexKind
    from scenerec.models import RegionIndex

    def _make(cc_id, normal, value=None, convex_area=1.0):
        n = normalize(normal)
        tangential = Plane(n, n)
        x_axis, y_axis = propose_xy_directions(n)
        properties = RegionCCProperties(
            tangential_plane=tangential,
            x_axis=x_axis,
            y_axis=y_axis,
            visual_area=convex_area,
            convex_visual_area=convex_area,
        )
        return MixedGraphVertex(
            VertexKind.REGION_CC, cc_id, [RegionIndex(view_id=0, handle=cc_id)], properties,
            seed=value if value is not None else PlaneHypothesis.skewed(tangential),
        )

    return _make
