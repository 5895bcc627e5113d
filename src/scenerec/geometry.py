"""
Spatial geometry helpers for Scene Rec.

Planes, rays through the projection center, closest points between lines,
and visual (solid-angle proxy) areas of direction sets measured on a
tangential plane. All vectors are numpy float arrays of shape (3,).
"""

import numpy as np
from shapely.geometry import MultiPoint, Polygon


ORIGIN = np.zeros(3)


def as_vec3(values):
    """Convert a sequence to a float64 vector of length 3."""
    vec = np.asarray(values, dtype=np.float64).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"expected 3 components, got {vec.shape}")
    return vec


def normalize(vec):
    """Return vec / |vec|; zero vectors are returned unchanged."""
    vec = np.asarray(vec, dtype=np.float64)
    n = np.linalg.norm(vec)
    if n == 0.0:
        return vec.copy()
    return vec / n


def gaussian(x, sigma):
    """Unnormalized Gaussian kernel exp(-(x/sigma)^2 / 2)."""
    return np.exp(-np.square(np.asarray(x, dtype=np.float64) / sigma) / 2.0)


class Plane:
    """
    A plane given by an anchor point and a unit normal.
    """

    __slots__ = ("anchor", "normal")

    def __init__(self, anchor, normal):
        self.anchor = np.asarray(anchor, dtype=np.float64)
        self.normal = normalize(normal)

    def root(self):
        """Closest point of the plane to the origin."""
        return self.normal * float(np.dot(self.anchor, self.normal))

    def signed_distance_to(self, point):
        return float(np.dot(np.asarray(point, dtype=np.float64) - self.anchor, self.normal))

    def distance_to(self, point):
        return abs(self.signed_distance_to(point))

    def distances_to(self, points):
        """Unsigned distances for an (n, 3) array of points."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return np.abs((points - self.anchor) @ self.normal)

    def __repr__(self):
        return f"Plane(anchor={self.anchor.tolist()}, normal={self.normal.tolist()})"


def intersect_ray_plane(direction, plane):
    """
    Intersect the line through the origin along direction with a plane.

    The result is a point on the plane; when the line is parallel to the
    plane every component is infinite.
    """
    direction = np.asarray(direction, dtype=np.float64)
    denom = float(np.dot(direction, plane.normal))
    if abs(denom) < 1e-12:
        return np.full(3, np.inf)
    t = float(np.dot(plane.anchor, plane.normal)) / denom
    return direction * t


def intersect_rays_plane(directions, plane):
    """Vectorized intersect_ray_plane over an (n, 3) array of directions."""
    directions = np.asarray(directions, dtype=np.float64).reshape(-1, 3)
    denom = directions @ plane.normal
    with np.errstate(divide="ignore", invalid="ignore"):
        t = float(np.dot(plane.anchor, plane.normal)) / denom
        points = directions * t[:, None]
    points[np.abs(denom) < 1e-12] = np.inf
    return points


def closest_points_between_lines(p1, d1, p2, d2):
    """
    Closest points between the infinite lines p1 + s*d1 and p2 + t*d2.

    Returns (point on first line, point on second line). For parallel lines
    the first point is p1.
    """
    p1 = np.asarray(p1, dtype=np.float64)
    p2 = np.asarray(p2, dtype=np.float64)
    d1 = np.asarray(d1, dtype=np.float64)
    d2 = np.asarray(d2, dtype=np.float64)

    w0 = p1 - p2
    a = float(np.dot(d1, d1))
    b = float(np.dot(d1, d2))
    c = float(np.dot(d2, d2))
    d = float(np.dot(d1, w0))
    e = float(np.dot(d2, w0))
    denom = a * c - b * b

    if a == 0.0 or c == 0.0:
        return np.full(3, np.nan), np.full(3, np.nan)

    if denom <= 1e-12 * a * c:
        # parallel
        s = 0.0
        t = e / c
    else:
        s = (b * e - c * d) / denom
        t = (a * e - b * d) / denom

    return p1 + s * d1, p2 + t * d2


def closest_point_on_ray_to_line(direction, line_first, line_second):
    """Point on the line through the origin along direction closest to a 3D line."""
    on_ray, _ = closest_points_between_lines(
        ORIGIN, direction, line_first, np.asarray(line_second) - np.asarray(line_first)
    )
    return on_ray


def propose_xy_directions(z):
    """
    Propose two unit axes orthogonal to z (and to each other).

    Picks the world axis least aligned with z as the helper so the frame is
    stable for any z.
    """
    z = normalize(z)
    helper = np.zeros(3)
    helper[int(np.argmin(np.abs(z)))] = 1.0
    x = normalize(np.cross(z, helper))
    y = normalize(np.cross(z, x))
    return x, y


def visual_area_of_directions(tangential_plane, x_axis, y_axis, directions, convexify):
    """
    Area spanned by a set of directions on a tangential plane.

    Each direction is intersected with the plane and expressed in the
    (x_axis, y_axis) frame. With convexify the convex hull area is returned,
    otherwise the area of the polygon in the given order. Fewer than three
    usable directions give 0.0.
    """
    directions = np.asarray(directions, dtype=np.float64).reshape(-1, 3)
    if len(directions) <= 2:
        return 0.0

    points = intersect_rays_plane(directions, tangential_plane)
    points = points[np.all(np.isfinite(points), axis=1)]
    if len(points) <= 2:
        return 0.0

    coords = np.stack([points @ x_axis, points @ y_axis], axis=1)

    if convexify:
        return float(MultiPoint([tuple(c) for c in coords]).convex_hull.area)
    return float(Polygon([tuple(c) for c in coords]).area)


def scene_scale(points):
    """
    Radius of the sphere enclosing the bounding box of the given points.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(points) == 0:
        return 0.0
    lo = points.min(axis=0)
    hi = points.max(axis=0)
    return float(np.linalg.norm(hi - lo) / 2.0)
