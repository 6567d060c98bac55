"""
Planar geometry used by dispatch.

Locations are flat (x, y) coordinates taken from the place registry or from a
driver's declaration. Distances are Euclidean, not geodesic: dispatch only needs
a consistent "nearest" ordering inside one area.
"""

from math import sqrt
from typing import NamedTuple


class Point(NamedTuple):
    x: float
    y: float


class Box(NamedTuple):
    """
    Axis-aligned area given by its northwest and southeast corners.

    Callers do not always pass the corners the right way round, so the
    bounds are normalized before any comparison.
    """
    northwest: Point
    southeast: Point

    @property
    def x_bounds(self):
        return (min(self.northwest.x, self.southeast.x),
                max(self.northwest.x, self.southeast.x))

    @property
    def y_bounds(self):
        return (min(self.northwest.y, self.southeast.y),
                max(self.northwest.y, self.southeast.y))

    @classmethod
    def from_corners(cls, nw_x: float, nw_y: float, se_x: float, se_y: float) -> "Box":
        return cls(Point(float(nw_x), float(nw_y)), Point(float(se_x), float(se_y)))


def contains(box: Box, point: Point) -> bool:
    """
    Return True if point lies inside box. All four edges are inclusive.

    Args:
        box: Area to test against
        point: Location to test

    Returns:
        True when x_lo <= x <= x_hi and y_lo <= y <= y_hi
    """
    x_lo, x_hi = box.x_bounds
    y_lo, y_hi = box.y_bounds
    return x_lo <= point.x <= x_hi and y_lo <= point.y <= y_hi


def planar_distance(a: Point, b: Point) -> float:
    """Flat Euclidean distance between two points."""
    dx = float(a.x) - float(b.x)
    dy = float(a.y) - float(b.y)
    return sqrt(dx ** 2 + dy ** 2)
