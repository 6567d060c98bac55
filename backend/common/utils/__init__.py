"""Common utility functions."""

from .geo import Box, Point, contains, planar_distance

__all__ = [
    "Box",
    "Point",
    "contains",
    "planar_distance",
]
