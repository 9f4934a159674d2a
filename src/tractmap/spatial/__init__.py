"""Spatial join of points to tract polygons"""

from .join import SpatialJoinEngine, assign, tag_points

__all__ = [
    'SpatialJoinEngine',
    'assign',
    'tag_points'
]
