"""
Geometry Input Processing Package

Geometry primitives used by the analysis engine plus input loading.
All primitives are pure: same input, same output, no shared state.

Modules:
    load_input: Read area files and extract the polygon to analyze
    buffering: Buffer polygons by a distance in km (UTM projected), return EPSG:4326
    measurement: Geodesic area and perimeter in km² / km
    clipping: Intersection tests and feature selection against a clip area

Usage:
    from geometry_input import intersects, area, length, buffer

    clip_area = buffer(polygon, 0.5)
    area(clip_area)  # km²
"""

from geometry_input.buffering import buffer_geometry_km as buffer
from geometry_input.clipping import intersects, select_intersecting
from geometry_input.measurement import area_km2 as area, length_km as length
from geometry_input.load_input import load_geometry_file, extract_source_polygon

__all__ = [
    'intersects',
    'area',
    'length',
    'buffer',
    'select_intersecting',
    'load_geometry_file',
    'extract_source_polygon'
]
