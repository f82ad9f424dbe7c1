"""
Geometry conversion utilities for the AOI Layer Analyzer.

This module converts between GeoJSON geometry mappings (what the
file loaders hand over) and Shapely geometries (what the
analysis engine works with), plus a polygon type check.

Functions:
    geojson_to_geometry: GeoJSON geometry mapping -> Shapely geometry
    geometry_to_geojson: Shapely geometry -> GeoJSON geometry mapping
    is_polygonal: True for Polygon / MultiPolygon geometries
"""

from typing import Dict, Optional, Any
from shapely.geometry import shape, mapping
from shapely.geometry.base import BaseGeometry

POLYGONAL_TYPES = ('Polygon', 'MultiPolygon')


def geojson_to_geometry(geom: Optional[Any]) -> Optional[BaseGeometry]:
    """
    Convert a GeoJSON geometry mapping to a Shapely geometry.

    Shapely geometries are passed through unchanged, so callers may hand over
    either representation.

    Parameters:
    -----------
    geom : Optional[Any]
        GeoJSON geometry dict, Shapely geometry or None

    Returns:
    --------
    Optional[BaseGeometry]
        Shapely geometry, or None for a null geometry

    Raises:
    -------
    ValueError
        If the mapping is not a recognizable GeoJSON geometry
    """
    if geom is None:
        return None

    if isinstance(geom, BaseGeometry):
        return geom

    if not isinstance(geom, dict) or 'type' not in geom:
        raise ValueError(f"Not a GeoJSON geometry: {geom!r}")

    try:
        return shape(geom)
    except Exception as e:
        raise ValueError(f"Invalid {geom.get('type')} geometry: {e}")


def geometry_to_geojson(geom: Optional[BaseGeometry]) -> Optional[Dict]:
    """Convert a Shapely geometry to a GeoJSON geometry dict (None passes through)."""
    if geom is None:
        return None
    return mapping(geom)


def is_polygonal(geom: Optional[BaseGeometry]) -> bool:
    """True if geom is a Polygon or MultiPolygon."""
    return geom is not None and geom.geom_type in POLYGONAL_TYPES

