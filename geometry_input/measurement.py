"""
Geometry Measurement Module

Geodesic area and perimeter of polygonal geometries in EPSG:4326, measured
on the WGS84 ellipsoid so results are in real kilometres regardless of
latitude.
"""

from typing import Tuple
from pyproj import Geod
from shapely.geometry.base import BaseGeometry

from core.errors import GeometryError
from utils.geometry_converters import is_polygonal

# WGS84 ellipsoid for geodesic calculations
GEOD = Geod(ellps='WGS84')

SQ_METERS_PER_SQ_KM = 1_000_000
METERS_PER_KM = 1000


def _geodesic_area_perimeter(geom: BaseGeometry, operation: str) -> Tuple[float, float]:
    """
    Run the geodesic area/perimeter computation with input checks.

    Raises:
        GeometryError: If geometry is missing, empty or not polygonal
    """
    if geom is None:
        raise GeometryError(operation, 'geometry is missing')
    if not is_polygonal(geom):
        raise GeometryError(operation, f'expected Polygon or MultiPolygon, got {geom.geom_type}')
    if geom.is_empty:
        raise GeometryError(operation, f'{geom.geom_type} has no rings')

    try:
        area_m2, perimeter_m = GEOD.geometry_area_perimeter(geom)
    except Exception as e:
        raise GeometryError(operation, str(e))

    return area_m2, perimeter_m


def area_km2(geom: BaseGeometry) -> float:
    """
    Geodesic area of a polygonal geometry in square kilometres.

    Args:
        geom: Polygon or MultiPolygon in EPSG:4326

    Returns:
        Area in km² (always >= 0; ring orientation does not matter)

    Raises:
        GeometryError: If geometry is degenerate, empty or not polygonal
    """
    area_m2, _ = _geodesic_area_perimeter(geom, 'area')
    return abs(area_m2) / SQ_METERS_PER_SQ_KM


def length_km(geom: BaseGeometry) -> float:
    """
    Geodesic perimeter of a polygonal geometry in kilometres.

    Interior rings (holes) are included, as are all parts of a MultiPolygon.

    Raises:
        GeometryError: If geometry is degenerate, empty or not polygonal
    """
    _, perimeter_m = _geodesic_area_perimeter(geom, 'length')
    return perimeter_m / METERS_PER_KM
