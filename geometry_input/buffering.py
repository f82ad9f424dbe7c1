"""
Geometry Buffering Module

Buffers polygonal geometries by a distance in kilometres. The buffer is
computed in the UTM zone of the geometry's centroid and converted back to
EPSG:4326 so it can be intersected against the reference layers.
"""

from pyproj import CRS, Transformer
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform

from core.errors import GeometryError
from utils.geometry_converters import is_polygonal
from utils.logger import get_logger

logger = get_logger(__name__)

# Constants
WGS84 = CRS.from_epsg(4326)
WEB_MERCATOR = 'EPSG:3857'  # Fallback when no UTM zone can be determined
METERS_PER_KM = 1000


def select_projected_crs(geom: BaseGeometry) -> CRS:
    """
    Select appropriate projected CRS for accurate distance-based buffering.

    Strategy:
    1. Calculate geometry centroid
    2. Determine UTM zone from centroid longitude
    3. Determine hemisphere (North/South) from centroid latitude
    4. Return appropriate WGS84 UTM CRS
    5. Fallback to Web Mercator if the zone cannot be determined

    Args:
        geom: Shapely geometry in EPSG:4326

    Returns:
        Projected CRS suitable for metric buffering
    """
    try:
        centroid = geom.centroid
        lon, lat = centroid.x, centroid.y

        # UTM zones are 6 degrees wide, starting at -180°
        utm_zone = min(int((lon + 180) / 6) + 1, 60)

        if lat >= 0:
            epsg_code = 32600 + utm_zone  # WGS84 UTM North
        else:
            epsg_code = 32700 + utm_zone  # WGS84 UTM South

        logger.debug(f"  - Selected UTM Zone {utm_zone}{'N' if lat >= 0 else 'S'} "
                     f"(EPSG:{epsg_code}) for buffering")
        return CRS.from_epsg(epsg_code)

    except Exception as e:
        logger.warning(f"Failed to determine UTM zone: {e}")
        logger.debug(f"  - Using fallback: Web Mercator ({WEB_MERCATOR})")
        return CRS.from_string(WEB_MERCATOR)


def buffer_geometry_km(geom: BaseGeometry, radius_km: float) -> BaseGeometry:
    """
    Expand a polygonal geometry outward by radius_km, result in EPSG:4326.

    Process:
    1. Select projected CRS (UTM zone of the centroid)
    2. Transform geometry to projected CRS
    3. Apply buffer in meters
    4. Transform buffered geometry back to EPSG:4326

    Args:
        geom: Polygon or MultiPolygon in EPSG:4326
        radius_km: Buffer distance in kilometres, must be > 0

    Returns:
        Buffered Polygon/MultiPolygon in EPSG:4326

    Raises:
        GeometryError: If input is not polygonal, empty, or any step fails
    """
    if geom is None or not is_polygonal(geom):
        geom_type = geom.geom_type if geom is not None else 'None'
        raise GeometryError('buffer', f'expected Polygon or MultiPolygon, got {geom_type}')
    if geom.is_empty:
        raise GeometryError('buffer', f'{geom.geom_type} has no rings')
    if radius_km is None or radius_km <= 0:
        raise GeometryError('buffer', f'buffer radius must be positive, got {radius_km} km')

    logger.debug(f"Buffering geometry by {radius_km} km...")

    projected_crs = select_projected_crs(geom)
    to_projected = Transformer.from_crs(WGS84, projected_crs, always_xy=True)
    to_wgs84 = Transformer.from_crs(projected_crs, WGS84, always_xy=True)

    try:
        geom_projected = transform(to_projected.transform, geom)
    except Exception as e:
        raise GeometryError('buffer', f'CRS transformation failed: {e}')

    try:
        buffered_projected = geom_projected.buffer(radius_km * METERS_PER_KM)
    except Exception as e:
        raise GeometryError('buffer', f'buffer operation failed: {e}')

    try:
        buffered = transform(to_wgs84.transform, buffered_projected)
    except Exception as e:
        raise GeometryError('buffer', f'CRS back-transformation failed: {e}')

    if buffered.is_empty or not is_polygonal(buffered):
        raise GeometryError('buffer', f'buffer produced {buffered.geom_type}')

    logger.debug(f"  ✓ Buffered geometry created in EPSG:4326 ({buffered.geom_type})")

    return buffered
