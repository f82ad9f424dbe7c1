"""
Geometry Input Loading Module

Reads uploaded area files and extracts the polygon that will be analyzed.
File parsing (KML, GeoJSON, GeoPackage, ...) is delegated to GeoPandas;
this module only applies the single-polygon-per-area policy to its output.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple, Union

import geopandas as gpd
from pyproj import CRS

from core.errors import MissingInputError
from core.models import Feature
from utils.geometry_converters import POLYGONAL_TYPES
from utils.logger import get_logger

logger = get_logger(__name__)

WGS84 = CRS.from_epsg(4326)

FeatureInput = Union[Dict[str, Any], Feature]


def load_geometry_file(file_path: Union[str, Path]) -> List[Dict]:
    """
    Load a geospatial file and return its features as GeoJSON dicts.

    Supports every format GeoPandas can read: KML, GeoJSON, GeoPackage,
    Shapefile. Coordinates must already be EPSG:4326 (KML always is).

    Args:
        file_path: Path to geospatial file

    Returns:
        List of GeoJSON feature dicts in file order

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file cannot be read, is empty, or uses another CRS
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Input file not found: {file_path}")

    logger.info(f"Loading geometry from: {file_path}")

    try:
        gdf = gpd.read_file(file_path)
    except Exception as e:
        raise ValueError(f"Failed to read geospatial file: {e}")

    if gdf.empty:
        raise ValueError("Input file contains no features")

    if gdf.crs is not None and not CRS.from_user_input(gdf.crs).equals(WGS84, ignore_axis_order=True):
        raise ValueError(
            f"Input file uses {gdf.crs}; areas must be provided in EPSG:4326 "
            f"(longitude/latitude)"
        )

    logger.info(f"  - Loaded {len(gdf)} feature(s)")
    logger.debug(f"  - Geometry types: {gdf.geometry.geom_type.unique().tolist()}")

    return list(gdf.iterfeatures(na='drop', drop_id=True))


def _feature_type(feature: FeatureInput) -> str:
    if isinstance(feature, Feature):
        return feature.geom_type or ''
    geometry = feature.get('geometry') or {}
    return geometry.get('type', '')


def extract_source_polygon(features: Union[Dict, Iterable[FeatureInput]]) -> Tuple[Feature, int]:
    """
    Pick the polygon to analyze from converted KML output.

    The first Polygon or MultiPolygon feature wins; any further polygons are
    ignored (one polygon per area) and only counted so callers can warn.

    Args:
        features: GeoJSON FeatureCollection dict, or an iterable of GeoJSON
                  feature dicts / Feature objects

    Returns:
        Tuple of (source polygon feature, number of ignored polygons)

    Raises:
        MissingInputError: If no Polygon/MultiPolygon feature is present
    """
    if isinstance(features, dict):
        features = features.get('features') or []

    polygons = [f for f in features if _feature_type(f) in POLYGONAL_TYPES]

    if not polygons:
        raise MissingInputError(
            "The uploaded geometry contains no Polygon or MultiPolygon feature"
        )

    first = polygons[0]
    source = first if isinstance(first, Feature) else Feature.from_geojson(first)

    ignored = len(polygons) - 1
    if ignored:
        logger.warning(f"  ⚠ {ignored} additional polygon(s) ignored; "
                       f"only the first polygon is analyzed")

    return source, ignored
