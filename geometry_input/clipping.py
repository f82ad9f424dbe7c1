"""
Geometry Clipping Module

Intersection tests between reference features and an area of interest.
Features are selected whole (never cut) so every property and the original
geometry reach the reports unchanged.
"""

from typing import Iterable, List, Optional, Union
from shapely.geometry.base import BaseGeometry
from shapely.prepared import prep, PreparedGeometry

from core.errors import GeometryError
from core.models import Feature
from utils.logger import get_logger

logger = get_logger(__name__)

GeometryLike = Union[Feature, BaseGeometry]


def _as_geometry(value: Optional[GeometryLike]) -> BaseGeometry:
    if isinstance(value, Feature):
        value = value.geometry
    if value is None:
        raise GeometryError('intersects', 'geometry is missing')
    if value.is_empty:
        raise GeometryError('intersects', f'{value.geom_type} is empty')
    return value


def intersects(a: GeometryLike, b: GeometryLike) -> bool:
    """
    True iff the two geometries share at least one point.

    Accepts Features or bare geometries on either side; Point, (Multi)Line
    and (Multi)Polygon combinations are all supported.

    Raises:
        GeometryError: If either side is missing/empty or GEOS rejects the pair
    """
    geom_a = _as_geometry(a)
    geom_b = _as_geometry(b)

    try:
        return bool(geom_a.intersects(geom_b))
    except Exception as e:
        raise GeometryError('intersects', str(e))


def prepare_clip_area(clip_area: BaseGeometry) -> PreparedGeometry:
    """Prepared version of the clip area for repeated intersection tests."""
    return prep(_as_geometry(clip_area))


def select_intersecting(
    features: Iterable[Feature],
    clip_area: Union[BaseGeometry, PreparedGeometry],
    layer_key: Optional[str] = None
) -> List[Feature]:
    """
    Features intersecting the clip area, in their original order.

    Features without a geometry (null or empty rows) are skipped.

    Args:
        features: Candidate features
        clip_area: Clip geometry, optionally already prepared
        layer_key: Layer being processed (attached to any GeometryError)

    Returns:
        List of matching features (same objects, not copies)

    Raises:
        GeometryError: If GEOS cannot test a feature geometry
    """
    if not isinstance(clip_area, PreparedGeometry):
        clip_area = prepare_clip_area(clip_area)

    matches = []
    skipped = 0
    for feature in features:
        if feature.geometry is None or feature.geometry.is_empty:
            skipped += 1
            continue
        try:
            hit = clip_area.intersects(feature.geometry)
        except Exception as e:
            raise GeometryError('intersects', str(e), layer_key)
        if hit:
            matches.append(feature)

    if skipped:
        logger.debug(f"  {layer_key or 'layer'}: skipped {skipped} features without geometry")
    return matches
