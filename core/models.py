"""
Data model for the AOI Layer Analyzer.

An AreaEntry is the unit of work: one uploaded polygon, the clip area derived
from it, the per-layer clipped features and the aggregate metrics of the last
analysis run. Its lifecycle is an explicit state machine:

    Created -> Analyzing -> Analyzed
                        \\-> Failed

Re-analysis (from Analyzed, or a retry from Failed) goes back through
Analyzing and overwrites results; it never accumulates.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from shapely.geometry.base import BaseGeometry

from core.errors import ConfigurationError, InvalidStateError
from utils.geometry_converters import geojson_to_geometry, geometry_to_geojson


@dataclass(frozen=True)
class Feature:
    """A geometry plus its (heterogeneous, per-layer) properties."""

    geometry: BaseGeometry
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_geojson(cls, feature: Dict) -> 'Feature':
        """Build a Feature from a GeoJSON feature dict."""
        return cls(
            geometry=geojson_to_geometry(feature.get('geometry')),
            properties=dict(feature.get('properties') or {})
        )

    def to_geojson(self) -> Dict:
        return {
            'type': 'Feature',
            'geometry': geometry_to_geojson(self.geometry),
            'properties': dict(self.properties)
        }

    @property
    def geom_type(self) -> Optional[str]:
        return self.geometry.geom_type if self.geometry is not None else None


FeatureCollection = List[Feature]


class AreaType(str, Enum):
    """How the clip area is derived from the source polygon."""

    EXACT = 'exact'
    CORE = 'core'
    DIRECT_INFLUENCE = 'direct_influence'
    INDIRECT_INFLUENCE = 'indirect_influence'

    @classmethod
    def parse(cls, value: Any) -> 'AreaType':
        """
        Parse an area type from its value, its name or a Spanish form alias
        ('exacta', 'nucleo', 'directa', 'indirecta').
        """
        if isinstance(value, cls):
            return value

        text = str(value).strip().lower()
        aliases = {
            'exacta': cls.EXACT,
            'nucleo': cls.CORE,
            'núcleo': cls.CORE,
            'directa': cls.DIRECT_INFLUENCE,
            'direct': cls.DIRECT_INFLUENCE,
            'indirecta': cls.INDIRECT_INFLUENCE,
            'indirect': cls.INDIRECT_INFLUENCE,
        }
        if text in aliases:
            return aliases[text]

        for member in cls:
            if text in (member.value, member.name.lower()):
                return member

        raise ConfigurationError(f"Unknown area type: {value!r}")

    @property
    def requires_buffer(self) -> bool:
        return self is AreaType.CORE


class AreaState(str, Enum):
    CREATED = 'created'
    ANALYZING = 'analyzing'
    ANALYZED = 'analyzed'
    FAILED = 'failed'


# States from which a new analysis run may start. Failed is included so a
# bulk run can retry areas that failed before.
STARTABLE_STATES = (AreaState.CREATED, AreaState.ANALYZED, AreaState.FAILED)


@dataclass
class AreaMetrics:
    """Aggregate metrics of one analysis run."""

    area_km2: float = 0.0
    perimeter_km: float = 0.0
    total_elements: int = 0
    total_population: float = 0
    population_density: float = 0.0
    locality_count: int = 0
    locality_density: float = 0.0
    overlap_flags: Dict[str, bool] = field(default_factory=dict)
    layers_found: int = 0
    geometry_type: Optional[str] = None
    area_type: Optional[AreaType] = None
    buffer_used: bool = False
    buffer_radius_km: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'area_km2': self.area_km2,
            'perimeter_km': self.perimeter_km,
            'total_elements': self.total_elements,
            'total_population': self.total_population,
            'population_density': self.population_density,
            'locality_count': self.locality_count,
            'locality_density': self.locality_density,
            'overlap_flags': dict(self.overlap_flags),
            'layers_found': self.layers_found,
            'geometry_type': self.geometry_type,
            'area_type': self.area_type.value if self.area_type else None,
            'buffer_used': self.buffer_used,
            'buffer_radius_km': self.buffer_radius_km,
        }


@dataclass
class AreaEntry:
    """
    One area of interest and the results of its latest analysis.

    source_polygon holds a single Polygon/MultiPolygon feature: when the
    uploaded file contains several polygons only the first one is analyzed
    and ignored_polygons records how many others were dropped.

    per_layer_results and metrics are only meaningful while state is
    Analyzed. A layer key missing from per_layer_results means the layer was
    not processed; an empty list means it was processed with zero matches.
    """

    id: int
    name: str
    source_polygon: Optional[Feature]
    state: AreaState = AreaState.CREATED
    area_type: Optional[AreaType] = None
    buffer_km: float = 0.0
    clip_area: Optional[BaseGeometry] = None
    per_layer_results: Dict[str, FeatureCollection] = field(default_factory=dict)
    metrics: Optional[AreaMetrics] = None
    error: Optional[str] = None
    analyzed_at: Optional[datetime] = None
    ignored_polygons: int = 0

    @property
    def is_analyzed(self) -> bool:
        return self.state is AreaState.ANALYZED

    def begin_analysis(self, area_type: AreaType, buffer_km: float) -> None:
        """
        Move to Analyzing, discarding the results of any previous run.

        Raises:
            InvalidStateError: If a run is already in progress on this entry
        """
        if self.state not in STARTABLE_STATES:
            raise InvalidStateError(self.id, self.state.value)

        self.state = AreaState.ANALYZING
        self.area_type = area_type
        self.buffer_km = buffer_km
        self.clip_area = None
        self.per_layer_results = {}
        self.metrics = None
        self.error = None
        self.analyzed_at = None

    def complete_analysis(self,
                          clip_area: BaseGeometry,
                          per_layer_results: Dict[str, FeatureCollection],
                          metrics: AreaMetrics) -> None:
        if self.state is not AreaState.ANALYZING:
            raise InvalidStateError(self.id, self.state.value, 'complete an analysis')

        self.clip_area = clip_area
        self.per_layer_results = per_layer_results
        self.metrics = metrics
        self.analyzed_at = datetime.now(timezone.utc)
        self.state = AreaState.ANALYZED

    def fail_analysis(self, reason: str) -> None:
        """Move to Failed; partial results are dropped so nobody reads them."""
        self.state = AreaState.FAILED
        self.per_layer_results = {}
        self.metrics = None
        self.error = reason

    def require_analyzed(self) -> None:
        """Raise InvalidStateError unless results and metrics may be read."""
        if not self.is_analyzed:
            raise InvalidStateError(self.id, self.state.value, 'read results')
