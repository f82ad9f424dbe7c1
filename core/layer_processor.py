"""
Layer processing module for the AOI Layer Analyzer.

This module is the analysis engine: given one area entry, the analysis
options and the reference layer registry it computes the clip area, selects
the features of every selected layer that intersect it and aggregates the
area metrics.

The engine is a coroutine. Features are tested in fixed-size batches and
control returns to the event loop after every batch, so a host loop (UI,
progress reporting, other areas) is never blocked for longer than one batch.

Classes:
    AnalysisConfig: Validated analysis options (area type, buffer, layers)
    AnalysisRules: Which layers drive distinct counts, population and overlap flags
    AnalysisResult: Metrics and per-layer matches of one run

Functions:
    analyze_area: Run one analysis on an area entry
    resolve_layer_order: Deterministic processing order of the selected layers
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from shapely.geometry.base import BaseGeometry

from core.errors import (
    AnalysisCancelledError, AnalysisError, ConfigurationError,
    GeometryError, MissingInputError
)
from core.layer_registry import ReferenceLayer, ReferenceLayerRegistry, resolve_property
from core.models import AreaEntry, AreaMetrics, AreaType, Feature, FeatureCollection
from geometry_input.buffering import buffer_geometry_km
from geometry_input.clipping import prepare_clip_area, select_intersecting
from geometry_input.measurement import area_km2, length_km
from utils.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[float, str], Any]

DEFAULT_BUFFER_KM = 0.5
DEFAULT_BATCH_SIZE = 50
DEFAULT_PROGRESS_SPAN = (20.0, 95.0)


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Analysis options, validated at construction.

    Attributes:
        area_type: How the clip area is derived from the source polygon
        buffer_km: Buffer radius for AreaType.CORE; None means the 0.5 km default.
                   Ignored by the other area types.
        selected_layers: Layer keys to process; None or empty means every
                         registered layer
    """

    area_type: AreaType = AreaType.CORE
    buffer_km: Optional[float] = None
    selected_layers: Optional[FrozenSet[str]] = None

    def __post_init__(self):
        object.__setattr__(self, 'area_type', AreaType.parse(self.area_type))

        if self.buffer_km is not None:
            try:
                buffer_km = float(self.buffer_km)
            except (TypeError, ValueError):
                raise ConfigurationError(f"buffer_km must be a number, got {self.buffer_km!r}")
            if buffer_km != buffer_km or buffer_km < 0:
                raise ConfigurationError(f"buffer_km must be >= 0, got {self.buffer_km}")
            if self.area_type is AreaType.CORE and buffer_km == 0:
                raise ConfigurationError("Core areas need a buffer radius greater than 0 km")
            object.__setattr__(self, 'buffer_km', buffer_km)

        if self.selected_layers is not None:
            if isinstance(self.selected_layers, str):
                raise ConfigurationError("selected_layers must be a collection of layer keys")
            keys = frozenset(str(k) for k in self.selected_layers)
            object.__setattr__(self, 'selected_layers', keys or None)

    @property
    def effective_buffer_km(self) -> float:
        """Buffer radius actually applied (0 for unbuffered area types)."""
        if not self.area_type.requires_buffer:
            return 0.0
        return self.buffer_km if self.buffer_km is not None else DEFAULT_BUFFER_KM

    @classmethod
    def from_settings(cls,
                      settings: Dict,
                      area_type: Optional[Any] = None,
                      buffer_km: Optional[float] = None,
                      selected_layers: Optional[Iterable[str]] = None) -> 'AnalysisConfig':
        """Build options, filling unspecified values from the analysis settings."""
        if area_type is None:
            area_type = settings.get('default_area_type', AreaType.CORE)
        area_type = AreaType.parse(area_type)
        if buffer_km is None and area_type.requires_buffer:
            buffer_km = settings.get('default_buffer_km', DEFAULT_BUFFER_KM)
        return cls(
            area_type=area_type,
            buffer_km=buffer_km,
            selected_layers=frozenset(selected_layers) if selected_layers else None
        )


@dataclass(frozen=True)
class AnalysisRules:
    """
    Layer roles used when aggregating metrics.

    Attributes:
        distinct_count_layers: Layers contributing the number of distinct
                               primary-property values instead of the number
                               of matched features (many language points share
                               a language label)
        overlap_layers: Protected/sensitive layers that get an overlap flag
        population_layer: Localities layer providing population and locality density
        population_fields: Population keys tried when the layer defines none
    """

    distinct_count_layers: FrozenSet[str] = frozenset({'lenguas'})
    overlap_layers: Tuple[str, ...] = (
        'za_publico', 'za_publico_a', 'anp_estatal', 'ramsar', 'z_historicos'
    )
    population_layer: Optional[str] = 'localidades'
    population_fields: Tuple[str, ...] = ('POBTOT', 'POBTOTAL')

    @classmethod
    def from_config(cls, config: Dict) -> 'AnalysisRules':
        """
        Read layer roles from the layer definitions.

        Definitions carry 'count_mode': 'distinct', 'overlap_flag': true and
        'population_source': true. Roles nobody declares keep their defaults.
        """
        layers = config.get('layers', [])
        defaults = cls()

        distinct = frozenset(l['key'] for l in layers if l.get('count_mode') == 'distinct')
        overlap = tuple(l['key'] for l in layers if l.get('overlap_flag'))
        population = [l for l in layers if l.get('population_source')]

        if len(population) > 1:
            raise ConfigurationError(
                f"Only one population_source layer is supported, got "
                f"{', '.join(l['key'] for l in population)}"
            )

        population_layer = defaults.population_layer
        population_fields = defaults.population_fields
        if population:
            population_layer = population[0]['key']
            population_fields = tuple(
                (population[0].get('fields') or {}).get('population', population_fields)
            )

        return cls(
            distinct_count_layers=distinct or defaults.distinct_count_layers,
            overlap_layers=overlap or defaults.overlap_layers,
            population_layer=population_layer,
            population_fields=population_fields
        )


@dataclass
class AnalysisResult:
    """Outcome of one successful analysis run."""

    area_id: int
    metrics: AreaMetrics
    per_layer_results: Dict[str, FeatureCollection] = field(default_factory=dict)
    clip_area: Optional[BaseGeometry] = None


def _report(on_progress: Optional[ProgressCallback], percent: float, message: str) -> None:
    """Send progress to the sink, clamped into [0, 100]. A missing sink is a no-op."""
    if on_progress is None:
        return
    on_progress(max(0.0, min(100.0, float(percent))), message)


def resolve_layer_order(registry: ReferenceLayerRegistry,
                        selected_layers: Optional[FrozenSet[str]]) -> List[str]:
    """
    Processing order for the selected layers.

    Registered layers come first in registration order; selected keys with
    no registered layer follow in sorted order (they still get an empty
    result so reports show them as processed).
    """
    registered = registry.list_keys()
    if not selected_layers:
        return registered

    ordered = [key for key in registered if key in selected_layers]
    ordered.extend(sorted(k for k in selected_layers if k not in registry))
    return ordered


def parse_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if value == value else None
    try:
        number = float(str(value).replace(',', '').strip())
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else number


def count_elements(layer_key: str, layer: Optional[ReferenceLayer],
                   matches: FeatureCollection, rules: AnalysisRules) -> int:
    """Contribution of one layer to total_elements."""
    if layer_key not in rules.distinct_count_layers:
        return len(matches)

    if layer is None:
        return len(matches)

    # Raw values: 'Náhuatl' and 'náhuatl ' are two elements
    values = set()
    for feature in matches:
        value = layer.resolve(feature.properties, 'primary')
        if value is not None:
            values.add(value)
    return len(values)


def _total_population(layer: Optional[ReferenceLayer], matches: FeatureCollection,
                      rules: AnalysisRules) -> float:
    candidates = rules.population_fields
    if layer is not None and 'population' in layer.fields:
        candidates = layer.candidate_keys('population')

    total = 0
    for feature in matches:
        raw = resolve_property(feature.properties, candidates)
        if raw is None:
            continue
        value = parse_number(raw)
        if value is None:
            logger.debug(f"  Ignoring non-numeric population value {raw!r}")
            continue
        total += value
    return total


def _safe_measure(measure: Callable[[BaseGeometry], float], geom: BaseGeometry,
                  area_name: str) -> float:
    """Area/perimeter with degenerate geometry treated as zero."""
    try:
        return measure(geom)
    except GeometryError as e:
        logger.warning(f"  ⚠ {area_name}: {e}; using 0")
        return 0.0


def build_clip_area(source: BaseGeometry, config: AnalysisConfig) -> BaseGeometry:
    """
    Derive the clip area for the configured area type.

    Core areas are buffered; Exact, DirectInfluence and IndirectInfluence use
    the source polygon as-is (no distinct influence-area policy exists yet).

    Raises:
        GeometryError: If buffering fails
    """
    if config.area_type.requires_buffer:
        return buffer_geometry_km(source, config.effective_buffer_km)

    if config.area_type in (AreaType.DIRECT_INFLUENCE, AreaType.INDIRECT_INFLUENCE):
        logger.debug(f"  {config.area_type.value}: no distinct buffering policy, "
                     f"using the source polygon")
    return source


def aggregate_metrics(entry_name: str,
                      source: Feature,
                      clip_area: BaseGeometry,
                      config: AnalysisConfig,
                      layer_order: List[str],
                      per_layer_results: Dict[str, FeatureCollection],
                      registry: ReferenceLayerRegistry,
                      rules: AnalysisRules) -> AreaMetrics:
    """
    Aggregate the metrics of one run.

    Area is measured on the clip area (buffer included) while the perimeter
    is measured on the source polygon.
    """
    area = _safe_measure(area_km2, clip_area, entry_name)
    perimeter = _safe_measure(length_km, source.geometry, entry_name)

    total_elements = 0
    for key in layer_order:
        total_elements += count_elements(key, registry.get(key), per_layer_results[key], rules)

    population_matches = per_layer_results.get(rules.population_layer, []) if rules.population_layer else []
    population_layer = registry.get(rules.population_layer) if rules.population_layer else None
    total_population = _total_population(population_layer, population_matches, rules)
    locality_count = len(population_matches)

    return AreaMetrics(
        area_km2=area,
        perimeter_km=perimeter,
        total_elements=total_elements,
        total_population=total_population,
        population_density=total_population / area if area > 0 else 0.0,
        locality_count=locality_count,
        locality_density=locality_count / area if area > 0 else 0.0,
        overlap_flags={
            key: len(per_layer_results.get(key, [])) > 0 for key in rules.overlap_layers
        },
        layers_found=sum(1 for key in layer_order if per_layer_results[key]),
        geometry_type=source.geom_type,
        area_type=config.area_type,
        buffer_used=config.area_type.requires_buffer,
        buffer_radius_km=config.effective_buffer_km
    )


async def _select_in_batches(layer: ReferenceLayer,
                             prepared_clip,
                             batch_size: int,
                             cancel_event: Optional[asyncio.Event],
                             area_id: int) -> FeatureCollection:
    """Intersect one layer batch by batch, yielding to the event loop between batches."""
    matches: FeatureCollection = []
    features = layer.features
    total = len(features)

    for start in range(0, total, batch_size):
        if cancel_event is not None and cancel_event.is_set():
            raise AnalysisCancelledError(area_id)

        batch = features[start:start + batch_size]
        matches.extend(select_intersecting(batch, prepared_clip, layer.key))
        logger.debug(f"    {layer.key}: {min(start + batch_size, total)}/{total} features tested")

        await asyncio.sleep(0)

    return matches


async def analyze_area(entry: AreaEntry,
                       config: AnalysisConfig,
                       registry: ReferenceLayerRegistry,
                       on_progress: Optional[ProgressCallback] = None,
                       *,
                       rules: Optional[AnalysisRules] = None,
                       batch_size: int = DEFAULT_BATCH_SIZE,
                       progress_span: Tuple[float, float] = DEFAULT_PROGRESS_SPAN,
                       cancel_event: Optional[asyncio.Event] = None) -> AnalysisResult:
    """
    Analyze one area against the selected reference layers.

    Workflow Steps:
    1. Move the entry to Analyzing (rejects a second concurrent run)
    2. Check a source polygon is present
    3. Compute the clip area (buffer for Core areas)
    4. For every selected layer, in registry order, select intersecting
       features in batches; missing or empty layers contribute nothing
    5. Aggregate metrics and move the entry to Analyzed

    Any failure moves the entry to Failed; results of a failed run are
    never exposed.

    Parameters:
    -----------
    entry : AreaEntry
        Area to analyze
    config : AnalysisConfig
        Area type, buffer radius and layer selection
    registry : ReferenceLayerRegistry
        Reference layers (read only)
    on_progress : Optional[ProgressCallback]
        Called as on_progress(percent, message) with percent in [0, 100]
    rules : Optional[AnalysisRules]
        Layer roles for metrics; defaults to AnalysisRules()
    batch_size : int
        Features tested between two suspension points
    progress_span : Tuple[float, float]
        Share of the progress bar covered by the layer loop
    cancel_event : Optional[asyncio.Event]
        Checked before every batch; when set the run is abandoned

    Returns:
    --------
    AnalysisResult
        Metrics and per-layer matches (also stored on the entry)

    Raises:
    -------
    MissingInputError
        If the entry has no source polygon
    AnalysisError
        If a geometry operation fails (cause attached) or the run is cancelled
    InvalidStateError
        If the entry is already being analyzed (entry left untouched)
    """
    if batch_size < 1:
        raise ConfigurationError(f"batch_size must be >= 1, got {batch_size}")

    rules = rules or AnalysisRules()
    progress_start, progress_end = progress_span

    entry.begin_analysis(config.area_type, config.effective_buffer_km)
    logger.info(f"Analyzing area '{entry.name}' (id {entry.id}, {config.area_type.value})")

    try:
        _report(on_progress, 0, f"Analyzing {entry.name}...")

        if entry.source_polygon is None or entry.source_polygon.geometry is None:
            raise MissingInputError(
                f"Area '{entry.name}' has no Polygon or MultiPolygon to analyze"
            )
        source = entry.source_polygon

        if config.area_type.requires_buffer:
            _report(on_progress, progress_start / 2,
                    f"Generating {config.effective_buffer_km} km buffer...")
        try:
            clip_area = build_clip_area(source.geometry, config)
            prepared_clip = prepare_clip_area(clip_area)
        except GeometryError as e:
            raise AnalysisError(entry.id, str(e)) from e

        layer_order = resolve_layer_order(registry, config.selected_layers)
        per_layer_results: Dict[str, FeatureCollection] = {}
        total_layers = max(1, len(layer_order))
        _report(on_progress, progress_start, f"Processing {len(layer_order)} layers...")

        for index, key in enumerate(layer_order, start=1):
            layer = registry.get(key)

            if layer is None or layer.is_empty:
                logger.debug(f"  {key}: not available, contributes zero")
                per_layer_results[key] = []
            else:
                try:
                    matches = await _select_in_batches(
                        layer, prepared_clip, batch_size, cancel_event, entry.id
                    )
                except GeometryError as e:
                    raise AnalysisError(entry.id, str(e)) from e
                per_layer_results[key] = matches
                logger.info(f"  - {layer.display_name}: {len(matches)} of {len(layer)} features")

            percent = progress_start + (progress_end - progress_start) * index / total_layers
            name = layer.display_name if layer is not None else key
            _report(on_progress, percent, f"Processed {name} ({index}/{len(layer_order)})")

        if cancel_event is not None and cancel_event.is_set():
            raise AnalysisCancelledError(entry.id)

        metrics = aggregate_metrics(
            entry.name, source, clip_area, config, layer_order,
            per_layer_results, registry, rules
        )

    except asyncio.CancelledError:
        entry.fail_analysis('Analysis task was cancelled')
        logger.warning(f"  ⚠ Analysis of '{entry.name}' cancelled")
        raise
    except Exception as e:
        entry.fail_analysis(str(e))
        logger.error(f"  ✗ Analysis of '{entry.name}' failed: {e}")
        raise

    entry.complete_analysis(clip_area, per_layer_results, metrics)
    _report(on_progress, 100, f"Analysis of {entry.name} complete")

    logger.info(f"  ✓ {entry.name}: {metrics.total_elements} elements, "
                f"{metrics.area_km2:.2f} km², population {metrics.total_population}")

    return AnalysisResult(
        area_id=entry.id,
        metrics=metrics,
        per_layer_results=per_layer_results,
        clip_area=clip_area
    )
