"""
Report projection module for the AOI Layer Analyzer.

Turns analyzed areas into plain tabular structures that the report writers
(XLSX, PDF, JSON metadata) consume. Every function here is read-only: areas
are never mutated and results of areas that are not Analyzed are never read.

Classes:
    SummaryRow / SummaryTable: One row per area plus the aggregate row
    LayerTable: Matched features of one layer with dynamic columns
    LayerCount: Matched and contributed counts of one layer
    FailureRow: Name and reason of a failed area

Functions:
    project_summary: Summary table over several areas
    project_layer_detail: Per-feature rows of one layer of one area
    project_layer_counts: Per-layer overview of one area
    project_language_counts: Distinct language labels with point counts
    project_top_localities: Most populated matched localities
    project_failures: Failed areas with their reasons
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core.layer_processor import AnalysisRules, count_elements, parse_number
from core.layer_registry import ReferenceLayerRegistry, resolve_property
from core.models import AreaEntry, AreaState
from utils.logger import get_logger

logger = get_logger(__name__)

SUMMARY_COLUMNS = ('name', 'area_km2', 'population', 'total_elements', 'population_density')
TOTAL_ROW_NAME = 'Total'

LANGUAGE_LABEL_KEYS = ('Lengua', 'LENGUA')
LOCALITY_NAME_KEYS = ('NOMGEO', 'NOM_LOC', 'NOMBRE')
LOCALITY_MUNICIPALITY_KEYS = ('NOM_MUN', 'MUNICIPIO')


@dataclass
class SummaryRow:
    name: str
    area_km2: float
    population: float
    total_elements: int
    population_density: float

    def as_tuple(self) -> tuple:
        return tuple(getattr(self, column) for column in SUMMARY_COLUMNS)


@dataclass
class SummaryTable:
    """
    Summary of several areas.

    The total row sums area, population and elements; its density is
    recomputed from those sums, never averaged over the row densities.
    """

    rows: List[SummaryRow] = field(default_factory=list)
    total: SummaryRow = field(default_factory=lambda: SummaryRow(TOTAL_ROW_NAME, 0.0, 0, 0, 0.0))
    skipped: List[str] = field(default_factory=list)

    columns = SUMMARY_COLUMNS

    def all_rows(self) -> List[SummaryRow]:
        """Area rows followed by the aggregate row."""
        return self.rows + [self.total]

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class LayerTable:
    """
    Matched features of one layer.

    columns is the union of property keys over the matched features, in the
    order they are first seen. Cells of a key a feature does not have are None.
    """

    layer_key: str
    display_name: str
    columns: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)

    def records(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class LayerCount:
    layer_key: str
    display_name: str
    matched: int
    contributed: int
    overlap: Optional[bool] = None


@dataclass
class FailureRow:
    name: str
    reason: str


def project_summary(entries: Iterable[AreaEntry]) -> SummaryTable:
    """
    One summary row per analyzed area, in the order given.

    Areas that are not Analyzed have no valid metrics; they are left out of
    the rows and the totals and their names are listed in skipped.

    Example:
        >>> table = project_summary(manager.list_areas())
        >>> [row.name for row in table.all_rows()]
        ['Parcela Norte', 'Parcela Sur', 'Total']
    """
    table = SummaryTable()
    total_area = 0.0
    total_population = 0
    total_elements = 0

    for entry in entries:
        if not entry.is_analyzed or entry.metrics is None:
            table.skipped.append(entry.name)
            continue

        metrics = entry.metrics
        table.rows.append(SummaryRow(
            name=entry.name,
            area_km2=metrics.area_km2,
            population=metrics.total_population,
            total_elements=metrics.total_elements,
            population_density=metrics.population_density
        ))
        total_area += metrics.area_km2
        total_population += metrics.total_population
        total_elements += metrics.total_elements

    table.total = SummaryRow(
        name=TOTAL_ROW_NAME,
        area_km2=total_area,
        population=total_population,
        total_elements=total_elements,
        population_density=total_population / total_area if total_area > 0 else 0.0
    )

    if table.skipped:
        logger.debug(f"Summary skipped {len(table.skipped)} area(s) without results: "
                     f"{', '.join(table.skipped)}")
    return table


def project_layer_detail(entry: AreaEntry,
                         layer_key: str,
                         registry: Optional[ReferenceLayerRegistry] = None) -> LayerTable:
    """
    Per-feature rows of the features of one layer matched by an area.

    Parameters:
    -----------
    entry : AreaEntry
        Analyzed area
    layer_key : str
        Layer to project; a layer that was not processed yields an empty table
    registry : Optional[ReferenceLayerRegistry]
        Used only for the display name

    Raises:
    -------
    InvalidStateError
        If the area is not Analyzed
    """
    entry.require_analyzed()

    layer = registry.get(layer_key) if registry is not None else None
    table = LayerTable(
        layer_key=layer_key,
        display_name=layer.display_name if layer is not None else layer_key
    )

    features = entry.per_layer_results.get(layer_key, [])
    seen = {}
    for feature in features:
        for key in feature.properties:
            if key not in seen:
                seen[key] = len(seen)
    table.columns = list(seen)

    for feature in features:
        table.rows.append([feature.properties.get(column) for column in table.columns])

    return table


def project_layer_counts(entry: AreaEntry,
                         registry: ReferenceLayerRegistry,
                         rules: Optional[AnalysisRules] = None) -> List[LayerCount]:
    """
    Matched feature count per processed layer, in processing order.

    contributed is what the layer added to total_elements (distinct labels
    for distinct-count layers). overlap is set only for overlap-flag layers.
    """
    entry.require_analyzed()
    rules = rules or AnalysisRules()

    counts = []
    for key, matches in entry.per_layer_results.items():
        layer = registry.get(key)
        counts.append(LayerCount(
            layer_key=key,
            display_name=layer.display_name if layer is not None else key,
            matched=len(matches),
            contributed=count_elements(key, layer, matches, rules),
            overlap=len(matches) > 0 if key in rules.overlap_layers else None
        ))
    return counts


def _language_label(properties: Dict[str, Any], candidates: Sequence[str]) -> Optional[str]:
    value = resolve_property(properties, candidates)
    if value is None:
        return None
    label = str(value).strip()
    return label or None


def project_language_counts(entry: AreaEntry,
                            registry: Optional[ReferenceLayerRegistry] = None,
                            layer_key: str = 'lenguas') -> List[Dict[str, Any]]:
    """
    Distinct language labels matched by an area with their point counts.

    Labels are trimmed and grouped case-insensitively; the first spelling
    seen is kept. Sorted by count descending, then label.

    Returns:
        List of {'language': str, 'count': int}
    """
    entry.require_analyzed()

    layer = registry.get(layer_key) if registry is not None else None
    candidates = layer.candidate_keys('primary') if layer is not None else LANGUAGE_LABEL_KEYS

    labels: Dict[str, str] = {}
    counts: Dict[str, int] = {}
    for feature in entry.per_layer_results.get(layer_key, []):
        label = _language_label(feature.properties, candidates)
        if label is None:
            continue
        group = label.casefold()
        labels.setdefault(group, label)
        counts[group] = counts.get(group, 0) + 1

    result = [{'language': labels[group], 'count': count} for group, count in counts.items()]
    result.sort(key=lambda row: (-row['count'], row['language'].casefold()))
    return result


def project_top_localities(entry: AreaEntry,
                           registry: Optional[ReferenceLayerRegistry] = None,
                           rules: Optional[AnalysisRules] = None,
                           limit: int = 10) -> List[Dict[str, Any]]:
    """
    Most populated localities matched by an area.

    Localities without a positive numeric population are left out. Ties keep
    the layer's feature order.

    Returns:
        List of {'name', 'municipality', 'population'} dicts, at most limit long
    """
    entry.require_analyzed()
    rules = rules or AnalysisRules()
    if not rules.population_layer:
        return []

    layer = registry.get(rules.population_layer) if registry is not None else None
    if layer is not None:
        name_keys = layer.candidate_keys('name')
        municipality_keys = layer.candidate_keys('municipality')
        population_keys = layer.fields.get('population', rules.population_fields)
    else:
        name_keys = LOCALITY_NAME_KEYS
        municipality_keys = LOCALITY_MUNICIPALITY_KEYS
        population_keys = rules.population_fields

    localities = []
    for feature in entry.per_layer_results.get(rules.population_layer, []):
        population = parse_number(resolve_property(feature.properties, population_keys))
        if population is None or population <= 0:
            continue
        localities.append({
            'name': resolve_property(feature.properties, name_keys, 'N/A'),
            'municipality': resolve_property(feature.properties, municipality_keys, 'N/A'),
            'population': population
        })

    localities.sort(key=lambda row: -row['population'])
    return localities[:max(0, limit)]


def project_failures(entries: Iterable[AreaEntry]) -> List[FailureRow]:
    """Name and short reason of every Failed area, in the order given."""
    return [
        FailureRow(name=entry.name, reason=entry.error or 'unknown error')
        for entry in entries
        if entry.state is AreaState.FAILED
    ]
