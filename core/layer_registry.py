"""
Reference layer registry for the AOI Layer Analyzer.

This module holds the named reference feature collections (localities,
indigenous languages, protected areas, ...) together with the metadata the
engine and the reports need: display name, primary identifying property,
styling hint and the per-layer field mapping.

The reference datasets use different property names for the same concept
(population under POBTOT or POBTOTAL, names under NOMGEO / NOM_LOC /
NOMBRE ...). Each layer carries an explicit mapping of logical field name to
candidate property keys, tried in order, instead of fallback chains spread
through the code.

Classes:
    ReferenceLayer: One immutable reference layer
    ReferenceLayerRegistry: Ordered, read-only-after-load layer lookup

Functions:
    build_layer: Build a ReferenceLayer from a configuration entry and features
    load_registry: Load every configured layer file from a data directory
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import geopandas as gpd

from core.errors import ConfigurationError
from core.models import Feature
from utils.logger import get_logger

logger = get_logger(__name__)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:  # NaN check
        return True
    return isinstance(value, str) and not value.strip()


@dataclass(frozen=True)
class ReferenceLayer:
    """
    One reference layer. Never mutated after construction.

    Attributes:
        key: Stable lookup token used by the engine, the reports and the UI
        display_name: Human-readable layer name
        primary_property: Property that identifies a feature in this layer
        features: Features in dataset order
        color: Styling hint for map renderers
        fields: Logical field name -> candidate property keys in priority order
    """

    key: str
    display_name: str
    primary_property: str
    features: Tuple[Feature, ...] = ()
    color: Optional[str] = None
    fields: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.features)

    @property
    def is_empty(self) -> bool:
        return len(self.features) == 0

    def candidate_keys(self, logical_name: str) -> Tuple[str, ...]:
        """
        Property keys to try for a logical field.

        'primary' resolves to the primary property followed by any 'name'
        candidates; unknown logical names fall back to the name itself.
        """
        if logical_name == 'primary':
            names = tuple(k for k in self.fields.get('name', ()) if k != self.primary_property)
            return (self.primary_property,) + names
        return tuple(self.fields.get(logical_name, (logical_name,)))

    def resolve(self, properties: Mapping[str, Any], logical_name: str, default: Any = None) -> Any:
        """First non-blank value among the candidate keys of a logical field."""
        return resolve_property(properties, self.candidate_keys(logical_name), default)


def resolve_property(properties: Mapping[str, Any], candidates: Sequence[str], default: Any = None) -> Any:
    """
    Return the first non-blank value found under any candidate key.

    Args:
        properties: Feature properties
        candidates: Keys to try, in priority order
        default: Value returned when no candidate holds a value

    Example:
        >>> resolve_property({'POBTOTAL': 120}, ('POBTOT', 'POBTOTAL'))
        120
    """
    for key in candidates:
        value = properties.get(key)
        if not _is_blank(value):
            return value
    return default


def build_layer(definition: Dict, features: Iterable[Union[Feature, Dict]]) -> ReferenceLayer:
    """
    Build an immutable ReferenceLayer from a configuration entry.

    Args:
        definition: Layer entry from layers_config.json
        features: Feature objects or GeoJSON feature dicts

    Raises:
        ConfigurationError: If the definition is incomplete or inconsistent
    """
    key = definition.get('key')
    if not key:
        raise ConfigurationError(f"Layer definition has no key: {definition}")

    fields = {
        name: tuple(candidates)
        for name, candidates in (definition.get('fields') or {}).items()
    }

    built = tuple(
        f if isinstance(f, Feature) else Feature.from_geojson(f)
        for f in features
    )

    return ReferenceLayer(
        key=key,
        display_name=definition.get('display_name', key),
        primary_property=definition.get('primary_property', 'name'),
        features=built,
        color=definition.get('color'),
        fields=MappingProxyType(fields)
    )


class ReferenceLayerRegistry:
    """
    Ordered collection of reference layers.

    Iteration order is registration order; report layout depends on it.
    Registering an existing key replaces the whole layer in one assignment,
    so readers see either the old or the new layer, never a mix. Replacing
    keeps the key's original position.
    """

    def __init__(self, layers: Optional[Iterable[ReferenceLayer]] = None):
        self._layers: Dict[str, ReferenceLayer] = {}
        for layer in layers or ():
            self.register(layer)

    def register(self, layer: ReferenceLayer) -> None:
        """Add or replace a layer by key."""
        if layer.key in self._layers:
            logger.debug(f"Replacing reference layer '{layer.key}' ({len(layer)} features)")
        self._layers[layer.key] = layer

    def get(self, key: str) -> Optional[ReferenceLayer]:
        """Layer registered under key, or None. Absence is not an error."""
        return self._layers.get(key)

    def list_keys(self) -> List[str]:
        return list(self._layers)

    def __contains__(self, key: str) -> bool:
        return key in self._layers

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self):
        return iter(list(self._layers.values()))


def read_layer_file(file_path: Path) -> List[Dict]:
    """
    Read a reference layer file into GeoJSON feature dicts.

    Null properties are dropped per feature so each feature keeps only the
    keys its dataset actually provides.
    """
    gdf = gpd.read_file(file_path)
    return list(gdf.iterfeatures(na='drop', drop_id=True))


def load_registry(config: Dict, data_dir: Path) -> ReferenceLayerRegistry:
    """
    Load every configured reference layer from data_dir.

    Layers whose file is missing or unreadable are logged and left
    unregistered; the engine treats them as contributing zero matches.

    Parameters:
    -----------
    config : Dict
        Configuration dictionary with layer definitions
    data_dir : Path
        Directory holding the layer files named in each definition's 'file'

    Returns:
    --------
    ReferenceLayerRegistry
        Registry with layers in configuration order
    """
    logger.info("=" * 80)
    logger.info("Loading reference layers")
    logger.info("=" * 80)

    data_dir = Path(data_dir)
    registry = ReferenceLayerRegistry()
    missing: List[str] = []

    for definition in config['layers']:
        key = definition['key']
        file_name = definition.get('file')

        if not file_name:
            logger.debug(f"Layer '{key}' has no file configured")
            missing.append(key)
            continue

        file_path = data_dir / file_name
        if not file_path.exists():
            logger.warning(f"  ⚠ {definition.get('display_name', key)}: file not found ({file_path})")
            missing.append(key)
            continue

        try:
            features = read_layer_file(file_path)
        except Exception as e:
            logger.warning(f"  ⚠ {definition.get('display_name', key)}: could not be read ({e})")
            missing.append(key)
            continue

        layer = build_layer(definition, features)
        registry.register(layer)
        logger.info(f"  ✓ {layer.display_name}: {len(layer)} features")

    logger.info(f"Reference layers loaded: {len(registry)} of {len(config['layers'])}")
    if missing:
        logger.info(f"Unavailable layers (will contribute zero): {', '.join(missing)}")
    logger.info("")

    return registry
