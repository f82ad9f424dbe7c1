"""Shared test fixtures."""

import logging

import pytest
from shapely.geometry import Point, Polygon

from core.layer_processor import AnalysisRules
from core.layer_registry import ReferenceLayerRegistry, build_layer
from core.models import Feature

# Geometry helpers work on the equator at the UTM zone 31 central meridian,
# where one degree is ~111.32 km east-west and ~110.57 km north-south.
ORIGIN_LON = 3.0
ORIGIN_LAT = 0.0
KM_PER_DEG_LON = 111.320
KM_PER_DEG_LAT = 110.574


def offset(east_km: float = 0.0, north_km: float = 0.0):
    """Coordinates east_km / north_km away from the test origin."""
    return ORIGIN_LON + east_km / KM_PER_DEG_LON, ORIGIN_LAT + north_km / KM_PER_DEG_LAT


def square(side_km: float = 1.0, east_km: float = 0.0, north_km: float = 0.0) -> Polygon:
    """Axis-aligned square whose south-west corner is east_km / north_km from the origin."""
    x0, y0 = offset(east_km, north_km)
    x1, y1 = offset(east_km + side_km, north_km + side_km)
    return Polygon([(x0, y0), (x1, y0), (x1, y1), (x0, y1), (x0, y0)])


def point(east_km: float, north_km: float, **properties) -> Feature:
    return Feature(geometry=Point(*offset(east_km, north_km)), properties=properties)


def layer_definition(key: str, **extra) -> dict:
    definition = {
        'key': key,
        'display_name': key.capitalize(),
        'primary_property': 'NOMBRE',
        'fields': {'name': ['NOMBRE']},
    }
    definition.update(extra)
    return definition


def make_registry(layers: dict, definitions: dict = None) -> ReferenceLayerRegistry:
    """Registry from {key: [Feature, ...]}, in dict order."""
    definitions = definitions or {}
    registry = ReferenceLayerRegistry()
    for key, features in layers.items():
        registry.register(build_layer(definitions.get(key, layer_definition(key)), features))
    return registry


LOCALIDADES = layer_definition(
    'localidades',
    display_name='Localidades',
    primary_property='CVEGEO',
    fields={
        'name': ['NOMGEO', 'NOM_LOC'],
        'municipality': ['NOM_MUN'],
        'population': ['POBTOT', 'POBTOTAL'],
    },
)

LENGUAS = layer_definition(
    'lenguas',
    display_name='Lenguas Indígenas',
    primary_property='Lengua',
    fields={'name': ['Lengua', 'LENGUA']},
)


@pytest.fixture
def rules():
    return AnalysisRules()


@pytest.fixture
def sample_registry():
    """Localities, languages and a protected area around a 1 km square at the origin."""
    localidades = [
        point(0.2, 0.2, CVEGEO='001', NOMGEO='San Juan', NOM_MUN='Centro', POBTOT=1200),
        point(0.5, 0.5, CVEGEO='002', NOM_LOC='El Carmen', NOM_MUN='Centro', POBTOTAL=300),
        point(0.8, 0.3, CVEGEO='003', NOMGEO='La Loma', NOM_MUN='Norte', POBTOT='45'),
        point(5.0, 5.0, CVEGEO='004', NOMGEO='Lejana', NOM_MUN='Sur', POBTOT=9999),
    ]
    lenguas = [
        point(0.1, 0.1, Lengua='Náhuatl'),
        point(0.2, 0.4, Lengua='Náhuatl'),
        point(0.3, 0.6, LENGUA='Otomí'),
        point(0.6, 0.2, Lengua='náhuatl '),
        point(0.9, 0.9, Lengua='Otomí'),
    ]
    anp = [Feature(geometry=square(0.4, 0.8, 0.8), properties={'NOMBRE': 'Reserva', 'CATEGORIA': 'Estatal'})]
    return make_registry(
        {'localidades': localidades, 'lenguas': lenguas, 'anp_estatal': anp},
        {'localidades': LOCALIDADES, 'lenguas': LENGUAS},
    )


@pytest.fixture(autouse=True)
def _quiet_logging():
    """Keep the 'aoi' logger from writing handlers left over by setup_logging."""
    logger = logging.getLogger('aoi')
    handlers = list(logger.handlers)
    logger.handlers.clear()
    yield
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
