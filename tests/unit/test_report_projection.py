"""Tests for the report projections."""

import pytest
import pytest_asyncio

from conftest import point, square
from core.errors import InvalidStateError
from core.layer_processor import AnalysisConfig, analyze_area
from core.models import AreaEntry, AreaMetrics, AreaState, AreaType, Feature
from core.report_projection import (
    TOTAL_ROW_NAME, project_failures, project_language_counts, project_layer_counts,
    project_layer_detail, project_summary, project_top_localities
)

EXACT = AnalysisConfig(area_type=AreaType.EXACT)


def analyzed_entry(area_id, name, area_km2, population, elements, results=None):
    entry = AreaEntry(id=area_id, name=name, source_polygon=Feature(geometry=square(1.0)))
    entry.begin_analysis(AreaType.EXACT, 0.0)
    entry.complete_analysis(square(1.0), results or {}, AreaMetrics(
        area_km2=area_km2,
        total_population=population,
        total_elements=elements,
        population_density=population / area_km2 if area_km2 else 0.0,
    ))
    return entry


@pytest_asyncio.fixture
async def analyzed(sample_registry):
    entry = AreaEntry(id=1, name='Parcela', source_polygon=Feature(geometry=square(1.0)))
    await analyze_area(entry, EXACT, sample_registry)
    return entry


class TestProjectSummary:
    def test_rows_and_total(self):
        entries = [
            analyzed_entry(1, 'A', 2.0, 100, 5),
            analyzed_entry(2, 'B', 8.0, 900, 7),
        ]
        table = project_summary(entries)

        assert [r.name for r in table.all_rows()] == ['A', 'B', TOTAL_ROW_NAME]
        assert table.total.area_km2 == 10.0
        assert table.total.population == 1000
        assert table.total.total_elements == 12
        # Recomputed from totals (100), not the mean of 50 and 112.5
        assert table.total.population_density == pytest.approx(100.0)

    def test_total_density_zero_area(self):
        table = project_summary([analyzed_entry(1, 'Cero', 0.0, 50, 1)])
        assert table.total.population_density == 0.0
        assert table.rows[0].population_density == 0.0

    def test_ordering_follows_input_not_analysis_order(self):
        entries = [AreaEntry(id=i, name=f'Area {i}', source_polygon=None) for i in range(1, 6)]
        for entry in reversed(entries):
            entry.begin_analysis(AreaType.EXACT, 0.0)
            entry.complete_analysis(square(1.0), {}, AreaMetrics(area_km2=float(entry.id)))

        table = project_summary(entries)
        assert [r.name for r in table.rows] == ['Area 1', 'Area 2', 'Area 3', 'Area 4', 'Area 5']

    def test_unanalyzed_entries_skipped(self):
        pending = AreaEntry(id=2, name='Pendiente', source_polygon=None)
        failed = AreaEntry(id=3, name='Fallida', source_polygon=None)
        failed.begin_analysis(AreaType.EXACT, 0.0)
        failed.fail_analysis('boom')

        table = project_summary([analyzed_entry(1, 'Lista', 1.0, 10, 1), pending, failed])

        assert [r.name for r in table.rows] == ['Lista']
        assert table.skipped == ['Pendiente', 'Fallida']
        assert table.total.population == 10

    def test_empty(self):
        table = project_summary([])
        assert len(table) == 0
        assert table.total.area_km2 == 0.0
        assert table.total.population_density == 0.0

    def test_does_not_mutate(self):
        entry = analyzed_entry(1, 'A', 2.0, 100, 5)
        before = entry.metrics.to_dict()
        project_summary([entry])
        assert entry.metrics.to_dict() == before
        assert entry.state is AreaState.ANALYZED

    def test_row_tuple_follows_columns(self):
        row = project_summary([analyzed_entry(1, 'A', 2.0, 100, 5)]).rows[0]
        assert row.as_tuple() == ('A', 2.0, 100, 5, 50.0)


class TestProjectLayerDetail:
    def test_dynamic_columns(self):
        results = {'localidades': [
            point(0.1, 0.1, CVEGEO='1', NOMGEO='Uno', POBTOT=10),
            point(0.2, 0.2, CVEGEO='2', NOM_LOC='Dos', POBTOTAL=20),
        ]}
        entry = analyzed_entry(1, 'A', 1.0, 30, 2, results)

        table = project_layer_detail(entry, 'localidades')

        assert table.columns == ['CVEGEO', 'NOMGEO', 'POBTOT', 'NOM_LOC', 'POBTOTAL']
        assert table.rows == [
            ['1', 'Uno', 10, None, None],
            ['2', None, None, 'Dos', 20],
        ]
        assert table.records()[1]['NOM_LOC'] == 'Dos'

    def test_unprocessed_layer_is_empty(self):
        table = project_layer_detail(analyzed_entry(1, 'A', 1.0, 0, 0), 'ramsar')
        assert table.columns == []
        assert len(table) == 0

    def test_display_name_from_registry(self, sample_registry):
        entry = analyzed_entry(1, 'A', 1.0, 0, 0, {'lenguas': []})
        assert project_layer_detail(entry, 'lenguas', sample_registry).display_name == 'Lenguas Indígenas'

    def test_requires_analyzed(self):
        with pytest.raises(InvalidStateError):
            project_layer_detail(AreaEntry(id=1, name='A', source_polygon=None), 'localidades')


class TestAnalyzedProjections:
    @pytest.mark.asyncio
    async def test_language_counts(self, analyzed, sample_registry):
        counts = project_language_counts(analyzed, sample_registry)
        assert counts == [
            {'language': 'Náhuatl', 'count': 3},
            {'language': 'Otomí', 'count': 2},
        ]

    @pytest.mark.asyncio
    async def test_language_counts_without_registry(self, analyzed):
        assert [c['count'] for c in project_language_counts(analyzed)] == [3, 2]

    @pytest.mark.asyncio
    async def test_top_localities(self, analyzed, sample_registry):
        top = project_top_localities(analyzed, sample_registry, limit=2)
        assert top == [
            {'name': 'San Juan', 'municipality': 'Centro', 'population': 1200},
            {'name': 'El Carmen', 'municipality': 'Centro', 'population': 300},
        ]

    @pytest.mark.asyncio
    async def test_layer_counts(self, analyzed, sample_registry):
        counts = {c.layer_key: c for c in project_layer_counts(analyzed, sample_registry)}

        assert counts['lenguas'].matched == 5
        assert counts['lenguas'].contributed == 3
        assert counts['localidades'].overlap is None
        assert counts['anp_estatal'].overlap is True
        assert list(counts) == ['localidades', 'lenguas', 'anp_estatal']


class TestProjectFailures:
    def test_lists_failed_only(self):
        failed = AreaEntry(id=2, name='Fallida', source_polygon=None)
        failed.begin_analysis(AreaType.EXACT, 0.0)
        failed.fail_analysis('no polygon')
        rows = project_failures([analyzed_entry(1, 'Lista', 1.0, 0, 0), failed])

        assert [(r.name, r.reason) for r in rows] == [('Fallida', 'no polygon')]
