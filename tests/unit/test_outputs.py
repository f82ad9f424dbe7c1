"""Tests for the report writers, output directory and command-line entry point."""

import json

import pytest
import pytest_asyncio
from openpyxl import load_workbook

from conftest import square
from aoi_analyzer import build_parser
from core.area_manager import AreaManager
from core.layer_processor import AnalysisConfig, AnalysisRules
from core.models import AreaType
from core.output_generator import build_metadata, generate_output, safe_file_name
from utils.formatters import format_cell_value, format_number
from utils.pdf_generator import generate_pdf_report, latin1
from utils.xlsx_generator import generate_xlsx_report, sheet_title

TIMESTAMP = '20250108_143022'


@pytest_asyncio.fixture
async def manager(sample_registry):
    """Two analyzed areas and one failed area."""
    manager = AreaManager(sample_registry)
    manager.add_area(square(1.0), 'Parcela Norte')
    manager.add_area(square(0.5, east_km=10.0), 'Parcela/Sur')
    broken = manager.add_area(square(1.0), 'Sin polígono')
    broken.source_polygon = None
    async for _ in manager.analyze_all(AnalysisConfig(area_type=AreaType.EXACT)):
        pass
    return manager


class TestFormatters:
    def test_format_number(self):
        assert format_number(1234567) == '1,234,567'
        assert format_number(12.3456, 2) == '12.35'
        assert format_number(None) == 'N/A'
        assert format_number(float('nan')) == 'N/A'
        assert format_number('abc') == 'abc'

    def test_format_cell_value(self):
        assert format_cell_value(None) == ''
        assert format_cell_value(42) == 42
        assert format_cell_value(True) is True
        assert format_cell_value(['a', 'b']) == "['a', 'b']"
        assert format_cell_value('x' * 100, max_length=10) == 'xxxxxxx...'
        assert format_cell_value('x' * 100, max_length=0) == 'x' * 100


class TestNames:
    def test_sheet_title_sanitized_and_truncated(self):
        used = set()
        title = sheet_title('Área [norte]: tramo 1/2 con nombre muy largo', used)
        assert len(title) <= 31
        assert not any(c in title for c in '[]:*?/\\')

    def test_sheet_title_unique(self):
        used = set()
        first = sheet_title('A' * 40, used)
        second = sheet_title('A' * 40, used)
        assert first != second
        assert len(second) <= 31

    def test_safe_file_name(self):
        assert safe_file_name('Parcela Norte / 2') == 'parcela_norte_2'
        assert safe_file_name('///') == 'area'


class TestXlsxReport:
    @pytest.mark.asyncio
    async def test_workbook_contents(self, manager, sample_registry, tmp_path):
        path = generate_xlsx_report(manager.list_areas(), sample_registry, tmp_path, TIMESTAMP)

        assert path == tmp_path / f'AOI_Report_{TIMESTAMP}.xlsx'
        wb = load_workbook(path)

        summary = wb['Summary']
        rows = list(summary.iter_rows(values_only=True))
        assert rows[0][0] == 'Area'
        assert [r[0] for r in rows[1:]] == ['Parcela Norte', 'Parcela/Sur', 'Total']
        assert 'Parcela_Sur' in wb.sheetnames
        assert rows[-1][2] == 1545

        failures = list(wb['Failures'].iter_rows(values_only=True))
        assert failures[1][0] == 'Sin polígono'

        assert 'Parcela Norte' in wb.sheetnames
        assert any(name.startswith('Parcela Norte-Localidades') for name in wb.sheetnames)

    @pytest.mark.asyncio
    async def test_failure_returns_none(self, manager, sample_registry, tmp_path):
        missing_dir = tmp_path / 'does' / 'not' / 'exist'
        assert generate_xlsx_report(manager.list_areas(), sample_registry, missing_dir, TIMESTAMP) is None


class TestPdfReport:
    def test_latin1(self):
        assert latin1('Náhuatl km²') == 'Náhuatl km²'
        assert latin1('→') == '?'

    @pytest.mark.asyncio
    async def test_pdf_written(self, manager, sample_registry, tmp_path):
        path = generate_pdf_report(manager.list_areas(), sample_registry, tmp_path, TIMESTAMP)

        assert path is not None
        assert path.read_bytes().startswith(b'%PDF')


class TestGenerateOutput:
    @pytest.mark.asyncio
    async def test_output_directory(self, manager, sample_registry, tmp_path):
        output_path, xlsx_file, pdf_file = generate_output(
            manager.list_areas(), sample_registry, 'run', output_dir=tmp_path
        )

        assert output_path == tmp_path / 'run'
        assert xlsx_file and (output_path / xlsx_file).exists()
        assert pdf_file and (output_path / pdf_file).exists()

        data_files = sorted(p.name for p in (output_path / 'data').iterdir())
        assert '01_parcela_norte_source.geojson' in data_files
        assert '01_parcela_norte_localidades.geojson' in data_files
        assert not any(name.startswith('03_') for name in data_files)

        metadata = json.loads((output_path / 'metadata.json').read_text(encoding='utf-8'))
        assert metadata['areas_analyzed'] == 2
        assert metadata['areas_failed'] == 1
        assert metadata['areas'][0]['layers']['lenguas']['counted_elements'] == 3
        assert metadata['areas'][2]['state'] == 'failed'

    @pytest.mark.asyncio
    async def test_metadata_is_json_serializable(self, manager, sample_registry):
        metadata = build_metadata(manager.list_areas(), sample_registry, AnalysisRules())
        json.dumps(metadata)
        assert metadata['totals']['population'] == 1545


class TestCommandLine:
    def test_parser(self):
        args = build_parser().parse_args([
            'a.kml', 'b.kml', '--area-type', 'core', '--buffer-km', '1.5',
            '--layers', 'localidades', 'lenguas',
        ])
        assert args.input_files == ['a.kml', 'b.kml']
        assert args.buffer_km == 1.5
        assert args.layers == ['localidades', 'lenguas']
        assert args.output_name is None

    def test_requires_input(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])
