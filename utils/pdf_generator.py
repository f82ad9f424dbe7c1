"""
PDF report generator for the AOI Layer Analyzer.

This module generates a PDF summary of the analyzed areas with:
    - Cover page with title, report date and area counts
    - Summary table (one row per area plus the aggregate row)
    - Failed areas with their reasons
    - One section per analyzed area: metrics, layer counts, top localities
      and language counts

Uses fpdf2 with its built-in Helvetica font; text is reduced to Latin-1,
which covers Spanish place names.
"""

from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from fpdf import FPDF
from fpdf.enums import TableCellFillMode
from fpdf.fonts import FontFace

from core.layer_processor import AnalysisRules
from core.layer_registry import ReferenceLayerRegistry
from core.models import AreaEntry
from core.report_projection import (
    project_failures, project_language_counts, project_layer_counts,
    project_summary, project_top_localities
)
from utils.formatters import format_number
from utils.logger import get_logger

logger = get_logger(__name__)

FONT = 'Helvetica'
HEADINGS_STYLE = FontFace(emphasis='BOLD', color=(255, 255, 255), fill_color=(54, 96, 146))


def latin1(text) -> str:
    """Text the core PDF fonts can render; unsupported characters become '?'."""
    return str(text).encode('latin-1', 'replace').decode('latin-1')


class ReportPDF(FPDF):
    """Landscape Letter PDF with page numbers on every page but the cover."""

    def __init__(self):
        super().__init__(orientation='landscape', format='letter')
        self.set_margins(left=12.7, top=12.7, right=12.7)
        self.set_auto_page_break(auto=True, margin=15)

        self.set_title('Area of Interest Layer Analysis Report')
        self.set_author('AOI Layer Analyzer')
        self.set_subject('Reference layer intersection analysis')

    def footer(self):
        if self.page_no() > 1:
            self.set_y(-15)
            self.set_font(FONT, size=8)
            self.set_text_color(128, 128, 128)
            self.cell(0, 10, f"Page {self.page_no()} of {{nb}}", align='C')
            self.set_text_color(0, 0, 0)


def _section_title(pdf: ReportPDF, text: str, size: int = 14) -> None:
    pdf.set_font(FONT, style='B', size=size)
    pdf.cell(0, 10, latin1(text), new_x='LMARGIN', new_y='NEXT')
    pdf.set_font(FONT, size=10)


def _table(pdf: ReportPDF, headers: Sequence[str], rows: Iterable[Sequence], col_widths: Sequence[int],
           bold_last: bool = False) -> None:
    """Render a table with repeated headings and alternating row fill."""
    rows = list(rows)
    pdf.set_font(FONT, size=9)
    with pdf.table(
        headings_style=HEADINGS_STYLE,
        cell_fill_color=(249, 249, 249),
        cell_fill_mode=TableCellFillMode.ROWS,
        col_widths=tuple(col_widths),
        line_height=6,
        repeat_headings=1,
        text_align='LEFT',
    ) as table:
        header = table.row()
        for text in headers:
            header.cell(latin1(text))

        for index, values in enumerate(rows):
            style = FontFace(emphasis='BOLD') if bold_last and index == len(rows) - 1 else None
            row = table.row(style=style)
            for value in values:
                row.cell(latin1(value))
    pdf.ln(4)


def create_cover_page(pdf: ReportPDF, report_date: str, analyzed: int, failed: int) -> None:
    pdf.add_page()

    pdf.set_font(FONT, style='B', size=18)
    pdf.ln(50)
    pdf.cell(0, 10, 'Area of Interest Layer Analysis Report', align='C',
             new_x='LMARGIN', new_y='NEXT')
    pdf.ln(40)

    for label, value in (
        ('Report Date:', report_date),
        ('Areas analyzed:', str(analyzed)),
        ('Areas failed:', str(failed)),
    ):
        pdf.set_font(FONT, size=10)
        pdf.cell(0, 6, f"{label} {value}", align='C', new_x='LMARGIN', new_y='NEXT')
        pdf.ln(4)


def create_summary_section(pdf: ReportPDF, entries: List[AreaEntry]) -> None:
    pdf.add_page()
    _section_title(pdf, 'Summary')

    table = project_summary(entries)
    rows = [
        (row.name,
         format_number(row.area_km2, 2),
         format_number(row.population),
         format_number(row.total_elements),
         format_number(row.population_density, 2))
        for row in table.all_rows()
    ]
    _table(pdf, ('Area', 'Area (km²)', 'Population', 'Elements', 'Density (per km²)'),
           rows, (90, 40, 40, 40, 44), bold_last=True)

    failures = project_failures(entries)
    if failures:
        _section_title(pdf, 'Failed areas', size=12)
        _table(pdf, ('Area', 'Reason'), [(f.name, f.reason) for f in failures], (80, 174))


def create_area_section(pdf: ReportPDF,
                        entry: AreaEntry,
                        registry: ReferenceLayerRegistry,
                        rules: AnalysisRules,
                        top_localities: int) -> None:
    pdf.add_page()
    _section_title(pdf, f"Area: {entry.name}")

    metrics = entry.metrics
    buffer_text = f"{metrics.buffer_radius_km} km" if metrics.buffer_used else 'none'
    facts = [
        ('Area type', metrics.area_type.value if metrics.area_type else 'N/A'),
        ('Buffer', buffer_text),
        ('Geometry type', metrics.geometry_type or 'N/A'),
        ('Area', f"{format_number(metrics.area_km2, 2)} km²"),
        ('Perimeter', f"{format_number(metrics.perimeter_km, 2)} km"),
        ('Total elements', format_number(metrics.total_elements)),
        ('Total population', format_number(metrics.total_population)),
        ('Population density', f"{format_number(metrics.population_density, 2)} per km²"),
        ('Localities', format_number(metrics.locality_count)),
        ('Locality density', f"{format_number(metrics.locality_density, 4)} per km²"),
        ('Layers with matches', format_number(metrics.layers_found)),
    ]
    _table(pdf, ('Metric', 'Value'), facts, (80, 100))

    counts = project_layer_counts(entry, registry, rules)
    _section_title(pdf, 'Layers', size=12)
    _table(pdf, ('Layer', 'Matched', 'Counted', 'Overlap'), [
        (c.display_name, c.matched, c.contributed,
         '' if c.overlap is None else ('Yes' if c.overlap else 'No'))
        for c in counts
    ], (110, 40, 40, 30))

    localities = project_top_localities(entry, registry, rules, limit=top_localities)
    if localities:
        _section_title(pdf, 'Most populated localities', size=12)
        _table(pdf, ('Locality', 'Municipality', 'Population'), [
            (loc['name'], loc['municipality'], format_number(loc['population']))
            for loc in localities
        ], (100, 100, 40))

    for key in sorted(rules.distinct_count_layers):
        if not entry.per_layer_results.get(key):
            continue
        languages = project_language_counts(entry, registry, key)
        layer = registry.get(key)
        _section_title(pdf, layer.display_name if layer is not None else key, size=12)
        _table(pdf, ('Label', 'Points'),
               [(lang['language'], lang['count']) for lang in languages], (100, 30))


def generate_pdf_report(
    entries: Iterable[AreaEntry],
    registry: ReferenceLayerRegistry,
    output_path: Path,
    timestamp: str,
    rules: Optional[AnalysisRules] = None,
    top_localities: int = 10
) -> Optional[Path]:
    """
    Generate a PDF report of the analyzed areas.

    Args:
        entries: Areas in report order
        registry: Reference layers, for display names and field mappings
        output_path: Directory where report should be saved
        timestamp: Timestamp string for filename (YYYYMMDD_HHMMSS)
        rules: Layer roles; defaults to AnalysisRules()
        top_localities: Number of localities listed per area

    Returns:
        Path to generated PDF file, or None if generation fails
    """
    logger.info("Generating PDF report...")

    try:
        entries = list(entries)
        rules = rules or AnalysisRules()
        analyzed = [e for e in entries if e.is_analyzed]

        dt = datetime.strptime(timestamp, "%Y%m%d_%H%M%S")
        report_date = dt.strftime("%Y-%m-%d %H:%M:%S")

        pdf = ReportPDF()
        create_cover_page(pdf, report_date, len(analyzed), len(project_failures(entries)))
        create_summary_section(pdf, entries)
        for entry in analyzed:
            create_area_section(pdf, entry, registry, rules, top_localities)

        filename = f"AOI_Report_{timestamp}.pdf"
        pdf_path = Path(output_path) / filename
        pdf.output(str(pdf_path))

        logger.info(f"✓ PDF report saved: {filename} ({len(analyzed)} areas)")

        return pdf_path

    except Exception as e:
        logger.error(f"Failed to generate PDF report: {e}", exc_info=True)
        return None
