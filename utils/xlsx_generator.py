"""
XLSX report generator for the AOI Layer Analyzer.

This module writes an Excel (.xlsx) workbook from the report projections of
the analyzed areas.

The generated workbook includes:
    - Summary: one row per analyzed area plus the aggregate row
    - Failures: name and reason of every failed area (only when there are any)
    - One overview sheet per analyzed area: matched and counted features per layer
    - One detail sheet per area and non-empty layer, with the layer's own columns
    - Language counts for areas that matched the languages layer
"""

import re
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from core.layer_processor import AnalysisRules
from core.layer_registry import ReferenceLayerRegistry
from core.models import AreaEntry
from core.report_projection import (
    project_failures, project_language_counts, project_layer_counts,
    project_layer_detail, project_summary
)
from utils.formatters import format_cell_value
from utils.logger import get_logger

logger = get_logger(__name__)

HEADER_FILL = PatternFill(start_color='366092', end_color='366092', fill_type='solid')
HEADER_FONT = Font(bold=True, color='FFFFFF', size=11)
TOTAL_FONT = Font(bold=True)

# Excel limits sheet names to 31 characters and forbids these characters
MAX_SHEET_TITLE = 31
INVALID_SHEET_CHARS = re.compile(r'[\[\]:*?/\\]')

SUMMARY_HEADERS = ['Area', 'Area (km²)', 'Population', 'Total Elements', 'Population Density (per km²)']


def sheet_title(name: str, used: Set[str]) -> str:
    """
    Excel-safe, workbook-unique sheet title.

    Examples:
        >>> sheet_title('Parcela 1 / Norte', set())
        'Parcela 1 _ Norte'
    """
    base = INVALID_SHEET_CHARS.sub('_', str(name)).strip() or 'Sheet'
    title = base[:MAX_SHEET_TITLE]

    suffix = 2
    while title.lower() in used:
        marker = f" ({suffix})"
        title = f"{base[:MAX_SHEET_TITLE - len(marker)]}{marker}"
        suffix += 1

    used.add(title.lower())
    return title


def _style_header(ws, headers: Sequence[str]) -> None:
    ws.append(list(headers))
    for col_num in range(1, len(headers) + 1):
        cell = ws.cell(row=ws.max_row, column=col_num)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal='center', vertical='center')
    ws.freeze_panes = ws.cell(row=ws.max_row + 1, column=1).coordinate


def _set_widths(ws, widths: Sequence[int]) -> None:
    for col_num, width in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(col_num)].width = width


def _write_summary(wb: Workbook, entries: List[AreaEntry], used: Set[str]) -> None:
    ws = wb.active
    ws.title = sheet_title('Summary', used)

    table = project_summary(entries)
    _style_header(ws, SUMMARY_HEADERS)

    for row in table.rows:
        ws.append(list(row.as_tuple()))

    ws.append(list(table.total.as_tuple()))
    for cell in ws[ws.max_row]:
        cell.font = TOTAL_FONT

    for row in ws.iter_rows(min_row=2, min_col=2, max_col=2):
        for cell in row:
            cell.number_format = '#,##0.00'
    for row in ws.iter_rows(min_row=2, min_col=5, max_col=5):
        for cell in row:
            cell.number_format = '#,##0.00'

    _set_widths(ws, (35, 15, 15, 16, 28))


def _write_failures(wb: Workbook, entries: List[AreaEntry], used: Set[str]) -> None:
    failures = project_failures(entries)
    if not failures:
        return

    ws = wb.create_sheet(sheet_title('Failures', used))
    _style_header(ws, ['Area', 'Reason'])
    for failure in failures:
        ws.append([failure.name, failure.reason])
    _set_widths(ws, (35, 80))


def _write_area(wb: Workbook,
                entry: AreaEntry,
                registry: ReferenceLayerRegistry,
                rules: AnalysisRules,
                used: Set[str]) -> int:
    """Write the overview, detail and language sheets of one area. Returns detail rows written."""
    ws = wb.create_sheet(sheet_title(entry.name, used))
    _style_header(ws, ['Layer', 'Matched Features', 'Counted Elements', 'Overlap'])

    counts = project_layer_counts(entry, registry, rules)
    for count in counts:
        overlap = '' if count.overlap is None else ('Yes' if count.overlap else 'No')
        ws.append([count.display_name, count.matched, count.contributed, overlap])
    _set_widths(ws, (40, 18, 18, 10))

    detail_rows = 0
    for count in counts:
        if not count.matched:
            continue

        detail = project_layer_detail(entry, count.layer_key, registry)
        ds = wb.create_sheet(sheet_title(f"{entry.name}-{detail.display_name}", used))
        _style_header(ds, detail.columns)
        for row in detail.rows:
            ds.append([format_cell_value(value, max_length=0) for value in row])
        _set_widths(ds, [max(12, min(40, len(str(c)) + 4)) for c in detail.columns])
        detail_rows += len(detail)

        if count.layer_key in rules.distinct_count_layers:
            languages = project_language_counts(entry, registry, count.layer_key)
            ls = wb.create_sheet(sheet_title(f"{entry.name}-{detail.display_name} count", used))
            _style_header(ls, ['Label', 'Points'])
            for language in languages:
                ls.append([language['language'], language['count']])
            _set_widths(ls, (35, 10))

    return detail_rows


def generate_xlsx_report(
    entries: Iterable[AreaEntry],
    registry: ReferenceLayerRegistry,
    output_path: Path,
    timestamp: str,
    rules: Optional[AnalysisRules] = None
) -> Optional[Path]:
    """
    Generate an Excel report of the analyzed areas.

    Args:
        entries: Areas in report order (usually AreaManager.list_areas())
        registry: Reference layers, for display names and field mappings
        output_path: Directory where report should be saved
        timestamp: Timestamp string for filename (YYYYMMDD_HHMMSS)
        rules: Layer roles; defaults to AnalysisRules()

    Returns:
        Path to generated XLSX file, or None if generation fails
    """
    logger.info("Generating XLSX report...")

    try:
        entries = list(entries)
        rules = rules or AnalysisRules()
        used: Set[str] = set()

        wb = Workbook()
        _write_summary(wb, entries, used)
        _write_failures(wb, entries, used)

        detail_rows = 0
        for entry in entries:
            if entry.is_analyzed:
                detail_rows += _write_area(wb, entry, registry, rules, used)

        filename = f"AOI_Report_{timestamp}.xlsx"
        xlsx_path = Path(output_path) / filename
        wb.save(xlsx_path)
        logger.info(f"✓ XLSX report saved: {filename} ({detail_rows} features)")

        return xlsx_path

    except Exception as e:
        logger.error(f"Failed to generate XLSX report: {e}", exc_info=True)
        return None
