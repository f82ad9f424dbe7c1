"""
Output generation module for the AOI Layer Analyzer.

This module saves the results of a multi-area analysis to the output
directory: GeoJSON data files, a metadata summary and the XLSX/PDF reports.

Functions:
    generate_output: Save data files, metadata and reports to an output directory
    build_metadata: JSON-serializable summary of every area
"""

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import geopandas as gpd

from config.config_loader import OUTPUT_DIR
from core.layer_processor import AnalysisRules
from core.layer_registry import ReferenceLayerRegistry
from core.models import AreaEntry, Feature
from core.report_projection import project_layer_counts, project_summary
from utils.logger import get_logger
from utils.pdf_generator import generate_pdf_report
from utils.xlsx_generator import generate_xlsx_report

logger = get_logger(__name__)


def safe_file_name(name: str) -> str:
    """
    Lower-case file name fragment with only letters, digits, '-' and '_'.

    Example:
        >>> safe_file_name('Parcela Norte / 2')
        'parcela_norte_2'
    """
    cleaned = re.sub(r'[^\w\-]+', '_', str(name).strip().lower())
    return cleaned.strip('_') or 'area'


def _write_geojson(features: List[Feature], file_path: Path) -> None:
    gdf = gpd.GeoDataFrame.from_features([f.to_geojson() for f in features], crs='EPSG:4326')
    gdf.to_file(file_path, driver='GeoJSON')


def build_metadata(entries: List[AreaEntry],
                   registry: ReferenceLayerRegistry,
                   rules: AnalysisRules) -> Dict:
    """Summary of every area, suitable for metadata.json."""
    summary = project_summary(entries)
    areas = []

    for entry in entries:
        item = {
            'id': entry.id,
            'name': entry.name,
            'state': entry.state.value,
            'ignored_polygons': entry.ignored_polygons,
        }
        if entry.source_polygon is not None:
            item['bounds'] = list(entry.source_polygon.geometry.bounds)

        if entry.is_analyzed:
            item['analyzed_at'] = entry.analyzed_at.isoformat() if entry.analyzed_at else None
            item['metrics'] = entry.metrics.to_dict()
            item['layers'] = {
                count.layer_key: {
                    'display_name': count.display_name,
                    'feature_count': count.matched,
                    'counted_elements': count.contributed,
                }
                for count in project_layer_counts(entry, registry, rules)
            }
        elif entry.error:
            item['error'] = entry.error

        areas.append(item)

    return {
        'generated_at': datetime.now().isoformat(),
        'areas': areas,
        'totals': {
            'area_km2': summary.total.area_km2,
            'population': summary.total.population,
            'total_elements': summary.total.total_elements,
            'population_density': summary.total.population_density,
        },
        'areas_analyzed': len(summary.rows),
        'areas_failed': sum(1 for e in entries if e.error and not e.is_analyzed),
    }


def generate_output(
    entries: Iterable[AreaEntry],
    registry: ReferenceLayerRegistry,
    output_name: Optional[str] = None,
    rules: Optional[AnalysisRules] = None,
    output_dir: Optional[Path] = None,
    top_localities: int = 10
) -> Tuple[Path, Optional[str], Optional[str]]:
    """
    Generate output directory with GeoJSON data files, metadata, XLSX and PDF reports.

    Creates an output directory containing:
    - metadata.json: Per-area metrics, layer counts and totals
    - data/: <area>_source.geojson, <area>_clip_area.geojson and
      <area>_<layer>.geojson for every layer with matches
    - AOI_Report_YYYYMMDD_HHMMSS.xlsx: Summary and per-layer detail workbook
    - AOI_Report_YYYYMMDD_HHMMSS.pdf: PDF summary

    Parameters:
    -----------
    entries : Iterable[AreaEntry]
        Areas in report order (usually AreaManager.list_areas())
    registry : ReferenceLayerRegistry
        Reference layers, for display names and field mappings
    output_name : Optional[str]
        Custom output directory name (defaults to timestamped name)
    rules : Optional[AnalysisRules]
        Layer roles; defaults to AnalysisRules()
    output_dir : Optional[Path]
        Parent directory (defaults to OUTPUT_DIR)

    Returns:
    --------
    Tuple[Path, Optional[str], Optional[str]]
        Tuple of (output_path, xlsx_file_name, pdf_file_name); a report name
        is None when that report failed

    Example:
        >>> output_path, xlsx_file, pdf_file = generate_output(manager.list_areas(), registry)
        >>> xlsx_file
        'AOI_Report_20250108_143022.xlsx'
    """
    logger.info("=" * 80)
    logger.info("Generating Output Files")
    logger.info("=" * 80)

    entries = list(entries)
    rules = rules or AnalysisRules()

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    if output_name is None:
        output_name = f"aoi_analysis_{timestamp}"

    output_path = Path(output_dir or OUTPUT_DIR) / output_name
    output_path.mkdir(parents=True, exist_ok=True)

    data_path = output_path / 'data'
    data_path.mkdir(exist_ok=True)

    logger.info(f"Output directory: {output_path}")

    files_written = 0
    for entry in entries:
        if not entry.is_analyzed:
            continue

        prefix = f"{entry.id:02d}_{safe_file_name(entry.name)}"
        logger.info(f"  - Saving {entry.name} data...")

        _write_geojson([entry.source_polygon], data_path / f"{prefix}_source.geojson")
        _write_geojson([Feature(geometry=entry.clip_area)], data_path / f"{prefix}_clip_area.geojson")
        files_written += 2

        for layer_key, features in entry.per_layer_results.items():
            if not features:
                continue
            _write_geojson(features, data_path / f"{prefix}_{safe_file_name(layer_key)}.geojson")
            files_written += 1

    logger.info("  - Saving metadata...")
    metadata_file = output_path / 'metadata.json'
    with open(metadata_file, 'w', encoding='utf-8') as f:
        json.dump(build_metadata(entries, registry, rules), f, indent=2, ensure_ascii=False)

    logger.info("  - Generating XLSX report...")
    xlsx_path = generate_xlsx_report(entries, registry, output_path, timestamp, rules)
    xlsx_file = xlsx_path.name if xlsx_path else None

    logger.info("  - Generating PDF report...")
    pdf_path = generate_pdf_report(entries, registry, output_path, timestamp, rules, top_localities)
    pdf_file = pdf_path.name if pdf_path else None

    logger.info("")
    logger.info("=" * 80)
    logger.info("✓ Output Generation Complete")
    logger.info("=" * 80)
    logger.info(f"Files saved to: {output_path}")
    logger.info("  - metadata.json (summary statistics)")
    logger.info(f"  - data/ ({files_written} GeoJSON files)")
    if xlsx_file:
        logger.info(f"  - {xlsx_file} (report - XLSX)")
    if pdf_file:
        logger.info(f"  - {pdf_file} (report - PDF)")
    logger.info("=" * 80)

    return output_path, xlsx_file, pdf_file
