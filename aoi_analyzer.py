#!/usr/bin/env python
"""
AOI Layer Analyzer
==================
Clips one or more areas of interest (KML/GeoJSON polygons) against the
preloaded reference layers (localities, indigenous languages, protected
areas, archaeological and historic sites, ...) and exports metrics and
per-layer results as GeoJSON, XLSX and PDF.

Usage:
    python aoi_analyzer.py area1.kml area2.kml --area-type core --buffer-km 0.5
"""

import argparse
import asyncio
import sys
import time
import warnings
from pathlib import Path
from typing import List, Optional, Sequence

# Import logging first
from utils.logger import setup_logging, get_logger

from config.config_loader import DATA_DIR, load_analysis_settings, load_config
from core.area_manager import AreaManager
from core.errors import AreaAnalysisError
from core.layer_processor import AnalysisConfig, AnalysisRules
from core.layer_registry import load_registry
from core.output_generator import generate_output

# Suppress warnings for cleaner output
warnings.filterwarnings('ignore')


def _log_progress(logger):
    last = {'step': -1}

    def on_progress(percent: float, message: str) -> None:
        # Log every 10% step so long runs stay readable
        step = int(percent // 10)
        if step != last['step']:
            last['step'] = step
            logger.info(f"  [{percent:5.1f}%] {message}")
        else:
            logger.debug(f"  [{percent:5.1f}%] {message}")

    return on_progress


async def run_analysis(manager: AreaManager, analysis_config: AnalysisConfig, logger) -> int:
    """Analyze every pending area; returns the number of areas that failed."""
    failed = 0
    async for outcome in manager.analyze_all(analysis_config, on_progress=_log_progress(logger)):
        if outcome.succeeded:
            metrics = outcome.result.metrics
            logger.info(f"✓ {outcome.entry.name}: {metrics.total_elements} elements, "
                        f"{metrics.area_km2:.2f} km²")
        else:
            failed += 1
            logger.warning(f"⚠ {outcome.entry.name}: {outcome.error}")
    return failed


def main(input_files: Sequence[str],
         area_type: Optional[str] = None,
         buffer_km: Optional[float] = None,
         layers: Optional[List[str]] = None,
         data_dir: Optional[Path] = None,
         output_name: Optional[str] = None,
         config_path: Optional[Path] = None) -> Optional[Path]:
    """
    Main execution workflow for the AOI Layer Analyzer.

    Workflow Steps:
    1. Setup logging to console and file
    2. Load configuration and reference layers
    3. Add one area per input file (files beyond the area cap are rejected)
    4. Analyze every area; failing areas do not stop the others
    5. Generate output files

    Parameters:
    -----------
    input_files : Sequence[str]
        Area files (KML, GeoJSON, GeoPackage, ...), one area per file
    area_type : Optional[str]
        exact, core, direct_influence or indirect_influence (default from settings)
    buffer_km : Optional[float]
        Buffer radius for core areas (default from settings)
    layers : Optional[List[str]]
        Layer keys to analyze (default: every loaded layer)
    data_dir : Optional[Path]
        Directory with the reference layer files (default: DATA_DIR)
    output_name : Optional[str]
        Custom name for output directory (defaults to timestamped name)
    config_path : Optional[Path]
        Alternative layers_config.json

    Returns:
    --------
    Optional[Path]
        Path to output directory if successful, None if failed

    Example:
        >>> output_path = main(['parcela_norte.kml', 'parcela_sur.kml'], area_type='core')
    """
    workflow_start_time = time.time()

    log_file = setup_logging()
    logger = get_logger(__name__)

    logger.info("=" * 80)
    logger.info("AOI LAYER ANALYZER - Reference Layer Intersection Tool")
    logger.info("=" * 80)
    logger.info(f"Log file: {log_file}")
    logger.info("")

    try:
        config = load_config(config_path)
        settings = load_analysis_settings(config)
        rules = AnalysisRules.from_config(config)
        logger.info(f"Configuration loaded: {len(config['layers'])} layers defined")
        logger.info("")

        analysis_config = AnalysisConfig.from_settings(
            settings, area_type=area_type, buffer_km=buffer_km, selected_layers=layers
        )

        registry = load_registry(config, data_dir or DATA_DIR)
        manager = AreaManager.from_settings(registry, settings, rules)

        for input_file in input_files:
            try:
                manager.add_area_from_file(input_file)
            except (AreaAnalysisError, FileNotFoundError, ValueError) as e:
                logger.warning(f"⚠ Skipping {input_file}: {e}")

        if not len(manager):
            raise ValueError("No area could be loaded from the input files")

        failed = asyncio.run(run_analysis(manager, analysis_config, logger))
        if failed == len(manager):
            logger.warning("⚠ WARNING: No area could be analyzed.")

        output_path, xlsx_file, pdf_file = generate_output(
            manager.list_areas(), registry, output_name, rules,
            top_localities=settings['top_localities']
        )

        total_execution_time = time.time() - workflow_start_time

        logger.info("")
        logger.info("✓ WORKFLOW COMPLETE")
        logger.info(f"✓ Areas analyzed: {len(manager) - failed} of {len(manager)}")
        logger.info(f"✓ Total execution time: {total_execution_time:.2f} seconds")
        logger.info(f"✓ Output directory: {output_path}")
        logger.info(f"✓ Log file: {log_file}")
        logger.info("")

        return output_path

    except Exception as e:
        elapsed_time = time.time() - workflow_start_time

        logger.error("")
        logger.error("=" * 80)
        logger.error("✗ WORKFLOW FAILED")
        logger.error("=" * 80)
        logger.error(f"Error: {str(e)}", exc_info=True)
        logger.error(f"Workflow failed after {elapsed_time:.2f} seconds")
        logger.error("")
        logger.error(f"See log file for details: {log_file}")
        logger.error("=" * 80)
        return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Clip areas of interest against reference layers and export reports."
    )
    parser.add_argument('input_files', nargs='+', help="Area files (KML, GeoJSON, GeoPackage, ...)")
    parser.add_argument('--area-type', default=None,
                        help="exact, core, direct_influence or indirect_influence")
    parser.add_argument('--buffer-km', type=float, default=None,
                        help="Buffer radius in km for core areas")
    parser.add_argument('--layers', nargs='+', default=None, metavar='KEY',
                        help="Layer keys to analyze (default: all loaded layers)")
    parser.add_argument('--data-dir', type=Path, default=None,
                        help="Directory with the reference layer files")
    parser.add_argument('--config', type=Path, default=None, dest='config_path',
                        help="Alternative layers_config.json")
    parser.add_argument('--output', default=None, dest='output_name',
                        help="Output directory name")
    return parser


def cli(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    output_dir = main(
        args.input_files,
        area_type=args.area_type,
        buffer_km=args.buffer_km,
        layers=args.layers,
        data_dir=args.data_dir,
        output_name=args.output_name,
        config_path=args.config_path
    )

    if output_dir:
        print(f"\n✓ Success! Reports saved to {output_dir}")
        return 0
    print("\n✗ Analysis failed. Check log file for details.")
    return 1


if __name__ == "__main__":
    sys.exit(cli())
