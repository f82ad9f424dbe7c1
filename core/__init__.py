"""
Core modules for the AOI Layer Analyzer.

This package contains the clipping/analysis engine and the model it works on.

Modules:
    errors: Error taxonomy
    models: Feature, AreaEntry state machine and AreaMetrics
    layer_registry: Reference layers and their field mappings
    layer_processor: Batched, cooperative analysis of one area
    area_manager: Capacity-bounded multi-area coordinator
    report_projection: Tabular projections consumed by the report writers
    output_generator: Save data files, metadata and reports
"""

__version__ = '1.0.0'
