"""
Utility modules for the AOI Layer Analyzer.

This package contains utility functions and helpers used throughout the application.

Modules:
    logger: Logging configuration and setup
    geometry_converters: GeoJSON to Shapely conversion
    formatters: Number and table cell formatting
    xlsx_generator: Excel report writer
    pdf_generator: PDF report writer
"""

__version__ = '1.0.0'
