"""
Configuration package for the AOI Layer Analyzer.

This package contains configuration loading and validation.

Modules:
    config_loader: Load and validate layer configuration from JSON
"""

__version__ = '1.0.0'
