"""
Configuration loading for the AOI Layer Analyzer.

This module handles loading and validation of the layer configuration JSON file.

Constants:
    PROJECT_ROOT: Root directory of the project
    CONFIG_DIR: Configuration files directory
    DATA_DIR: Default directory holding the reference layer GeoJSON files
    OUTPUT_DIR: Output files directory

Functions:
    load_config: Load and validate layer configuration from JSON
    load_analysis_settings: Analysis settings merged over defaults
    get_layer_definitions: Ordered layer definitions keyed by layer key
"""

import json
from pathlib import Path
from typing import Dict, Optional

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / 'config'
DATA_DIR = PROJECT_ROOT / 'data'
OUTPUT_DIR = PROJECT_ROOT / 'outputs'

DEFAULT_SETTINGS = {
    'max_areas': 10,
    'batch_size': 50,
    'default_buffer_km': 0.5,
    'default_area_type': 'core',
    'progress_start': 20,
    'progress_end': 95,
    'top_localities': 10
}


def load_config(config_path: Optional[Path] = None) -> Dict:
    """
    Load layer configuration from JSON file.

    Reads the layers_config.json file and validates basic structure.

    Parameters:
    -----------
    config_path : Optional[Path]
        Alternative configuration file. Defaults to CONFIG_DIR/layers_config.json

    Returns:
    --------
    Dict
        Configuration dictionary with 'layers' and 'settings' keys

    Raises:
    -------
    FileNotFoundError
        If configuration file doesn't exist
    json.JSONDecodeError
        If configuration file contains invalid JSON
    KeyError
        If required configuration keys are missing
    """
    if config_path is None:
        config_path = CONFIG_DIR / 'layers_config.json'
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    # Validate required keys
    if 'layers' not in config:
        raise KeyError("Configuration missing required 'layers' key")
    if 'settings' not in config:
        raise KeyError("Configuration missing required 'settings' key")

    for layer in config['layers']:
        if 'key' not in layer:
            raise KeyError(f"Layer definition missing required 'key': {layer}")

    return config


def load_analysis_settings(config: Dict = None) -> Dict:
    """
    Load analysis settings from configuration.

    Args:
        config: Configuration dictionary (optional, will load if not provided)

    Returns:
        Dictionary with analysis settings

    Defaults:
        - max_areas: 10
        - batch_size: 50
        - default_buffer_km: 0.5
        - default_area_type: 'core'
        - progress_start: 20
        - progress_end: 95
        - top_localities: 10

    Note:
        Returns defaults for any key missing from the 'settings' section,
        so older config files keep working.
    """
    if config is None:
        config = load_config()

    settings = config.get('settings', {})

    # Config values override defaults
    result = {**DEFAULT_SETTINGS, **settings}

    if result['progress_end'] < result['progress_start']:
        raise ValueError(
            f"progress_end ({result['progress_end']}) must not be lower than "
            f"progress_start ({result['progress_start']})"
        )

    return result


def get_layer_definitions(config: Dict) -> Dict[str, Dict]:
    """Layer definitions keyed by layer key, in configuration order."""
    return {layer['key']: layer for layer in config.get('layers', [])}
