"""
Configuration loading for the layer record core.

This module handles loading of the layer configuration JSON file and the
defaulting of individual layer configs. Layer records apply no defaults of
their own, so every config handed to a record must pass through
normalize_layer_config first.

Constants:
    PROJECT_ROOT: Root directory of the project
    CONFIG_DIR: Configuration files directory
    DEFAULT_LAYER_STATE: State values applied when a layer config omits them
    DEFAULT_CONTROLS: Legend controls offered when a layer config omits them

Functions:
    load_config: Load and validate the configuration file
    normalize_layer_config: Produce a fully merged layer config
    load_layer_configs: Load and normalize every configured layer
    load_request_settings: Merge service request settings over defaults
"""

import json
import copy
from pathlib import Path
from typing import Dict, List, Optional

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / 'config'

DEFAULT_LAYER_STATE = {
    'visibility': True,
    'opacity': 1.0,
    'boundingBox': False,
    'query': True,
    'snapshot': False
}

DEFAULT_CONTROLS = [
    'opacity', 'visibility', 'boundingBox', 'query', 'snapshot', 'metadata',
    'boundaryZoom', 'refresh', 'reload', 'remove', 'settings', 'data', 'styles'
]

REQUIRED_LAYER_KEYS = ('id', 'layerType')


def load_config(config_path: Optional[Path] = None) -> Dict:
    """
    Load layer configuration from JSON file.

    Reads layers_config.json (or the given path) and validates basic structure.

    Parameters:
    -----------
    config_path : Optional[Path]
        Configuration file to read. Defaults to CONFIG_DIR/layers_config.json

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

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    if 'layers' not in config:
        raise KeyError("Configuration missing required 'layers' key")
    if 'settings' not in config:
        raise KeyError("Configuration missing required 'settings' key")

    return config


def normalize_layer_config(raw: Dict) -> Dict:
    """
    Produce a fully merged layer configuration.

    Missing state keys are filled individually, so a config that only sets
    opacity keeps the default visibility. Layer entries are copied as given;
    their missing state and controls are inherited from the layer root when
    a dynamic layer builds its sublayer tree.

    Parameters:
    -----------
    raw : Dict
        Layer config as read from JSON

    Returns:
    --------
    Dict
        New dictionary, the input is left untouched

    Raises:
    -------
    KeyError
        If 'id' or 'layerType' is missing
    """
    for key in REQUIRED_LAYER_KEYS:
        if key not in raw:
            raise KeyError(f"Layer configuration missing required '{key}' key")

    config = copy.deepcopy(raw)
    config.setdefault('url', '')
    config.setdefault('name', '')
    config.setdefault('tolerance', 5)
    config['state'] = {**DEFAULT_LAYER_STATE, **config.get('state', {})}
    config.setdefault('controls', list(DEFAULT_CONTROLS))
    config.setdefault('layerEntries', [])
    config.setdefault('childOptions', [])

    return config


def load_layer_configs(config: Dict = None) -> List[Dict]:
    """
    Load and normalize every layer in the configuration.

    Args:
        config: Configuration dictionary (optional, will load if not provided)

    Returns:
        List of fully merged layer configs, in file order
    """
    if config is None:
        config = load_config()

    return [normalize_layer_config(layer) for layer in config['layers']]


def load_request_settings(config: Dict = None) -> Dict:
    """
    Load service request settings from configuration.

    Args:
        config: Configuration dictionary (optional, will load if not provided)

    Returns:
        Dictionary with request settings

    Defaults:
        - request_timeout: 30
        - pagination_enabled: True
        - pagination_max_iterations: 10
        - pagination_total_timeout: 300.0
        - click_tolerance: 5
        - placeholder_colour: '#16bf27'
    """
    if config is None:
        config = load_config()

    defaults = {
        'request_timeout': 30,
        'pagination_enabled': True,
        'pagination_max_iterations': 10,
        'pagination_total_timeout': 300.0,
        'click_tolerance': 5,
        'placeholder_colour': '#16bf27'
    }

    # Config values override defaults
    return {**defaults, **config.get('settings', {})}
