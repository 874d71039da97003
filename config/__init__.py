"""
Configuration package for the layer record core.

This package contains layer configuration loading and defaulting.

Modules:
    config_loader: Load layer configs from JSON and apply defaults
"""

__version__ = '1.0.0'
