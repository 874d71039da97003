"""
Utility modules for the layer record core.

This package contains the default collaborators and helpers used by records.

Modules:
    logger: Logging configuration and setup
    geometry_converters: Extent type and ESRI JSON geometry conversion
    projection: pyproj backed projection collaborator
    arcgis_rest: ArcGIS REST requests, attribute loading and legends
"""

__version__ = '1.0.0'
