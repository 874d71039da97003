"""
Geometry conversion utilities for the layer record core.

This module provides the Extent value type used for zooming and bounding boxes,
functions to convert ESRI JSON geometries to GeoJSON and Shapely, and the
map-unit maths behind identify click buffers.

Mapping engines report extents and features in ESRI JSON, which needs to be
converted to Shapely geometries for intersection tests and to GeoPandas for
extent aggregation over local (file based) graphics.

Classes:
    Extent: Axis-aligned envelope with an optional spatial reference

Functions:
    convert_esri_point: Convert ESRI point geometry to GeoJSON
    convert_esri_linestring: Convert ESRI paths to GeoJSON LineString
    convert_esri_polygon: Convert ESRI rings to GeoJSON Polygon
    convert_esri_to_geojson: Main dispatcher for ESRI to GeoJSON conversion
    esri_to_shapely: Convert an ESRI geometry dict to a Shapely geometry
    click_buffer_extent: Square extent around a click point in map units
    graphics_extent: Combined extent of a list of local graphics
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, List

import geopandas as gpd
from shapely.geometry import box, shape
from shapely.geometry.base import BaseGeometry

from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Extent:
    """Envelope in the units of its spatial reference."""

    xmin: float
    ymin: float
    xmax: float
    ymax: float
    spatial_reference: Optional[Dict] = field(default=None)

    @classmethod
    def from_bounds(cls, bounds, spatial_reference: Optional[Dict] = None) -> 'Extent':
        """Build an Extent from a (minx, miny, maxx, maxy) sequence."""
        xmin, ymin, xmax, ymax = (float(v) for v in bounds)
        return cls(xmin, ymin, xmax, ymax, spatial_reference)

    @property
    def width(self) -> float:
        return self.xmax - self.xmin

    @property
    def height(self) -> float:
        return self.ymax - self.ymin

    def is_empty(self) -> bool:
        return self.width <= 0 and self.height <= 0

    def center(self) -> Dict:
        """Centre point as an ESRI JSON point."""
        return {
            'x': (self.xmin + self.xmax) / 2,
            'y': (self.ymin + self.ymax) / 2,
            'spatialReference': self.spatial_reference
        }

    def to_shapely(self) -> BaseGeometry:
        return box(self.xmin, self.ymin, self.xmax, self.ymax)

    def intersects(self, other: 'Extent') -> bool:
        """
        Test whether two extents overlap.

        Touching edges count as intersecting, matching the engine's own
        extent test. Spatial references are not compared; callers project
        first.
        """
        return self.to_shapely().intersects(other.to_shapely())


def convert_esri_point(geom: Dict, props: Dict) -> Optional[Dict]:
    """
    Convert ESRI point geometry to GeoJSON Feature.

    Parameters:
    -----------
    geom : Dict
        ESRI geometry with 'x' and 'y' keys
    props : Dict
        Feature attributes/properties

    Returns:
    --------
    Optional[Dict]
        GeoJSON Feature dict or None if conversion fails
    """
    if not geom or 'x' not in geom or 'y' not in geom:
        return None

    return {
        'type': 'Feature',
        'geometry': {
            'type': 'Point',
            'coordinates': [geom['x'], geom['y']]
        },
        'properties': props
    }


def convert_esri_linestring(geom: Dict, props: Dict) -> Optional[Dict]:
    """
    Convert ESRI paths geometry to GeoJSON LineString or MultiLineString.

    Single path becomes LineString, multiple paths become MultiLineString.
    """
    if not geom or not geom.get('paths'):
        return None

    if len(geom['paths']) == 1:
        coords = geom['paths'][0]
        geom_type = 'LineString'
    else:
        coords = geom['paths']
        geom_type = 'MultiLineString'

    return {
        'type': 'Feature',
        'geometry': {
            'type': geom_type,
            'coordinates': coords
        },
        'properties': props
    }


def convert_esri_polygon(geom: Dict, props: Dict) -> Optional[Dict]:
    """
    Convert ESRI rings geometry to GeoJSON Polygon.

    The first ring is the exterior, subsequent rings are holes.
    """
    if not geom or not geom.get('rings'):
        return None

    return {
        'type': 'Feature',
        'geometry': {
            'type': 'Polygon',
            'coordinates': geom['rings']
        },
        'properties': props
    }


def convert_esri_to_geojson(esri_feature: Dict) -> Optional[Dict]:
    """
    Main converter dispatcher for ESRI JSON to GeoJSON.

    Envelopes (xmin/ymin/xmax/ymax) are converted to their rectangle polygon.

    Parameters:
    -----------
    esri_feature : Dict
        ESRI feature with 'geometry' and 'attributes' keys

    Returns:
    --------
    Optional[Dict]
        GeoJSON Feature dict or None if geometry type unrecognized
    """
    geom = esri_feature.get('geometry') or {}
    props = esri_feature.get('attributes', {})

    if 'x' in geom:
        return convert_esri_point(geom, props)
    elif 'paths' in geom:
        return convert_esri_linestring(geom, props)
    elif 'rings' in geom:
        return convert_esri_polygon(geom, props)
    elif 'xmin' in geom:
        rings = [[
            [geom['xmin'], geom['ymin']],
            [geom['xmax'], geom['ymin']],
            [geom['xmax'], geom['ymax']],
            [geom['xmin'], geom['ymax']],
            [geom['xmin'], geom['ymin']]
        ]]
        return convert_esri_polygon({'rings': rings}, props)

    return None


def esri_to_shapely(geom: Dict) -> Optional[BaseGeometry]:
    """Convert a bare ESRI geometry dict to Shapely, None when unrecognized."""
    feature = convert_esri_to_geojson({'geometry': geom, 'attributes': {}})
    if feature is None:
        return None
    return shape(feature['geometry'])


def click_buffer_extent(
    point: Dict,
    map_extent_width: float,
    map_width_px: int,
    tolerance: int = 5,
    spatial_reference: Optional[Dict] = None
) -> Extent:
    """
    Square extent around a click point sized from a pixel tolerance.

    The buffer side is 2 * tolerance pixels converted to map units at the
    current scale (map extent width divided by map width in pixels).

    Parameters:
    -----------
    point : Dict
        ESRI JSON click point in map coordinates
    map_extent_width : float
        Width of the current map extent in map units
    map_width_px : int
        Width of the map control in pixels
    tolerance : int
        Click tolerance in pixels (default: 5)
    spatial_reference : Optional[Dict]
        Spatial reference of the resulting extent

    Returns:
    --------
    Extent
        Buffer extent centred on the point
    """
    buff_size = 2 * tolerance * map_extent_width / map_width_px
    half = buff_size / 2
    return Extent(
        point['x'] - half,
        point['y'] - half,
        point['x'] + half,
        point['y'] + half,
        spatial_reference
    )


def graphics_extent(graphics: List[Dict], spatial_reference: Optional[Dict] = None) -> Optional[Extent]:
    """
    Combined extent of local graphics.

    Graphics whose geometry cannot be converted are skipped.

    Returns:
    --------
    Optional[Extent]
        Extent covering every convertible graphic, None if there are none
    """
    geoms = []
    for graphic in graphics:
        geom = esri_to_shapely(graphic.get('geometry'))
        if geom is not None:
            geoms.append(geom)

    if not geoms:
        logger.debug("No convertible graphics for extent calculation")
        return None

    bounds = gpd.GeoSeries(geoms).total_bounds
    return Extent.from_bounds(bounds, spatial_reference)
