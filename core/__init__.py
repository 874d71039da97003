"""
Layer record core.

This package manages map layer load state, sublayer feature classes and the
stable legend interfaces a UI binds to.

Modules:
    states: Load states and client layer types
    exceptions: Error hierarchy
    events: Listener lists and engine event binding
    shared: Symbology stacks, memoised fetches, identify results
    attributes: Attribute trait for attribute-bearing sublayers
    feature_class: Feature classes and their traits
    dynamic_config: Config cascade for dynamic sublayer trees
    layer_interface: Legend interfaces
    layer_record, attrib_record: Base records
    feature_record, dynamic_record, basic_records, wms_record: Records per layer kind
    legend_records: Legend groups, sets and entries
    collaborators: MapApi bundle and defaults
"""

from typing import Callable, Dict

from core import states
from core.basic_records import ImageRecord, TileRecord
from core.dynamic_record import DynamicRecord
from core.exceptions import UnsupportedLayerTypeError
from core.feature_record import FeatureRecord
from core.layer_interface import LayerInterface
from core.legend_records import LegendEntryRecord, LegendGroupRecord, LegendSetRecord
from core.wms_record import WmsRecord

__version__ = '1.0.0'

RECORD_CLASSES = {
    states.ESRI_FEATURE: FeatureRecord,
    states.ESRI_DYNAMIC: DynamicRecord,
    states.ESRI_TILE: TileRecord,
    states.ESRI_IMAGE: ImageRecord,
    states.OGC_WMS: WmsRecord
}


def make_record(layer_type: str, layer_class: Callable, api, config: Dict, layer=None, epsg_lookup=None):
    """
    Create the record for a layer config.

    Args:
        layer_type: Client layer type, normally config['layerType']
        layer_class: Engine constructor for the physical layer
        api: MapApi collaborator bundle
        config: Normalized layer config
        layer: Optional pre-built physical layer
        epsg_lookup: Optional async projection definition lookup

    Raises:
        UnsupportedLayerTypeError: If no record class handles layer_type
    """
    try:
        record_class = RECORD_CLASSES[layer_type]
    except KeyError:
        raise UnsupportedLayerTypeError(layer_type) from None
    return record_class(layer_class, api, config, layer, epsg_lookup)


__all__ = [
    'DynamicRecord',
    'FeatureRecord',
    'ImageRecord',
    'LayerInterface',
    'LegendEntryRecord',
    'LegendGroupRecord',
    'LegendSetRecord',
    'TileRecord',
    'WmsRecord',
    'make_record',
    'states'
]
