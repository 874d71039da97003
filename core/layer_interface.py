"""
Stable-identity legend interfaces.

UI code binds to a LayerInterface before the data behind it exists, so an
interface is never replaced once handed out. Its behaviour comes from an
internal flavour object that the convert_to_* methods swap; the interface
itself, its control lists and its flattened leaf list stay the same objects.

Classes:
    LayerInterface: The handle bound by the UI
    Flavour and subclasses: Behaviour sets for each kind of legend entry
"""

from typing import List, Optional

from core import states
from core.exceptions import UnsupportedCallError
from utils.logger import get_logger

logger = get_logger(__name__)


class Flavour:
    """Every accessor and mutator fails until a real flavour is installed."""

    is_placeholder = True

    def symbology(self, iface):
        raise UnsupportedCallError()

    def name(self, iface):
        raise UnsupportedCallError()

    def layer_type(self, iface):
        raise UnsupportedCallError()

    def geometry_type(self, iface):
        raise UnsupportedCallError()

    def feature_count(self, iface):
        raise UnsupportedCallError()

    def state(self, iface):
        raise UnsupportedCallError()

    def is_refreshing(self, iface):
        raise UnsupportedCallError()

    def visibility(self, iface):
        raise UnsupportedCallError()

    def opacity(self, iface):
        raise UnsupportedCallError()

    def bounding_box(self, iface):
        raise UnsupportedCallError()

    def query(self, iface):
        raise UnsupportedCallError()

    def snapshot(self, iface):
        raise UnsupportedCallError()

    def formatted_attributes(self, iface):
        raise UnsupportedCallError()

    def info_type(self, iface):
        raise UnsupportedCallError()

    def info_content(self, iface):
        raise UnsupportedCallError()

    def set_visibility(self, iface, value):
        raise UnsupportedCallError()

    def set_opacity(self, iface, value):
        raise UnsupportedCallError()

    def set_bounding_box(self, iface, value):
        raise UnsupportedCallError()

    def set_query(self, iface, value):
        raise UnsupportedCallError()

    def set_snapshot(self, iface):
        raise UnsupportedCallError()


class PlaceholderFlavour(Flavour):
    """Backed by a placeholder feature class; always reports refreshing."""

    def symbology(self, iface):
        return iface.source.symbology

    def name(self, iface):
        return iface.source.name

    def state(self, iface):
        return states.collapse_state(iface.source.state)

    def is_refreshing(self, iface):
        return True


class SingleLayerFlavour(Flavour):
    """A physical layer with one logical sublayer, backed by its record."""

    is_placeholder = False

    def symbology(self, iface):
        return iface.source.symbology

    def name(self, iface):
        return iface.source.name

    def layer_type(self, iface):
        return iface.source.layer_type

    def geometry_type(self, iface):
        return None

    def feature_count(self, iface):
        return None

    def state(self, iface):
        return states.collapse_state(iface.source.state)

    def is_refreshing(self, iface):
        return states.is_refreshing(iface.source.state)

    def visibility(self, iface):
        return iface.source.visibility

    def opacity(self, iface):
        return iface.source.opacity

    def bounding_box(self, iface):
        # visibility of the box, not the box itself
        return iface.source.is_bbox_visible()

    def query(self, iface):
        return iface.source.is_queryable()

    def set_visibility(self, iface, value):
        iface.source.visibility = value

    def set_opacity(self, iface, value):
        iface.source.opacity = value

    def set_bounding_box(self, iface, value):
        bbox = iface.source.bbox
        if bbox is not None:
            bbox.visible = value

    def set_query(self, iface, value):
        iface.source.set_queryable(value)


class FeatureLayerFlavour(SingleLayerFlavour):
    """Single layer with attributes, geometry and snapshot mode."""

    def geometry_type(self, iface):
        return iface.source.get_geom_type()

    def feature_count(self, iface):
        return iface.source.feature_count

    def snapshot(self, iface):
        return iface.source.is_snapshot

    def formatted_attributes(self, iface):
        return iface.source.get_formatted_attributes()

    def set_snapshot(self, iface):
        iface.source.set_snapshot()


class LegendEntryFlavour(FeatureLayerFlavour):
    """Legend entry fronting a master layer; feature layer surface plus info panels."""

    def info_type(self, iface):
        return iface.source.info_type

    def info_content(self, iface):
        return iface.source.info_content


class DynamicLeafFlavour(Flavour):
    """A leaf of a dynamic layer, backed by its feature class."""

    is_placeholder = False

    def symbology(self, iface):
        return iface.source.symbology

    def name(self, iface):
        return iface.source.name

    def layer_type(self, iface):
        return iface.source.layer_type

    def geometry_type(self, iface):
        return iface.source.geom_type

    def feature_count(self, iface):
        return iface.source.feature_count

    def state(self, iface):
        return states.collapse_state(iface.source.state)

    def is_refreshing(self, iface):
        return states.is_refreshing(iface.source.state)

    def visibility(self, iface):
        return iface.source.get_visibility()

    def opacity(self, iface):
        return iface.source.opacity

    def query(self, iface):
        return iface.source.queryable

    def formatted_attributes(self, iface):
        return iface.source.get_formatted_attributes()

    def set_visibility(self, iface, value):
        iface.source.set_visibility(value)

    def set_opacity(self, iface, value):
        iface.source.opacity = value

    def set_query(self, iface, value):
        iface.source.queryable = value


class DynamicGroupFlavour(Flavour):
    """
    A group inside a dynamic layer.

    The source is the layer record; visibility is computed from the
    flattened leaf list. Groups never support opacity.
    """

    is_placeholder = False

    def __init__(self, group_id: str, name: str):
        self.group_id = group_id
        self.group_name = name

    def name(self, iface):
        return self.group_name

    def layer_type(self, iface):
        return states.ESRI_GROUP

    def state(self, iface):
        return states.collapse_state(iface.source.state)

    def is_refreshing(self, iface):
        return states.is_refreshing(iface.source.state)

    def visibility(self, iface):
        return any(leaf.visibility for leaf in iface.child_leafs)

    def set_visibility(self, iface, value):
        # leaves only, never through nested groups
        for leaf in iface.child_leafs:
            leaf.set_visibility(value)


class LegendGroupFlavour(Flavour):
    """Legend group or visibility set made of registered child interfaces."""

    is_placeholder = False

    def name(self, iface):
        return iface.source.name

    def layer_type(self, iface):
        return iface.source.layer_type

    def state(self, iface):
        return states.collapse_state(iface.source.state)

    def is_refreshing(self, iface):
        return False

    def visibility(self, iface):
        return iface.source.visibility

    def query(self, iface):
        return iface.source.is_queryable()

    def set_visibility(self, iface, value):
        iface.source.visibility = value

    def set_query(self, iface, value):
        iface.source.set_queryable(value)


_UNBOUND = Flavour()
_PLACEHOLDER = PlaceholderFlavour()
_SINGLE_LAYER = SingleLayerFlavour()
_FEATURE_LAYER = FeatureLayerFlavour()
_DYNAMIC_LEAF = DynamicLeafFlavour()
_LEGEND_GROUP = LegendGroupFlavour()
_LEGEND_ENTRY = LegendEntryFlavour()


class LayerInterface:
    """
    Interface a legend entry binds to.

    Parameters:
    -----------
    source : object
        Initial data source (record, feature class or legend record); may be None
    available_controls : Optional[List[str]]
        Controls shown for the entry. The list is kept, not copied
    disabled_controls : Optional[List[str]]
        Controls shown but not usable
    """

    def __init__(self, source=None, available_controls: Optional[List[str]] = None,
                 disabled_controls: Optional[List[str]] = None):
        self._source = source
        self._available_controls = available_controls if available_controls is not None else []
        self._disabled_controls = disabled_controls if disabled_controls is not None else []
        self._child_leafs = []
        self._flavour = _UNBOUND

    def __repr__(self):
        return f"LayerInterface({type(self._flavour).__name__}, source={self._source!r})"

    @property
    def source(self):
        return self._source

    @property
    def is_placeholder(self) -> bool:
        return self._flavour.is_placeholder

    @property
    def available_controls(self) -> List[str]:
        return self._available_controls

    @property
    def disabled_controls(self) -> List[str]:
        return self._disabled_controls

    @property
    def child_leafs(self) -> List['LayerInterface']:
        """Every leaf interface under a dynamic group, flattened."""
        return self._child_leafs

    # accessors

    @property
    def symbology(self):
        return self._flavour.symbology(self)

    @property
    def name(self) -> str:
        return self._flavour.name(self)

    @property
    def layer_type(self):
        return self._flavour.layer_type(self)

    @property
    def geometry_type(self):
        return self._flavour.geometry_type(self)

    @property
    def feature_count(self):
        return self._flavour.feature_count(self)

    @property
    def state(self) -> str:
        return self._flavour.state(self)

    @property
    def is_refreshing(self) -> bool:
        return self._flavour.is_refreshing(self)

    @property
    def visibility(self) -> bool:
        return self._flavour.visibility(self)

    @property
    def opacity(self) -> float:
        return self._flavour.opacity(self)

    @property
    def bounding_box(self) -> bool:
        return self._flavour.bounding_box(self)

    @property
    def query(self) -> bool:
        return self._flavour.query(self)

    @property
    def snapshot(self) -> bool:
        return self._flavour.snapshot(self)

    @property
    def formatted_attributes(self):
        return self._flavour.formatted_attributes(self)

    @property
    def info_type(self):
        return self._flavour.info_type(self)

    @property
    def info_content(self):
        return self._flavour.info_content(self)

    # mutators

    def set_visibility(self, value: bool) -> None:
        self._flavour.set_visibility(self, value)

    def set_opacity(self, value: float) -> None:
        self._flavour.set_opacity(self, value)

    def set_bounding_box(self, value: bool) -> None:
        self._flavour.set_bounding_box(self, value)

    def set_query(self, value: bool) -> None:
        self._flavour.set_query(self, value)

    def set_snapshot(self) -> None:
        self._flavour.set_snapshot(self)

    # conversions

    def convert_to_single_layer(self, layer_record) -> None:
        self._source = layer_record
        self._flavour = _SINGLE_LAYER

    def convert_to_feature_layer(self, layer_record) -> None:
        self._source = layer_record
        self._flavour = _FEATURE_LAYER

    def convert_to_dynamic_leaf(self, dynamic_fc) -> None:
        self._source = dynamic_fc
        self._flavour = _DYNAMIC_LEAF

    def convert_to_dynamic_group(self, layer_record, group_id: str, name: str = '') -> None:
        self._source = layer_record
        self._flavour = DynamicGroupFlavour(group_id, name)
        self._child_leafs.clear()

    def convert_to_legend_group(self, legend_group_record) -> None:
        self._source = legend_group_record
        self._flavour = _LEGEND_GROUP

    def convert_to_legend_entry(self, legend_entry_record) -> None:
        self._source = legend_entry_record
        self._flavour = _LEGEND_ENTRY

    def convert_to_placeholder(self, placeholder_fc) -> None:
        self._source = placeholder_fc
        self._flavour = _PLACEHOLDER
