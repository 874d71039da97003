"""
Feature classes: one per logical sublayer of a physical layer.

A FeatureClass is assembled from small traits instead of a class hierarchy:

- scale:      where minScale/maxScale come from (physical layer or sublayer metadata)
- visibility: physical layer visibility, or membership in the shared visible-layers list
- symbology:  map-server legend, renderer, or (for WMS) legend image URLs
- attributes: optional AttributeData for attribute-bearing sublayers
- opacity:    optional per-sublayer opacity through drawing options

Classes:
    OffScale: Result of the off-scale test
    FeatureClass: Composed feature class
    PlaceholderFeatureClass: Stand-in used before a sublayer has data

Functions:
    compute_off_scale: The off-scale rule
    make_basic_fc, make_feature_fc, make_dynamic_fc: Trait assemblies per layer kind
"""

import asyncio
from typing import Dict, List, NamedTuple, Optional

from core.attributes import AttributeData
from core.events import VisibleChangeSource
from core.exceptions import LayerRecordError, UsageError
from core.shared import SharedFetch, SymbologyStack, make_symbology_array
from utils.logger import get_logger

logger = get_logger(__name__)

# visible-layers value meaning "no sublayer visible"
ALL_INVISIBLE = -1


class OffScale(NamedTuple):
    off_scale: bool
    zoom_in: bool


def compute_off_scale(map_scale: float, min_scale: float, max_scale: float) -> OffScale:
    """
    Decide whether a sublayer is outside its visible scale range.

    Scale numbers grow as the map zooms out. A layer is hidden when zoomed
    out past min_scale or in past max_scale; 0 means no bound. Equality with
    a bound is in range.

    The zoom_in flag is False when the map is zoomed in too far (past
    max_scale) and True when zoomed out too far (past min_scale).
    """
    if map_scale < max_scale and max_scale != 0:
        return OffScale(True, False)
    if map_scale > min_scale and min_scale != 0:
        return OffScale(True, True)
    return OffScale(False, False)


# Scale traits

class LayerScale:
    """Scale bounds read from the physical layer."""

    def __init__(self, parent):
        self._parent = parent

    async def get_scale_set(self) -> Dict:
        layer = self._parent.layer
        return {'minScale': layer.min_scale, 'maxScale': layer.max_scale}


class MetadataScale:
    """Scale bounds read from the sublayer's own metadata."""

    def __init__(self, attributes: AttributeData):
        self._attributes = attributes

    async def get_scale_set(self) -> Dict:
        l_data = await self._attributes.get_layer_data()
        return {'minScale': l_data['minScale'], 'maxScale': l_data['maxScale']}


# Visibility traits

class LayerVisibility:
    def __init__(self, parent):
        self._parent = parent

    def get(self) -> bool:
        return self._parent.layer.visible

    def set(self, value: bool) -> None:
        self._parent.layer.set_visibility(value)


class SublayerVisibility:
    """
    Visibility as membership of the sublayer index in the physical layer's
    visible_layers list.

    The list is shared with the engine and other sublayers, so it is only
    ever mutated in place, then re-applied to the layer. An empty list is
    represented by the single ALL_INVISIBLE value.
    """

    def __init__(self, parent, idx: str):
        self._parent = parent
        self._int_idx = int(idx)

    def get(self) -> bool:
        return self._int_idx in self._parent.layer.visible_layers

    def set(self, value: bool) -> None:
        layer = self._parent.layer
        v_layers = layer.visible_layers
        if value and self._int_idx not in v_layers:
            if ALL_INVISIBLE in v_layers:
                v_layers.remove(ALL_INVISIBLE)
            v_layers.append(self._int_idx)
        elif not value and self._int_idx in v_layers:
            v_layers.remove(self._int_idx)
            if not v_layers:
                v_layers.append(ALL_INVISIBLE)
        else:
            return
        layer.set_visible_layers(v_layers)


class SublayerOpacity:
    """
    Per-sublayer opacity.

    Only applied to the engine when the layer supports dynamic layers. The
    engine wants transparency from 0 (opaque) to 100 in a sparse list
    indexed by sublayer.
    """

    def __init__(self, parent, idx: str, initial: float):
        self._parent = parent
        self._int_idx = int(idx)
        self.set(initial)

    def get(self) -> float:
        return self._value

    def set(self, value: float) -> None:
        self._value = value
        layer = self._parent.layer
        if layer.supports_dynamic_layers:
            options: List[Optional[Dict]] = [None] * (self._int_idx + 1)
            options[self._int_idx] = {'transparency': (value - 1) * -100}
            layer.set_layer_drawing_options(options)


# Symbology traits

class LegendSymbology:
    """Symbols from the map service legend of the sublayer."""

    def __init__(self, parent, idx: str):
        self._parent = parent
        self._idx = idx
        self._fetch = SharedFetch(self._load, label=f'symbology {idx}')

    def get(self) -> asyncio.Task:
        if not self._parent.layer.url:
            raise LayerRecordError('encountered layer with no renderer and no url')
        return self._fetch.get()

    async def _load(self) -> List[Dict]:
        legend = await self._parent.api.symbology.map_server_to_local_legend(self._parent.layer.url, self._idx)
        return make_symbology_array(legend['layers'][0])


class RendererSymbology:
    """
    Symbols derived from the sublayer renderer.

    Non-feature sublayers (rasters) fall back to the map service legend.
    """

    def __init__(self, parent, idx: str, attributes: AttributeData):
        self._parent = parent
        self._attributes = attributes
        self._legend = LegendSymbology(parent, idx)
        self._fetch = SharedFetch(self._load, label=f'symbology {idx}')

    def get(self) -> asyncio.Task:
        return self._fetch.get()

    async def _load(self) -> List[Dict]:
        l_data = await self._attributes.get_layer_data()
        if l_data.get('layerType', 'Feature Layer') == 'Feature Layer' and l_data.get('renderer'):
            return self._parent.api.symbology.renderer_to_legend(l_data['renderer'], l_data.get('legend'))
        return await self._legend.get()


class FeatureClass(VisibleChangeSource):
    """
    One logical sublayer.

    Parameters:
    -----------
    parent : LayerRecord
        Record owning the physical layer
    idx : str
        Sublayer index; '0' for non-indexed sources
    config : Dict
        Effective config of the sublayer (state and controls)
    scale, visibility, symbology_source
        Trait instances
    symbology : SymbologyStack
        Container the UI binds to; filled in place by load_symbology()
    attributes : Optional[AttributeData]
    opacity : Optional[SublayerOpacity]
    """

    def __init__(self, parent, idx: str, config: Dict, scale, visibility, symbology_source,
                 symbology: SymbologyStack, attributes: Optional[AttributeData] = None,
                 opacity: Optional[SublayerOpacity] = None):
        super().__init__()
        self._parent = parent
        self.idx = idx
        self.queryable = config['state']['query']
        self.name = config.get('name') or ''
        self.name_field = config.get('nameField') or ''
        self.symbology = symbology
        self._scale = scale
        self._visibility = visibility
        self._symbology_source = symbology_source
        self._attributes = attributes
        self._opacity = opacity

        # resolved in the background for dynamic children
        self.layer_type = None
        self.geom_type = 'none' if attributes is None else None
        self.feature_count = None

    @property
    def state(self) -> str:
        return self._parent.state

    @property
    def parent(self):
        return self._parent

    # scale

    async def get_scale_set(self) -> Dict:
        return await self._scale.get_scale_set()

    async def is_off_scale(self, map_scale: float) -> OffScale:
        scale_set = await self.get_scale_set()
        return compute_off_scale(map_scale, scale_set['minScale'], scale_set['maxScale'])

    # visibility and opacity

    def get_visibility(self) -> bool:
        return self._visibility.get()

    def set_visibility(self, value: bool) -> None:
        self._visibility.set(value)
        self.visible_changed(value)

    @property
    def opacity(self) -> float:
        if self._opacity is None:
            return self._parent.opacity
        return self._opacity.get()

    @opacity.setter
    def opacity(self, value: float) -> None:
        if self._opacity is None:
            self._parent.opacity = value
        else:
            self._opacity.set(value)

    # symbology

    def get_symbology(self) -> asyncio.Task:
        return self._symbology_source.get()

    async def load_symbology(self) -> None:
        """Fetch real symbols and swap them into the bound container."""
        symbols = await self.get_symbology()
        self.symbology.replace(symbols)

    # attributes

    @property
    def attributes(self) -> AttributeData:
        if self._attributes is None:
            raise UsageError(f"Feature class {self.idx} has no attributes")
        return self._attributes

    def get_attribs(self):
        return self.attributes.get_attribs()

    def get_layer_data(self):
        return self.attributes.get_layer_data()

    def get_formatted_attributes(self) -> asyncio.Task:
        return self.attributes.get_formatted_attributes()

    def clean_up_attributes(self) -> None:
        self.attributes.clean_up()

    async def check_date_type(self, attrib_name: str) -> bool:
        return await self.attributes.check_date_type(attrib_name)

    async def aliased_field_name(self, attrib_name: str) -> str:
        return await self.attributes.aliased_field_name(attrib_name)

    async def get_feature_name(self, obj_id, attribs: Optional[Dict] = None) -> str:
        name_field = self.name_field
        if not name_field:
            name_field = getattr(self._parent.layer, 'display_field', None) or ''
        return await self.attributes.get_feature_name(obj_id, attribs, name_field)


class PlaceholderFeatureClass:
    """Stand-in for a sublayer whose data has not arrived yet."""

    def __init__(self, parent, name: str = ''):
        self._parent = parent
        self.name = name
        self.symbology = SymbologyStack([parent.make_placeholder_symbol(name)], 'icons')

    def rename(self, name: str) -> None:
        """Change the name and redraw the placeholder symbol in place."""
        self.name = name
        self.symbology.replace([self._parent.make_placeholder_symbol(name)])

    def get_visibility(self) -> bool:
        return True

    @property
    def state(self) -> str:
        return self._parent.state


def make_basic_fc(parent, idx: str, config: Dict, symbology: SymbologyStack) -> FeatureClass:
    """Feature class for tile and image layers: no attributes, legend symbology."""
    return FeatureClass(
        parent, idx, config,
        scale=LayerScale(parent),
        visibility=LayerVisibility(parent),
        symbology_source=LegendSymbology(parent, idx),
        symbology=symbology
    )


def make_feature_fc(parent, idx: str, layer_package, config: Dict, symbology: SymbologyStack) -> FeatureClass:
    """Feature class for a feature layer: attributes over the whole physical layer."""
    attributes = AttributeData(layer_package, label=f'{parent.layer_id}:{idx}')
    return FeatureClass(
        parent, idx, config,
        scale=LayerScale(parent),
        visibility=LayerVisibility(parent),
        symbology_source=RendererSymbology(parent, idx, attributes),
        symbology=symbology,
        attributes=attributes
    )


def make_dynamic_fc(parent, idx: str, layer_package, config: Dict, symbology: SymbologyStack) -> FeatureClass:
    """Feature class for a leaf of a dynamic layer."""
    attributes = AttributeData(layer_package, label=f'{parent.layer_id}:{idx}')
    return FeatureClass(
        parent, idx, config,
        scale=MetadataScale(attributes),
        visibility=SublayerVisibility(parent, idx),
        symbology_source=RendererSymbology(parent, idx, attributes),
        symbology=symbology,
        attributes=attributes,
        opacity=SublayerOpacity(parent, idx, config['state']['opacity'])
    )
