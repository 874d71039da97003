"""
Base layer record: one per physical map layer.

A record binds the physical layer's lifecycle events to its load state,
owns the feature classes built for the layer's logical sublayers, and
provides zoom, scale and bounding box operations.

Event handlers and the background work they start (symbology loads, feature
counts, projection lookups) are scheduled on the running asyncio loop, so
records must be driven from inside one.

Classes:
    LayerRecord: Base record shared by every layer kind
"""

from typing import Callable, Dict, List, Optional, Set

from core import states
from core.events import ListenerList
from core.exceptions import ProjectionError, UsageError
from core.feature_class import OffScale
from core.layer_interface import LayerInterface
from core.shared import SymbologyStack, spawn_background
from utils.geometry_converters import Extent, click_buffer_extent, graphics_extent
from utils.logger import get_logger

logger = get_logger(__name__)


class LayerRecord:
    """
    Record for one physical layer.

    Parameters:
    -----------
    layer_class : Callable
        Engine constructor called as layer_class(url, layer_config)
    api : MapApi
        Collaborator bundle
    config : Dict
        Fully merged layer config (see config.config_loader.normalize_layer_config)
    layer : Optional[object]
        Pre-built physical layer. When given, construct_layer() may not be called
    epsg_lookup : Optional[Callable]
        Async lookup of projection definitions for unknown EPSG codes
    """

    layer_type: Optional[str] = None

    def __init__(self, layer_class: Callable, api, config: Dict, layer=None, epsg_lookup=None):
        self._layer_class = layer_class
        self._api = api
        self.config = config
        self._epsg_lookup = epsg_lookup
        self._name = config.get('name') or ''

        self._state = states.NEW
        self._loaded = False
        self._feature_classes = {}
        self._default_fc = '0'
        self._state_listeners = ListenerList()
        self._hover_listeners = ListenerList()
        self._background: Set = set()
        self._bbox = None
        self._root_proxy: Optional[LayerInterface] = None
        self._symbology = SymbologyStack([self.make_placeholder_symbol(self._name)], 'icons')

        if layer is not None:
            self._user_layer = True
            self._layer = layer
            self._bind_events(layer)
            if not self._name:
                self._name = layer.name or ''
            if layer.loaded:
                self.on_load()
        else:
            self._user_layer = False
            self._layer = None
            self.construct_layer()

    def __repr__(self):
        return f"{type(self).__name__}(id={self.layer_id!r}, state={self._state})"

    # basic properties

    @property
    def layer_id(self) -> str:
        return self.config['id']

    @property
    def layer(self):
        return self._layer

    @property
    def api(self):
        return self._api

    @property
    def state(self) -> str:
        return self._state

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = value

    @property
    def symbology(self) -> SymbologyStack:
        return self._symbology

    @property
    def feature_classes(self) -> Dict:
        return self._feature_classes

    @property
    def default_fc(self) -> str:
        return self._default_fc

    @property
    def disabled_controls(self) -> List[str]:
        return []

    # engine passthroughs

    @property
    def visibility(self) -> bool:
        if self._layer is None:
            return True
        return self._layer.visible

    @visibility.setter
    def visibility(self, value: bool) -> None:
        if self._layer is not None:
            self._layer.set_visibility(value)

    @property
    def opacity(self) -> float:
        if self._layer is None:
            return 1
        return self._layer.opacity

    @opacity.setter
    def opacity(self, value: float) -> None:
        if self._layer is not None:
            self._layer.set_opacity(value)

    @property
    def visible_at_map_scale(self) -> bool:
        if self._layer is None:
            return False
        return self._layer.visible_at_map_scale

    @property
    def spatial_reference(self) -> Optional[Dict]:
        if self._layer is None:
            return None
        return self._layer.spatial_reference

    # construction and lifecycle

    def make_layer_config(self) -> Dict:
        """Options handed to the engine when constructing the physical layer."""
        return {
            'id': self.config['id'],
            'opacity': self.config['state']['opacity'],
            'visible': self.config['state']['visibility']
        }

    def construct_layer(self):
        """
        Build the physical layer from config and start loading it.

        Raises:
        -------
        UsageError
            If the record was created around a pre-built layer
        """
        if self._user_layer:
            raise UsageError('Cannot construct pre-made layers')

        self._loaded = False
        self._layer = self._layer_class(self.config['url'], self.make_layer_config())
        self._bind_events(self._layer)
        self._state_change(states.LOADING)
        return self._layer

    def _bind_events(self, layer) -> None:
        self._api.events.wrap_events(layer, {
            'load': self.on_load,
            'error': self.on_error,
            'update-start': self.on_update_start,
            'update-end': self.on_update_end,
            'mouse-over': self.on_mouse_over,
            'mouse-out': self.on_mouse_out
        })

    def _state_change(self, new_state: str) -> None:
        self._state = new_state
        logger.info(f"State change for {self.layer_id} to {new_state}")
        self._state_listeners.fire(new_state)

    def on_load(self, event=None) -> None:
        """
        Handle the physical layer finishing its load.

        Builds the feature classes, then moves to LOADED. With an EPSG lookup
        the spatial reference is checked first, and a projection that cannot
        be resolved puts the record in ERROR.
        """
        if self._state == states.ERROR or self._loaded:
            return
        self._loaded = True
        logger.info(f"Layer loaded: {self.layer_id}")

        if not self._name:
            self._name = self._layer.name or ''

        self._build_feature_classes()

        if self._epsg_lookup is None:
            self._state_change(states.LOADED)
            return

        try:
            pending = self._api.proj.check_proj(self._layer.spatial_reference, self._epsg_lookup)
        except ProjectionError as e:
            self._projection_failed(e)
            return

        if pending is None:
            self._state_change(states.LOADED)
        else:
            self._spawn(self._finish_projection_check(pending), 'projection check')

    async def _finish_projection_check(self, pending) -> None:
        try:
            await pending
        except ProjectionError as e:
            self._projection_failed(e)
            return
        if self._state != states.ERROR:
            self._state_change(states.LOADED)

    def _projection_failed(self, error: Exception) -> None:
        logger.warning(f"    ⚠ Projection check failed for {self.layer_id}: {error}")
        self._state_change(states.ERROR)

    def _build_feature_classes(self) -> None:
        """Create the record's feature classes. Overridden per layer kind."""

    def on_error(self, event=None) -> None:
        logger.warning(f"    ⚠ Layer error for {self.layer_id}: {event}")
        self._state_change(states.ERROR)

    def on_update_start(self, event=None) -> None:
        if self._state == states.LOADED:
            self._state_change(states.REFRESH)

    def on_update_end(self, event=None) -> None:
        if self._state == states.REFRESH:
            self._state_change(states.LOADED)

    def on_mouse_over(self, event=None) -> None:
        pass

    def on_mouse_out(self, event=None) -> None:
        pass

    def _spawn(self, coro, label: str):
        return spawn_background(coro, f"{label} ({self.layer_id})", self._background)

    # listeners

    def add_state_listener(self, callback: Callable) -> Callable:
        return self._state_listeners.add(callback)

    def remove_state_listener(self, token: Callable) -> None:
        self._state_listeners.remove(token)

    def add_hover_listener(self, callback: Callable) -> Callable:
        return self._hover_listeners.add(callback)

    def remove_hover_listener(self, token: Callable) -> None:
        self._hover_listeners.remove(token)

    # feature classes

    def _fc(self, child_idx=None):
        idx = self._default_fc if child_idx is None else str(child_idx)
        try:
            return self._feature_classes[idx]
        except KeyError:
            raise UsageError(f"Layer {self.layer_id} has no feature class {idx}") from None

    def get_symbology(self, child_idx=None):
        return self._fc(child_idx).get_symbology()

    def is_queryable(self, child_idx=None) -> bool:
        if not self._feature_classes:
            return self.config['state']['query']
        return self._fc(child_idx).queryable

    def set_queryable(self, value: bool, child_idx=None) -> None:
        self._fc(child_idx).queryable = value

    def get_geom_type(self):
        return None

    async def get_feature_count(self, child_idx=None) -> int:
        return 0

    def make_placeholder_symbol(self, name: str) -> Dict:
        return self._api.symbology.generate_placeholder_symbology(
            name or '?', self._api.settings['placeholder_colour'])

    # scale and zoom

    async def get_visible_scales(self, child_idx=None) -> Dict:
        return await self._fc(child_idx).get_scale_set()

    async def is_off_scale(self, map_scale: float, child_idx=None) -> OffScale:
        return await self._fc(child_idx).is_off_scale(map_scale)

    @staticmethod
    def find_zoom_scale(lods: List[Dict], scale_set: Dict, zoom_in: bool = True,
                        zoom_graphic: bool = False) -> Optional[Dict]:
        """
        First level of detail that brings the layer back into scale.

        Parameters:
        -----------
        lods : List[Dict]
            Levels of detail ordered from zoomed out to zoomed in, each with a 'scale'
        scale_set : Dict
            {'minScale', 'maxScale'} of the sublayer
        zoom_in : bool
            Search direction; zooming in looks for the first scale under minScale,
            zooming out walks the levels backwards for the first scale over maxScale
        zoom_graphic : bool
            Zooming to a graphic always searches outwards

        Returns:
        --------
        Optional[Dict]
            Matching level of detail, None if no level qualifies
        """
        if zoom_graphic:
            zoom_in = False
        ordered = lods if zoom_in else list(reversed(lods))
        for lod in ordered:
            if zoom_in and lod['scale'] < scale_set['minScale']:
                return lod
            if not zoom_in and lod['scale'] > scale_set['maxScale']:
                return lod
        return None

    async def set_map_scale(self, map, lod: Dict, zoom_in: bool) -> None:
        """Set the map scale, then centre on the layer if zooming in left it out of view."""
        await map.set_scale(lod['scale'])
        if zoom_in:
            layer_extent = self._api.proj.local_project_extent(self._layer.full_extent, map.spatial_reference)
            if not map.extent.intersects(layer_extent):
                await map.center_at(layer_extent.center())

    async def zoom_to_scale(self, map, lods: List[Dict], zoom_in: bool, zoom_graphic: bool = False,
                            child_idx=None) -> None:
        scale_set = await self._fc(child_idx).get_scale_set()
        lod = self.find_zoom_scale(lods, scale_set, zoom_in, zoom_graphic)
        if lod is None:
            logger.warning(f"    ⚠ No level of detail puts {self.layer_id} in scale")
            return
        await self.set_map_scale(map, lod, zoom_in and not zoom_graphic)

    async def zoom_to_boundary(self, map) -> None:
        """Fit the map to the layer's full extent, or to its graphics when that is empty."""
        extent = self._layer.full_extent
        if extent is None or extent.is_empty():
            local = graphics_extent(getattr(self._layer, 'graphics', None) or [],
                                    self._layer.spatial_reference)
            if local is not None:
                extent = local
        projected = self._api.proj.local_project_extent(extent, map.spatial_reference)
        await map.set_extent(projected)

    def make_click_buffer(self, point: Dict, map, tolerance: int = 5) -> Extent:
        return click_buffer_extent(point, map.extent.width, map.width, tolerance, map.spatial_reference)

    # bounding box

    @property
    def bbox(self):
        return self._bbox

    def is_bbox_visible(self) -> bool:
        return bool(self._bbox is not None and self._bbox.visible)

    def create_bbox(self, spatial_reference: Dict):
        """Bounding box layer for the full extent, created on first call only."""
        if self._bbox is None:
            self._bbox = self._api.layer.make_bounding_box(
                f"bbox_{self._layer.id}", self._layer.full_extent, spatial_reference)
            logger.debug(f"Created bounding box for {self.layer_id}")
        return self._bbox

    def destroy_bbox(self, map) -> None:
        if self._bbox is None:
            raise UsageError(f"Layer {self.layer_id} has no bounding box to destroy")
        map.remove_layer(self._bbox)
        self._bbox = None

    # legend interface

    def get_proxy(self) -> LayerInterface:
        """Root legend interface of the record, created once."""
        if self._root_proxy is None:
            self._root_proxy = LayerInterface(
                self, list(self.config['controls']), list(self.disabled_controls))
            self._convert_root_proxy(self._root_proxy)
        return self._root_proxy

    def _convert_root_proxy(self, proxy: LayerInterface) -> None:
        proxy.convert_to_single_layer(self)
