"""
Feature layer records.

A feature layer has exactly one logical sublayer. Identify runs a spatial
query against the layer itself and joins the hits with the loaded attribute
table; hovering over a feature produces map tips for hover listeners.

Classes:
    FeatureRecord: Record for a single feature layer (server or file based)
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from core import states
from core.attrib_record import AttribRecord
from core.feature_class import make_feature_fc
from core.layer_interface import LayerInterface
from core.shared import IdentifyResult
from utils.logger import get_logger

logger = get_logger(__name__)

MODE_SNAPSHOT = 'snapshot'
MODE_ONDEMAND = 'ondemand'
POLYGON_GEOMETRY = 'esriGeometryPolygon'


class FeatureRecord(AttribRecord):
    """Record for a feature layer."""

    layer_type = states.ESRI_FEATURE

    def __init__(self, layer_class, api, config: Dict, layer=None, epsg_lookup=None):
        self.is_snapshot = config['state']['snapshot']
        super().__init__(layer_class, api, config, layer, epsg_lookup)

    def make_layer_config(self) -> Dict:
        cfg = super().make_layer_config()
        cfg['mode'] = MODE_SNAPSHOT if self.is_snapshot else MODE_ONDEMAND
        return cfg

    @property
    def disabled_controls(self) -> List[str]:
        # a snapshot layer cannot be switched back
        return ['snapshot'] if self.is_snapshot else []

    def set_snapshot(self) -> None:
        """Switch to snapshot mode; takes effect when the layer is next constructed."""
        logger.info(f"Snapshot mode requested for {self.layer_id}")
        self.is_snapshot = True

    def _build_feature_classes(self) -> None:
        bundle = self._api.attribs.load_layer_attribs(self._layer)

        # a feature layer has only one sublayer
        idx = bundle['indexes'][0]
        fc = make_feature_fc(self, idx, bundle[idx], self.config, self._symbology)
        self._feature_classes[idx] = fc
        self._default_fc = idx

        self._spawn(fc.load_symbology(), 'symbology load')
        self._spawn(self._load_feature_count(), 'feature count')

    async def _load_feature_count(self) -> None:
        self.feature_count = await self.get_feature_count()
        logger.debug(f"Feature count for {self.layer_id}: {self.feature_count}")

    async def get_feature_count(self, child_idx=None) -> int:
        return await self._count_features(self._layer.url)

    def get_geom_type(self) -> Optional[str]:
        return self._layer.geometry_type

    def _convert_root_proxy(self, proxy: LayerInterface) -> None:
        proxy.convert_to_feature_layer(self)

    # hover

    def on_mouse_over(self, event=None) -> None:
        if not self._hover_listeners:
            return

        self._hover_listeners.fire({
            'type': 'mouseOver',
            'point': event['screen_point'],
            'target': event['target']
        })
        self._spawn(self._load_map_tip(event), 'map tip')

    async def _load_map_tip(self, event: Dict) -> None:
        l_info, a_info = await asyncio.gather(self.get_layer_data(), self.get_attribs())

        # server graphics only carry the object id
        oid = event['graphic']['attributes'][l_info['oidField']]
        feat_attribs = a_info['features'][a_info['oidIndex'][oid]]['attributes']
        name = await self.get_feature_name(oid, feat_attribs)
        svgcode = self._api.symbology.get_graphic_icon(feat_attribs, l_info.get('renderer'))

        self._hover_listeners.fire({
            'type': 'tipLoaded',
            'name': name,
            'target': event['target'],
            'svgcode': svgcode
        })

    def on_mouse_out(self, event=None) -> None:
        self._hover_listeners.fire({
            'type': 'mouseOut',
            'target': event['target']
        })

    # identify

    def identify(self, opts: Dict) -> Tuple[List[IdentifyResult], asyncio.Task]:
        """
        Spatial query of the layer at a click.

        Parameters:
        -----------
        opts : Dict
            'map' and 'click_event' (with 'map_point'); optionally 'geometry',
            used as-is for server polygon layers

        Returns:
        --------
        Tuple[List[IdentifyResult], asyncio.Task]
            One loading result, and the task that fills it
        """
        result = IdentifyResult(self.name, self._symbology, 'EsriFeature', self, self._default_fc)

        if self._layer.geometry_type == POLYGON_GEOMETRY and not self.is_file_layer() and opts.get('geometry'):
            geometry = opts['geometry']
        else:
            geometry = self.make_click_buffer(opts['click_event']['map_point'], opts['map'], self.click_tolerance)

        query = {'outFields': ['*'], 'geometry': geometry}
        task = asyncio.ensure_future(self._run_identify(result, query))
        return [result], task

    async def _run_identify(self, result: IdentifyResult, query: Dict) -> None:
        try:
            attributes, query_result, layer_data = await asyncio.gather(
                self.get_attribs(),
                self._layer.query_features(query),
                self.get_layer_data()
            )
            oid_field = layer_data['oidField']
            for feat in query_result['features']:
                oid = feat['attributes'][oid_field]
                feat_attribs = attributes['features'][attributes['oidIndex'][oid]]['attributes']
                result.data.append({
                    'name': await self.get_feature_name(oid, feat_attribs),
                    'data': self.attributes_to_details(feat_attribs, layer_data['fields']),
                    'oid': oid,
                    'symbology': [
                        {'svgcode': self._api.symbology.get_graphic_icon(feat_attribs, layer_data.get('renderer'))}
                    ]
                })
        finally:
            result.complete()
