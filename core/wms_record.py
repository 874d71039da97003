"""
OGC Web Map Service layer records.

WMS layers have no attribute table. Their legend is one image per configured
layer entry and identify goes through GetFeatureInfo.

Classes:
    WmsSymbology: Legend image symbology trait
    WmsRecord: Record for a WMS layer

Functions:
    find_sublayer_title: Title of a WMS layer in the service's nested layer list
    make_wms_fc: Feature class for a WMS layer
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from core import states
from core.feature_class import FeatureClass, LayerScale, LayerVisibility
from core.layer_record import LayerRecord
from core.shared import IdentifyResult, SharedFetch, SymbologyStack
from utils.logger import get_logger

logger = get_logger(__name__)

# supported GetFeatureInfo formats and the identify format they produce
INFO_FORMATS = {
    'text/html;fgpv=summary': 'HTML',
    'text/html': 'HTML',
    'text/plain': 'Text',
    'application/json': 'EsriFeature'
}

NO_RESULTS_MARKER = 'Search returned no results'


def find_sublayer_title(layer_infos: Optional[List[Dict]], wms_name: str) -> Optional[str]:
    """
    Depth-first search of the service's layer list for a layer name.

    Matches the service's own layer name, not the engine's numeric id.
    """
    for info in layer_infos or []:
        if info.get('name') == wms_name:
            return info.get('title')
        title = find_sublayer_title(info.get('subLayers'), wms_name)
        if title is not None:
            return title
    return None


class WmsSymbology:
    """One legend image per configured layer entry."""

    def __init__(self, parent, layer_entries: List[Dict]):
        self._parent = parent
        self._layer_entries = layer_entries
        self._fetch = SharedFetch(self._load, label='wms legend')

    def get(self) -> asyncio.Task:
        return self._fetch.get()

    async def _load(self) -> List[Dict]:
        layer = self._parent.layer
        ids = [le['id'] for le in self._layer_entries]
        urls = await self._parent.api.layer.ogc.get_legend_urls(layer, ids)
        return [
            {
                'name': le.get('name') or find_sublayer_title(layer.layer_infos, le['id']) or le['id'],
                'image': url
            }
            for le, url in zip(self._layer_entries, urls)
        ]


def make_wms_fc(parent, config: Dict, symbology: SymbologyStack) -> FeatureClass:
    return FeatureClass(
        parent, '0', config,
        scale=LayerScale(parent),
        visibility=LayerVisibility(parent),
        symbology_source=WmsSymbology(parent, config['layerEntries']),
        symbology=symbology
    )


class WmsRecord(LayerRecord):
    """Record for an OGC WMS layer."""

    layer_type = states.OGC_WMS

    def make_layer_config(self) -> Dict:
        cfg = super().make_layer_config()
        cfg['visibleLayers'] = [le['id'] for le in self.config['layerEntries']]
        return cfg

    def _build_feature_classes(self) -> None:
        fc = make_wms_fc(self, self.config, self._symbology)
        self._feature_classes['0'] = fc
        self._default_fc = '0'
        self._spawn(self._load_legend(fc), 'wms legend load')

    async def _load_legend(self, fc: FeatureClass) -> None:
        await fc.load_symbology()
        self._symbology.render_style = 'images'

    def identify(self, opts: Dict) -> Tuple[List[IdentifyResult], Optional[asyncio.Task]]:
        """
        GetFeatureInfo at a click.

        Layers without a supported featureInfoMimeType are skipped: no results
        and no task.
        """
        mime = self.config.get('featureInfoMimeType')
        if mime not in INFO_FORMATS:
            return [], None

        result = IdentifyResult(self.name, self._symbology, INFO_FORMATS[mime], self)
        ids = [le['id'] for le in self.config['layerEntries']]
        task = asyncio.ensure_future(self._run_identify(result, opts['click_event'], ids, mime))
        return [result], task

    async def _run_identify(self, result: IdentifyResult, click_event: Dict, ids: List[str], mime: str) -> None:
        try:
            data = await self._api.layer.ogc.get_feature_info(self._layer, click_event, ids, mime)
            if data and NO_RESULTS_MARKER not in data:
                result.data.append(data)
        finally:
            result.complete()
