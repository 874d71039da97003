"""
Dynamic (map service) layer records.

A dynamic layer draws many server sublayers as one physical layer. On load
the record walks the server's sublayer tree from the configured entries,
derives each node's effective config, and gives every node a legend
interface: groups aggregate their leaves, leaves start as placeholders and
become real once their feature class exists.

Classes:
    DynamicRecord: Record for a dynamic map service layer

Functions:
    server_layer_type_to_client: Map a server sublayer type to a client layer type
"""

import asyncio
from collections import defaultdict
from typing import Dict, List, Tuple

from core import states
from core.attrib_record import AttribRecord
from core.attributes import AttributeData
from core.dynamic_config import ROOT_ID, SubConfigTable, make_control_banlist
from core.exceptions import UnsupportedLayerTypeError, UsageError
from core.feature_class import ALL_INVISIBLE, PlaceholderFeatureClass, make_dynamic_fc
from core.layer_interface import LayerInterface
from core.shared import IdentifyResult, SymbologyStack
from utils.logger import get_logger

logger = get_logger(__name__)

SERVER_LAYER_TYPES = {
    'Feature Layer': states.ESRI_FEATURE,
    'Raster Layer': states.ESRI_RASTER
}


def server_layer_type_to_client(server_type: str) -> str:
    """
    Raises:
    -------
    UnsupportedLayerTypeError
        For any server type other than 'Feature Layer' or 'Raster Layer'
    """
    try:
        return SERVER_LAYER_TYPES[server_type]
    except KeyError:
        raise UnsupportedLayerTypeError(server_type) from None


class DynamicRecord(AttribRecord):
    """Record for a dynamic map service layer with a tree of sublayers."""

    layer_type = states.ESRI_DYNAMIC

    def __init__(self, layer_class, api, config: Dict, layer=None, epsg_lookup=None):
        self._proxies: Dict[str, LayerInterface] = {}
        self._child_tree = None
        self._infos: Dict[str, Dict] = {}
        super().__init__(layer_class, api, config, layer, epsg_lookup)

    def get_child_proxy(self, idx) -> LayerInterface:
        """
        Legend interface for a sublayer or group.

        A structured legend may ask before the layer has loaded; it gets a
        placeholder interface that the tree build later reuses.
        """
        key = str(idx)
        if key not in self._proxies:
            placeholder = PlaceholderFeatureClass(self, '')
            proxy = LayerInterface(placeholder)
            proxy.convert_to_placeholder(placeholder)
            self._proxies[key] = proxy
        return self._proxies[key]

    def get_child_tree(self) -> List[Dict]:
        if self._child_tree is None:
            raise UsageError('Called get_child_tree before layer is loaded')
        return self._child_tree

    def get_child_name(self, idx) -> str:
        return self._infos[str(idx)]['name']

    async def get_feature_count(self, child_idx=None) -> int:
        idx = self._default_fc if child_idx is None else str(child_idx)
        return await self._count_features(f"{self._layer.url}/{idx}")

    # tree build

    def _build_feature_classes(self) -> None:
        banlist = make_control_banlist(self._layer.supports_dynamic_layers)
        sub_configs = SubConfigTable(self.config, self.config['layerEntries'], banlist)
        self._infos = {str(info['id']): info for info in self._layer.layer_infos or []}

        self._child_tree = []
        for entry in self.config['layerEntries']:
            if not entry.get('stateOnly'):
                self._process_layer_info(self._infos[str(entry['index'])], self._child_tree, ROOT_ID, sub_configs)

        bundle = self._api.attribs.load_layer_attribs(self._layer)
        init_vis = []
        first_leaf = None

        for idx in bundle['indexes']:
            # only leaves reached by the walk have a derived config
            if not sub_configs.is_defaulted(idx):
                continue
            sub_config = sub_configs.get(idx)
            proxy = self._proxies.get(idx)
            symbology = proxy.symbology if proxy is not None else SymbologyStack(
                [self.make_placeholder_symbol(self._infos[idx]['name'])])

            fc = make_dynamic_fc(self, idx, bundle[idx], sub_config, symbology)
            fc.name = sub_config.get('name') or self._infos[idx]['name']
            self._feature_classes[idx] = fc
            if first_leaf is None:
                first_leaf = idx

            if sub_config['state']['visibility']:
                init_vis.append(int(idx))

            if proxy is not None:
                proxy.convert_to_dynamic_leaf(fc)

            self._spawn(fc.load_symbology(), f'symbology load {idx}')
            self._spawn(self._resolve_layer_type(fc), f'layer type {idx}')
            self._spawn(self._load_child_feature_count(fc), f'feature count {idx}')

        if first_leaf is not None:
            self._default_fc = first_leaf

        # groups never offer opacity, whatever they inherited
        for proxy in self._proxies.values():
            if not proxy.is_placeholder and proxy.layer_type == states.ESRI_GROUP:
                if 'opacity' in proxy.available_controls:
                    proxy.available_controls.remove('opacity')

        visible_layers = self._layer.visible_layers
        visible_layers[:] = init_vis or [ALL_INVISIBLE]
        self._layer.set_visible_layers(visible_layers)

        logger.info(f"    ✓ Built {len(self._feature_classes)} sublayers for {self.layer_id}, "
                    f"visible: {list(visible_layers)}")

    def _process_layer_info(self, info: Dict, tree: List[Dict], parent_id: str,
                            sub_configs: SubConfigTable) -> List[LayerInterface]:
        """Create interfaces for a node and its descendants, returning its leaves."""
        sid = str(info['id'])
        sub_config = sub_configs.fetch(sid, parent_id)

        if info.get('subLayerIds'):
            group = self._proxies.get(sid)
            if group is None:
                group = LayerInterface(self, list(sub_config['controls']))
                self._proxies[sid] = group
            else:
                group.available_controls[:] = sub_config['controls']
            group.convert_to_dynamic_group(self, sid, sub_config.get('name') or info.get('name') or '')

            tree_group = {'id': info['id'], 'children': []}
            tree.append(tree_group)
            for child_id in info['subLayerIds']:
                group.child_leafs.extend(
                    self._process_layer_info(self._infos[str(child_id)], tree_group['children'], sid, sub_configs))
            return list(group.child_leafs)

        leaf = self._proxies.get(sid)
        if leaf is not None and isinstance(leaf.source, PlaceholderFeatureClass):
            # bound before load: keep the placeholder and its symbology
            leaf.source.rename(info['name'])
            leaf.available_controls[:] = sub_config['controls']
        else:
            placeholder = PlaceholderFeatureClass(self, info['name'])
            if leaf is None:
                leaf = LayerInterface(None, list(sub_config['controls']))
                self._proxies[sid] = leaf
            leaf.convert_to_placeholder(placeholder)

        tree.append({'id': info['id']})
        return [leaf]

    async def _resolve_layer_type(self, fc) -> None:
        l_data = await fc.get_layer_data()
        fc.layer_type = server_layer_type_to_client(l_data['layerType'])
        if fc.layer_type == states.ESRI_FEATURE:
            fc.geom_type = l_data['geometryType']

    async def _load_child_feature_count(self, fc) -> None:
        fc.feature_count = await self.get_feature_count(fc.idx)

    # identify

    def identify(self, opts: Dict) -> Tuple[List[IdentifyResult], asyncio.Task]:
        """
        Identify features across requested sublayers.

        Parameters:
        -----------
        opts : Dict
            'layer_ids' (integer leaf indexes to interrogate) plus whatever the
            layer collaborator's server identify needs (map, click event, geometry)

        Returns:
        --------
        Tuple[List[IdentifyResult], asyncio.Task]
            One loading result per requested leaf, and the task that
            completes them. The task fails if the server identify fails, after
            marking every result complete.
        """
        results: Dict[int, IdentifyResult] = {}
        for leaf_index in opts['layer_ids']:
            fc = self._feature_classes.get(str(leaf_index))
            results[leaf_index] = IdentifyResult(
                self.get_child_name(leaf_index),
                fc.symbology if fc is not None else None,
                'EsriFeature',
                self,
                leaf_index,
                self.name
            )

        opts['tolerance'] = self.click_tolerance
        task = asyncio.ensure_future(self._run_identify(results, opts))
        return list(results.values()), task

    async def _run_identify(self, results: Dict[int, IdentifyResult], opts: Dict) -> None:
        try:
            hits = await self._api.layer.server_layer_identify(self._layer, opts)
        except Exception:
            for result in results.values():
                result.complete()
            raise

        hits_by_leaf = defaultdict(list)
        for hit in hits:
            if hit['layerId'] in results:
                hits_by_leaf[hit['layerId']].append(hit)

        for leaf_index, result in results.items():
            if leaf_index not in hits_by_leaf:
                result.complete()

        leaf_indexes = list(hits_by_leaf)
        outcomes = await asyncio.gather(
            *(self._identify_leaf(results[i], hits_by_leaf[i]) for i in leaf_indexes),
            return_exceptions=True
        )
        for leaf_index, outcome in zip(leaf_indexes, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"    ⚠ Identify failed for {self.layer_id} sublayer {leaf_index}: {outcome}")

    async def _identify_leaf(self, result: IdentifyResult, hits: List[Dict]) -> None:
        try:
            l_data = await self.get_layer_data(result.requester['feature_idx'])
            if not l_data.get('supportsFeatures'):
                return

            for hit in hits:
                # identify returns aliased field names
                attribs = hit['feature']['attributes']
                un_aliased = AttributeData.un_alias_attribs(attribs, l_data['fields'])
                result.data.append({
                    'name': hit['value'],
                    'data': self.attributes_to_details(attribs),
                    'oid': un_aliased.get(l_data['oidField']),
                    'symbology': [
                        {'svgcode': self._api.symbology.get_graphic_icon(un_aliased, l_data.get('renderer'))}
                    ]
                })
        finally:
            result.complete()
