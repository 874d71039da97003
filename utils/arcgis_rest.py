"""
ArcGIS REST collaborators for the layer record core.

This module talks to ArcGIS MapServer and FeatureServer endpoints with
requests. Blocking calls run in a worker thread so records can await them on
the event loop. Uses POST requests for queries to avoid URI length limitations.

Supports pagination for retrieving attribute rows beyond server limits
(1000-2000 typical).

Classes:
    ArcGisLayerPackage: Memoised attribute and metadata fetches for one sublayer
    GraphicsLayerPackage: Same contract over local (file based) graphics
    ArcGisAttributeLoader: Builds the attribute bundle for a physical layer

Functions:
    esri_request: POST a REST request and return the decoded JSON
    fetch_layer_metadata: Get layer metadata including pagination support
    paginated_query: Execute paginated query to fetch all features
    fetch_map_server_legend: Fetch the legend of one map-server sublayer
"""

import asyncio
import time
from typing import Dict, List, Optional

import requests

from core.exceptions import ServiceRequestError
from core.shared import SharedFetch
from utils.logger import get_logger

logger = get_logger(__name__)

COMMON_OID_NAMES = ['OBJECTID', 'FID', 'OID', 'objectid', 'fid', 'oid']


def _check_esri_error(data: Dict, context: str) -> None:
    if isinstance(data, dict) and 'error' in data:
        error_msg = data['error'].get('message', 'Unknown error')
        raise ServiceRequestError(f"{context} error: {error_msg}")


def _post_json(url: str, params: Dict, timeout: int) -> Dict:
    try:
        response = requests.post(url, data=params, timeout=timeout)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.Timeout as e:
        logger.warning(f"    ⚠ Request timed out: {url}")
        raise ServiceRequestError(f"Request timed out: {url}") from e
    except requests.exceptions.RequestException as e:
        logger.warning(f"    ⚠ Request failed: {url} ({e})")
        raise ServiceRequestError(f"Request failed: {e}") from e
    except ValueError as e:
        raise ServiceRequestError(f"Invalid JSON from {url}") from e


def _get_json(url: str, timeout: int) -> Dict:
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.Timeout as e:
        logger.warning(f"    ⚠ Request timed out: {url}")
        raise ServiceRequestError(f"Request timed out: {url}") from e
    except requests.exceptions.RequestException as e:
        logger.warning(f"    ⚠ Request failed: {url} ({e})")
        raise ServiceRequestError(f"Request failed: {e}") from e
    except ValueError as e:
        raise ServiceRequestError(f"Invalid JSON from {url}") from e


async def esri_request(url: str, params: Dict, timeout: int = 30) -> Dict:
    """
    POST a request to an ArcGIS REST endpoint.

    The decoded body is returned as-is, including an ESRI 'error' payload;
    callers decide whether such a body is a failure.

    Parameters:
    -----------
    url : str
        Full endpoint URL
    params : Dict
        Form parameters; 'f' defaults to 'json'
    timeout : int
        Request timeout in seconds (default: 30)

    Returns:
    --------
    Dict
        Decoded JSON response

    Raises:
    -------
    ServiceRequestError
        On timeout, HTTP error, connection error or undecodable body
    """
    form = {'f': 'json', **params}
    logger.debug(f"Requesting: {url} {form}")
    return await asyncio.to_thread(_post_json, url, form, timeout)


async def fetch_layer_metadata(layer_url: str, timeout: int = 30) -> Dict:
    """
    Fetch sublayer metadata in the shape records expect.

    Parameters:
    -----------
    layer_url : str
        URL of the sublayer (service URL plus layer index)
    timeout : int
        Request timeout in seconds (default: 30)

    Returns:
    --------
    Dict
        Metadata dict with keys:
        - fields, oidField, renderer, geometryType, layerType
        - minScale, maxScale, supportsFeatures
        - supports_pagination, max_record_count

    Raises:
    -------
    ServiceRequestError
        If the request fails or the service returns an error payload
    """
    data = await asyncio.to_thread(_get_json, f"{layer_url}?f=json", timeout)
    _check_esri_error(data, 'Layer metadata')

    fields = data.get('fields') or []

    # Find ObjectID field (look for esriFieldTypeOID type)
    oid_field = None
    for field in fields:
        if field.get('type') == 'esriFieldTypeOID':
            oid_field = field.get('name')
            break

    # Fallback: try common ObjectID field names
    if not oid_field:
        field_names = [f.get('name', '') for f in fields]
        for common_name in COMMON_OID_NAMES:
            if common_name in field_names:
                oid_field = common_name
                break

    advanced_caps = data.get('advancedQueryCapabilities', {})
    layer_type = data.get('type')

    return {
        'fields': fields,
        'oidField': oid_field,
        'renderer': (data.get('drawingInfo') or {}).get('renderer'),
        'geometryType': data.get('geometryType'),
        'layerType': layer_type,
        'minScale': data.get('minScale', 0),
        'maxScale': data.get('maxScale', 0),
        'supportsFeatures': layer_type == 'Feature Layer',
        'supports_pagination': advanced_caps.get('supportsPagination', False),
        'max_record_count': data.get('maxRecordCount', 1000)
    }


async def paginated_query(
    query_url: str,
    base_params: Dict,
    oid_field: str,
    max_record_count: int,
    layer_name: str,
    max_iterations: int = 10,
    total_timeout: float = 300.0,
    request_timeout: int = 60
) -> List[Dict]:
    """
    Execute paginated query to fetch all features beyond server limit.

    Uses resultOffset and resultRecordCount parameters to paginate through
    all available features. Requires orderByFields for consistent ordering.
    Stops early (with a warning) on the iteration cap or the total timeout.

    Parameters:
    -----------
    query_url : str
        Full query URL endpoint
    base_params : Dict
        Base query parameters (where clause, out fields, etc.)
    oid_field : str
        Name of ObjectID field for ordering
    max_record_count : int
        Maximum records per request (from layer metadata)
    layer_name : str
        Name of the layer for logging
    max_iterations : int
        Safety limit on number of pagination iterations (default: 10)
    total_timeout : float
        Maximum total time for all pagination requests (default: 300 seconds)
    request_timeout : int
        Timeout per individual request (default: 60 seconds)

    Returns:
    --------
    List[Dict]
        All ESRI JSON features fetched

    Raises:
    -------
    ServiceRequestError
        If any page fails; partial results are discarded
    """
    all_features = []
    start_time = time.monotonic()
    offset = 0
    iteration = 0
    exceeded_limit = False

    while iteration < max_iterations:
        elapsed = time.monotonic() - start_time
        if elapsed >= total_timeout:
            logger.warning(
                f"    ⚠ Pagination timeout for {layer_name} after {iteration} pages "
                f"({elapsed:.1f}s >= {total_timeout}s limit)"
            )
            break

        paginated_params = base_params.copy()
        paginated_params['resultOffset'] = offset
        paginated_params['resultRecordCount'] = max_record_count
        paginated_params['orderByFields'] = oid_field

        result = await esri_request(query_url, paginated_params, timeout=request_timeout)
        _check_esri_error(result, f"Page {iteration + 1} of {layer_name}")

        page_features = result.get('features', [])
        all_features.extend(page_features)
        iteration += 1

        exceeded_limit = result.get('exceededTransferLimit', False)
        if exceeded_limit:
            logger.debug(f"    - Page {iteration}: {len(page_features)} features (more available)")
            offset += max_record_count
        else:
            logger.debug(f"    - Page {iteration}: {len(page_features)} features (complete)")
            break

    if iteration >= max_iterations and exceeded_limit:
        logger.warning(
            f"    ⚠ Maximum pagination limit ({max_iterations} pages) reached for {layer_name}. "
            f"Additional features may exist."
        )

    return all_features


async def fetch_map_server_legend(url: str, idx: str, timeout: int = 30) -> Dict:
    """
    Fetch the legend of one sublayer of a map service.

    Returns:
    --------
    Dict
        {'layers': [legend layer]}; the legend layer has an empty 'legend'
        list when the service does not report the index
    """
    data = await asyncio.to_thread(_get_json, f"{url}/legend?f=json", timeout)
    _check_esri_error(data, 'Legend')

    target = int(idx)
    for layer in data.get('layers', []):
        if layer.get('layerId') == target:
            return {'layers': [layer]}

    logger.debug(f"Legend for {url} has no entry for index {idx}")
    return {'layers': [{'layerId': target, 'legend': []}]}


def build_oid_index(features: List[Dict], oid_field: Optional[str]) -> Dict:
    """Map each feature's object id to its position in the feature list."""
    if not oid_field:
        return {}
    return {
        feat['attributes'].get(oid_field): pos
        for pos, feat in enumerate(features)
        if oid_field in feat.get('attributes', {})
    }


class ArcGisLayerPackage:
    """
    Attribute and metadata access for one server sublayer.

    Both fetches are memoised until clean_up() is called. A failed fetch is
    not kept, so the next call requests again.
    """

    def __init__(self, layer_url: str, settings: Dict):
        self.layer_url = layer_url
        self._settings = settings
        self._layer_data = SharedFetch(
            self._load_layer_data, label=f'layer data {layer_url}', invalidate_on_error=True
        )
        self._attribs = SharedFetch(
            self._load_attribs, label=f'attributes {layer_url}', invalidate_on_error=True
        )

    def get_layer_data(self) -> asyncio.Task:
        return self._layer_data.get()

    def get_attribs(self) -> asyncio.Task:
        return self._attribs.get()

    def clean_up(self) -> None:
        self._attribs.clear()
        self._layer_data.clear()

    async def _load_layer_data(self) -> Dict:
        return await fetch_layer_metadata(self.layer_url, timeout=self._settings['request_timeout'])

    async def _load_attribs(self) -> Dict:
        layer_data = await self.get_layer_data()
        query_url = f"{self.layer_url}/query"
        params = {
            'where': '1=1',
            'outFields': '*',
            'returnGeometry': 'false'
        }

        if layer_data['supports_pagination'] and self._settings['pagination_enabled']:
            features = await paginated_query(
                query_url,
                params,
                layer_data['oidField'],
                layer_data['max_record_count'],
                self.layer_url,
                max_iterations=self._settings['pagination_max_iterations'],
                total_timeout=self._settings['pagination_total_timeout'],
                request_timeout=self._settings['request_timeout']
            )
        else:
            result = await esri_request(query_url, params, timeout=self._settings['request_timeout'])
            _check_esri_error(result, 'Attribute query')
            features = result.get('features', [])
            if result.get('exceededTransferLimit'):
                logger.warning(f"    ⚠ Attribute query for {self.layer_url} exceeded transfer limit")

        logger.info(f"    ✓ Loaded {len(features)} attribute rows from {self.layer_url}")
        return {
            'features': features,
            'oidIndex': build_oid_index(features, layer_data['oidField'])
        }


class GraphicsLayerPackage:
    """Attribute and metadata access for a file based layer's local graphics."""

    def __init__(self, layer):
        self._layer = layer
        self._layer_data = SharedFetch(
            self._load_layer_data, label=f'layer data {layer.id}', invalidate_on_error=True
        )
        self._attribs = SharedFetch(
            self._load_attribs, label=f'attributes {layer.id}', invalidate_on_error=True
        )

    def get_layer_data(self) -> asyncio.Task:
        return self._layer_data.get()

    def get_attribs(self) -> asyncio.Task:
        return self._attribs.get()

    def clean_up(self) -> None:
        self._attribs.clear()
        self._layer_data.clear()

    async def _load_layer_data(self) -> Dict:
        layer = self._layer
        fields = getattr(layer, 'fields', None) or []
        oid_field = getattr(layer, 'object_id_field', None)
        if not oid_field:
            oid_field = next((f['name'] for f in fields if f.get('type') == 'esriFieldTypeOID'), 'OBJECTID')
        return {
            'fields': fields,
            'oidField': oid_field,
            'renderer': getattr(layer, 'renderer', None),
            'geometryType': layer.geometry_type,
            'layerType': 'Feature Layer',
            'minScale': layer.min_scale,
            'maxScale': layer.max_scale,
            'supportsFeatures': True
        }

    async def _load_attribs(self) -> Dict:
        layer_data = await self.get_layer_data()
        features = [{'attributes': g.get('attributes', {})} for g in self._layer.graphics]
        return {
            'features': features,
            'oidIndex': build_oid_index(features, layer_data['oidField'])
        }


class ArcGisAttributeLoader:
    """
    Attribute collaborator over ArcGIS REST.

    A dynamic (map service) layer yields one package per leaf in its
    layer_infos; a feature layer yields one package keyed by the index at the
    end of its URL; a file layer (empty URL) reads its local graphics.
    """

    def __init__(self, settings: Dict):
        self._settings = settings

    def load_layer_attribs(self, layer) -> Dict:
        bundle = {'indexes': []}

        if not layer.url:
            bundle['indexes'].append('0')
            bundle['0'] = GraphicsLayerPackage(layer)
            return bundle

        layer_infos = getattr(layer, 'layer_infos', None)
        if layer_infos:
            for info in layer_infos:
                if info.get('subLayerIds'):
                    continue
                idx = str(info['id'])
                bundle['indexes'].append(idx)
                bundle[idx] = ArcGisLayerPackage(f"{layer.url}/{idx}", self._settings)
            return bundle

        # Feature layer URLs end with the layer index
        last = layer.url.rstrip('/').rpartition('/')[2]
        idx = last if last.isdigit() else '0'
        bundle['indexes'].append(idx)
        bundle[idx] = ArcGisLayerPackage(layer.url.rstrip('/'), self._settings)
        return bundle
