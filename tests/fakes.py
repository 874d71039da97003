"""Test doubles for the layer record tests: engine layer, map and collaborators."""

import asyncio


from config.config_loader import normalize_layer_config
from core import events
from core.collaborators import MapApi
from utils.geometry_converters import Extent

WEB_MERCATOR = {'wkid': 102100, 'latestWkid': 3857}

SETTINGS = {
    'request_timeout': 30,
    'pagination_enabled': True,
    'pagination_max_iterations': 10,
    'pagination_total_timeout': 300.0,
    'click_tolerance': 5,
    'placeholder_colour': '#16bf27'
}


class FakeLayer:
    """Physical layer double. Engine commands are recorded for inspection."""

    def __init__(self, url='', options=None, **attrs):
        options = options or {}
        self.url = url
        self.options = options
        self.id = options.get('id', attrs.pop('id', 'fake'))
        self.name = ''
        self.visible = options.get('visible', True)
        self.opacity = options.get('opacity', 1)
        self.min_scale = 0
        self.max_scale = 0
        self.full_extent = Extent(0, 0, 100, 100, WEB_MERCATOR)
        self.spatial_reference = WEB_MERCATOR
        self.layer_infos = []
        self.visible_layers = []
        self.supports_dynamic_layers = True
        self.graphics = []
        self.geometry_type = 'esriGeometryPoint'
        self.display_field = ''
        self.loaded = False
        self.visible_at_map_scale = True
        self.query_result = {'features': []}
        self.queries = []
        self.handlers = {}
        self.visible_layer_commands = []
        self.drawing_options = []
        for key, value in attrs.items():
            setattr(self, key, value)

    def on(self, event_name, handler):
        self.handlers[event_name] = handler

    def fire(self, event_name, payload=None):
        self.handlers[event_name](payload)

    def set_visibility(self, value):
        self.visible = value

    def set_opacity(self, value):
        self.opacity = value

    def set_visible_layers(self, ids):
        self.visible_layer_commands.append(list(ids))
        if ids is not self.visible_layers:
            self.visible_layers[:] = ids

    def set_layer_drawing_options(self, options):
        self.drawing_options.append(options)

    async def query_features(self, query):
        self.queries.append(query)
        return self.query_result


class FakeMap:
    def __init__(self, extent=None, width=1000, scale_extents=None):
        self.extent = extent or Extent(0, 0, 1000, 1000, WEB_MERCATOR)
        self.scale_extents = scale_extents or {}
        self.spatial_reference = WEB_MERCATOR
        self.width = width
        self.calls = []
        self.removed = []

    async def set_scale(self, scale):
        self.calls.append(('set_scale', scale))
        if scale in self.scale_extents:
            self.extent = self.scale_extents[scale]

    async def center_at(self, point):
        self.calls.append(('center_at', point))

    async def set_extent(self, extent):
        self.calls.append(('set_extent', extent))

    def add_layer(self, layer):
        self.calls.append(('add_layer', layer))

    def remove_layer(self, layer):
        self.removed.append(layer)


class FakeSymbology:
    def __init__(self):
        self.legend_requests = []

    async def map_server_to_local_legend(self, url, idx):
        self.legend_requests.append((url, idx))
        return {'layers': [{'legend': [{'label': f'legend {idx}', 'contentType': 'image/png', 'imageData': 'AAA'}]}]}

    def renderer_to_legend(self, renderer, legend=None):
        return [{'name': renderer.get('label', 'rendered'), 'image': '<svg/>'}]

    def get_graphic_icon(self, attributes, renderer):
        return '<svg>icon</svg>'

    def generate_placeholder_symbology(self, name, colour):
        return {'name': name, 'image': f'placeholder:{colour}'}


class FakeOgc:
    def __init__(self):
        self.feature_info = ''
        self.info_requests = []

    async def get_feature_info(self, layer, click_event, ids, mime):
        self.info_requests.append((ids, mime))
        return self.feature_info

    async def get_legend_urls(self, layer, ids):
        return [f'http://wms/legend?layer={i}' for i in ids]


class FakeLayerOps:
    def __init__(self):
        self.identify_hits = []
        self.identify_error = None
        self.identify_opts = []
        self.ogc = FakeOgc()

    async def server_layer_identify(self, layer, opts):
        self.identify_opts.append(dict(opts))
        if self.identify_error is not None:
            raise self.identify_error
        return self.identify_hits

    def make_bounding_box(self, bbox_id, extent, spatial_reference):
        return FakeBbox(bbox_id, extent, spatial_reference)


class FakeBbox:
    def __init__(self, bbox_id, extent, spatial_reference):
        self.id = bbox_id
        self.extent = extent
        self.spatial_reference = spatial_reference
        self.visible = False


class FakeProj:
    def __init__(self, pending=None, error=None):
        self.pending = pending
        self.error = error

    def check_proj(self, spatial_reference, epsg_lookup=None):
        if self.error is not None:
            raise self.error
        return self.pending

    def local_project_extent(self, extent, target_sr):
        return Extent(extent.xmin, extent.ymin, extent.xmax, extent.ymax, target_sr)

    def is_spatial_reference_match(self, a, b):
        return a == b

    def project_point(self, point, from_sr, to_sr):
        return dict(point, spatialReference=to_sr)


class FakePackage:
    """Layer package whose fetches are memoised tasks, counted per call."""

    def __init__(self, layer_data, features=None, oid_field='OBJECTID', fail_attribs=0):
        self.layer_data = layer_data
        self.features = features or []
        self.oid_field = oid_field
        self.fail_attribs = fail_attribs
        self.attrib_loads = 0
        self._attribs = None
        self._layer_data = None

    def get_layer_data(self):
        if self._layer_data is None:
            self._layer_data = asyncio.ensure_future(self._load_layer_data())
        return self._layer_data

    def get_attribs(self):
        if self._attribs is None:
            self._attribs = asyncio.ensure_future(self._load_attribs())
        return self._attribs

    def clean_up(self):
        self._attribs = None
        self._layer_data = None

    async def _load_layer_data(self):
        return self.layer_data

    async def _load_attribs(self):
        self.attrib_loads += 1
        await asyncio.sleep(0)
        if self.attrib_loads <= self.fail_attribs:
            self._attribs = None
            raise RuntimeError('attribute service unavailable')
        return {
            'features': self.features,
            'oidIndex': {f['attributes'][self.oid_field]: i for i, f in enumerate(self.features)}
        }


class FakeAttribLoader:
    def __init__(self, packages=None):
        self.packages = packages or {}

    def load_layer_attribs(self, layer):
        bundle = {'indexes': list(self.packages)}
        bundle.update(self.packages)
        return bundle


class FakeRequest:
    """Scripted REST request: each call pops the next response (exceptions are raised)."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    async def __call__(self, url, params):
        self.calls.append((url, params))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_layer_data(**overrides):
    data = {
        'fields': [
            {'name': 'OBJECTID', 'alias': 'Object ID', 'type': 'esriFieldTypeOID'},
            {'name': 'NAME', 'alias': 'Site Name', 'type': 'esriFieldTypeString'},
            {'name': 'OPENED', 'alias': '', 'type': 'esriFieldTypeDate'}
        ],
        'oidField': 'OBJECTID',
        'renderer': {'type': 'simple', 'label': 'Sites'},
        'geometryType': 'esriGeometryPoint',
        'layerType': 'Feature Layer',
        'minScale': 0,
        'maxScale': 0,
        'supportsFeatures': True
    }
    data.update(overrides)
    return data


def make_features():
    return [
        {'attributes': {'OBJECTID': 1, 'NAME': 'Alpha', 'OPENED': 0}},
        {'attributes': {'OBJECTID': 2, 'NAME': 'Bravo', 'OPENED': 0}}
    ]


def make_api(attribs=None, proj=None, request=None, layer_ops=None):
    return MapApi(
        events=events,
        attribs=attribs or FakeAttribLoader(),
        symbology=FakeSymbology(),
        proj=proj or FakeProj(),
        layer=layer_ops or FakeLayerOps(),
        request=request or FakeRequest(),
        settings=dict(SETTINGS)
    )


def make_config(**raw):
    raw.setdefault('id', 'test-layer')
    raw.setdefault('layerType', 'esriFeature')
    raw.setdefault('url', 'http://server/rest/services/Test/MapServer/0')
    return normalize_layer_config(raw)


async def settle():
    """Let background tasks run to completion."""
    for _ in range(50):
        await asyncio.sleep(0)
