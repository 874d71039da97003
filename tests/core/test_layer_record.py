"""Unit tests for the base layer record: load state machine, zoom and bounding boxes."""

import asyncio

import pytest

from core import make_record, states
from core.basic_records import ImageRecord, TileRecord
from core.exceptions import ProjectionError, UnsupportedLayerTypeError, UsageError
from core.feature_record import FeatureRecord
from tests.fakes import (
    FakeAttribLoader, FakeLayer, FakeMap, FakePackage, FakeProj, FakeRequest,
    make_api, make_config, make_features, make_layer_data, settle
)
from utils.geometry_converters import Extent
from utils.projection import Projection

LODS = [
    {'level': 0, 'scale': 1_000_000},
    {'level': 1, 'scale': 500_000},
    {'level': 2, 'scale': 100_000},
    {'level': 3, 'scale': 10_000},
]


def make_tile(api=None, epsg_lookup=None, **config):
    config.setdefault('layerType', 'esriTile')
    config.setdefault('url', 'http://server/rest/services/Basemap/MapServer')
    return TileRecord(FakeLayer, api or make_api(), make_config(**config), epsg_lookup=epsg_lookup)


async def no_definition(code):
    return None


@pytest.mark.unit
class TestLoadLifecycle:
    """NEW to LOADING to LOADED, with ERROR terminal."""

    def test_feature_layer_loads_once(self):
        async def run():
            package = FakePackage(make_layer_data(), make_features())
            api = make_api(attribs=FakeAttribLoader({'0': package}), request=FakeRequest([{'count': 2}]))
            record = FeatureRecord(FakeLayer, api, make_config(state={'opacity': 1, 'visibility': True}))
            assert record.state == states.LOADING
            seen = []
            record.add_state_listener(seen.append)
            record.layer.fire('load')
            record.layer.fire('load')
            await settle()
            return record, seen

        record, seen = asyncio.run(run())
        assert seen == [states.LOADED]
        assert record.default_fc == '0'
        assert '0' in record.feature_classes
        assert record.feature_count == 2

    def test_layer_built_from_config(self):
        record = make_tile(id='basemap', state={'opacity': 0.4, 'visibility': False})
        assert record.layer.url == 'http://server/rest/services/Basemap/MapServer'
        assert record.layer.options == {'id': 'basemap', 'opacity': 0.4, 'visible': False}
        assert set(record.layer.handlers) == {
            'load', 'error', 'update-start', 'update-end', 'mouse-over', 'mouse-out'
        }

    def test_update_cycle(self):
        async def run():
            record = make_tile()
            record.layer.fire('load')
            seen = []
            record.add_state_listener(seen.append)
            record.layer.fire('update-start')
            record.layer.fire('update-end')
            await settle()
            return seen

        assert asyncio.run(run()) == [states.REFRESH, states.LOADED]

    def test_error_is_terminal(self):
        async def run():
            record = make_tile()
            record.layer.fire('error', 'tile service 500')
            record.layer.fire('load')
            record.layer.fire('update-start')
            record.layer.fire('update-end')
            return record

        record = asyncio.run(run())
        assert record.state == states.ERROR
        assert record.feature_classes == {}

    def test_update_before_load_ignored(self):
        record = make_tile()
        record.layer.fire('update-end')
        assert record.state == states.LOADING

    def test_projection_failure_sets_error(self):
        async def run():
            api = make_api(proj=FakeProj(error=ProjectionError('unknown wkid')))
            record = make_tile(api=api, epsg_lookup=no_definition)
            record.layer.fire('load')
            return record.state

        assert asyncio.run(run()) == states.ERROR

    def test_pending_projection_check(self):
        async def run():
            lookup_done = asyncio.Event()

            async def lookup():
                await lookup_done.wait()

            record = make_tile(api=make_api(proj=FakeProj(pending=lookup())), epsg_lookup=no_definition)
            record.layer.fire('load')
            await settle()
            before = record.state
            lookup_done.set()
            await settle()
            return before, record.state

        assert asyncio.run(run()) == (states.LOADING, states.LOADED)

    def test_failed_projection_lookup_sets_error(self):
        async def run():
            async def lookup():
                raise ProjectionError('no definition')

            record = make_tile(api=make_api(proj=FakeProj(pending=lookup())), epsg_lookup=no_definition)
            record.layer.fire('load')
            await settle()
            return record.state

        assert asyncio.run(run()) == states.ERROR


@pytest.mark.unit
class TestProjectionCheck:
    """The projection check only runs when an EPSG lookup is supplied."""

    @pytest.mark.parametrize('spatial_reference', [{'wkid': 102008}, None])
    def test_loads_without_lookup(self, spatial_reference):
        async def run():
            record = make_tile(api=make_api(proj=Projection()))
            record.layer.spatial_reference = spatial_reference
            record.layer.fire('load')
            return record.state

        assert asyncio.run(run()) == states.LOADED

    def test_esri_wkid_known_to_projection(self):
        async def run():
            record = make_tile(api=make_api(proj=Projection()), epsg_lookup=no_definition)
            record.layer.spatial_reference = {'wkid': 102003}
            record.layer.fire('load')
            return record.state

        assert asyncio.run(run()) == states.LOADED

    def test_missing_reference_with_lookup_sets_error(self):
        async def run():
            record = make_tile(api=make_api(proj=Projection()), epsg_lookup=no_definition)
            record.layer.spatial_reference = None
            record.layer.fire('load')
            return record.state

        assert asyncio.run(run()) == states.ERROR


@pytest.mark.unit
class TestPrebuiltLayer:
    def test_loaded_layer_loads_immediately(self):
        async def run():
            layer = FakeLayer(url='http://server/rest/services/Imagery/ImageServer', loaded=True, name='Imagery')
            record = ImageRecord(FakeLayer, make_api(), make_config(layerType='esriImage', name=''), layer)
            await settle()
            return record

        record = asyncio.run(run())
        assert record.state == states.LOADED
        assert record.name == 'Imagery'
        assert record.symbology.stack[0]['name'] == 'legend 0'

    def test_unloaded_layer_starts_new(self):
        layer = FakeLayer(url='http://server/MapServer')
        record = TileRecord(FakeLayer, make_api(), make_config(layerType='esriTile'), layer)
        assert record.state == states.NEW
        assert record.get_proxy().state == states.LOADING

    def test_cannot_construct(self):
        layer = FakeLayer(url='http://server/MapServer')
        record = TileRecord(FakeLayer, make_api(), make_config(layerType='esriTile'), layer)
        with pytest.raises(UsageError, match='Cannot construct pre-made layers'):
            record.construct_layer()


@pytest.mark.unit
class TestPassthroughs:
    def test_visibility_and_opacity(self):
        record = make_tile()
        record.visibility = False
        record.opacity = 0.3
        assert record.layer.visible is False
        assert record.layer.opacity == 0.3
        assert record.visibility is False

    def test_placeholder_symbology_before_load(self):
        record = make_tile(name='Basemap')
        assert record.symbology.stack == [{'name': 'Basemap', 'image': 'placeholder:#16bf27'}]

    def test_unknown_listener_removal(self):
        with pytest.raises(UsageError):
            make_tile().remove_state_listener(lambda s: None)

    def test_unknown_child(self):
        with pytest.raises(UsageError):
            make_tile().get_symbology('7')


@pytest.mark.unit
class TestZoom:
    """Level-of-detail search and map commands."""

    def test_zoom_in_finds_first_scale_under_min(self):
        lod = TileRecord.find_zoom_scale(LODS, {'minScale': 200_000, 'maxScale': 0}, zoom_in=True)
        assert lod['level'] == 2

    def test_zoom_out_searches_backwards(self):
        lod = TileRecord.find_zoom_scale(LODS, {'minScale': 0, 'maxScale': 200_000}, zoom_in=False)
        assert lod['level'] == 1

    def test_zoom_graphic_searches_outwards(self):
        lod = TileRecord.find_zoom_scale(LODS, {'minScale': 0, 'maxScale': 50_000}, zoom_in=True, zoom_graphic=True)
        assert lod['level'] == 2

    def test_no_match(self):
        assert TileRecord.find_zoom_scale(LODS, {'minScale': 1000, 'maxScale': 0}) is None

    def test_zoom_in_recentres_when_layer_out_of_view(self):
        async def run():
            record = make_tile()
            sr = record.layer.spatial_reference
            record.layer.full_extent = Extent(90, 90, 100, 100, sr)
            record.layer.min_scale = 200_000
            record.layer.fire('load')
            fake_map = FakeMap(Extent(0, 0, 100, 100, sr), scale_extents={100_000: Extent(45, 45, 55, 55, sr)})
            await record.zoom_to_scale(fake_map, LODS, zoom_in=True)
            return fake_map.calls

        calls = asyncio.run(run())
        assert calls[0] == ('set_scale', 100_000)
        assert calls[1][0] == 'center_at'
        assert (calls[1][1]['x'], calls[1][1]['y']) == (95, 95)

    def test_zoom_in_keeps_centre_when_visible(self):
        async def run():
            record = make_tile()
            sr = record.layer.spatial_reference
            record.layer.min_scale = 200_000
            record.layer.fire('load')
            fake_map = FakeMap(Extent(0, 0, 100, 100, sr), scale_extents={100_000: Extent(45, 45, 55, 55, sr)})
            await record.zoom_to_scale(fake_map, LODS, zoom_in=True)
            return fake_map.calls

        assert asyncio.run(run()) == [('set_scale', 100_000)]

    def test_no_level_leaves_map_alone(self):
        async def run():
            record = make_tile()
            record.layer.min_scale = 1000
            record.layer.fire('load')
            fake_map = FakeMap()
            await record.zoom_to_scale(fake_map, LODS, zoom_in=True)
            return fake_map.calls

        assert asyncio.run(run()) == []

    def test_off_scale(self):
        async def run():
            record = make_tile()
            record.layer.max_scale = 5000
            record.layer.fire('load')
            return await record.is_off_scale(1000)

        result = asyncio.run(run())
        assert result.off_scale and not result.zoom_in

    def test_zoom_to_boundary_uses_graphics_for_empty_extent(self):
        async def run():
            record = make_tile()
            record.layer.full_extent = Extent(0, 0, 0, 0, record.layer.spatial_reference)
            record.layer.graphics = [
                {'geometry': {'x': 10, 'y': 20}},
                {'geometry': {'x': 30, 'y': 40}}
            ]
            fake_map = FakeMap()
            await record.zoom_to_boundary(fake_map)
            return fake_map.calls

        (call, extent), = asyncio.run(run())
        assert call == 'set_extent'
        assert (extent.xmin, extent.ymin, extent.xmax, extent.ymax) == (10, 20, 30, 40)

    def test_click_buffer(self):
        buffer = make_tile().make_click_buffer({'x': 50, 'y': 50}, FakeMap(), tolerance=5)
        assert (buffer.xmin, buffer.ymin, buffer.xmax, buffer.ymax) == (45, 45, 55, 55)


@pytest.mark.unit
class TestBoundingBox:
    def test_created_once(self):
        record = make_tile()
        bbox = record.create_bbox(record.layer.spatial_reference)
        assert record.create_bbox(record.layer.spatial_reference) is bbox
        assert bbox.id == f'bbox_{record.layer.id}'
        assert not record.is_bbox_visible()
        bbox.visible = True
        assert record.is_bbox_visible()

    def test_destroy(self):
        record = make_tile()
        bbox = record.create_bbox(None)
        fake_map = FakeMap()
        record.destroy_bbox(fake_map)
        assert fake_map.removed == [bbox]
        assert record.bbox is None
        with pytest.raises(UsageError):
            record.destroy_bbox(fake_map)

    def test_proxy_controls_bbox(self):
        record = make_tile()
        record.create_bbox(None)
        proxy = record.get_proxy()
        proxy.set_bounding_box(True)
        assert proxy.bounding_box is True
        assert record.get_proxy() is proxy


@pytest.mark.unit
class TestMakeRecord:
    def test_picks_class(self):
        record = make_record('esriTile', FakeLayer, make_api(), make_config(layerType='esriTile'))
        assert isinstance(record, TileRecord)
        assert record.layer_type == states.ESRI_TILE

    def test_unknown_type(self):
        with pytest.raises(UnsupportedLayerTypeError):
            make_record('esriVectorTile', FakeLayer, make_api(), make_config())
