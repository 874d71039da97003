"""
Collaborator bundle handed to every record.

Records never talk to the network, the projection library or the mapping
engine's helper services directly; they go through a MapApi. build_map_api
fills in the REST and pyproj backed defaults for anything not supplied.

Classes:
    MapApi: The collaborator bundle
    RestSymbology: Symbology collaborator with map-server legends over REST

Functions:
    build_map_api: Assemble a MapApi with default collaborators
"""

import functools
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from config.config_loader import load_request_settings
from core import events as default_events
from utils.arcgis_rest import ArcGisAttributeLoader, esri_request, fetch_map_server_legend
from utils.logger import get_logger
from utils.projection import Projection

logger = get_logger(__name__)


@dataclass
class MapApi:
    """
    External collaborators used by records.

    Attributes:
        events: Provides wrap_events(layer, handlers)
        attribs: Provides load_layer_attribs(layer)
        symbology: Legend and icon helpers
        proj: Projection helper
        layer: Engine-side helpers (server identify, bounding boxes, OGC)
        request: Awaitable request(url, params) returning decoded JSON
        settings: Request settings (see config.config_loader.load_request_settings)
    """

    events: Any
    attribs: Any
    symbology: Any
    proj: Any
    layer: Any
    request: Callable
    settings: Dict


class RestSymbology:
    """
    Symbology collaborator.

    Map-server legends are fetched over REST; drawing of renderer symbols,
    graphic icons and placeholders is delegated to the embedding application.
    """

    def __init__(self, drawing, timeout: int = 30):
        self._drawing = drawing
        self._timeout = timeout

    async def map_server_to_local_legend(self, url: str, idx: str) -> Dict:
        return await fetch_map_server_legend(url, idx, timeout=self._timeout)

    def renderer_to_legend(self, renderer: Dict, legend: Optional[Dict] = None) -> List[Dict]:
        return self._drawing.renderer_to_legend(renderer, legend)

    def get_graphic_icon(self, attributes: Dict, renderer: Dict) -> str:
        return self._drawing.get_graphic_icon(attributes, renderer)

    def generate_placeholder_symbology(self, name: str, colour: str) -> Dict:
        return self._drawing.generate_placeholder_symbology(name, colour)


def build_map_api(drawing, layer, settings: Optional[Dict] = None, events=None, attribs=None,
                  proj=None, request=None) -> MapApi:
    """
    Assemble a MapApi.

    Parameters:
    -----------
    drawing : object
        renderer_to_legend, get_graphic_icon and generate_placeholder_symbology
    layer : object
        Engine-side helpers: server_layer_identify, make_bounding_box, ogc
    settings : Optional[Dict]
        Request settings; defaults from config.config_loader
    events, attribs, proj, request
        Overrides for the default collaborators

    Returns:
    --------
    MapApi
        Bundle with core.events, ArcGisAttributeLoader, Projection and
        esri_request as defaults
    """
    if settings is None:
        settings = load_request_settings({})

    timeout = settings['request_timeout']
    api = MapApi(
        events=events if events is not None else default_events,
        attribs=attribs if attribs is not None else ArcGisAttributeLoader(settings),
        symbology=RestSymbology(drawing, timeout),
        proj=proj if proj is not None else Projection(),
        layer=layer,
        request=request if request is not None else functools.partial(esri_request, timeout=timeout),
        settings=settings
    )
    logger.debug(f"Built map api with request timeout {timeout}s")
    return api
