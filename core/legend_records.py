"""
Legend composites that are not tied to one physical layer.

Groups and visibility sets aggregate explicitly registered child
interfaces. A legend entry additionally fronts a master interface that
supplies its name, symbology and layer details.

Classes:
    LegendGroupRecord: Named group of child interfaces
    LegendSetRecord: Group where at most the first child is switched on
    LegendEntryRecord: Group bound to a master layer interface
"""

from typing import List, Optional

from core import states
from core.events import VisibleChangeSource
from core.layer_interface import LayerInterface
from utils.logger import get_logger

logger = get_logger(__name__)


class LegendGroupRecord(VisibleChangeSource):
    """
    Legend group made of child interfaces.

    Visibility and queryability are true when any child's is, and setting
    them applies to every child.
    """

    layer_type = states.ESRI_GROUP
    state = states.DEFAULT

    def __init__(self, name: str, child_proxies: Optional[List[LayerInterface]] = None):
        super().__init__()
        self.name = name
        self._child_proxies = child_proxies if child_proxies is not None else []
        self._root_proxy: Optional[LayerInterface] = None

    @property
    def child_proxies(self) -> List[LayerInterface]:
        return self._child_proxies

    def add_child_proxy(self, proxy: LayerInterface) -> None:
        self._child_proxies.append(proxy)

    def remove_child_proxy(self, proxy: LayerInterface) -> None:
        if proxy in self._child_proxies:
            self._child_proxies.remove(proxy)

    @property
    def visibility(self) -> bool:
        return any(p.visibility for p in self._child_proxies)

    @visibility.setter
    def visibility(self, value: bool) -> None:
        for p in self._child_proxies:
            p.set_visibility(value)
        self.visible_changed(value)

    def is_queryable(self) -> bool:
        return any(p.query for p in self._child_proxies)

    def set_queryable(self, value: bool) -> None:
        for p in self._child_proxies:
            p.set_query(value)

    def get_proxy(self) -> LayerInterface:
        if self._root_proxy is None:
            self._root_proxy = LayerInterface(self)
            self._convert_root_proxy(self._root_proxy)
        return self._root_proxy

    def _convert_root_proxy(self, proxy: LayerInterface) -> None:
        proxy.convert_to_legend_group(self)


class LegendSetRecord(LegendGroupRecord):
    """Exclusive set: switching on only shows the first child if nothing is shown yet."""

    @property
    def visibility(self) -> bool:
        return any(p.visibility for p in self._child_proxies)

    @visibility.setter
    def visibility(self, value: bool) -> None:
        if value:
            if not self.visibility and self._child_proxies:
                self._child_proxies[0].set_visibility(True)
        else:
            for p in self._child_proxies:
                p.set_visibility(False)
        self.visible_changed(value)


class LegendEntryRecord(LegendGroupRecord):
    """
    Group of children bound to a master layer interface.

    Name, symbology and layer details come from the master; opacity is set
    on every child.
    """

    def __init__(self, child_proxies: Optional[List[LayerInterface]] = None):
        super().__init__('', child_proxies)
        self._master_proxy: Optional[LayerInterface] = None

    def set_master_proxy(self, proxy: LayerInterface) -> None:
        self._master_proxy = proxy

    @property
    def master_proxy(self) -> Optional[LayerInterface]:
        return self._master_proxy

    @property
    def name(self) -> str:
        if self._master_proxy is None:
            return self._name
        return self._master_proxy.name

    @name.setter
    def name(self, value: str) -> None:
        self._name = value

    @property
    def symbology(self):
        return self._master_proxy.symbology

    @property
    def state(self) -> str:
        return self._master_proxy.state

    @property
    def layer_type(self):
        return self._master_proxy.layer_type

    @property
    def opacity(self) -> float:
        return self._master_proxy.opacity

    @opacity.setter
    def opacity(self, value: float) -> None:
        for p in self._child_proxies:
            p.set_opacity(value)

    def get_geom_type(self):
        return self._master_proxy.geometry_type

    @property
    def feature_count(self):
        return self._master_proxy.feature_count

    def is_bbox_visible(self) -> bool:
        return self._master_proxy.bounding_box

    @property
    def bbox(self):
        return self._master_proxy.source.bbox

    @property
    def is_snapshot(self) -> bool:
        return self._master_proxy.snapshot

    def set_snapshot(self) -> None:
        self._master_proxy.set_snapshot()

    def get_formatted_attributes(self):
        return self._master_proxy.formatted_attributes

    @property
    def info_type(self):
        return self._master_proxy.info_type

    @property
    def info_content(self):
        return self._master_proxy.info_content

    def _convert_root_proxy(self, proxy: LayerInterface) -> None:
        proxy.convert_to_legend_entry(self)
