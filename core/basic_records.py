"""
Records for layers without attributes: tiled map services and image services.

Both get a single basic feature class '0' on load whose symbols come from
the service legend.
"""

from core import states
from core.feature_class import make_basic_fc
from core.layer_record import LayerRecord
from utils.logger import get_logger

logger = get_logger(__name__)


class BasicRecord(LayerRecord):
    """Record with one non-attribute sublayer."""

    def _build_feature_classes(self) -> None:
        fc = make_basic_fc(self, '0', self.config, self._symbology)
        self._feature_classes['0'] = fc
        self._default_fc = '0'
        self._spawn(fc.load_symbology(), 'symbology load')


class TileRecord(BasicRecord):
    layer_type = states.ESRI_TILE


class ImageRecord(BasicRecord):
    layer_type = states.ESRI_IMAGE
