"""
Attribute-bearing layer records.

Adds attribute access delegated to feature classes and the server feature
count, which is retried once when the first answer is unusable.

Classes:
    AttribRecord: Base for feature and dynamic records
"""

from typing import Dict, List, Optional

from core.attributes import AttributeData
from core.exceptions import FeatureCountError
from core.layer_record import LayerRecord
from utils.logger import get_logger

logger = get_logger(__name__)


class AttribRecord(LayerRecord):
    """Record whose sublayers carry attribute data."""

    def __init__(self, layer_class, api, config: Dict, layer=None, epsg_lookup=None):
        self.click_tolerance = config['tolerance']
        self.feature_count: Optional[int] = None
        super().__init__(layer_class, api, config, layer, epsg_lookup)

    def is_file_layer(self) -> bool:
        return self._layer is not None and self._layer.url == ''

    # delegation to feature classes

    async def aliased_field_name(self, attrib_name: str, child_idx=None) -> str:
        return await self._fc(child_idx).aliased_field_name(attrib_name)

    def get_formatted_attributes(self, child_idx=None):
        return self._fc(child_idx).get_formatted_attributes()

    async def check_date_type(self, attrib_name: str, child_idx=None) -> bool:
        return await self._fc(child_idx).check_date_type(attrib_name)

    def get_attribs(self, child_idx=None):
        return self._fc(child_idx).get_attribs()

    def get_layer_data(self, child_idx=None):
        return self._fc(child_idx).get_layer_data()

    async def get_feature_name(self, obj_id, attribs: Optional[Dict] = None, child_idx=None) -> str:
        return await self._fc(child_idx).get_feature_name(obj_id, attribs)

    def clean_up_attributes(self, child_idx=None) -> None:
        self._fc(child_idx).clean_up_attributes()

    @staticmethod
    def attributes_to_details(attribs: Dict, fields: Optional[List[Dict]] = None) -> List[Dict]:
        return AttributeData.attributes_to_details(attribs, fields)

    # feature counts

    async def _count_features(self, url: str) -> int:
        """
        Number of features behind a sublayer URL.

        File layers count their local graphics without a request.
        """
        if self.is_file_layer():
            return len(self._layer.graphics)
        return await self._server_count(url)

    async def _server_count(self, url: str, final_try: bool = False) -> int:
        params = {
            'f': 'json',
            'where': '1=1',
            'returnCountOnly': True,
            'returnGeometry': False
        }
        try:
            result = await self._api.request(f"{url}/query", params)
        except Exception as e:
            if final_try:
                logger.warning(f"    ⚠ Feature count failed for {url}: {e}")
                raise FeatureCountError() from e
            logger.debug(f"Feature count request for {url} failed, retrying: {e}")
            return await self._server_count(url, final_try=True)

        if isinstance(result, dict) and 'error' not in result and 'count' in result:
            return result['count']

        if final_try:
            logger.warning(f"    ⚠ Feature count for {url} returned an unusable response")
            raise FeatureCountError()
        logger.debug(f"Malformed feature count response from {url}, retrying")
        return await self._server_count(url, final_try=True)
