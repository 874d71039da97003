"""
Attribute access for attribute-bearing feature classes.

Wraps a layer package from the attribute collaborator. The package memoises
its own raw fetches; this module adds the memoised formatted table, field
alias handling and feature naming.

Classes:
    AttributeData: Attribute trait for one sublayer
"""

import asyncio
from typing import Dict, List, Optional

from core.exceptions import AttributeLoadError
from core.shared import SharedFetch
from utils.logger import get_logger

logger = get_logger(__name__)

DATE_FIELD_TYPE = 'esriFieldTypeDate'


class AttributeData:
    """
    Attribute trait over an external layer package.

    Parameters:
    -----------
    layer_package : object
        Exposes get_attribs() and get_layer_data() awaitables and clean_up()
    label : str
        Name used in log messages
    """

    def __init__(self, layer_package, label: str = ''):
        self._package = layer_package
        self._label = label
        self._formatted = SharedFetch(
            self._build_formatted_attributes,
            label=f'formatted attributes {label}',
            invalidate_on_error=True,
            error_type=AttributeLoadError
        )

    def get_attribs(self):
        return self._package.get_attribs()

    def get_layer_data(self):
        return self._package.get_layer_data()

    def get_formatted_attributes(self) -> asyncio.Task:
        """
        Attribute table for data grids.

        Concurrent callers share one pending task. When the fetch fails the
        cached task is discarded, so the next call starts over, and the
        failure surfaces as AttributeLoadError.
        """
        return self._formatted.get()

    async def _build_formatted_attributes(self) -> Dict:
        a_data, l_data = await asyncio.gather(self.get_attribs(), self.get_layer_data())
        features = a_data['features']
        fields = l_data['fields']

        # only fields that carry data in the first row become columns
        if features:
            present = features[0]['attributes']
            fields_with_data = [f for f in fields if f['name'] in present]
        else:
            fields_with_data = fields

        columns = [
            {'data': f['name'], 'title': f.get('alias') or f['name']}
            for f in fields_with_data
        ]

        return {
            'columns': columns,
            'rows': [feat['attributes'] for feat in features],
            'fields': fields,
            'oidField': l_data['oidField'],
            'oidIndex': a_data['oidIndex'],
            'renderer': l_data.get('renderer')
        }

    def clean_up(self) -> None:
        """Forget every memoised attribute result."""
        self._formatted.clear()
        self._package.clean_up()
        logger.debug(f"Attribute cache cleared for {self._label}")

    async def check_date_type(self, attrib_name: str) -> bool:
        l_data = await self.get_layer_data()
        for field in l_data.get('fields') or []:
            if field['name'] == attrib_name:
                return field.get('type') == DATE_FIELD_TYPE
        return False

    async def aliased_field_name(self, attrib_name: str) -> str:
        l_data = await self.get_layer_data()
        return self.aliased_field_name_direct(attrib_name, l_data.get('fields'))

    async def get_feature_name(self, obj_id, attribs: Optional[Dict] = None, name_field: str = '') -> str:
        """
        Best display name for a feature.

        Uses the value of name_field when one is known, reading the feature's
        attributes from the loaded table if none are supplied. Without a name
        field the name is 'Feature <oid>'.
        """
        if not name_field:
            return f'Feature {obj_id}'

        if attribs is None:
            layer_attribs = await self.get_attribs()
            position = layer_attribs['oidIndex'][obj_id]
            attribs = layer_attribs['features'][position]['attributes']

        return attribs.get(name_field)

    @staticmethod
    def aliased_field_name_direct(attrib_name: str, fields: Optional[List[Dict]]) -> str:
        """Alias of a field if it has a non-empty one, else the raw name."""
        for field in fields or []:
            if field['name'] == attrib_name:
                if field.get('alias'):
                    return field['alias']
                break
        return attrib_name

    @staticmethod
    def un_alias_attribs(attribs: Dict, fields: List[Dict]) -> Dict:
        """
        Re-key an attribute map by raw field names.

        Each value is read from the raw name, or from the alias when the raw
        name is absent. Keys not matching a field are dropped.
        """
        return {
            field['name']: attribs[field['name']] if field['name'] in attribs else attribs.get(field.get('alias'))
            for field in fields
        }

    @staticmethod
    def attributes_to_details(attribs: Dict, fields: Optional[List[Dict]] = None) -> List[Dict]:
        """
        Key/value rows for a details pane.

        Without fields no aliasing is applied and every type is None.
        """
        details = []
        for key, value in attribs.items():
            field = None
            if fields:
                field = next((f for f in fields if f['name'] == key), None)
            details.append({
                'key': AttributeData.aliased_field_name_direct(key, fields),
                'value': value,
                'type': field.get('type') if field else None
            })
        return details
