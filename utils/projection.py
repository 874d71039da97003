"""
Projection collaborator backed by pyproj.

Spatial references are ESRI JSON dicts: {'wkid': ..., 'latestWkid': ...} or
{'wkt': ...}. ESRI's Web Mercator codes are treated as EPSG:3857.

Classes:
    Projection: extent/point reprojection and projection availability checks
"""

from typing import Awaitable, Callable, Dict, Optional

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError

from core.exceptions import ProjectionError
from utils.geometry_converters import Extent
from utils.logger import get_logger

logger = get_logger(__name__)

# ESRI codes with an EPSG equivalent
WKID_ALIASES = {
    102100: 3857,
    102113: 3857,
    900913: 3857
}


def sr_code(spatial_reference: Optional[Dict]) -> Optional[int]:
    """Preferred numeric code of a spatial reference, aliases resolved."""
    if not spatial_reference:
        return None
    code = spatial_reference.get('latestWkid') or spatial_reference.get('wkid')
    if code is None:
        return None
    return WKID_ALIASES.get(int(code), int(code))


class Projection:
    """
    Reprojection helper implementing the projection collaborator contract.

    Definitions fetched through an EPSG lookup function are kept per code, so
    a custom projection only has to be looked up once.
    """

    def __init__(self):
        self._definitions: Dict[int, CRS] = {}

    def to_crs(self, spatial_reference: Dict) -> CRS:
        """
        Resolve a spatial reference to a pyproj CRS.

        Raises:
        -------
        ProjectionError
            If the spatial reference is missing or unknown to pyproj
        """
        if not spatial_reference:
            raise ProjectionError("No spatial reference supplied")

        code = sr_code(spatial_reference)
        try:
            if code is not None:
                if code in self._definitions:
                    return self._definitions[code]
                return self._from_code(code)
            if 'wkt' in spatial_reference:
                return CRS.from_wkt(spatial_reference['wkt'])
        except CRSError as e:
            raise ProjectionError(f"Unknown spatial reference {spatial_reference}: {e}") from e

        raise ProjectionError(f"Unusable spatial reference: {spatial_reference}")

    @staticmethod
    def _from_code(code: int) -> CRS:
        # ESRI-only wkids (e.g. 102008) are not in the EPSG registry
        try:
            return CRS.from_epsg(code)
        except CRSError:
            return CRS.from_user_input(f"ESRI:{code}")

    def is_spatial_reference_match(self, sr_a: Optional[Dict], sr_b: Optional[Dict]) -> bool:
        if not sr_a or not sr_b:
            return False
        code_a, code_b = sr_code(sr_a), sr_code(sr_b)
        if code_a is not None and code_b is not None:
            return code_a == code_b
        if 'wkt' in sr_a and 'wkt' in sr_b:
            return sr_a['wkt'] == sr_b['wkt']
        return False

    def _transformer(self, from_sr: Dict, to_sr: Dict) -> Transformer:
        return Transformer.from_crs(self.to_crs(from_sr), self.to_crs(to_sr), always_xy=True)

    def local_project_extent(self, extent: Extent, target_sr: Dict) -> Extent:
        """
        Project an extent into another spatial reference.

        Parameters:
        -----------
        extent : Extent
            Source extent; must carry its spatial reference
        target_sr : Dict
            Spatial reference to project into

        Returns:
        --------
        Extent
            Projected extent (densified bounds), tagged with target_sr
        """
        if self.is_spatial_reference_match(extent.spatial_reference, target_sr):
            return Extent(extent.xmin, extent.ymin, extent.xmax, extent.ymax, target_sr)

        transformer = self._transformer(extent.spatial_reference, target_sr)
        bounds = transformer.transform_bounds(extent.xmin, extent.ymin, extent.xmax, extent.ymax)
        return Extent.from_bounds(bounds, target_sr)

    def project_point(self, point: Dict, from_sr: Dict, to_sr: Dict) -> Dict:
        """Project an ESRI JSON point, returning a new point dict."""
        if self.is_spatial_reference_match(from_sr, to_sr):
            return {'x': point['x'], 'y': point['y'], 'spatialReference': to_sr}

        x, y = self._transformer(from_sr, to_sr).transform(point['x'], point['y'])
        return {'x': x, 'y': y, 'spatialReference': to_sr}

    def check_proj(
        self,
        spatial_reference: Dict,
        epsg_lookup: Optional[Callable[[int], Awaitable[Optional[str]]]] = None
    ) -> Optional[Awaitable]:
        """
        Check that a spatial reference can be projected.

        Returns None when pyproj already knows the projection. Otherwise, if a
        lookup function is given, returns an awaitable that fetches the
        definition (proj4 or WKT text) for the code and registers it.

        Raises:
        -------
        ProjectionError
            Synchronously when the projection is unknown and there is no lookup,
            or from the awaitable when the lookup fails
        """
        try:
            self.to_crs(spatial_reference)
            return None
        except ProjectionError:
            code = sr_code(spatial_reference)
            if epsg_lookup is None or code is None:
                raise

        logger.debug(f"Looking up projection definition for EPSG:{code}")
        return self._lookup_definition(code, epsg_lookup)

    async def _lookup_definition(self, code: int, epsg_lookup) -> CRS:
        definition = await epsg_lookup(code)
        if not definition:
            raise ProjectionError(f"No projection definition found for EPSG:{code}")
        try:
            crs = CRS.from_user_input(definition)
        except CRSError as e:
            raise ProjectionError(f"Invalid projection definition for EPSG:{code}: {e}") from e

        self._definitions[code] = crs
        logger.info(f"    ✓ Registered projection EPSG:{code}")
        return crs
