"""
Load states and client layer types.

State values double as CSS classes in the legend UI, hence the 'rv-' prefix.

Functions:
    collapse_state: Reduce a raw load state to LOADING, LOADED or ERROR
    is_refreshing: True while a source is loading or refreshing
"""

NEW = 'rv-new'
REFRESH = 'rv-refresh'
LOADING = 'rv-loading'
LOADED = 'rv-loaded'
DEFAULT = 'rv-default'
ERROR = 'rv-error'

# Client layer types
ESRI_FEATURE = 'esriFeature'
ESRI_DYNAMIC = 'esriDynamic'
ESRI_TILE = 'esriTile'
ESRI_IMAGE = 'esriImage'
ESRI_RASTER = 'esriRaster'
ESRI_GROUP = 'esriGroup'
OGC_WMS = 'ogcWms'

_COLLAPSED = {
    NEW: LOADING,
    LOADING: LOADING,
    LOADED: LOADED,
    REFRESH: LOADED,
    DEFAULT: LOADED,
    ERROR: ERROR
}


def collapse_state(state: str) -> str:
    """
    Reduce a raw load state to one of LOADING, LOADED or ERROR.

    Parameters:
    -----------
    state : str
        Raw state of a record

    Returns:
    --------
    str
        Collapsed state

    Raises:
    -------
    ValueError
        If the state is not a known load state
    """
    try:
        return _COLLAPSED[state]
    except KeyError:
        raise ValueError(f"Unknown layer state: {state}") from None


def is_refreshing(state: str) -> bool:
    return state in (REFRESH, LOADING)
