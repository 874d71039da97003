"""
Shared value types and async helpers used by records and feature classes.

Classes:
    SymbologyStack: Symbol list plus render style, mutated in place
    SharedFetch: Memoised asyncio task shared by every caller
    IdentifyResult: Results of one identify query for one sublayer

Functions:
    make_symbology_array: Convert a map-server legend layer to symbol dicts
    spawn_background: Start a task whose failure is logged, never raised
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from utils.logger import get_logger

logger = get_logger(__name__)


class SymbologyStack:
    """
    Symbols shown for a legend entry.

    UI bindings hold a reference to this object, so the symbol list is only
    ever replaced in place.
    """

    def __init__(self, stack: Optional[List[Dict]] = None, render_style: str = 'icons'):
        self.stack = list(stack or [])
        self.render_style = render_style

    def replace(self, symbols: List[Dict]) -> None:
        self.stack[:] = symbols

    def __repr__(self):
        return f"SymbologyStack({len(self.stack)} symbols, {self.render_style})"


class SharedFetch:
    """
    Memoised async fetch.

    The first get() starts the fetch; every later call receives the same
    task, whether still pending or already resolved. With invalidate_on_error
    a failed fetch forgets its task so the next get() starts fresh. An
    error_type wraps the underlying failure in a domain error.
    """

    def __init__(
        self,
        factory: Callable[[], Awaitable],
        label: str = 'fetch',
        invalidate_on_error: bool = False,
        error_type: Optional[Callable[[], Exception]] = None
    ):
        self._factory = factory
        self._label = label
        self._invalidate_on_error = invalidate_on_error
        self._error_type = error_type
        self._task: Optional[asyncio.Task] = None

    def get(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        return self._task

    def clear(self) -> None:
        """Drop the memoised result; the next get() fetches again."""
        self._task = None

    @property
    def started(self) -> bool:
        return self._task is not None

    async def _run(self):
        try:
            return await self._factory()
        except Exception as e:
            if self._invalidate_on_error and self._task is asyncio.current_task():
                self._task = None
                logger.debug(f"Cleared cached {self._label} after failure: {e}")
            if self._error_type is not None:
                raise self._error_type() from e
            raise


class IdentifyResult:
    """
    Results of an identify query against one sublayer.

    Starts loading with no data. The producer appends to data and flips
    is_loading once the sublayer has been processed.
    """

    def __init__(
        self,
        name: str,
        symbology: Any,
        format: str,
        layer_rec: Any,
        feature_idx: Optional[str] = None,
        caption: Optional[str] = None
    ):
        self.is_loading = True
        self.request_id = -1
        self.requester = {
            'name': name,
            'symbology': symbology,
            'format': format,
            'caption': caption,
            'layer_rec': layer_rec,
            'feature_idx': feature_idx
        }
        self.data = []

    def complete(self) -> None:
        self.is_loading = False

    def __repr__(self):
        return (f"IdentifyResult(idx={self.requester['feature_idx']}, "
                f"loading={self.is_loading}, hits={len(self.data)})")


def make_symbology_array(legend_layer: Dict) -> List[Dict]:
    """
    Convert one layer of a map-server legend response to symbol dicts.

    Parameters:
    -----------
    legend_layer : Dict
        Legend layer with a 'legend' list of {label, contentType, imageData}

    Returns:
    --------
    List[Dict]
        Symbols as {'name': label, 'image': data URI}
    """
    return [
        {
            'name': item.get('label', ''),
            'image': f"data:{item['contentType']};base64,{item['imageData']}"
        }
        for item in legend_layer.get('legend', [])
    ]


def _log_task_failure(label: str) -> Callable[[asyncio.Task], None]:
    def _callback(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"    ⚠ {label} failed: {exc}")
    return _callback


def spawn_background(coro: Awaitable, label: str, registry: Set[asyncio.Task]) -> asyncio.Task:
    """
    Start a fire-and-forget task.

    The task is held in registry until it finishes, and a failure is logged
    at WARNING instead of surfacing as an unretrieved exception.
    """
    task = asyncio.ensure_future(coro)
    registry.add(task)
    task.add_done_callback(registry.discard)
    task.add_done_callback(_log_task_failure(label))
    return task
