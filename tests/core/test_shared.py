"""Unit tests for memoised fetches, symbology stacks and identify results."""

import asyncio
import logging

import pytest

from core.exceptions import AttributeLoadError
from core.shared import IdentifyResult, SharedFetch, SymbologyStack, make_symbology_array, spawn_background


@pytest.mark.unit
class TestSharedFetch:
    """Concurrent callers share one task; failures can invalidate it."""

    def test_concurrent_calls_share_task(self):
        calls = []

        async def factory():
            calls.append(1)
            await asyncio.sleep(0)
            return 'data'

        async def run():
            fetch = SharedFetch(factory)
            first, second = fetch.get(), fetch.get()
            assert first is second
            assert await first == 'data'
            assert fetch.get() is first

        asyncio.run(run())
        assert len(calls) == 1

    def test_failure_invalidates_and_wraps(self):
        attempts = []

        async def factory():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError('boom')
            return 'ok'

        async def run():
            fetch = SharedFetch(factory, invalidate_on_error=True, error_type=AttributeLoadError)
            failed = fetch.get()
            with pytest.raises(AttributeLoadError) as info:
                await failed
            assert isinstance(info.value.__cause__, RuntimeError)
            retried = fetch.get()
            assert retried is not failed
            assert await retried == 'ok'

        asyncio.run(run())
        assert len(attempts) == 2

    def test_failure_kept_without_invalidation(self):
        async def factory():
            raise RuntimeError('boom')

        async def run():
            fetch = SharedFetch(factory)
            task = fetch.get()
            with pytest.raises(RuntimeError):
                await task
            assert fetch.get() is task

        asyncio.run(run())

    def test_clear_forces_refetch(self):
        async def factory():
            return 1

        async def run():
            fetch = SharedFetch(factory)
            first = fetch.get()
            await first
            fetch.clear()
            assert not fetch.started
            assert fetch.get() is not first

        asyncio.run(run())


@pytest.mark.unit
class TestSymbologyStack:
    """Replacement keeps the list object the UI holds."""

    def test_replace_in_place(self):
        stack = SymbologyStack([{'name': 'placeholder'}])
        bound = stack.stack
        stack.replace([{'name': 'a'}, {'name': 'b'}])
        assert bound is stack.stack
        assert [s['name'] for s in bound] == ['a', 'b']

    def test_make_symbology_array(self):
        legend = {'legend': [{'label': 'Wells', 'contentType': 'image/png', 'imageData': 'iVBOR'}]}
        assert make_symbology_array(legend) == [{'name': 'Wells', 'image': 'data:image/png;base64,iVBOR'}]


@pytest.mark.unit
class TestIdentifyResult:
    def test_starts_loading(self):
        result = IdentifyResult('Sites', None, 'EsriFeature', None, '3', 'Caption')
        assert result.is_loading
        assert result.data == []
        assert result.requester['feature_idx'] == '3'
        result.complete()
        assert not result.is_loading


@pytest.mark.unit
class TestSpawnBackground:
    """Background failures are logged, and the registry empties."""

    def test_failure_logged(self, caplog):
        registry = set()

        async def failing():
            raise RuntimeError('legend down')

        async def run():
            task = spawn_background(failing(), 'symbology load', registry)
            assert task in registry
            await asyncio.gather(task, return_exceptions=True)
            await asyncio.sleep(0)

        with caplog.at_level(logging.WARNING, logger='layerrec'):
            asyncio.run(run())
        assert not registry
        assert 'symbology load failed: legend down' in caplog.text
