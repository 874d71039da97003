"""Shared fixtures for the layer record tests."""

import pytest

from tests.fakes import FakeMap, make_features, make_layer_data


@pytest.fixture
def layer_data():
    return make_layer_data()


@pytest.fixture
def features():
    return make_features()


@pytest.fixture
def fake_map():
    return FakeMap()
