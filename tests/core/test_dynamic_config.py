"""Unit tests for the dynamic sublayer config cascade."""

import pytest

from core.dynamic_config import ROOT_ID, SubConfigTable, ban_controls, derive_sub_config, make_control_banlist


@pytest.mark.unit
class TestBanlist:
    def test_always_banned(self):
        assert make_control_banlist(True) == ['reload', 'snapshot', 'boundingBox']

    def test_opacity_banned_without_dynamic_layers(self):
        assert 'opacity' in make_control_banlist(False)

    def test_ban_controls_returns_copy(self):
        controls = ['a', 'b', 'c']
        assert ban_controls(controls, ['b']) == ['a', 'c']
        assert controls == ['a', 'b', 'c']


@pytest.mark.unit
class TestDeriveSubConfig:
    """Controls and state inherit from the parent."""

    PARENT = {'state': {'visibility': True, 'opacity': 0.8, 'query': True}, 'controls': ['a', 'c']}

    def test_missing_entry_copies_parent(self):
        derived = derive_sub_config(None, self.PARENT, ['b'])
        assert derived['controls'] == ['a', 'c']
        assert derived['state'] == self.PARENT['state']
        assert derived['state'] is not self.PARENT['state']
        assert derived['outfields'] == '*'

    def test_explicit_controls_sanitized(self):
        derived = derive_sub_config({'index': 1, 'controls': ['b', 'd']}, self.PARENT, ['b'])
        assert derived['controls'] == ['d']

    def test_missing_controls_inherited(self):
        derived = derive_sub_config({'index': 1}, self.PARENT, ['b'])
        assert derived['controls'] == ['a', 'c']

    def test_partial_state_merged_per_key(self):
        entry = {'index': 1, 'state': {'visibility': False}}
        derived = derive_sub_config(entry, self.PARENT, [])
        assert derived['state'] == {'visibility': False, 'opacity': 0.8, 'query': True}
        assert entry['state'] == {'visibility': False}

    def test_explicit_outfields_kept(self):
        derived = derive_sub_config({'index': 1, 'outfields': 'NAME'}, self.PARENT, [])
        assert derived['outfields'] == 'NAME'


@pytest.mark.unit
class TestSubConfigTable:
    ROOT = {'state': {'visibility': True, 'opacity': 1.0}, 'controls': ['a', 'b', 'c']}

    def test_root_is_sanitized(self):
        table = SubConfigTable(self.ROOT, [], ['b'])
        assert table.get(ROOT_ID)['controls'] == ['a', 'c']

    def test_child_inherits_sanitized_root(self):
        table = SubConfigTable(self.ROOT, [{'index': 2, 'controls': ['b', 'd']}], ['b'])
        assert table.fetch('1', ROOT_ID)['controls'] == ['a', 'c']
        assert table.fetch('2', ROOT_ID)['controls'] == ['d']

    def test_derivation_memoised(self):
        table = SubConfigTable(self.ROOT, [], [])
        assert not table.is_defaulted('5')
        first = table.fetch('5', ROOT_ID)
        assert table.is_defaulted('5')
        assert table.fetch('5', ROOT_ID) is first

    def test_grandchild_inherits_through_group(self):
        entries = [{'index': 10, 'state': {'visibility': False}}]
        table = SubConfigTable(self.ROOT, entries, [])
        table.fetch('10', ROOT_ID)
        assert table.fetch('11', '10')['state']['visibility'] is False
