"""
Per-node configuration for dynamic layer sublayer trees.

Only 'state' and 'controls' cascade from parent to child. The layer root
(node '-1') is the fully defaulted layer config; every other node derives its
effective config from its parent the first time it is reached, and the result
is memoised. Input configs are never mutated.

Functions:
    make_control_banlist: Controls not offered on dynamic sublayers
    ban_controls: Copy of a controls list without banned controls
    derive_sub_config: Effective config of one node given its parent's

Classes:
    SubConfigTable: Memoised cascade over a layer's explicit entries
"""

from typing import Dict, List, Optional

from utils.logger import get_logger

logger = get_logger(__name__)

ROOT_ID = '-1'
ALWAYS_BANNED = ('reload', 'snapshot', 'boundingBox')


def make_control_banlist(supports_dynamic_layers: bool) -> List[str]:
    """Opacity is also banned when the service cannot draw sublayers individually."""
    banlist = list(ALWAYS_BANNED)
    if not supports_dynamic_layers:
        banlist.append('opacity')
    return banlist


def ban_controls(controls: List[str], banlist: List[str]) -> List[str]:
    return [c for c in controls if c not in banlist]


def derive_sub_config(entry: Optional[Dict], parent: Dict, banlist: List[str]) -> Dict:
    """
    Effective config of a node.

    Parameters:
    -----------
    entry : Optional[Dict]
        Explicit layer entry for the node, None when the config has none
    parent : Dict
        Effective config of the parent node (controls already sanitized)
    banlist : List[str]
        Controls to strip from explicit control lists

    Returns:
    --------
    Dict
        New dict with 'state', 'controls' and 'outfields' filled in. Missing
        controls copy the parent's; explicit ones are sanitized. A missing
        state copies the parent's; a partial one only gains missing keys.
    """
    if entry is None:
        return {
            'state': dict(parent['state']),
            'controls': list(parent['controls']),
            'outfields': '*'
        }

    derived = dict(entry)
    if entry.get('controls') is None:
        derived['controls'] = list(parent['controls'])
    else:
        derived['controls'] = ban_controls(entry['controls'], banlist)

    if entry.get('state') is None:
        derived['state'] = dict(parent['state'])
    else:
        derived['state'] = {**parent['state'], **entry['state']}

    derived.setdefault('outfields', '*')
    return derived


class SubConfigTable:
    """
    Memoised config cascade for one dynamic layer.

    Parameters:
    -----------
    root_config : Dict
        Fully defaulted layer config
    layer_entries : List[Dict]
        Explicit per-sublayer entries, keyed by their 'index'
    banlist : List[str]
        Controls banned for this layer
    """

    def __init__(self, root_config: Dict, layer_entries: List[Dict], banlist: List[str]):
        self._banlist = banlist
        self._explicit = {str(le['index']): le for le in layer_entries}
        self._derived = {
            ROOT_ID: {
                'state': dict(root_config['state']),
                'controls': ban_controls(root_config['controls'], banlist)
            }
        }

    def fetch(self, node_id: str, parent_id: str) -> Dict:
        """Effective config of node_id, deriving it from parent_id on first use."""
        if node_id not in self._derived:
            self._derived[node_id] = derive_sub_config(
                self._explicit.get(node_id), self._derived[parent_id], self._banlist)
            logger.debug(f"Derived config for sublayer {node_id} from {parent_id}")
        return self._derived[node_id]

    def is_defaulted(self, node_id: str) -> bool:
        return node_id in self._derived

    def get(self, node_id: str) -> Dict:
        return self._derived[node_id]
