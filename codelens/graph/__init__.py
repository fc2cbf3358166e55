"""
Graph module: the canonical code graph and its invariant-preserving mutations.
"""

from .store import GraphStore, new_id
from .lenses import (
    get_default_lenses,
    COMPONENT_LENS_ID,
    FLOW_LENS_ID,
    DOMAIN_LENS_ID,
)

__all__ = [
    'GraphStore',
    'new_id',
    'get_default_lenses',
    'COMPONENT_LENS_ID',
    'FLOW_LENS_ID',
    'DOMAIN_LENS_ID'
]
