"""
Lens module for computing lens- and focus-scoped views of a code graph.
"""

from .engine import LensEngine

__all__ = [
    'LensEngine'
]
