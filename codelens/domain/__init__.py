"""
Domain module: validated business-domain models projected onto the code graph.
"""

from .model_builder import DomainModelBuilder, DomainModelResult

__all__ = [
    'DomainModelBuilder',
    'DomainModelResult'
]
