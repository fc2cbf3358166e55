"""
Render module for compiling graph views into Mermaid diagram text.
"""

from .mermaid_renderer import MermaidRenderer, sanitize_id, sanitize_label

__all__ = [
    'MermaidRenderer',
    'sanitize_id',
    'sanitize_label'
]
