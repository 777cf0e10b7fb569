"""
Visualization components for FlowTrails.

This module contains the reference trail renderer used by the preview.
"""

__all__ = ['trail_preview']
