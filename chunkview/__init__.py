"""Viewport-driven chunk loading for very large Qt item models."""

__version__ = '0.1.0'
