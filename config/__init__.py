"""
Configuration package for the bacteremia simulation engine

This package contains engine-wide settings.
"""

from .settings import settings

__version__ = "1.0.0"
