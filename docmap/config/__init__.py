"""Configuration package -- exports Settings and the YAML-aware loader."""

from docmap.config.loader import load_settings
from docmap.config.settings import Settings

__all__ = ["Settings", "load_settings"]
