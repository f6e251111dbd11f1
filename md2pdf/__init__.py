"""
Branded Markdown to PDF conversion with Mermaid diagram support.
"""

from .config import BrandConfig, Config, FontConfig, resolve_brand
from .converter import BatchConverter, BatchResult, main

__version__ = "1.0.0"

__all__ = [
    "BatchConverter",
    "BatchResult",
    "BrandConfig",
    "Config",
    "FontConfig",
    "main",
    "resolve_brand",
]
