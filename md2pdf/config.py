"""
Runtime configuration and brand settings.

Runtime paths and flags come from the environment (optionally overridden by
CLI flags); the brand descriptor comes from a JSON file that is merged field by
field over built-in defaults.
"""

import json
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .console import ConsoleLogger

DEFAULT_BRAND_FILE = "brand.json"
DEFAULT_OUTPUT_DIR = os.path.join("output", "pdf")
DEFAULT_DIAGRAM_TIMEOUT = 120.0

DEFAULT_NAME = "Document"
DEFAULT_COLORS = {
    "primary": "#1a365d",
    "accent": "#3182ce",
    "secondary": "#2c7a7b",
    "warning": "#c53030",
    "lightBackground": "#f7fafc",
    "borderColor": "#e2e8f0",
}
DEFAULT_FONT_FAMILY = "system-ui, -apple-system, sans-serif"

# Older brand files used these names for the two neutral colors
COLOR_ALIASES = {
    "lightGrey": "lightBackground",
    "borderGrey": "borderColor",
}

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class FontConfig:
    family: str = DEFAULT_FONT_FAMILY
    url: Optional[str] = None

    @property
    def primary_face(self) -> str:
        """First font name of the family list, without quotes."""
        first = self.family.split(",")[0]
        return first.replace("'", "").replace('"', "").strip()


@dataclass(frozen=True)
class BrandConfig:
    name: str = DEFAULT_NAME
    header: str = ""
    footer: str = ""
    colors: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLORS))
    font: FontConfig = field(default_factory=FontConfig)

    @property
    def header_text(self) -> str:
        return self.header or self.name


def _merge_colors(user_colors: Any, logger: Optional[ConsoleLogger]) -> Dict[str, str]:
    colors = dict(DEFAULT_COLORS)
    if user_colors is None:
        return colors
    if not isinstance(user_colors, dict):
        if logger:
            logger.warning("Ignoring 'colors' in brand file: expected an object")
        return colors

    for key, value in user_colors.items():
        if value is None or value == "":
            continue
        colors[COLOR_ALIASES.get(key, key)] = str(value)
    return colors


def _merge_font(user_font: Any) -> FontConfig:
    if not isinstance(user_font, dict):
        return FontConfig()
    family = user_font.get("family") or DEFAULT_FONT_FAMILY
    url = user_font.get("url") or None
    return FontConfig(family=str(family), url=url)


def _scalar(data: Dict[str, Any], key: str, default: str) -> str:
    value = data.get(key)
    if value is None:
        return default
    return str(value)


def merge_brand(data: Dict[str, Any], logger: Optional[ConsoleLogger] = None) -> BrandConfig:
    """Merge a parsed brand document over the defaults.

    Scalars use the user value when present, colors merge key by key and the
    two font fields default independently.
    """
    return BrandConfig(
        name=_scalar(data, "name", DEFAULT_NAME),
        header=_scalar(data, "header", ""),
        footer=_scalar(data, "footer", ""),
        colors=_merge_colors(data.get("colors"), logger),
        font=_merge_font(data.get("font")),
    )


def resolve_brand(path: Optional[Path] = None, logger: Optional[ConsoleLogger] = None) -> BrandConfig:
    """Load the brand file at ``path`` and merge it over the defaults.

    A missing file is not an error. An unreadable or malformed file produces
    a warning and the pure defaults.
    """
    brand_path = Path(path) if path is not None else Path(DEFAULT_BRAND_FILE)

    if not brand_path.is_file():
        if logger:
            logger.debug(f"No brand file at {brand_path}, using defaults")
        return BrandConfig()

    try:
        with open(brand_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        if logger:
            logger.warning(f"Could not parse {brand_path.name} ({e}), using defaults")
        return BrandConfig()

    if not isinstance(data, dict):
        if logger:
            logger.warning(f"Could not parse {brand_path.name} (top level is not an object), using defaults")
        return BrandConfig()

    brand = merge_brand(data, logger)
    if logger:
        logger.debug(f"Loaded brand '{brand.name}' from {brand_path}")
    return brand


def _env_flag(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in _TRUTHY


class Config:
    """Configuration manager for the converter.

    Values are resolved from explicit overrides first, then environment
    variables, then defaults.
    """

    def __init__(self, overrides: Optional[Dict[str, Any]] = None, environ: Optional[Dict[str, str]] = None):
        self._overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
        self._env = dict(os.environ) if environ is None else dict(environ)

    def _get(self, key: str, env_name: str, default: Any = None) -> Any:
        if key in self._overrides:
            return self._overrides[key]
        value = self._env.get(env_name)
        if value:
            return value
        return default

    def get_output_dir(self) -> Path:
        return Path(self._get("output_dir", "OUTPUT_DIR", DEFAULT_OUTPUT_DIR))

    def get_brand_file(self) -> Path:
        return Path(self._get("brand_file", "BRAND_FILE", DEFAULT_BRAND_FILE))

    def get_temp_root(self) -> Path:
        return Path(self._get("temp_dir", "MD2PDF_TEMP_DIR", tempfile.gettempdir()))

    def is_sandboxed(self) -> bool:
        """Whether Chromium must run without its own sandbox (containers)."""
        if "sandboxed" in self._overrides:
            return bool(self._overrides["sandboxed"])
        if _env_flag(self._env.get("MD2PDF_NO_SANDBOX")):
            return True
        return os.path.exists("/.dockerenv")

    def get_diagram_timeout(self) -> float:
        value = self._get("diagram_timeout", "MD2PDF_DIAGRAM_TIMEOUT", DEFAULT_DIAGRAM_TIMEOUT)
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid diagram timeout: '{value}'. Use a number of seconds.")
        if timeout <= 0:
            raise ValueError(f"Diagram timeout must be positive, got {timeout}")
        return timeout

    def get_browser_executable(self) -> Optional[str]:
        if "browser_executable" in self._overrides:
            return self._overrides["browser_executable"]
        return self._env.get("PUPPETEER_EXECUTABLE_PATH") or self._env.get("CHROME_PATH") or None

    def get_mermaid_command(self) -> List[str]:
        """Command prefix used to invoke the Mermaid CLI."""
        configured = self._get("mmdc", "MMDC")
        if configured:
            return str(configured).split()
        if shutil.which("mmdc"):
            return ["mmdc"]
        return ["npx", "--no-install", "mmdc"]

    def get_pandoc_command(self) -> str:
        return self._get("pandoc", "PANDOC", "pandoc")
