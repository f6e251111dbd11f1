"""
Render job assembly.

Combines a diagram-substituted document with the brand stylesheet, header and
footer into the payload handed to the page renderer. No external calls.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .config import BrandConfig
from .theme import StyleSheet, derive_footer_template, derive_header_template

PAGE_FORMAT = "A4"
PAGE_MARGINS = {"top": "25mm", "right": "20mm", "bottom": "25mm", "left": "20mm"}

PAGE_BREAK_DIV = '<div class="page-break"></div>'


@dataclass(frozen=True)
class RenderJob:
    source_document: str
    stylesheet: StyleSheet
    header_template: str
    footer_template: str
    page_options: Dict[str, Any]
    title: str = ""
    base_dir: Optional[Path] = None


def page_options(header_template: str, footer_template: str) -> Dict[str, Any]:
    """Keyword arguments for Playwright's ``page.pdf()``."""
    return {
        "format": PAGE_FORMAT,
        "margin": dict(PAGE_MARGINS),
        "print_background": True,
        "display_header_footer": True,
        "header_template": header_template,
        "footer_template": footer_template,
    }


def build_render_job(document: str, brand: BrandConfig, stylesheet: StyleSheet,
                     base_dir: Optional[Path] = None, title: Optional[str] = None) -> RenderJob:
    header = derive_header_template(brand)
    footer = derive_footer_template(brand)
    return RenderJob(
        source_document=process_page_breaks(document),
        stylesheet=stylesheet,
        header_template=header,
        footer_template=footer,
        page_options=page_options(header, footer),
        title=title or brand.name,
        base_dir=Path(base_dir) if base_dir is not None else None,
    )


def process_page_breaks(content: str) -> str:
    """Turn page break markers into a div the stylesheet breaks on.

    Recognised markers: ``<!-- page-break -->``, ``<page-break>`` and an
    empty ```page-break fence.
    """
    content = re.sub(r"<!--\s*page-break\s*-->", PAGE_BREAK_DIV, content, flags=re.IGNORECASE)
    content = re.sub(r"```page-break\r?\n```", PAGE_BREAK_DIV, content, flags=re.IGNORECASE)
    content = re.sub(r"<page-break\s*/?>", PAGE_BREAK_DIV, content, flags=re.IGNORECASE)
    return content


def extract_title(md_file: Path, content: str) -> str:
    """Extract the document title from markdown content.

    Preference order:
    1) First ATX H1 heading starting with '# '
    2) Setext H1 style (line followed by '===')
    3) Humanized filename stem
    """
    lines = content.splitlines()

    for line in lines:
        stripped = line.strip()
        if stripped.startswith("# "):
            heading_text = stripped[2:].strip()
            if heading_text:
                return heading_text

    for i in range(len(lines) - 1):
        current_line = lines[i].strip()
        if current_line and re.fullmatch(r"={3,}", lines[i + 1].strip()):
            return current_line

    stem = md_file.stem.replace("_", " ").replace("-", " ").strip()
    return stem.title() if stem else md_file.stem
