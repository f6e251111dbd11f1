"""
Brand-driven theming.

Derives the Mermaid theme variables, the page stylesheet and the header/footer
templates from a resolved BrandConfig. Everything here is a pure function of
its input.
"""

import html
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping

from .config import BrandConfig, DEFAULT_COLORS

THEME_ASSET = Path(__file__).parent / "themes" / "pdf-theme.css"

TEXT_COLOR = "#333333"
LIGHT_TEXT_COLOR = "#FFFFFF"
MUTED_TEXT_COLOR = "#666666"
FAINT_TEXT_COLOR = "#999999"

DIAGRAM_IMAGE_RULE = 'img[src$=".svg"] { display: block; margin: 20px auto; max-width: 100%; }'


@dataclass(frozen=True)
class StyleSheet:
    """Brand CSS layered on top of the static page theme."""
    css: str
    base_path: Path = THEME_ASSET

    def full_css(self) -> str:
        base = ""
        if self.base_path and Path(self.base_path).is_file():
            base = Path(self.base_path).read_text(encoding="utf-8")
        # @import must stay first for the font sheet to load
        imports = [line for line in self.css.splitlines() if line.startswith("@import")]
        rest = [line for line in self.css.splitlines() if not line.startswith("@import")]
        return "\n".join(imports + [base] + rest)


def _palette(colors: Mapping[str, str]) -> Dict[str, str]:
    palette = dict(DEFAULT_COLORS)
    for key in DEFAULT_COLORS:
        value = colors.get(key)
        if value:
            palette[key] = value
    return palette


def derive_diagram_theme(colors: Mapping[str, str]) -> Dict[str, str]:
    """Map the six brand colors onto Mermaid's ``base`` theme variables.

    Every variable resolves to a color even when ``colors`` is partial.
    """
    p = _palette(colors)
    primary = p["primary"]
    accent = p["accent"]
    secondary = p["secondary"]
    warning = p["warning"]
    light = p["lightBackground"]
    border = p["borderColor"]

    theme = {
        # General
        "background": "#FFFFFF",
        "mainBkg": accent,
        "primaryColor": accent,
        "primaryTextColor": primary,
        "primaryBorderColor": primary,
        "secondaryColor": light,
        "secondaryTextColor": primary,
        "secondaryBorderColor": border,
        "tertiaryColor": secondary,
        "tertiaryTextColor": LIGHT_TEXT_COLOR,
        "tertiaryBorderColor": secondary,
        "lineColor": primary,
        "textColor": TEXT_COLOR,
        "titleColor": primary,
        "noteBkgColor": light,
        "noteTextColor": TEXT_COLOR,
        "noteBorderColor": border,
        "errorBkgColor": warning,
        "errorTextColor": LIGHT_TEXT_COLOR,

        # Flowchart
        "nodeBorder": primary,
        "nodeTextColor": primary,
        "clusterBkg": light,
        "clusterBorder": border,
        "defaultLinkColor": primary,
        "edgeLabelBackground": light,

        # Sequence
        "actorBkg": primary,
        "actorBorder": primary,
        "actorTextColor": LIGHT_TEXT_COLOR,
        "actorLineColor": border,
        "signalColor": primary,
        "signalTextColor": TEXT_COLOR,
        "labelBoxBkgColor": light,
        "labelBoxBorderColor": primary,
        "labelTextColor": primary,
        "loopTextColor": primary,
        "activationBkgColor": light,
        "activationBorderColor": accent,
        "sequenceNumberColor": LIGHT_TEXT_COLOR,

        # Gantt
        "sectionBkgColor": light,
        "altSectionBkgColor": "#FFFFFF",
        "sectionBkgColor2": light,
        "taskBkgColor": accent,
        "taskBorderColor": primary,
        "taskTextColor": LIGHT_TEXT_COLOR,
        "taskTextLightColor": LIGHT_TEXT_COLOR,
        "taskTextDarkColor": TEXT_COLOR,
        "taskTextOutsideColor": TEXT_COLOR,
        "taskTextClickableColor": accent,
        "activeTaskBkgColor": light,
        "activeTaskBorderColor": accent,
        "doneTaskBkgColor": secondary,
        "doneTaskBorderColor": secondary,
        "critBkgColor": warning,
        "critBorderColor": warning,
        "todayLineColor": warning,
        "gridColor": border,

        # Timeline sections
        "cScale0": accent,
        "cScale1": secondary,
        "cScale2": primary,
        "cScale3": light,
        "cScale4": border,
        "cScale5": warning,
        "cScaleLabel0": LIGHT_TEXT_COLOR,
        "cScaleLabel1": LIGHT_TEXT_COLOR,
        "cScaleLabel2": LIGHT_TEXT_COLOR,
        "cScaleLabel3": primary,
        "cScaleLabel4": primary,
        "cScaleLabel5": LIGHT_TEXT_COLOR,

        # State and class
        "labelColor": primary,
        "altBackground": light,
        "classText": primary,
        "compositeBackground": light,
        "compositeBorder": border,
        "compositeTitleBackground": light,
        "innerEndBackground": primary,
        "specialStateColor": primary,

        # Pie
        "pie1": accent,
        "pie2": secondary,
        "pie3": primary,
        "pie4": warning,
        "pie5": border,
        "pie6": light,
        "pieTitleTextColor": primary,
        "pieSectionTextColor": LIGHT_TEXT_COLOR,
        "pieLegendTextColor": TEXT_COLOR,
        "pieStrokeColor": "#FFFFFF",
        "pieOuterStrokeColor": border,

        # Git graph
        "git0": accent,
        "git1": secondary,
        "git2": primary,
        "git3": warning,
        "gitBranchLabel0": LIGHT_TEXT_COLOR,
        "gitBranchLabel1": LIGHT_TEXT_COLOR,
        "gitBranchLabel2": LIGHT_TEXT_COLOR,
        "gitBranchLabel3": LIGHT_TEXT_COLOR,
        "commitLabelColor": primary,
        "commitLabelBackground": light,
        "tagLabelColor": primary,
        "tagLabelBackground": light,
        "tagLabelBorder": border,

        # Architecture
        "archEdgeColor": primary,
        "archEdgeArrowColor": primary,
        "archGroupBorderColor": border,
    }
    return theme


def build_mermaid_config(brand: BrandConfig) -> Dict[str, Any]:
    """Full Mermaid CLI configuration (``-c`` file contents) for a brand."""
    return {
        "theme": "base",
        "themeVariables": derive_diagram_theme(brand.colors),
        "fontFamily": brand.font.family,
        "flowchart": {"curve": "basis", "padding": 15},
        "sequence": {"actorMargin": 50, "messageMargin": 35},
    }


def css_variable_name(key: str) -> str:
    """``lightBackground`` -> ``--brand-light-background``."""
    return "--brand-" + re.sub(r"([A-Z])", r"-\1", key).lower()


def derive_stylesheet(brand: BrandConfig, base_path: Path = THEME_ASSET) -> StyleSheet:
    """Build the brand CSS: font import, color variables, body font, diagram images."""
    lines = []
    if brand.font.url:
        lines.append(f"@import url('{brand.font.url}');")
        lines.append("")

    lines.append(":root {")
    for key, value in brand.colors.items():
        lines.append(f"  {css_variable_name(key)}: {value};")
    lines.append("}")
    lines.append("")
    lines.append(f"body {{ font-family: '{brand.font.primary_face}', {brand.font.family}; }}")
    lines.append(DIAGRAM_IMAGE_RULE)

    return StyleSheet(css="\n".join(lines) + "\n", base_path=base_path)


def derive_header_template(brand: BrandConfig) -> str:
    """Right-aligned header showing the header text (or brand name)."""
    face = html.escape(brand.font.primary_face, quote=True)
    text = html.escape(brand.header_text)
    return (
        f'<div style="width:100%;font-size:9px;font-family:\'{face}\',sans-serif;'
        f'padding:0 20mm;text-align:right;color:{_palette(brand.colors)["primary"]}">'
        f"<strong>{text}</strong></div>"
    )


def derive_footer_template(brand: BrandConfig) -> str:
    """Footer text on the left, page counter on the right."""
    face = html.escape(brand.font.primary_face, quote=True)
    text = html.escape(brand.footer)
    return (
        f'<div style="width:100%;font-size:9px;font-family:\'{face}\',sans-serif;'
        f'padding:0 20mm;display:flex;justify-content:space-between">'
        f'<span style="color:{FAINT_TEXT_COLOR}">{text}</span>'
        f'<span style="color:{MUTED_TEXT_COLOR}">Page <span class="pageNumber"></span>'
        f'/<span class="totalPages"></span></span></div>'
    )
