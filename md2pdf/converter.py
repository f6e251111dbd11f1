#!/usr/bin/env python3
"""
Branded Markdown to PDF converter.

Renders Mermaid diagrams with a brand-derived theme, then prints each document
to an A4 PDF through headless Chromium (Playwright) with a branded header,
footer and stylesheet.

MIT License - Copyright (c) 2025 Markdown to PDF Converter
"""

import asyncio
import shutil
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from tqdm import tqdm

from .config import BrandConfig, Config, resolve_brand
from .console import ConsoleLogger
from .dependencies import check_dependencies
from .diagrams import DiagramSubstituter, MermaidRenderer
from .document import build_render_job, extract_title
from .renderer import PageRenderer
from .theme import StyleSheet, derive_stylesheet

MARKDOWN_SUFFIX = ".md"
OUTPUT_SUFFIX = ".pdf"
EXCLUDED_NAME_MARKERS = ("readme", "template")


@dataclass
class BatchResult:
    total: int = 0
    succeeded: int = 0
    failed: int = 0


def is_eligible(path: Path) -> bool:
    """Markdown file whose name does not mark it as a template or readme."""
    name = path.name.lower()
    return name.endswith(MARKDOWN_SUFFIX) and not any(marker in name for marker in EXCLUDED_NAME_MARKERS)


def select_markdown_files(target: Path) -> List[Path]:
    """Files to convert for ``target`` (a Markdown file or a directory).

    Directories are scanned non-recursively.
    """
    target = Path(target)
    if not target.exists():
        raise FileNotFoundError(f"Not found: {target}")

    if target.is_dir():
        return sorted(p for p in target.iterdir() if p.is_file() and is_eligible(p))
    if target.is_file() and target.name.lower().endswith(MARKDOWN_SUFFIX):
        return [target]
    raise ValueError(f"Target must be a {MARKDOWN_SUFFIX} file or directory: {target}")


def batch_timestamp(now: Optional[datetime] = None) -> str:
    """``YYYYMMDD-HHMM`` stamp shared by every output of one batch.

    Uses the local wall clock, not UTC.
    """
    return (now or datetime.now()).strftime("%Y%m%d-%H%M")


def output_name(md_file: Path, timestamp: str) -> str:
    return f"{Path(md_file).stem}_{timestamp}{OUTPUT_SUFFIX}"


class BatchConverter:
    """Converts one file or a directory of Markdown files to branded PDFs."""

    def __init__(self, config: Optional[Config] = None, logger: Optional[ConsoleLogger] = None,
                 diagram_renderer_factory: Optional[Callable] = None,
                 page_renderer_factory: Optional[Callable] = None):
        """Initialize the converter.

        Args:
            diagram_renderer_factory: ``(brand, work_dir) -> renderer`` used for
                Mermaid blocks. Defaults to the Mermaid CLI.
            page_renderer_factory: ``(work_dir) -> renderer`` used for the final
                PDF. Defaults to pandoc + Playwright.
        """
        self.config = config or Config()
        self.logger = logger or ConsoleLogger()
        self.diagram_renderer_factory = diagram_renderer_factory or self._default_diagram_renderer
        self.page_renderer_factory = page_renderer_factory or self._default_page_renderer
        self.work_dir: Optional[Path] = None

    def _default_diagram_renderer(self, brand: BrandConfig, work_dir: Path) -> MermaidRenderer:
        return MermaidRenderer.prepare(
            brand,
            work_dir,
            command=self.config.get_mermaid_command(),
            sandboxed=self.config.is_sandboxed(),
            executable_path=self.config.get_browser_executable(),
            timeout=self.config.get_diagram_timeout(),
        )

    def _default_page_renderer(self, work_dir: Path) -> PageRenderer:
        return PageRenderer(
            work_dir,
            sandboxed=self.config.is_sandboxed(),
            executable_path=self.config.get_browser_executable(),
            pandoc=self.config.get_pandoc_command(),
            logger=self.logger,
        )

    async def run(self, target: Path, timestamp: Optional[str] = None) -> BatchResult:
        """Convert every eligible file under ``target``.

        Raises FileNotFoundError or ValueError for an unusable target before
        anything is processed. Per-file failures are counted, not raised.
        """
        md_files = select_markdown_files(target)
        result = BatchResult(total=len(md_files))

        if not md_files:
            self.logger.warning("No markdown files found")
            return result

        output_dir = self.config.get_output_dir()
        output_dir.mkdir(parents=True, exist_ok=True)

        brand = resolve_brand(self.config.get_brand_file(), self.logger)
        stylesheet = derive_stylesheet(brand)
        timestamp = timestamp or batch_timestamp()

        temp_root = self.config.get_temp_root()
        temp_root.mkdir(parents=True, exist_ok=True)
        self.work_dir = Path(tempfile.mkdtemp(prefix="md2pdf-", dir=str(temp_root)))
        self.logger.debug(f"Using temporary directory: {self.work_dir}")

        self.logger.info(f"Converting {len(md_files)} file(s) with brand '{brand.name}'")
        self.logger.info(f"Output directory: {output_dir.absolute()}")

        try:
            diagram_renderer = self.diagram_renderer_factory(brand, self.work_dir)
            substituter = DiagramSubstituter(diagram_renderer, self.work_dir, self.logger)
            page_renderer = self.page_renderer_factory(self.work_dir)

            for md_file in tqdm(md_files, desc="Converting files", unit="file"):
                output_pdf = output_dir / output_name(md_file, timestamp)
                converted = await self._convert_file(md_file, output_pdf, brand, stylesheet,
                                                     substituter, page_renderer)
                if converted:
                    result.succeeded += 1
                else:
                    result.failed += 1
        finally:
            shutil.rmtree(self.work_dir, ignore_errors=True)
            self.logger.debug(f"Cleaned up temporary directory: {self.work_dir}")

        summary = f"Done: {result.succeeded}/{result.total} converted, {result.failed} failed"
        if result.failed:
            self.logger.warning(summary)
        else:
            self.logger.success(summary)
        return result

    async def _convert_file(self, md_file: Path, output_pdf: Path, brand: BrandConfig,
                            stylesheet: StyleSheet, substituter: DiagramSubstituter,
                            page_renderer) -> bool:
        """Convert one file. Returns False (after logging) on any failure."""
        filename = md_file.name
        self.logger.info(f"Converting {filename}")
        try:
            with open(md_file, "r", encoding="utf-8") as f:
                content = f.read()

            processed = await substituter.substitute(content, file_id=md_file.stem, filename=filename)

            job = build_render_job(processed, brand, stylesheet,
                                   base_dir=md_file.parent.absolute(),
                                   title=extract_title(md_file, content))
            pdf = await page_renderer.render(job, md_file.stem)
        except Exception as e:
            self.logger.error(f"Error converting {filename}: {e}")
            return False

        try:
            with open(output_pdf, "wb") as f:
                f.write(pdf)
        except OSError as e:
            self._discard(output_pdf)
            self.logger.error(f"Could not write {output_pdf}: {e}")
            return False

        self.logger.success(f"Converted {filename} to {output_pdf}")
        return True

    def _discard(self, output_pdf: Path) -> None:
        try:
            output_pdf.unlink()
        except FileNotFoundError:
            pass


USAGE_EXAMPLES = """
examples:
  md2pdf docs/my-document.md      convert a single file
  md2pdf docs/architecture/       convert every .md file in a directory

  Files whose name contains 'readme' or 'template' are skipped in directories.
  Output: <output-dir>/<filename>_YYYYMMDD-HHMM.pdf

environment:
  OUTPUT_DIR                      output directory (default: output/pdf)
  BRAND_FILE                      brand configuration (default: ./brand.json)
  MD2PDF_NO_SANDBOX               run Chromium without its sandbox (containers)
  MD2PDF_DIAGRAM_TIMEOUT          seconds allowed per diagram (default: 120)
"""


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="md2pdf",
        description="Convert Markdown files to branded PDFs with Mermaid diagram support",
        epilog=USAGE_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("target", nargs="?", help="Markdown file or directory to convert")
    parser.add_argument("--output-dir", default=None, help="Output directory (default: $OUTPUT_DIR or output/pdf)")
    parser.add_argument("--brand", default=None, help="Brand configuration file (default: $BRAND_FILE or ./brand.json)")
    parser.add_argument("--temp-dir", default=None, help="Parent directory for the temporary working directory")
    parser.add_argument("--no-sandbox", action="store_true", default=None,
                        help="Run Chromium without its sandbox (needed in most containers)")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds allowed per Mermaid diagram (default: 120)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging for detailed output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.target:
        parser.print_help()
        return 1

    logger = ConsoleLogger(debug=args.debug)
    target = Path(args.target)
    if not target.is_absolute():
        target = Path.cwd() / target

    if not target.exists():
        logger.error(f"Not found: {args.target}")
        return 1
    if not target.is_dir() and not target.name.lower().endswith(MARKDOWN_SUFFIX):
        logger.error(f"Target must be a {MARKDOWN_SUFFIX} file or directory")
        return 1

    config = Config({
        "output_dir": args.output_dir,
        "brand_file": args.brand,
        "temp_dir": args.temp_dir,
        "sandboxed": args.no_sandbox,
        "diagram_timeout": args.timeout,
    })

    try:
        if not check_dependencies(pandoc=config.get_pandoc_command(),
                                  mermaid_command=config.get_mermaid_command(),
                                  quiet=not args.debug):
            return 1

        converter = BatchConverter(config, logger)
        asyncio.run(converter.run(target))
    except Exception as e:
        logger.error(f"Conversion aborted: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
