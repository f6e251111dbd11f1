"""
Page rendering: Markdown -> HTML with pandoc, HTML -> PDF with headless Chromium.
"""

import asyncio
import html
from pathlib import Path
from typing import List, Optional

from playwright.async_api import async_playwright

from .console import ConsoleLogger
from .diagrams import SANDBOX_ARGS
from .document import RenderJob


PANDOC_TIMEOUT = 120.0


class PageRenderError(Exception):
    """Raised when a render job cannot be turned into a PDF."""


HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    {base}
    <style>
{css}
    </style>
</head>
<body>
{content}
</body>
</html>
"""


class PageRenderer:
    """Turns a RenderJob into PDF bytes."""

    def __init__(self, work_dir: Path, sandboxed: bool = False, executable_path: Optional[str] = None,
                 pandoc: str = "pandoc", logger: Optional[ConsoleLogger] = None,
                 timeout: float = PANDOC_TIMEOUT):
        self.work_dir = Path(work_dir)
        self.sandboxed = sandboxed
        self.executable_path = executable_path
        self.pandoc = pandoc
        self.logger = logger or ConsoleLogger()
        self.timeout = timeout

    def _launch_args(self) -> List[str]:
        args = ["--disable-dev-shm-usage", "--disable-gpu"]
        if self.sandboxed:
            args += SANDBOX_ARGS
        return args

    async def markdown_to_html(self, markdown: str, stem: str) -> str:
        """Convert Markdown to an HTML fragment with pandoc.

        Fenced code with a language tag comes back as ``sourceCode`` blocks
        whose token spans are colored by the page theme.
        """
        temp_md = self.work_dir / f"{stem}.md"
        with open(temp_md, "w", encoding="utf-8") as f:
            f.write(markdown)

        cmd = [self.pandoc, str(temp_md), "--from", "gfm", "--to", "html5"]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self.work_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise PageRenderError(f"pandoc not available ({self.pandoc} not found)")
        except OSError as e:
            raise PageRenderError(f"Could not start pandoc: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise PageRenderError(f"Pandoc timed out after {self.timeout:g}s")

        if process.returncode != 0:
            raise PageRenderError(f"Pandoc failed: {stderr.decode('utf-8', errors='replace').strip()}")
        return stdout.decode("utf-8")

    def build_html(self, job: RenderJob, body: str) -> str:
        base = ""
        if job.base_dir is not None:
            base = f'<base href="{job.base_dir.absolute().as_uri()}/">'
        return HTML_TEMPLATE.format(
            title=html.escape(job.title),
            base=base,
            css=job.stylesheet.full_css(),
            content=body,
        )

    async def html_to_pdf(self, html_file: Path, job: RenderJob) -> bytes:
        """Print an HTML file to PDF bytes with the job's page options."""
        launch_kwargs = {"headless": True, "args": self._launch_args()}
        if self.executable_path:
            launch_kwargs["executable_path"] = self.executable_path

        async with async_playwright() as pw:
            browser = await pw.chromium.launch(**launch_kwargs)
            try:
                page = await browser.new_page()
                await page.goto(html_file.absolute().as_uri())
                await page.wait_for_load_state("networkidle")
                return await page.pdf(**job.page_options)
            finally:
                await browser.close()

    async def render(self, job: RenderJob, stem: str) -> bytes:
        body = await self.markdown_to_html(job.source_document, stem)
        html_file = self.work_dir / f"{stem}.html"
        with open(html_file, "w", encoding="utf-8") as f:
            f.write(self.build_html(job, body))
        self.logger.debug(f"Wrote intermediate HTML to {html_file}")

        try:
            pdf = await self.html_to_pdf(html_file, job)
        except Exception as e:
            raise PageRenderError(f"Failed to convert HTML to PDF: {e}") from e
        if not pdf:
            raise PageRenderError("Chromium returned an empty PDF")
        return pdf
