"""
Mermaid diagram extraction and substitution.

Fenced ```mermaid blocks are located with a single forward scan over the
original text, rendered to SVG one at a time through the Mermaid CLI, and
spliced back as image references. A block that fails to render is left as-is.
"""

import asyncio
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tqdm import tqdm

from .config import BrandConfig, DEFAULT_DIAGRAM_TIMEOUT
from .console import ConsoleLogger
from .theme import build_mermaid_config

# Handles both Unix (\n) and Windows (\r\n) line endings. The closing fence must sit
# on its own line, so an empty block cannot swallow the opening of the next one.
MERMAID_PATTERN = re.compile(
    r"```mermaid[ \t]*\r?\n(.*?)(?:\r?\n)?^[ \t]*```[ \t]*(?=\r?$)",
    re.DOTALL | re.MULTILINE | re.IGNORECASE,
)

SANDBOX_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class DiagramRenderError(Exception):
    """Raised when the Mermaid CLI cannot produce an image."""


@dataclass(frozen=True)
class DiagramBlock:
    index: int
    source: str
    start: int
    end: int


def find_diagram_blocks(content: str) -> List[DiagramBlock]:
    """Locate every Mermaid block in document order."""
    return [
        DiagramBlock(index=i, source=match.group(1), start=match.start(), end=match.end())
        for i, match in enumerate(MERMAID_PATTERN.finditer(content))
    ]


def write_puppeteer_config(path: Path, executable_path: Optional[str] = None) -> Path:
    """Write the Puppeteer launch config handed to mmdc with ``-p``."""
    puppeteer: Dict[str, Any] = {"args": list(SANDBOX_ARGS)}
    if executable_path:
        puppeteer["executablePath"] = executable_path
    with open(path, "w", encoding="utf-8") as f:
        json.dump(puppeteer, f)
    return path


class MermaidRenderer:
    """Runs the Mermaid CLI once per diagram with the brand theme."""

    def __init__(self, config_path: Path, work_dir: Path, command: Sequence[str] = ("mmdc",),
                 puppeteer_config: Optional[Path] = None, timeout: float = DEFAULT_DIAGRAM_TIMEOUT):
        self.config_path = Path(config_path)
        self.work_dir = Path(work_dir)
        self.command = list(command)
        self.puppeteer_config = puppeteer_config
        self.timeout = timeout

    @classmethod
    def prepare(cls, brand: BrandConfig, work_dir: Path, command: Sequence[str] = ("mmdc",),
                sandboxed: bool = False, executable_path: Optional[str] = None,
                timeout: float = DEFAULT_DIAGRAM_TIMEOUT) -> "MermaidRenderer":
        """Serialize the brand theme into ``work_dir`` and return a renderer using it."""
        work_dir = Path(work_dir)
        config_path = work_dir / "mermaid.json"
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(build_mermaid_config(brand), f, indent=2)

        puppeteer_config = None
        if sandboxed:
            puppeteer_config = write_puppeteer_config(work_dir / "puppeteer-config.json", executable_path)

        return cls(config_path, work_dir, command=command, puppeteer_config=puppeteer_config, timeout=timeout)

    def build_command(self, input_path: Path, output_path: Path) -> List[str]:
        cmd = self.command + [
            "-i", str(input_path),
            "-o", str(output_path),
            "-c", str(self.config_path),
            "-b", "transparent",
            "-q",
        ]
        if self.puppeteer_config:
            cmd += ["-p", str(self.puppeteer_config)]
        return cmd

    async def _run(self, cmd: List[str]) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self.work_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise DiagramRenderError(f"Mermaid CLI not available ({cmd[0]} not found)")
        except OSError as e:
            raise DiagramRenderError(f"Could not start Mermaid CLI: {e}")

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise DiagramRenderError(f"Mermaid CLI timed out after {self.timeout:g}s")

        if process.returncode != 0:
            details = stderr.decode("utf-8", errors="replace").strip()
            message = f"Mermaid CLI exited with code {process.returncode}"
            if details:
                message += f": {details.splitlines()[-1]}"
            raise DiagramRenderError(message)

    async def render(self, mermaid_code: str, output_path: Path) -> Tuple[bool, str]:
        """Render one diagram to ``output_path``. Returns (success, error message)."""
        source_path = output_path.with_suffix(".mmd")
        with open(source_path, "w", encoding="utf-8") as f:
            f.write(mermaid_code)

        try:
            await self._run(self.build_command(source_path, output_path))
        except DiagramRenderError as e:
            return False, str(e)

        if not output_path.exists() or output_path.stat().st_size == 0:
            return False, "Mermaid CLI produced no output"
        return True, ""


class DiagramSubstituter:
    """Replaces Mermaid blocks with references to their rendered SVGs.

    ``succeeded`` and ``failed`` hold the counts from the most recent call to
    :meth:`substitute`.
    """

    def __init__(self, renderer, work_dir: Path, logger: Optional[ConsoleLogger] = None):
        self.renderer = renderer
        self.work_dir = Path(work_dir)
        self.logger = logger or ConsoleLogger()
        self.succeeded = 0
        self.failed = 0

    async def substitute(self, content: str, file_id: str = "document", filename: str = "") -> str:
        self.succeeded = 0
        self.failed = 0

        blocks = find_diagram_blocks(content)
        if not blocks:
            return content

        label = filename or file_id
        self.logger.info(f"{label}: rendering {len(blocks)} Mermaid diagram(s)")

        parts = []
        cursor = 0
        desc = f"  {label} - Mermaid"
        for block in tqdm(blocks, desc=desc, unit="diagram", leave=False):
            parts.append(content[cursor:block.start])
            cursor = block.end

            image_path = self.work_dir / f"{file_id}-diagram-{block.index + 1}.svg"
            self.logger.debug(f"Rendering Mermaid diagram {block.index + 1} to: {image_path}")

            success, error_msg = await self.renderer.render(block.source, image_path)
            if success:
                self.succeeded += 1
                parts.append(f"![Diagram {block.index + 1}]({image_path.absolute().as_uri()})")
            else:
                self.failed += 1
                self.logger.warning(f"Mermaid diagram {block.index + 1} failed, keeping source: {error_msg}")
                parts.append(content[block.start:block.end])

        parts.append(content[cursor:])

        if self.failed:
            self.logger.warning(f"{label}: {self.succeeded} diagram(s) rendered, {self.failed} failed")
        else:
            self.logger.debug(f"{label}: {self.succeeded} diagram(s) rendered")
        return "".join(parts)
