"""Test cases for Mermaid block extraction, rendering and substitution."""

import asyncio
import json

import pytest

from fakes import FakeDiagramRenderer
from md2pdf.config import merge_brand
from md2pdf.diagrams import DiagramSubstituter, MermaidRenderer, find_diagram_blocks
from md2pdf.theme import derive_diagram_theme


class TestFindDiagramBlocks:
    """Test the forward scan for Mermaid fences."""

    def test_blocks_in_document_order(self, mermaid_doc):
        blocks = find_diagram_blocks(mermaid_doc)

        assert [b.index for b in blocks] == [0, 1, 2]
        assert blocks[0].source == "graph TD\n    A --> B"
        assert blocks[1].source.startswith("sequenceDiagram")
        assert blocks[0].end <= blocks[1].start <= blocks[1].end <= blocks[2].start
        for block in blocks:
            assert mermaid_doc[block.start:block.end].startswith("```mermaid")
            assert mermaid_doc[block.start:block.end].endswith("```")

    def test_windows_line_endings(self):
        blocks = find_diagram_blocks("Intro\r\n```mermaid\r\ngraph TD\r\n    A --> B\r\n```\r\n")
        assert len(blocks) == 1
        assert blocks[0].source == "graph TD\r\n    A --> B"

    def test_other_fences_are_ignored(self):
        content = "```python\nprint('hi')\n```\n\n```\nplain\n```\n"
        assert find_diagram_blocks(content) == []

    def test_empty_block_does_not_swallow_next_block(self):
        content = "```mermaid\n```\n\nText\n\n```mermaid\ngraph TD\n    A --> B\n```\n"
        blocks = find_diagram_blocks(content)

        assert [b.source for b in blocks] == ["", "graph TD\n    A --> B"]
        assert content[blocks[0].start:blocks[0].end] == "```mermaid\n```"
        assert blocks[0].end < content.index("Text")

    def test_closing_fence_must_start_a_line(self):
        content = "```mermaid\ngraph TD\n    A[\"```\"] --> B\n```\nafter\n"
        blocks = find_diagram_blocks(content)

        assert len(blocks) == 1
        assert blocks[0].source == "graph TD\n    A[\"```\"] --> B"
        assert content[blocks[0].end:] == "\nafter\n"


def substituter_for(renderer, tmp_path, logger):
    return DiagramSubstituter(renderer, tmp_path, logger)


class TestDiagramSubstituter:
    """Test replacement of Mermaid blocks with rendered images."""

    def test_no_diagrams_is_untouched(self, tmp_path, logger):
        renderer = FakeDiagramRenderer()
        substituter = substituter_for(renderer, tmp_path, logger)
        content = "# Title\n\n```python\nx = 1\n```\n"

        result = asyncio.run(substituter.substitute(content, "plain"))

        assert result == content
        assert renderer.calls == []
        assert (substituter.succeeded, substituter.failed) == (0, 0)

    def test_all_diagrams_rendered(self, tmp_path, logger, mermaid_doc):
        renderer = FakeDiagramRenderer()
        substituter = substituter_for(renderer, tmp_path, logger)

        result = asyncio.run(substituter.substitute(mermaid_doc, "arch", "arch.md"))

        assert "```mermaid" not in result
        for n in (1, 2, 3):
            image = tmp_path / f"arch-diagram-{n}.svg"
            assert f"![Diagram {n}]({image.absolute().as_uri()})" in result
        assert "Between one and two." in result
        assert result.endswith("The end.\n")
        assert (substituter.succeeded, substituter.failed) == (3, 0)

    def test_failed_block_keeps_source(self, tmp_path, logger, mermaid_doc):
        renderer = FakeDiagramRenderer(fail_on={2})
        substituter = substituter_for(renderer, tmp_path, logger)
        blocks = find_diagram_blocks(mermaid_doc)

        result = asyncio.run(substituter.substitute(mermaid_doc, "arch"))

        assert "![Diagram 1](" in result
        assert "![Diagram 3](" in result
        assert "![Diagram 2](" not in result
        assert mermaid_doc[blocks[1].start:blocks[1].end] in result
        assert result.count("```mermaid") == 1
        assert substituter.succeeded == 2
        assert substituter.failed == 1
        assert len(renderer.calls) == 3

    def test_identical_blocks_are_replaced_individually(self, tmp_path, logger):
        block = "```mermaid\ngraph TD\n    A --> B\n```"
        content = f"{block}\n\ntext\n\n{block}\n"
        renderer = FakeDiagramRenderer(fail_on={1})
        substituter = substituter_for(renderer, tmp_path, logger)

        result = asyncio.run(substituter.substitute(content, "dup"))

        assert result.startswith(block)
        assert result.endswith(f"![Diagram 2]({(tmp_path / 'dup-diagram-2.svg').absolute().as_uri()})\n")
        assert (substituter.succeeded, substituter.failed) == (1, 1)

    def test_diagram_after_empty_block_is_rendered(self, tmp_path, logger):
        content = "```mermaid\n```\n\nText\n\n```mermaid\ngraph TD\n    A --> B\n```\n"
        renderer = FakeDiagramRenderer(fail_on={1})
        substituter = substituter_for(renderer, tmp_path, logger)

        result = asyncio.run(substituter.substitute(content, "empty"))

        assert renderer.calls == ["", "graph TD\n    A --> B"]
        image = (tmp_path / "empty-diagram-2.svg").absolute().as_uri()
        assert result == f"```mermaid\n```\n\nText\n\n![Diagram 2]({image})\n"

    def test_counts_reset_between_documents(self, tmp_path, logger, mermaid_doc):
        substituter = substituter_for(FakeDiagramRenderer(fail_on={1}), tmp_path, logger)
        asyncio.run(substituter.substitute(mermaid_doc, "first"))
        asyncio.run(substituter.substitute("no diagrams", "second"))
        assert (substituter.succeeded, substituter.failed) == (0, 0)


class FakeProcess:
    """Minimal stand-in for an asyncio subprocess."""

    def __init__(self, cmd, returncode=0, stderr=b"", hang=False, write_output=True):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        self.hang = hang
        self.write_output = write_output
        self.killed = False

    async def communicate(self):
        if self.hang:
            await asyncio.sleep(10)
        if self.write_output and self.returncode == 0:
            output = self.cmd[self.cmd.index("-o") + 1]
            with open(output, "w", encoding="utf-8") as f:
                f.write("<svg></svg>")
        return b"", self.stderr

    def kill(self):
        self.killed = True
        self.returncode = -9

    async def wait(self):
        return self.returncode


@pytest.fixture
def spawned(monkeypatch):
    """Patch subprocess creation. Yields (spawned processes, behaviour overrides)."""
    processes = []
    behaviour = {}

    async def fake_exec(*cmd, **kwargs):
        if behaviour.get("missing"):
            raise FileNotFoundError(cmd[0])
        process = FakeProcess(list(cmd), **behaviour.get("process", {}))
        process.kwargs = kwargs
        processes.append(process)
        return process

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    return processes, behaviour


class TestMermaidRenderer:
    """Test the Mermaid CLI adapter."""

    def test_prepare_writes_theme_config(self, tmp_path):
        brand = merge_brand({"colors": {"accent": "#ff6600"}})
        renderer = MermaidRenderer.prepare(brand, tmp_path, command=["mmdc"])

        config = json.loads((tmp_path / "mermaid.json").read_text(encoding="utf-8"))
        assert config["theme"] == "base"
        assert config["themeVariables"] == derive_diagram_theme(brand.colors)
        assert renderer.puppeteer_config is None
        assert "-p" not in renderer.build_command(tmp_path / "a.mmd", tmp_path / "a.svg")

    def test_sandboxed_adds_puppeteer_config(self, tmp_path):
        renderer = MermaidRenderer.prepare(merge_brand({}), tmp_path, sandboxed=True,
                                           executable_path="/usr/bin/chromium")

        puppeteer = json.loads((tmp_path / "puppeteer-config.json").read_text(encoding="utf-8"))
        assert puppeteer == {"args": ["--no-sandbox", "--disable-setuid-sandbox"],
                             "executablePath": "/usr/bin/chromium"}
        cmd = renderer.build_command(tmp_path / "a.mmd", tmp_path / "a.svg")
        assert cmd[cmd.index("-p") + 1] == str(tmp_path / "puppeteer-config.json")

    def test_build_command(self, tmp_path):
        renderer = MermaidRenderer(tmp_path / "mermaid.json", tmp_path, command=["npx", "--no-install", "mmdc"])
        cmd = renderer.build_command(tmp_path / "d.mmd", tmp_path / "d.svg")

        assert cmd[:3] == ["npx", "--no-install", "mmdc"]
        assert cmd[cmd.index("-i") + 1] == str(tmp_path / "d.mmd")
        assert cmd[cmd.index("-o") + 1] == str(tmp_path / "d.svg")
        assert cmd[cmd.index("-c") + 1] == str(tmp_path / "mermaid.json")

    def test_render_success(self, tmp_path, spawned):
        processes, _ = spawned
        renderer = MermaidRenderer(tmp_path / "mermaid.json", tmp_path)
        output = tmp_path / "doc-diagram-1.svg"

        success, error = asyncio.run(renderer.render("graph TD\n A --> B", output))

        assert (success, error) == (True, "")
        assert output.read_text(encoding="utf-8") == "<svg></svg>"
        assert (tmp_path / "doc-diagram-1.mmd").read_text(encoding="utf-8") == "graph TD\n A --> B"
        assert processes[0].kwargs["cwd"] == str(tmp_path)

    def test_render_cli_missing(self, tmp_path, spawned):
        _, behaviour = spawned
        behaviour["missing"] = True
        renderer = MermaidRenderer(tmp_path / "mermaid.json", tmp_path)

        success, error = asyncio.run(renderer.render("graph TD", tmp_path / "x.svg"))

        assert success is False
        assert "not available" in error

    def test_render_cli_failure(self, tmp_path, spawned):
        _, behaviour = spawned
        behaviour["process"] = {"returncode": 1, "stderr": b"Parse error on line 2"}
        renderer = MermaidRenderer(tmp_path / "mermaid.json", tmp_path)

        success, error = asyncio.run(renderer.render("graph TD\n A -->", tmp_path / "x.svg"))

        assert success is False
        assert "exited with code 1" in error
        assert "Parse error on line 2" in error

    def test_render_timeout_kills_process(self, tmp_path, spawned):
        processes, behaviour = spawned
        behaviour["process"] = {"hang": True}
        renderer = MermaidRenderer(tmp_path / "mermaid.json", tmp_path, timeout=0.05)

        success, error = asyncio.run(renderer.render("graph TD", tmp_path / "x.svg"))

        assert success is False
        assert "timed out" in error
        assert processes[0].killed

    def test_render_without_output_fails(self, tmp_path, spawned):
        _, behaviour = spawned
        behaviour["process"] = {"write_output": False}
        renderer = MermaidRenderer(tmp_path / "mermaid.json", tmp_path)

        success, error = asyncio.run(renderer.render("graph TD", tmp_path / "x.svg"))

        assert success is False
        assert "no output" in error
