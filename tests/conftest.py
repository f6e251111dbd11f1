"""Shared fixtures."""

import pytest

from md2pdf.config import Config
from md2pdf.console import ConsoleLogger


@pytest.fixture
def logger():
    return ConsoleLogger(debug=True)


@pytest.fixture
def workspace(tmp_path):
    """Source, output and temp directories under one tmp root."""
    paths = {
        "docs": tmp_path / "docs",
        "output": tmp_path / "output",
        "temp": tmp_path / "temp",
        "brand": tmp_path / "brand.json",
    }
    paths["docs"].mkdir()
    return paths


@pytest.fixture
def config(workspace):
    return Config(
        {
            "output_dir": workspace["output"],
            "brand_file": workspace["brand"],
            "temp_dir": workspace["temp"],
            "sandboxed": False,
        },
        environ={},
    )


MERMAID_DOC = """# Architecture

Intro paragraph.

```mermaid
graph TD
    A --> B
```

Between one and two.

```mermaid
sequenceDiagram
    Alice->>Bob: Hi
```

Between two and three.

```mermaid
graph LR
    A --> B
```

The end.
"""


@pytest.fixture
def mermaid_doc():
    return MERMAID_DOC
