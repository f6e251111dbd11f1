"""
External tool detection.
"""

import subprocess
from typing import List, Sequence

from colorama import Fore, Style


def check_command(cmd: Sequence[str], description: str, quiet: bool = False) -> bool:
    """Check if a command is available."""
    try:
        subprocess.run(list(cmd), check=True, capture_output=True, timeout=30)
        if not quiet:
            print(f"{Fore.GREEN}✓{Style.RESET_ALL} {description} is available")
        return True
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError):
        if not quiet:
            print(f"{Fore.RED}✗{Style.RESET_ALL} {description} is not available")
        return False


def check_dependencies(pandoc: str = "pandoc", mermaid_command: Sequence[str] = ("mmdc",),
                       check_optional: bool = True, quiet: bool = False) -> bool:
    """Check the external tools the pipeline shells out to.

    Returns False only when a required tool is missing. The Mermaid CLI is
    optional: without it diagrams stay as source in the PDF.
    """
    missing: List[str] = []

    if not check_command([pandoc, "--version"], "Pandoc", quiet=quiet):
        missing.append("pandoc")

    if check_optional:
        available = check_command(list(mermaid_command) + ["--version"], "Mermaid CLI", quiet=quiet)
        if not available and not quiet:
            print(f"{Fore.YELLOW}⚠{Style.RESET_ALL} Mermaid diagrams will be kept as source. "
                  "Install with: npm install -g @mermaid-js/mermaid-cli")

    if missing:
        print(f"{Fore.RED}[ERROR]{Style.RESET_ALL} Missing required tools: {', '.join(missing)}")
        if "pandoc" in missing:
            print("Pandoc is required. Please install it from: https://pandoc.org/installing.html")
        return False
    return True
