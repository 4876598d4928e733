"""
Logging setup shared by the command line entry points.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
