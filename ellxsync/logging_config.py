"""Logging setup for the command line.

Three levels:
- Default: warnings and errors only
- Verbose: stage progress and counts from ``ellxsync``
- Debug: everything, including every HTTP request httpx makes
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(
    *, verbose: bool = False, debug: bool = False, console: Console | None = None
) -> None:
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    handler = RichHandler(
        console=console,
        show_path=debug,
        rich_tracebacks=debug,
        markup=False,
    )
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s" if debug else "%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )

    logging.getLogger("ellxsync").setLevel(level)
    if not debug:
        # httpx logs every request line, signed upload URLs included, at INFO.
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("aiosqlite").setLevel(logging.WARNING)
