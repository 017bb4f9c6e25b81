"""
quotewall console utilities

This module provides application-wide access to a Rich Console object for writing to stdout
and stderr, plus configure_logging() which routes the library's `logging` records through the
same themed console.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

quotewall_theme = Theme(
    {"warning": "orange_red1", "fail": "bold red", "confirm": "", "describe": ""}
)

console = Console(theme=quotewall_theme)
error_console = Console(theme=quotewall_theme, stderr=True)


"""
Formatting helpers
"""


def warn(msg: str):
    """
    Format msg and print to stderr.
    """

    error_console.print(
        f":exclamation_mark-emoji: [bold]warning: [/] {msg}", style="warning"
    )


def describe(msg: str, **kwargs):
    """
    Format descriptive msg and print to stdout.
    """

    console.print(f"{msg}", style="describe", **kwargs)


def confirm_success(msg: str, **kwargs):
    """
    Format confirmation msg and print to stdout. Accept any additional kwargs that console.print from
    rich module exposes.
    """

    console.print(f"{msg}", style="confirm", **kwargs)


def fail(msg: str):
    """
    Format failure msg and print to stderr.
    """

    error_console.print(f":x-emoji: failed. {msg}", style="fail")


def configure_logging(verbosity: str = "normal") -> logging.Logger:
    """
    Attach a RichHandler to the 'quotewall' logger. verbosity is one of 'quiet' (errors only),
    'normal' (warnings) or 'verbose' (everything down to debug).
    """

    levels = {"quiet": logging.ERROR, "normal": logging.WARNING, "verbose": logging.DEBUG}

    logger = logging.getLogger("quotewall")
    logger.setLevel(levels.get(verbosity, logging.WARNING))

    if not any(isinstance(handler, RichHandler) for handler in logger.handlers):
        logger.addHandler(
            RichHandler(console=error_console, show_path=False, rich_tracebacks=True)
        )

    return logger
