"""
Library Mirror - Logging System
Timestamped rich console output plus a plain diagnostic log file.

Everything goes to both sinks. The console gets colors and emoji; the file
gets the same text with levels, so a crawl can be read back after the fact.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "timestamp": "dim white",
    "header": "bold magenta",
    "config": "dim cyan",
    "dim": "dim",
})

_CONSOLE_STYLES = ("info", "warning", "error", "success", "dim")

console = Console(theme=THEME)

_logger: Optional[logging.Logger] = None
_console_enabled = True


def setup_logging(
    log_file_path: Path,
    level: str = "INFO",
    log_to_file: bool = True,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Initialize the logging system.

    Args:
        log_file_path: Path to the diagnostic log file
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_to_file: Whether to write the diagnostic log
        log_to_console: Whether to print to the console

    Returns:
        Configured logger instance
    """
    global _logger, _console_enabled

    _console_enabled = log_to_console

    _logger = logging.getLogger("library_mirror")
    _logger.setLevel(getattr(logging, level.upper()))
    _logger.handlers.clear()

    if log_to_file:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "[%(asctime)s] %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        _logger.addHandler(file_handler)

    return _logger


def get_timestamp() -> str:
    """Get formatted timestamp for console output."""
    return datetime.now().strftime("%H:%M:%S")


def _print(markup: str, style: Optional[str] = None, leading_newline: bool = False) -> None:
    """Print one timestamped console line; markup must already be escaped."""
    if not _console_enabled:
        return
    newline = "\n" if leading_newline else ""
    console.print(f"{newline}[timestamp][{get_timestamp()}][/timestamp] {markup}", style=style)


def _write(message: str, level: int = logging.INFO) -> None:
    if _logger:
        _logger.log(level, message)


def log(message: str, level: str = "info", prefix: str = "") -> None:
    """
    Log a message to both console and file.

    Scraped page text ends up in messages, so it is escaped before
    rich interprets square brackets as markup.

    Args:
        message: The message to log
        level: Log level (debug, info, warning, error, success)
        prefix: Optional emoji/prefix for console output
    """
    prefix_str = f"{prefix} " if prefix else ""

    style = "dim" if level == "debug" else level
    _print(f"{prefix_str}{escape(message)}", style=style if style in _CONSOLE_STYLES else "info")

    _write(f"{prefix_str}{message}", getattr(logging, level.upper(), logging.INFO))


def log_info(message: str, prefix: str = "") -> None:
    """Log an info message."""
    log(message, "info", prefix)


def log_detail(message: str, prefix: str = "") -> None:
    """Log a low-importance message (dimmed on console, DEBUG in file)."""
    log(message, "debug", prefix)


def log_success(message: str, prefix: str = "") -> None:
    log(message, "success", prefix or "✅")


def log_warning(message: str, prefix: str = "") -> None:
    log(message, "warning", prefix or "⚠️")


def log_error(message: str, prefix: str = "") -> None:
    log(message, "error", prefix or "❌")


def log_startup_banner(version: str, project_name: str) -> None:
    """Print the startup banner."""
    separator = "=" * 60
    title = f"{project_name} - v{version}"

    _print(f"[header]{separator}[/header]", leading_newline=True)
    _print(f"[header]📚 {escape(title)}[/header]")
    _print(f"[header]{separator}[/header]")

    _write(separator)
    _write(title)
    _write(separator)


def log_section(title: str, emoji: str = "📋") -> None:
    """Print a section title, e.g. one per library list."""
    _print(f"[header]{emoji} {escape(title)}:[/header]", leading_newline=True)
    _write(f"{title}:")


def log_subsection(message: str, emoji: str = "", indent: int = 1) -> None:
    """Print an indented item under the current section."""
    indent_str = "   " * indent
    prefix = f"{emoji} " if emoji else ""
    _print(f"[config]{indent_str}{prefix}{escape(message)}[/config]")
    _write(f"{indent_str}{prefix}{message}")


def log_status(label: str, status: str, style: str) -> None:
    """
    Print a one-line status with a colored verdict.

    Used for the per-book archive check ("exists", "audio missing", ...).
    """
    _print(f"{escape(label)} [{style}]{escape(status)}[/{style}]")
    _write(f"{label} {status}")
