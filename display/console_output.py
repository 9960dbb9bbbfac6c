"""Console output module for colored messages and formatting.

This module provides colored console output functions built on Rich and
colorama, used by the server start-up banner and the interactive client.
"""

import os
from typing import Iterable, Optional

from colorama import init, Fore, Style
from rich.console import Console
from rich.panel import Panel

init(autoreset=True)  # Initialize colorama

console = Console()

# Plain colorama output only (no Rich markup), e.g. for dumb terminals
_FORCE_COLORAMA_ONLY = os.environ.get("FORCE_COLORAMA_ONLY", "").lower() in ("true", "1", "yes", "on")


def set_colorama_only(colorama_only: bool = True) -> None:
    """Disable Rich rendering and fall back to colorama-coloured text."""
    global _FORCE_COLORAMA_ONLY
    _FORCE_COLORAMA_ONLY = colorama_only


def print_success(message: str, emoji: str = "✅") -> None:
    """Print a success message in green."""
    if _FORCE_COLORAMA_ONLY:
        print(f"{Fore.GREEN}{emoji} {message}{Style.RESET_ALL}")
    else:
        console.print(f"{emoji} {message}", style="bold green")


def print_error(message: str, emoji: str = "❌") -> None:
    """Print an error message in red."""
    if _FORCE_COLORAMA_ONLY:
        print(f"{Fore.RED}{emoji} {message}{Style.RESET_ALL}")
    else:
        console.print(f"{emoji} {message}", style="bold red")


def print_warning(message: str, emoji: str = "⚠️") -> None:
    """Print a warning message in yellow."""
    if _FORCE_COLORAMA_ONLY:
        print(f"{Fore.YELLOW}{emoji} {message}{Style.RESET_ALL}")
    else:
        console.print(f"{emoji} {message}", style="yellow")


def print_info(message: str, emoji: str = "ℹ️") -> None:
    """Print an informational message in cyan."""
    if _FORCE_COLORAMA_ONLY:
        print(f"{Fore.CYAN}{emoji} {message}{Style.RESET_ALL}")
    else:
        console.print(f"{emoji} {message}", style="cyan")


def print_header(title: str, emoji: str = "📊") -> None:
    """Print a section header."""
    if _FORCE_COLORAMA_ONLY:
        print(f"\n{Fore.CYAN}{Style.BRIGHT}{emoji} {title}{Style.RESET_ALL}")
        print(f"{Fore.CYAN}{'=' * (len(title) + 3)}{Style.RESET_ALL}")
    else:
        console.rule(f"{emoji} {title}", style="cyan")


def print_panel(lines: Iterable[str], title: str, subtitle: Optional[str] = None) -> None:
    """Print lines inside a bordered panel (plain banner in colorama mode)."""
    body = "\n".join(lines)
    if _FORCE_COLORAMA_ONLY:
        print(f"\n{Style.BRIGHT}========== {title} =========={Style.RESET_ALL}")
        print(body)
        print("=" * (len(title) + 22))
    else:
        console.print(Panel(body, title=title, subtitle=subtitle, expand=False))


def print_response(text: str) -> None:
    """Print a server response, colouring the status line by its code."""
    status, _, details = text.partition("\n")
    if status.startswith("2"):
        color = Fore.GREEN
    elif status.startswith("5"):
        color = Fore.MAGENTA
    else:
        color = Fore.RED
    print(f"{color}{status}{Style.RESET_ALL}")
    if details.strip():
        print(details.rstrip("\n"))
