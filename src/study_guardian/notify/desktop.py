"""Concrete notification targets for a terminal session."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys

from rich.console import Console
from rich.panel import Panel

from study_guardian.notify.dispatcher import (
    LONG_BREAK_COMPLETE,
    PHASE_READY,
    SHORT_BREAK_COMPLETE,
    WORK_COMPLETE,
)

logger = logging.getLogger(__name__)

BANNER_STYLES = {
    WORK_COMPLETE: "green",
    SHORT_BREAK_COMPLETE: "cyan",
    LONG_BREAK_COMPLETE: "magenta",
    PHASE_READY: "yellow",
}


class TerminalBell:
    """Rings the terminal bell."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def play_alert(self, kind: str) -> None:
        logger.debug(f"Playing {kind} alert")
        self.console.bell()


class ConsoleBanner:
    """Prints a rich panel."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def show_banner(self, title: str, message: str) -> None:
        self.console.print(Panel(message, title=title, border_style="green"))


class DesktopNotifier:
    """Native notifications via osascript (macOS) or notify-send (Linux).

    Raises ``RuntimeError`` when no notifier is available or the command
    fails; the dispatcher records that as a notification failure.
    """

    def __init__(self, timeout: float = 2.0):
        self.timeout = timeout

    def _command(self, title: str, message: str) -> list[str]:
        if sys.platform == "darwin":
            script = f'display notification "{_escape(message)}" with title "{_escape(title)}"'
            return ["osascript", "-e", script]
        if shutil.which("notify-send"):
            return ["notify-send", "--app-name=Study Guardian", title, message]
        raise RuntimeError("No desktop notifier available")

    def show_system_notification(self, title: str, message: str) -> None:
        command = self._command(title, message)
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise RuntimeError(f"{command[0]} failed: {e}") from e
        if result.returncode != 0:
            raise RuntimeError(f"{command[0]} exited with {result.returncode}: {result.stderr.strip()}")


def _escape(text: str) -> str:
    """Escape text for an AppleScript string literal."""
    return text.replace("\\", "\\\\").replace('"', '\\"')
