"""Page objects the preview controller talks to.

These stand in for the dialog, status line, log and download button of the
site so the controller can be driven headless or from the CLI.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .schema import SourceItem

DISABLED_HREF = "#"


class StatusBoard:
    """Status line plus a scrolling plain-text log."""

    def __init__(self) -> None:
        self.status_line = ""
        self.logs = ""

    def set_status(self, text: str) -> None:
        self.status_line = text

    def clear_log(self) -> None:
        self.logs = ""

    def log(self, message: Optional[str]) -> None:
        if not message:
            return
        self.logs += f"{message}\n"

    @property
    def log_lines(self):
        return self.logs.splitlines()


@dataclass
class DownloadLink:
    href: str = DISABLED_HREF

    @property
    def disabled(self) -> bool:
        return self.href == DISABLED_HREF


@dataclass
class Rect:
    left: float
    top: float
    right: float
    bottom: float

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom


@dataclass
class PreviewDialog:
    """Modal dialog. ``rect`` is its current layout rectangle."""
    title: str = ""
    open: bool = False
    rect: Rect = field(default_factory=lambda: Rect(0, 0, 960, 640))

    def show_modal(self) -> None:
        self.open = True

    def close(self) -> None:
        self.open = False

    def bounding_rect(self) -> Rect:
        return self.rect


@dataclass
class PointerEvent:
    client_x: float = 0.0
    client_y: float = 0.0
    target: Optional[SourceItem] = None
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True
