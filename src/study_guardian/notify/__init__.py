"""Phase-change notifications."""

from study_guardian.notify.desktop import ConsoleBanner, DesktopNotifier, TerminalBell
from study_guardian.notify.dispatcher import (
    AudioPlayer,
    BannerPresenter,
    NotificationDispatcher,
    SystemNotifier,
)

__all__ = [
    "NotificationDispatcher",
    "AudioPlayer",
    "BannerPresenter",
    "SystemNotifier",
    "TerminalBell",
    "ConsoleBanner",
    "DesktopNotifier",
]
