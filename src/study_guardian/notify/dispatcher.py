"""Routes timer events to sound, banner and system notifications."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

from study_guardian.core.config import NotificationSettings
from study_guardian.focus.errors import NotificationFailure
from study_guardian.focus.events import PhaseCompleted, PhaseReady, TimerEvent
from study_guardian.focus.models import Phase

logger = logging.getLogger(__name__)

WORK_COMPLETE = "work_complete"
SHORT_BREAK_COMPLETE = "short_break_complete"
LONG_BREAK_COMPLETE = "long_break_complete"
PHASE_READY = "phase_ready"

ALERT_KINDS = {
    Phase.WORK: WORK_COMPLETE,
    Phase.SHORT_BREAK: SHORT_BREAK_COMPLETE,
    Phase.LONG_BREAK: LONG_BREAK_COMPLETE,
}


class AudioPlayer(Protocol):
    def play_alert(self, kind: str) -> None:
        ...


class BannerPresenter(Protocol):
    def show_banner(self, title: str, message: str) -> None:
        ...


class SystemNotifier(Protocol):
    def show_system_notification(self, title: str, message: str) -> None:
        ...


def describe(event: PhaseCompleted | PhaseReady) -> tuple[str, str]:
    """Title and message shown for an event."""
    if isinstance(event, PhaseReady):
        minutes = max(1, round(event.duration_seconds / 60))
        return (
            f"{event.phase.label} ready",
            f"Start when you're ready ({minutes} min).",
        )

    if event.phase is Phase.WORK:
        if event.next_phase is Phase.LONG_BREAK:
            return "Long break time!", "Great work! Take a well-deserved break."
        return "Break time!", "Focus session complete. Take a short break."

    return "Back to work!", f"Starting cycle #{event.next_cycle_index}. Stay focused!"


class NotificationDispatcher:
    """Best-effort notifications for phase transitions.

    Each collaborator is optional. A failing collaborator is logged and
    recorded in ``failures``; it never reaches the timer.
    """

    def __init__(
        self,
        audio: AudioPlayer | None = None,
        banner: BannerPresenter | None = None,
        system: SystemNotifier | None = None,
        settings: NotificationSettings | None = None,
    ):
        self.audio = audio
        self.banner = banner
        self.system = system
        self.settings = settings or NotificationSettings()
        self.failures: list[NotificationFailure] = []
        self._alert_task: asyncio.Task | None = None
        # Phase and cycle already announced by the last PhaseCompleted
        self._announced: tuple[Phase, int] | None = None

    @property
    def alert_active(self) -> bool:
        return self._alert_task is not None and not self._alert_task.done()

    def handle_event(self, event: TimerEvent) -> None:
        """Engine listener.

        In manual-advance mode a completion is followed by ``PhaseReady`` for
        the phase it already named; that second event is not announced again.
        """
        announced, self._announced = self._announced, None
        if isinstance(event, PhaseCompleted):
            kind = ALERT_KINDS[event.phase]
            self._announced = (event.next_phase, event.next_cycle_index)
        elif isinstance(event, PhaseReady):
            if announced == (event.phase, event.cycle_index):
                return
            kind = PHASE_READY
        else:
            return

        title, message = describe(event)
        self.notify(title, message, kind)

    def notify(self, title: str, message: str, kind: str | None = None) -> None:
        """Send one notification to every enabled target."""
        if kind and self.audio is not None and self.settings.audio_enabled:
            self.start_repeating_alert(
                kind,
                repeat_count=self.settings.alert_repeat_count,
                interval=self.settings.alert_repeat_interval_seconds,
            )
        if self.banner is not None and self.settings.banner_enabled:
            self._safely("banner", self.banner.show_banner, title, message)
        if self.system is not None and self.settings.system_enabled:
            self._safely("system", self.system.show_system_notification, title, message)

    def start_repeating_alert(self, kind: str, repeat_count: int = 3, interval: float = 2.0) -> None:
        """Play an alert ``repeat_count`` times, replacing any alert in progress."""
        self.stop_all_alerts()
        if self.audio is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._safely("audio", self.audio.play_alert, kind)
            return

        self._alert_task = loop.create_task(self._repeat_alert(kind, repeat_count, interval))

    def stop_all_alerts(self) -> None:
        """Cancel the repeating alert, if one is playing."""
        if self._alert_task is not None:
            if not self._alert_task.done():
                self._alert_task.cancel()
            self._alert_task = None

    async def _repeat_alert(self, kind: str, repeat_count: int, interval: float) -> None:
        for i in range(repeat_count):
            self._safely("audio", self.audio.play_alert, kind)
            if i < repeat_count - 1:
                await asyncio.sleep(interval)

    def _safely(self, target: str, func: Callable[..., None], *args: str) -> None:
        try:
            func(*args)
        except Exception as e:
            failure = NotificationFailure(target, e)
            self.failures.append(failure)
            logger.warning(f"{failure}")
