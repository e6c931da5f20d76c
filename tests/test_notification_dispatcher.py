from __future__ import annotations

import asyncio

import pytest

from study_guardian.core.config import NotificationSettings
from study_guardian.focus.events import PhaseAborted, PhaseCompleted, PhaseReady
from study_guardian.core.clock import ManualClock
from study_guardian.focus.models import Phase, TimerConfiguration
from study_guardian.focus.timer import TimerEngine
from study_guardian.notify.desktop import ConsoleBanner, DesktopNotifier
from study_guardian.notify.dispatcher import NotificationDispatcher, describe


class RecordingTarget:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.alerts: list[str] = []
        self.banners: list[tuple[str, str]] = []
        self.system: list[tuple[str, str]] = []

    def play_alert(self, kind: str) -> None:
        if self.fail:
            raise OSError("no audio device")
        self.alerts.append(kind)

    def show_banner(self, title: str, message: str) -> None:
        if self.fail:
            raise RuntimeError("display closed")
        self.banners.append((title, message))

    def show_system_notification(self, title: str, message: str) -> None:
        if self.fail:
            raise RuntimeError("notifier missing")
        self.system.append((title, message))


def _completed(make_record, phase: Phase, next_phase: Phase, next_cycle: int = 1) -> PhaseCompleted:
    return PhaseCompleted(make_record(phase=phase), next_phase, next_cycle)


def test_completed_work_notifies_every_target(make_record) -> None:
    target = RecordingTarget()
    dispatcher = NotificationDispatcher(audio=target, banner=target, system=target)

    dispatcher.handle_event(_completed(make_record, Phase.WORK, Phase.SHORT_BREAK))

    assert target.alerts == ["work_complete"]
    assert target.banners == [("Break time!", "Focus session complete. Take a short break.")]
    assert target.system == target.banners


def test_alert_kind_follows_finished_phase(make_record) -> None:
    target = RecordingTarget()
    dispatcher = NotificationDispatcher(audio=target)

    dispatcher.handle_event(_completed(make_record, Phase.SHORT_BREAK, Phase.WORK, 2))
    dispatcher.handle_event(_completed(make_record, Phase.LONG_BREAK, Phase.WORK, 1))
    dispatcher.handle_event(PhaseReady(Phase.SHORT_BREAK, 1, 300))

    assert target.alerts == ["short_break_complete", "long_break_complete", "phase_ready"]


def test_aborted_phases_are_silent(make_record) -> None:
    target = RecordingTarget()
    dispatcher = NotificationDispatcher(audio=target, banner=target, system=target)

    dispatcher.handle_event(PhaseAborted(make_record(completed=False)))

    assert target.alerts == target.banners == target.system == []


def test_failures_are_isolated(make_record) -> None:
    broken = RecordingTarget(fail=True)
    working = RecordingTarget()
    dispatcher = NotificationDispatcher(audio=broken, banner=broken, system=working)

    dispatcher.handle_event(_completed(make_record, Phase.WORK, Phase.LONG_BREAK, 4))

    assert [f.target for f in dispatcher.failures] == ["audio", "banner"]
    assert isinstance(dispatcher.failures[0].cause, OSError)
    assert working.system == [("Long break time!", "Great work! Take a well-deserved break.")]


def test_disabled_targets_are_skipped(make_record) -> None:
    target = RecordingTarget()
    settings = NotificationSettings(audio_enabled=False, system_enabled=False)
    dispatcher = NotificationDispatcher(audio=target, banner=target, system=target, settings=settings)

    dispatcher.handle_event(_completed(make_record, Phase.WORK, Phase.SHORT_BREAK))

    assert target.alerts == []
    assert target.system == []
    assert len(target.banners) == 1


def test_repeating_alert_plays_count_times() -> None:
    target = RecordingTarget()
    dispatcher = NotificationDispatcher(audio=target)

    async def run() -> None:
        dispatcher.start_repeating_alert("work_complete", repeat_count=3, interval=0.01)
        assert dispatcher.alert_active
        await asyncio.sleep(0.1)

    asyncio.run(run())

    assert target.alerts == ["work_complete"] * 3
    assert not dispatcher.alert_active


def test_new_alert_replaces_previous_one() -> None:
    target = RecordingTarget()
    dispatcher = NotificationDispatcher(audio=target)

    async def run() -> None:
        dispatcher.start_repeating_alert("work_complete", repeat_count=10, interval=0.05)
        await asyncio.sleep(0)
        dispatcher.start_repeating_alert("phase_ready", repeat_count=2, interval=0.01)
        await asyncio.sleep(0.2)

    asyncio.run(run())

    assert target.alerts == ["work_complete", "phase_ready", "phase_ready"]


def test_stop_all_alerts() -> None:
    target = RecordingTarget()
    dispatcher = NotificationDispatcher(audio=target)

    async def run() -> None:
        dispatcher.start_repeating_alert("work_complete", repeat_count=10, interval=0.05)
        await asyncio.sleep(0)
        dispatcher.stop_all_alerts()
        await asyncio.sleep(0.1)

    asyncio.run(run())

    assert target.alerts == ["work_complete"]
    assert not dispatcher.alert_active


def test_alert_without_loop_plays_once() -> None:
    target = RecordingTarget()
    dispatcher = NotificationDispatcher(audio=target)

    dispatcher.start_repeating_alert("phase_ready", repeat_count=5, interval=1)

    assert target.alerts == ["phase_ready"]


def test_manual_advance_announces_completion_once() -> None:
    target = RecordingTarget()
    dispatcher = NotificationDispatcher(audio=target, banner=target)
    clock = ManualClock()
    engine = TimerEngine(TimerConfiguration(work_duration_seconds=2, manual_advance=True), clock=clock)
    engine.subscribe(dispatcher.handle_event)

    async def run() -> None:
        engine.start()
        for _ in range(2):
            clock.advance(1)
            engine.tick()
        await asyncio.sleep(0.05)

    asyncio.run(run())

    assert target.alerts[0] == "work_complete"
    assert "phase_ready" not in target.alerts
    assert target.banners == [("Break time!", "Focus session complete. Take a short break.")]


def test_ready_after_skip_is_announced(make_record) -> None:
    target = RecordingTarget()
    dispatcher = NotificationDispatcher(audio=target, banner=target)

    dispatcher.handle_event(PhaseAborted(make_record(completed=False)))
    dispatcher.handle_event(PhaseReady(Phase.SHORT_BREAK, 1, 300))

    assert target.alerts == ["phase_ready"]
    assert target.banners == [("Short break ready", "Start when you're ready (5 min).")]


def test_describe_phase_ready() -> None:
    title, message = describe(PhaseReady(Phase.LONG_BREAK, 4, 900))

    assert title == "Long break ready"
    assert "15 min" in message


def test_back_to_work_message(make_record) -> None:
    title, message = describe(_completed(make_record, Phase.SHORT_BREAK, Phase.WORK, 3))

    assert title == "Back to work!"
    assert "cycle #3" in message


def test_console_banner_prints_panel() -> None:
    from rich.console import Console

    console = Console(record=True, width=60)
    ConsoleBanner(console).show_banner("Break time!", "Stretch your legs")

    output = console.export_text()
    assert "Break time!" in output
    assert "Stretch your legs" in output


def test_desktop_notifier_reports_missing_command(monkeypatch) -> None:
    import subprocess

    import study_guardian.notify.desktop as desktop

    monkeypatch.setattr(desktop.sys, "platform", "linux")
    monkeypatch.setattr(desktop.shutil, "which", lambda name: "/usr/bin/notify-send")

    def missing(*args, **kwargs):
        raise FileNotFoundError("notify-send")

    monkeypatch.setattr(subprocess, "run", missing)

    with pytest.raises(RuntimeError, match="notify-send"):
        DesktopNotifier().show_system_notification("Title", "Body")
