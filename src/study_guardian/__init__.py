"""Study Guardian: a Pomodoro-style focus timer with session logging."""

__version__ = "0.1.0"
