"""Allow ``python -m study_guardian``."""

from study_guardian.cli.main import app

app()
