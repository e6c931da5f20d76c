"""Settings and clock sources."""
