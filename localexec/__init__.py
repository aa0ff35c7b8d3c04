"""localexec — run a local shell command and return its output as data."""

__version__ = "1.0.0"
