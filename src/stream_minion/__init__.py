"""Stream Minion - terminal streaming music player."""

__version__ = "0.1.0"
