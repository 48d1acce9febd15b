"""Agent autonomy and memory engine for ideation teams."""

__version__ = "0.1.0"
