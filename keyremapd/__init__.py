"""Per-application keyboard and mouse remapping daemon for Linux input devices."""

__version__ = "0.1.0"