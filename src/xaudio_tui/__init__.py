"""Terminal YouTube playlist player driving mpv over its IPC socket."""

__version__ = "0.1.0"

__all__ = ["__version__"]
