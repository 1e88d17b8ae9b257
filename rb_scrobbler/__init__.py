"""Submit Rockbox .scrobbler.log play history to Last.fm."""

__version__ = "0.1.0"
