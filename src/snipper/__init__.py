"""Detect narrowband radio bursts in a live I/Q stream and save them as cu8 captures."""

__version__ = "0.1.0"
